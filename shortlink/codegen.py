"""Random short-code candidates.

Codes are produced with nanoid, which draws from ``os.urandom``, so consecutive
codes give no hint about the next one. The generator holds no mutable state and
can be shared freely between concurrent tasks.
"""

from nanoid import generate

__all__ = ["DEFAULT_ALPHABET", "READABLE_ALPHABET", "CodeGenerator"]

DEFAULT_ALPHABET = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
# Drops 0/O and 1/l/I, which are easy to misread when a code is typed by hand.
READABLE_ALPHABET = "abcdefghijkmnopqrstuvwxyzABCDEFGHJKLMNPQRSTUVWXYZ23456789"


class CodeGenerator:
    """Fixed-length short codes drawn uniformly from ``alphabet``."""

    def __init__(self, alphabet: str = DEFAULT_ALPHABET, length: int = 7) -> None:
        if not alphabet:
            raise ValueError("alphabet must not be empty")
        if len(set(alphabet)) != len(alphabet):
            raise ValueError("alphabet must not contain duplicate characters")
        if length <= 0:
            raise ValueError(f"length must be a positive integer, got {length!r}")
        self._alphabet = alphabet
        self._charset = frozenset(alphabet)
        self._length = length

    @property
    def alphabet(self) -> str:
        return self._alphabet

    @property
    def length(self) -> int:
        return self._length

    @property
    def capacity(self) -> int:
        """Number of distinct codes this generator can produce."""
        return len(self._alphabet) ** self._length

    def generate(self) -> str:
        return generate(self._alphabet, self._length)

    def matches(self, code: str) -> bool:
        return len(code) == self._length and all(c in self._charset for c in code)

    def __repr__(self) -> str:
        return f"<CodeGenerator(length={self._length}, alphabet_size={len(self._alphabet)})>"
