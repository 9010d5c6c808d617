"""Test helpers shared across modules."""

import datetime
from collections.abc import Iterable

from shortlink.codegen import CodeGenerator
from shortlink.models import Link, new_id, utcnow


class SequenceGenerator(CodeGenerator):
    """Generator that hands out a fixed sequence of candidates, then repeats the last."""

    def __init__(self, codes: Iterable[str]) -> None:
        self._codes = list(codes)
        assert self._codes, "SequenceGenerator needs at least one code"
        super().__init__(alphabet="".join(sorted(set("".join(self._codes)))), length=len(self._codes[0]))

    def generate(self) -> str:
        if len(self._codes) > 1:
            return self._codes.pop(0)
        return self._codes[0]


def make_link(short_code: str, *, expires_at: datetime.datetime | None = None, owner_id: str | None = None) -> Link:
    now = utcnow()
    return Link(
        id=new_id(),
        short_code=short_code,
        original_url=f"https://example.com/{short_code}",
        title=None,
        click_count=0,
        owner_id=owner_id,
        expires_at=expires_at,
        created_at=now,
        updated_at=now,
    )


def past(hours: int = 1) -> datetime.datetime:
    return utcnow() - datetime.timedelta(hours=hours)
