"""Unit tests for LinkService against both repository adapters."""

import datetime
from unittest.mock import AsyncMock, patch

import pytest

from shortlink.enums import LookupMiss, WriteStatus
from shortlink.errors import (
    ConflictError,
    ExhaustedError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    StorageTimeoutError,
    ValidationError,
)
from shortlink.link_service import LinkService
from shortlink.models import utcnow
from shortlink.schemas import ClickMetadata
from tests.helpers import SequenceGenerator, make_link, past

# ============================================================================
# CREATE
# ============================================================================


@pytest.mark.asyncio
async def test_create_generated_code(service: LinkService) -> None:
    link = await service.create_link("https://example.com/x")

    assert len(link.short_code) == service.generator.length
    assert service.generator.matches(link.short_code)
    assert link.original_url == "https://example.com/x"
    assert link.click_count == 0
    assert link.id
    assert link.created_at is not None
    assert link.updated_at is not None
    assert link.owner_id is None
    assert link.expires_at is None


@pytest.mark.asyncio
async def test_create_with_all_optional_fields(service: LinkService) -> None:
    expires_at = utcnow() + datetime.timedelta(days=1)
    link = await service.create_link(
        "https://example.com/docs",
        custom_code="docs-2024",
        title="  Release   notes ",
        owner_id="user-1",
        expires_at=expires_at,
    )

    assert link.short_code == "docs-2024"
    assert link.title == "Release notes"
    assert link.owner_id == "user-1"
    assert abs((link.expires_at - expires_at).total_seconds()) < 1


@pytest.mark.asyncio
async def test_create_expires_in_hours(service: LinkService) -> None:
    link = await service.create_link("https://example.com", expires_in_hours=2)
    remaining = link.expires_at - utcnow()
    assert datetime.timedelta(hours=1, minutes=59) < remaining <= datetime.timedelta(hours=2)


@pytest.mark.asyncio
async def test_create_naive_expiry_treated_as_utc(service: LinkService) -> None:
    naive = (utcnow() + datetime.timedelta(hours=3)).replace(tzinfo=None)
    link = await service.create_link("https://example.com", expires_at=naive)
    assert link.expires_at.tzinfo is not None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "url",
    ["", "not-a-url", "ftp://example.com/file", "/relative/path", "https://", "https://" + "a" * 2050 + ".com"],
)
async def test_create_rejects_bad_url(service: LinkService, url: str) -> None:
    with pytest.raises(ValidationError) as exc_info:
        await service.create_link(url)
    assert "original_url" in exc_info.value.fields


@pytest.mark.asyncio
@pytest.mark.parametrize("code", ["ab", "a" * 21, "my code", "abc@123", "health", "abc\n"])
async def test_create_rejects_bad_custom_code(service: LinkService, code: str) -> None:
    with pytest.raises(ValidationError) as exc_info:
        await service.create_link("https://example.com", custom_code=code)
    assert list(exc_info.value.fields) == ["custom_code"]


@pytest.mark.asyncio
async def test_create_reports_every_invalid_field(service: LinkService) -> None:
    with pytest.raises(ValidationError) as exc_info:
        await service.create_link(
            "not-a-url",
            custom_code="!",
            title="t" * 300,
            expires_at=past(),
        )
    assert set(exc_info.value.fields) == {"original_url", "custom_code", "title", "expires_at"}


@pytest.mark.asyncio
async def test_create_rejects_both_expiry_forms(service: LinkService) -> None:
    with pytest.raises(ValidationError) as exc_info:
        await service.create_link(
            "https://example.com",
            expires_at=utcnow() + datetime.timedelta(hours=1),
            expires_in_hours=1,
        )
    assert "expires_at" in exc_info.value.fields


@pytest.mark.asyncio
@pytest.mark.parametrize("hours", [0, -5, 24 * 365 + 1])
async def test_create_rejects_bad_expires_in_hours(service: LinkService, hours: int) -> None:
    with pytest.raises(ValidationError) as exc_info:
        await service.create_link("https://example.com", expires_in_hours=hours)
    assert "expires_in_hours" in exc_info.value.fields


@pytest.mark.asyncio
async def test_custom_code_conflict_creates_no_row(service: LinkService, repository) -> None:
    first = await service.create_link("https://example.com/a", custom_code="abc123")

    with pytest.raises(ConflictError) as exc_info:
        await service.create_link("https://example.com/b", custom_code="abc123")

    assert exc_info.value.short_code == "abc123"
    stored = await repository.find_by_short_code("abc123")
    assert stored.id == first.id
    assert stored.original_url == "https://example.com/a"


@pytest.mark.asyncio
async def test_generated_code_retries_after_collision(repository) -> None:
    await repository.insert_link(make_link("aaaa"))
    service = LinkService(repository, SequenceGenerator(["aaaa", "aaaa", "bbbb"]), max_attempts=5)

    link = await service.create_link("https://example.com")

    assert link.short_code == "bbbb"


@pytest.mark.asyncio
async def test_generated_code_exhausted(repository) -> None:
    await repository.insert_link(make_link("aaaa"))
    service = LinkService(repository, SequenceGenerator(["aaaa"]), max_attempts=3)

    with pytest.raises(ExhaustedError) as exc_info:
        await service.create_link("https://example.com")

    assert exc_info.value.attempts == 3


@pytest.mark.asyncio
async def test_generated_code_skips_reserved_names(repository) -> None:
    service = LinkService(repository, SequenceGenerator(["metrics", "metrica"]), max_attempts=5)

    link = await service.create_link("https://example.com")

    assert link.short_code == "metrica"
    assert await repository.find_by_short_code("metrics") is None


@pytest.mark.asyncio
async def test_generated_code_exhausted_on_reserved_names(memory_repository) -> None:
    service = LinkService(memory_repository, SequenceGenerator(["health"]), max_attempts=3)

    with pytest.raises(ExhaustedError):
        await service.create_link("https://example.com")

    assert await memory_repository.find_by_short_code("health") is None


@pytest.mark.asyncio
async def test_generated_code_attempt_bound_is_exact(memory_repository) -> None:
    await memory_repository.insert_link(make_link("aaaa"))
    generator = SequenceGenerator(["aaaa"])
    service = LinkService(memory_repository, generator, max_attempts=4)

    with patch.object(generator, "generate", wraps=generator.generate) as generate:
        with pytest.raises(ExhaustedError):
            await service.create_link("https://example.com")

    assert generate.call_count == 4


@pytest.mark.asyncio
async def test_create_propagates_storage_error(memory_service: LinkService, memory_repository) -> None:
    with patch.object(memory_repository, "insert_link", AsyncMock(side_effect=StorageTimeoutError("slow"))):
        with pytest.raises(StorageTimeoutError):
            await memory_service.create_link("https://example.com")


# ============================================================================
# RESOLVE
# ============================================================================


@pytest.mark.asyncio
async def test_resolve_records_click(service: LinkService, repository) -> None:
    link = await service.create_link("https://example.com/target")
    metadata = ClickMetadata(ip_address="10.0.0.1", user_agent="pytest", referer="https://ref.example", country="DE")

    target = await service.resolve_and_record(link.short_code, metadata)

    assert target == "https://example.com/target"
    info = await service.get_info(link.short_code)
    assert info.click_count == 1
    assert info.updated_at >= link.updated_at
    assert await repository.count_click_events(link.id) == 1


@pytest.mark.asyncio
async def test_resolve_unknown_code(service: LinkService) -> None:
    with pytest.raises(NotFoundError) as exc_info:
        await service.resolve_and_record("missing")
    assert exc_info.value.reason is LookupMiss.MISSING


@pytest.mark.asyncio
async def test_resolve_expired_link_is_not_found(service: LinkService, repository) -> None:
    expired = await repository.insert_link(make_link("old123", expires_at=past()))

    with pytest.raises(NotFoundError) as exc_info:
        await service.resolve_and_record("old123")

    assert exc_info.value.reason is LookupMiss.EXPIRED
    assert str(exc_info.value) == str(NotFoundError("old123"))
    stored = await repository.find_by_short_code("old123")
    assert stored is not None
    assert stored.click_count == 0
    assert await repository.count_click_events(expired.id) == 0


@pytest.mark.asyncio
async def test_resolve_succeeds_when_click_event_fails(memory_service: LinkService, memory_repository) -> None:
    link = await memory_service.create_link("https://example.com")

    with patch.object(memory_repository, "insert_click_event", AsyncMock(return_value=WriteStatus.FAILED)):
        target = await memory_service.resolve_and_record(link.short_code)

    assert target == "https://example.com"
    assert (await memory_service.get_info(link.short_code)).click_count == 1


@pytest.mark.asyncio
async def test_resolve_succeeds_when_click_event_raises(memory_service: LinkService, memory_repository) -> None:
    link = await memory_service.create_link("https://example.com")

    with patch.object(memory_repository, "insert_click_event", AsyncMock(side_effect=StorageError("down"))):
        target = await memory_service.resolve_and_record(link.short_code)

    assert target == "https://example.com"


@pytest.mark.asyncio
async def test_resolve_fails_when_increment_fails(memory_service: LinkService, memory_repository) -> None:
    link = await memory_service.create_link("https://example.com")
    insert_event = AsyncMock(return_value=WriteStatus.OK)

    with patch.object(memory_repository, "increment_click_atomic", AsyncMock(side_effect=StorageError("down"))), \
            patch.object(memory_repository, "insert_click_event", insert_event):
        with pytest.raises(StorageError):
            await memory_service.resolve_and_record(link.short_code)

    insert_event.assert_not_called()


@pytest.mark.asyncio
async def test_resolve_raced_delete_is_not_found(memory_service: LinkService, memory_repository) -> None:
    link = await memory_service.create_link("https://example.com")

    with patch.object(memory_repository, "increment_click_atomic", AsyncMock(return_value=False)):
        with pytest.raises(NotFoundError):
            await memory_service.resolve_and_record(link.short_code)


@pytest.mark.asyncio
async def test_end_to_end_create_redirect_info(repository) -> None:
    service = LinkService(repository, SequenceGenerator(["Xy9kP2"]))

    link = await service.create_link("https://example.com/x")
    assert link.short_code == "Xy9kP2"
    assert link.click_count == 0

    for _ in range(3):
        assert await service.resolve_and_record("Xy9kP2") == "https://example.com/x"

    info = await service.get_info("Xy9kP2")
    assert info.click_count == 3
    assert await service.count_click_events(info) == 3


# ============================================================================
# INFO / UPDATE / DELETE / SWEEP
# ============================================================================


@pytest.mark.asyncio
async def test_get_info_expired_is_not_found(service: LinkService, repository) -> None:
    await repository.insert_link(make_link("gone01", expires_at=past()))
    with pytest.raises(NotFoundError):
        await service.get_info("gone01")


@pytest.mark.asyncio
async def test_update_title(service: LinkService) -> None:
    link = await service.create_link("https://example.com", owner_id="alice")

    updated = await service.update_title(link.short_code, "New title", owner_id="alice")

    assert updated.title == "New title"
    assert updated.click_count == 0
    assert (await service.get_info(link.short_code)).title == "New title"


@pytest.mark.asyncio
async def test_update_title_requires_owner(service: LinkService) -> None:
    link = await service.create_link("https://example.com", owner_id="alice")
    with pytest.raises(PermissionDeniedError):
        await service.update_title(link.short_code, "Hijacked", owner_id="bob")


@pytest.mark.asyncio
async def test_update_title_too_long(service: LinkService) -> None:
    link = await service.create_link("https://example.com")
    with pytest.raises(ValidationError):
        await service.update_title(link.short_code, "x" * 256)


@pytest.mark.asyncio
async def test_delete_twice(service: LinkService) -> None:
    link = await service.create_link("https://example.com")

    await service.delete_link(link.short_code)

    with pytest.raises(NotFoundError):
        await service.delete_link(link.short_code)
    with pytest.raises(NotFoundError):
        await service.resolve_and_record(link.short_code)


@pytest.mark.asyncio
async def test_delete_cascades_click_events(service: LinkService, repository) -> None:
    link = await service.create_link("https://example.com")
    await service.resolve_and_record(link.short_code)
    await service.resolve_and_record(link.short_code)
    assert await repository.count_click_events(link.id) == 2

    await service.delete_link(link.short_code)

    assert await repository.count_click_events(link.id) == 0


@pytest.mark.asyncio
async def test_delete_expired_link_succeeds(service: LinkService, repository) -> None:
    await repository.insert_link(make_link("exp001", expires_at=past()))

    await service.delete_link("exp001")

    assert await repository.find_by_short_code("exp001") is None


@pytest.mark.asyncio
async def test_delete_owned_link_by_other_user(service: LinkService) -> None:
    link = await service.create_link("https://example.com", owner_id="alice")

    with pytest.raises(PermissionDeniedError):
        await service.delete_link(link.short_code, owner_id="bob")
    with pytest.raises(PermissionDeniedError):
        await service.delete_link(link.short_code)

    await service.delete_link(link.short_code, owner_id="alice")


@pytest.mark.asyncio
async def test_deleted_code_can_be_reused(service: LinkService) -> None:
    await service.create_link("https://example.com/a", custom_code="reuse1")
    await service.delete_link("reuse1")

    link = await service.create_link("https://example.com/b", custom_code="reuse1")

    assert link.original_url == "https://example.com/b"


@pytest.mark.asyncio
async def test_expired_code_stays_reserved(service: LinkService, repository) -> None:
    await repository.insert_link(make_link("held01", expires_at=past()))
    with pytest.raises(ConflictError):
        await service.create_link("https://example.com", custom_code="held01")


@pytest.mark.asyncio
async def test_sweep_expired(service: LinkService, repository) -> None:
    expired = await repository.insert_link(make_link("exp002", expires_at=past(2)))
    active = await service.create_link("https://example.com", expires_in_hours=1)
    forever = await service.create_link("https://example.com")

    assert await service.sweep_expired() == 1

    assert await repository.find_by_short_code(expired.short_code) is None
    assert await repository.find_by_short_code(active.short_code) is not None
    assert await repository.find_by_short_code(forever.short_code) is not None
    assert await service.sweep_expired() == 0


@pytest.mark.asyncio
async def test_sweep_with_explicit_time(service: LinkService) -> None:
    link = await service.create_link("https://example.com", expires_in_hours=1)

    assert await service.sweep_expired(utcnow() + datetime.timedelta(hours=2)) == 1

    with pytest.raises(NotFoundError):
        await service.get_info(link.short_code)
