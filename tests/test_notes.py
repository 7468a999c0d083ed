"""
Tests for the note lifecycle manager.

Tests cover:
- One-time read and the absent → stored → absent cycle
- Collision rejection
- Payload size and TTL bounds
- Id validation before any storage access
- Concurrency of consume/create on one id
- Timeouts and health reporting
"""
import asyncio

import pytest

from fadnote.crypto import seal, unseal
from fadnote.exceptions import (
    AlreadyExists,
    EmptyPayload,
    InvalidId,
    InvalidTtl,
    NotFound,
    TooLarge,
    Unavailable,
)
from fadnote.identifiers import validate_id
from fadnote.notes import NoteManager
from fadnote.storage import MemoryStorage, RedisStorage

from .conftest import BrokenRedis, SlowStorage

MIB = 1024 * 1024


class UntouchableStorage(MemoryStorage):
    """Fails the test if any storage method is reached."""

    def __getattribute__(self, name):
        if name in ("exists", "set", "get", "take", "delete"):
            raise AssertionError(f"storage.{name} must not be called")
        return super().__getattribute__(name)


class TestOneTimeRead:
    """Tests for create and consume."""

    async def test_create_then_consume_once(self, manager):
        """Test the first consume returns the payload and later ones fail."""
        receipt = await manager.create(b"ciphertext")
        assert validate_id(receipt.id)
        assert await manager.exists(receipt.id) is True

        assert await manager.consume(receipt.id) == b"ciphertext"
        assert await manager.exists(receipt.id) is False
        for _ in range(3):
            with pytest.raises(NotFound):
                await manager.consume(receipt.id)

    async def test_end_to_end_with_codec(self, storage):
        """Test sealing, storing, consuming and unsealing a note."""
        manager = NoteManager(storage)
        blob, key = seal("the eagle has landed")
        receipt = await manager.create(blob, ttl_seconds=300)
        assert receipt.expires_in == 300
        assert unseal(await manager.consume(receipt.id), key) == b"the eagle has landed"
        with pytest.raises(NotFound):
            await manager.consume(receipt.id)

    async def test_default_ttl_in_receipt(self, manager):
        receipt = await manager.create(b"x")
        assert receipt.expires_in == 86400

    async def test_caller_supplied_id(self, manager):
        receipt = await manager.create(b"x", note_id="my-note_1")
        assert receipt.id == "my-note_1"
        assert await manager.consume("my-note_1") == b"x"

    async def test_explicit_discard(self, manager):
        receipt = await manager.create(b"x")
        await manager.discard(receipt.id)
        await manager.discard(receipt.id)
        with pytest.raises(NotFound):
            await manager.consume(receipt.id)

    async def test_not_found_is_uniform(self, manager):
        """Test unknown, consumed and expired notes fail the same way."""
        consumed = await manager.create(b"x")
        await manager.consume(consumed.id)
        expired = await manager.create(b"x", ttl_seconds=-1)

        messages = []
        for note_id in ("never-created", consumed.id, expired.id):
            with pytest.raises(NotFound) as exc:
                await manager.consume(note_id)
            messages.append((exc.value.code, exc.value.status, str(exc.value)))
        assert len(set(messages)) == 1


class TestExpiry:

    async def test_past_ttl_unreadable_before_sweep(self, storage):
        """Test a note created with TTL -1 is absent immediately."""
        manager = NoteManager(storage)
        receipt = await manager.create(b"x", ttl_seconds=-1)
        assert await manager.exists(receipt.id) is False
        with pytest.raises(NotFound):
            await manager.consume(receipt.id)


class TestCollision:

    async def test_occupied_id_rejected(self, storage):
        """Test AlreadyExists leaves the original note untouched."""
        manager = NoteManager(storage)
        await manager.create(b"original", note_id="taken")
        with pytest.raises(AlreadyExists):
            await manager.create(b"intruder", note_id="taken")
        assert await manager.consume("taken") == b"original"

    async def test_concurrent_create_single_winner(self, storage):
        manager = NoteManager(storage)
        results = await asyncio.gather(
            *(manager.create(b"x", note_id="same") for _ in range(5)),
            return_exceptions=True,
        )
        assert sum(1 for r in results if isinstance(r, AlreadyExists)) == 4

    async def test_generated_id_collision_is_retried(self, manager, monkeypatch):
        """Test a colliding generated id is replaced by a fresh one."""
        await manager.create(b"first", note_id="aaaa")
        ids = iter(["aaaa", "bbbb"])
        monkeypatch.setattr("fadnote.notes.generate_id", lambda: next(ids))
        receipt = await manager.create(b"second")
        assert receipt.id == "bbbb"

    async def test_generated_id_collision_gives_up(self, manager, monkeypatch):
        await manager.create(b"first", note_id="aaaa")
        monkeypatch.setattr("fadnote.notes.generate_id", lambda: "aaaa")
        with pytest.raises(AlreadyExists):
            await manager.create(b"second")


class TestPayloadBounds:

    async def test_empty_payload(self, manager):
        with pytest.raises(EmptyPayload):
            await manager.create(b"")

    async def test_exactly_max(self, manager):
        receipt = await manager.create(b"\x00" * MIB)
        assert len(await manager.consume(receipt.id)) == MIB

    async def test_one_over_max(self, manager):
        with pytest.raises(TooLarge):
            await manager.create(b"\x00" * (MIB + 1))

    async def test_custom_limit(self, memory_storage):
        manager = NoteManager(memory_storage, max_payload_size=10)
        await manager.create(b"0123456789")
        with pytest.raises(TooLarge):
            await manager.create(b"0123456789a")

    async def test_bytearray_and_memoryview(self, manager):
        receipt = await manager.create(memoryview(bytearray(b"view")))
        assert await manager.consume(receipt.id) == b"view"


class TestTtlBounds:

    @pytest.mark.parametrize("ttl", [10**400, -(10**400), 366 * 86400])
    async def test_out_of_range_rejected(self, storage, ttl):
        """Test that an oversized TTL is refused and nothing is stored."""
        manager = NoteManager(storage)
        with pytest.raises(InvalidTtl):
            await manager.create(b"x", ttl_seconds=ttl, note_id="forever")
        assert await storage.exists("forever") is False

    async def test_limit_is_inclusive(self, memory_storage):
        manager = NoteManager(memory_storage, max_ttl=100)
        assert (await manager.create(b"x", ttl_seconds=100)).expires_in == 100
        assert (await manager.create(b"x", ttl_seconds=-100)).expires_in == -100
        with pytest.raises(InvalidTtl):
            await manager.create(b"x", ttl_seconds=101)

    @pytest.mark.parametrize("ttl", ["soon", float("inf"), float("nan"), [60]])
    async def test_non_integer_rejected(self, manager, ttl):
        with pytest.raises(InvalidTtl):
            await manager.create(b"x", ttl_seconds=ttl)

    async def test_invalid_ttl_is_a_value_error(self, manager):
        with pytest.raises(ValueError):
            await manager.create(b"x", ttl_seconds=10**400)


class TestValidationBeforeStorage:
    """Validation errors are raised without touching the backend."""

    @pytest.fixture
    def guarded(self):
        return NoteManager(UntouchableStorage())

    @pytest.mark.parametrize("bad_id", ["../etc/passwd", "a/b", "..", "", "a\\b"])
    async def test_consume_invalid_id(self, guarded, bad_id):
        with pytest.raises(InvalidId):
            await guarded.consume(bad_id)

    async def test_create_invalid_id(self, guarded):
        with pytest.raises(InvalidId):
            await guarded.create(b"x", note_id="../up")

    async def test_create_empty_payload(self, guarded):
        with pytest.raises(EmptyPayload):
            await guarded.create(b"")

    async def test_create_too_large(self, guarded):
        with pytest.raises(TooLarge):
            await guarded.create(b"x" * (MIB + 1))

    async def test_create_ttl_out_of_range(self, guarded):
        with pytest.raises(InvalidTtl):
            await guarded.create(b"x", ttl_seconds=10**400)

    async def test_exists_and_discard_invalid_id(self, guarded):
        with pytest.raises(InvalidId):
            await guarded.exists("a/b")
        with pytest.raises(InvalidId):
            await guarded.discard("a/b")


class TestConcurrentConsume:

    async def test_exactly_one_reader_wins(self, storage):
        """Test that of many concurrent consumes one succeeds."""
        manager = NoteManager(storage)
        receipt = await manager.create(b"only once")
        results = await asyncio.gather(
            *(manager.consume(receipt.id) for _ in range(8)),
            return_exceptions=True,
        )
        assert results.count(b"only once") == 1
        assert sum(1 for r in results if isinstance(r, NotFound)) == 7


class TestBackendFailures:

    async def test_timeout_is_unavailable(self):
        manager = NoteManager(SlowStorage(), timeout=0.05)
        await manager.create(b"x", note_id="slow")
        with pytest.raises(Unavailable):
            await manager.consume("slow")

    async def test_backend_error_propagates(self):
        manager = NoteManager(RedisStorage(client=BrokenRedis()))
        with pytest.raises(Unavailable):
            await manager.create(b"x")
        with pytest.raises(Unavailable):
            await manager.consume("abc")


class TestHealth:

    async def test_memory_connected(self, manager):
        report = await manager.health()
        assert report.backend_status == "connected"
        assert report.backend == "memory"
        assert report.ok

    async def test_filesystem_accessible(self, fs_storage):
        report = await NoteManager(fs_storage).health()
        assert report.backend_status == "accessible"
        assert report.detail is None

    async def test_redis_connected(self, redis_storage):
        report = await NoteManager(redis_storage).health()
        assert report.backend_status == "connected"

    async def test_broken_backend(self):
        report = await NoteManager(RedisStorage(client=BrokenRedis())).health()
        assert report.backend_status == "error"
        assert "Connection refused" in report.detail
        assert not report.ok

    async def test_slow_backend(self):
        report = await NoteManager(SlowStorage(), timeout=0.05).health()
        assert report.backend_status == "error"
