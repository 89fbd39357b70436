"""
Tests for SessionStore and its key/value backends.
"""

import json
from datetime import datetime, timezone

import pytest

from medichain.config import Settings
from medichain.core.wallet import (
    JsonFileBackend,
    MemoryBackend,
    RedisBackend,
    SessionRecord,
    SessionStore,
    create_backend,
)
from medichain.core.wallet.storage import LEGACY_SESSION_KEY, SESSION_KEY, STALE_KEYS

ADDRESS = "0x" + "a1" * 32


class FailingBackend(MemoryBackend):
    def get(self, key):
        raise OSError("storage unavailable")


class AsyncBackend(MemoryBackend):
    """Same behaviour as MemoryBackend, through coroutine methods."""

    async def get(self, key):
        return MemoryBackend.get(self, key)

    async def set(self, key, value):
        MemoryBackend.set(self, key, value)

    async def remove(self, key):
        MemoryBackend.remove(self, key)


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def store(backend: MemoryBackend) -> SessionStore:
    return SessionStore(backend, default_network="testnet")


# =============================================================================
# Round trips
# =============================================================================

class TestSessionStore:
    @pytest.mark.asyncio
    async def test_load_empty(self, store):
        assert await store.load() is None

    @pytest.mark.asyncio
    async def test_save_and_load(self, store, backend):
        record = SessionRecord(address=ADDRESS, provider_name="Slush", network="testnet")
        await store.save(record)

        assert list(backend.data) == [SESSION_KEY]
        assert await store.load() == record

    @pytest.mark.asyncio
    async def test_demo_record(self, store):
        record = SessionRecord(provider_name="Demo", is_demo_mode=True)
        await store.save(record)

        loaded = await store.load()
        assert loaded.is_demo_mode is True
        assert loaded.address == ""

    @pytest.mark.asyncio
    async def test_stored_document_shape(self, store, backend):
        connected_at = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
        await store.save(SessionRecord(address=ADDRESS, provider_name="Slush", connected_at=connected_at))

        assert json.loads(backend.data[SESSION_KEY]) == {
            "address": ADDRESS,
            "providerName": "Slush",
            "isDemoMode": False,
            "network": "testnet",
            "connectedAt": "2025-03-01T12:00:00+00:00",
        }

    @pytest.mark.asyncio
    async def test_clear_removes_all_wallet_keys(self, backend, store):
        backend.data.update({key: "1" for key in STALE_KEYS})
        backend.data[LEGACY_SESSION_KEY] = "{}"
        backend.data["unrelated"] = "keep"
        await store.save(SessionRecord(address=ADDRESS))

        await store.clear()

        assert backend.data == {"unrelated": "keep"}
        assert await store.load() is None

    @pytest.mark.asyncio
    async def test_async_backend(self):
        store = SessionStore(AsyncBackend())
        await store.save(SessionRecord(address=ADDRESS, provider_name="Sui Wallet"))

        loaded = await store.load()
        assert loaded.address == ADDRESS

        await store.clear()
        assert await store.load() is None


# =============================================================================
# Recovery from bad data
# =============================================================================

class TestCorruptData:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "[1, 2, 3]",
            json.dumps({"address": ADDRESS}),
            json.dumps({"address": 42, "connectedAt": "2025-01-01T00:00:00+00:00"}),
            json.dumps({"address": ADDRESS, "connectedAt": "yesterday"}),
        ],
    )
    async def test_corrupt_record_loads_as_none(self, raw):
        store = SessionStore(MemoryBackend({SESSION_KEY: raw}))

        assert await store.load() is None

    @pytest.mark.asyncio
    async def test_read_failure_loads_as_none(self):
        store = SessionStore(FailingBackend())

        assert await store.load() is None

    @pytest.mark.asyncio
    async def test_naive_timestamp_is_utc(self):
        raw = json.dumps({"address": ADDRESS, "connectedAt": "2025-01-01T08:30:00"})
        store = SessionStore(MemoryBackend({SESSION_KEY: raw}))

        loaded = await store.load()
        assert loaded.connected_at == datetime(2025, 1, 1, 8, 30, tzinfo=timezone.utc)


# =============================================================================
# Legacy migration
# =============================================================================

class TestLegacyMigration:
    @pytest.mark.asyncio
    async def test_legacy_blob_is_migrated(self, backend, store):
        backend.data[LEGACY_SESSION_KEY] = json.dumps(
            {
                "address": ADDRESS,
                "type": "Slush Wallet",
                "connected": True,
                "connectedAt": "2024-11-05T10:00:00.000Z",
            }
        )

        record = await store.load()

        assert record.address == ADDRESS
        assert record.provider_name == "Slush Wallet"
        assert record.network == "testnet"
        assert record.is_demo_mode is False
        assert record.connected_at == datetime(2024, 11, 5, 10, 0, tzinfo=timezone.utc)
        assert LEGACY_SESSION_KEY not in backend.data
        assert json.loads(backend.data[SESSION_KEY])["providerName"] == "Slush Wallet"

    @pytest.mark.asyncio
    async def test_legacy_blob_without_type(self, backend, store):
        backend.data[LEGACY_SESSION_KEY] = json.dumps({"address": ADDRESS, "connected": True})

        record = await store.load()

        assert record.provider_name == "Unknown Wallet"

    @pytest.mark.asyncio
    async def test_empty_legacy_blob_is_dropped(self, backend, store):
        backend.data[LEGACY_SESSION_KEY] = json.dumps({"address": "", "connected": False})

        assert await store.load() is None
        assert backend.data == {}

    @pytest.mark.asyncio
    async def test_corrupt_legacy_blob_is_dropped(self, backend, store):
        backend.data[LEGACY_SESSION_KEY] = "{oops"

        assert await store.load() is None
        assert backend.data == {}

    @pytest.mark.asyncio
    async def test_current_record_wins_over_legacy(self, backend, store):
        await store.save(SessionRecord(address=ADDRESS, provider_name="Sui Wallet"))
        backend.data[LEGACY_SESSION_KEY] = json.dumps({"address": "0x" + "f" * 64, "type": "Old"})

        record = await store.load()

        assert record.provider_name == "Sui Wallet"


# =============================================================================
# Backends
# =============================================================================

class TestBackends:
    @pytest.mark.asyncio
    async def test_file_backend_persists_across_instances(self, tmp_path):
        path = tmp_path / "nested" / "session.json"
        await SessionStore(JsonFileBackend(path)).save(SessionRecord(address=ADDRESS, provider_name="Slush"))

        assert path.exists()
        loaded = await SessionStore(JsonFileBackend(path)).load()
        assert loaded.address == ADDRESS

    def test_file_backend_unreadable_file(self, tmp_path):
        path = tmp_path / "session.json"
        path.write_text("garbage", encoding="utf-8")
        backend = JsonFileBackend(path)

        assert backend.get(SESSION_KEY) is None
        backend.set(SESSION_KEY, "value")
        assert json.loads(path.read_text(encoding="utf-8")) == {SESSION_KEY: "value"}

    def test_file_backend_remove(self, tmp_path):
        backend = JsonFileBackend(tmp_path / "session.json")
        backend.set("a", "1")
        backend.set("b", "2")
        backend.remove("a")
        backend.remove("missing")

        assert backend.get("a") is None
        assert backend.get("b") == "2"
        assert [p.name for p in tmp_path.iterdir()] == ["session.json"]

    def test_create_backend_kinds(self, tmp_path):
        assert isinstance(create_backend(Settings(session_backend="memory")), MemoryBackend)

        file_backend = create_backend(Settings(session_backend="file", session_file_path=tmp_path / "s.json"))
        assert isinstance(file_backend, JsonFileBackend)
        assert file_backend.path == tmp_path / "s.json"

        redis_backend = create_backend(
            Settings(session_backend="redis", redis_url="redis://localhost:6379/0", session_key_prefix="mc:")
        )
        assert isinstance(redis_backend, RedisBackend)
        assert redis_backend._key(SESSION_KEY) == "mc:medichain_session"

    def test_create_backend_rejects_bad_config(self):
        with pytest.raises(ValueError):
            create_backend(Settings(session_backend="redis", redis_url=""))
        with pytest.raises(ValueError):
            create_backend(Settings(session_backend="sqlite"))
