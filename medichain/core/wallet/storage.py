"""
Durable persistence of the single wallet session.

The session lives under one key as one JSON document, so a save is a single
backend write. Older frontends wrote a ``medichain_wallet`` blob instead; it
is migrated on the first ``load()`` that finds it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import redis.asyncio as redis

from ...config import Settings, settings as default_settings
from ...services.address import normalize_network
from .models import SessionRecord, maybe_await

logger = logging.getLogger(__name__)

SESSION_KEY = "medichain_session"
LEGACY_SESSION_KEY = "medichain_wallet"
STALE_KEYS = ("slush_connection_request", "slush_connection_timestamp")


class KeyValueBackend(Protocol):
    """String key/value storage. Methods may be plain or coroutine functions."""

    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: str) -> Any: ...

    def remove(self, key: str) -> Any: ...


class MemoryBackend:
    """Process-local storage; gone when the process exits."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileBackend:
    """All keys in one JSON object on disk, replaced atomically on each write."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Unreadable session file %s: %s", self.path, exc)
            return {}
        return payload if isinstance(payload, dict) else {}

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".session-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def get(self, key: str) -> Optional[str]:
        value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


class RedisBackend:
    """Session keys in Redis, shared by every process pointed at the same URL."""

    def __init__(self, url: str, prefix: str = ""):
        self.prefix = prefix
        self._client = redis.from_url(url, encoding="utf-8", decode_responses=True)

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(self._key(key))

    async def set(self, key: str, value: str) -> None:
        await self._client.set(self._key(key), value)

    async def remove(self, key: str) -> None:
        await self._client.delete(self._key(key))


def create_backend(config: Optional[Settings] = None) -> KeyValueBackend:
    config = config or default_settings
    kind = config.session_backend.lower()
    if kind == "memory":
        return MemoryBackend()
    if kind == "file":
        return JsonFileBackend(config.session_file_path)
    if kind == "redis":
        if not config.redis_url:
            raise ValueError("session_backend=redis requires redis_url")
        return RedisBackend(config.redis_url, prefix=config.session_key_prefix)
    raise ValueError(f"Unknown session backend: {config.session_backend}")


class SessionStore:
    """Load, save and clear the one ``SessionRecord``."""

    def __init__(self, backend: Optional[KeyValueBackend] = None, *, default_network: Optional[str] = None):
        self.backend = backend if backend is not None else MemoryBackend()
        self.default_network = normalize_network(default_network)
        self._lock = asyncio.Lock()

    async def load(self) -> Optional[SessionRecord]:
        async with self._lock:
            try:
                raw = await maybe_await(self.backend.get(SESSION_KEY))
            except Exception as exc:  # noqa: BLE001
                logger.warning("Session storage read failed: %s", exc, exc_info=True)
                return None

            if raw:
                return self._decode(raw)
            return await self._migrate_legacy()

    async def save(self, record: SessionRecord) -> None:
        payload = json.dumps(record.to_dict())
        async with self._lock:
            await maybe_await(self.backend.set(SESSION_KEY, payload))

    async def clear(self) -> None:
        async with self._lock:
            for key in (SESSION_KEY, LEGACY_SESSION_KEY, *STALE_KEYS):
                await maybe_await(self.backend.remove(key))

    def _decode(self, raw: str) -> Optional[SessionRecord]:
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("session document is not an object")
            return SessionRecord.from_dict(data)
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Discarding corrupt session record: %s", exc)
            return None

    async def _migrate_legacy(self) -> Optional[SessionRecord]:
        """Convert ``{address, type, connected, connectedAt}`` into the current shape."""
        try:
            raw = await maybe_await(self.backend.get(LEGACY_SESSION_KEY))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Legacy session read failed: %s", exc, exc_info=True)
            return None
        if not raw:
            return None

        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("legacy wallet blob is not an object")
            address = data.get("address") or ""
            if not isinstance(address, str):
                raise ValueError("legacy address is not a string")
            connected_at = datetime.now(timezone.utc)
            if data.get("connectedAt"):
                connected_at = datetime.fromisoformat(str(data["connectedAt"]).replace("Z", "+00:00"))
                if connected_at.tzinfo is None:
                    connected_at = connected_at.replace(tzinfo=timezone.utc)
        except (ValueError, TypeError) as exc:
            logger.warning("Discarding corrupt legacy wallet blob: %s", exc)
            await maybe_await(self.backend.remove(LEGACY_SESSION_KEY))
            return None

        if not address and not data.get("connected"):
            await maybe_await(self.backend.remove(LEGACY_SESSION_KEY))
            return None

        record = SessionRecord(
            address=address,
            provider_name=data.get("type") or "Unknown Wallet",
            is_demo_mode=False,
            network=self.default_network,
            connected_at=connected_at,
        )
        await maybe_await(self.backend.set(SESSION_KEY, json.dumps(record.to_dict())))
        await maybe_await(self.backend.remove(LEGACY_SESSION_KEY))
        logger.info("Migrated legacy wallet session for provider %s", record.provider_name)
        return record
