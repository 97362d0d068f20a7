"""
Idempotency ledger.

Maps a client-supplied key to IN_PROGRESS / COMPLETED state with a TTL so a
retried request can be told "still running" or be handed the original
response instead of repeating its side effect.
"""
import copy
import enum
import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import redis

from clinicbook.config.redis import RedisKeys

logger = logging.getLogger(__name__)

DEFAULT_IDEMPOTENCY_TTL_MS = 10 * 60 * 1000


class ReserveStatus(str, enum.Enum):
    ACQUIRED = "ACQUIRED"
    IN_PROGRESS = "IN_PROGRESS"
    REPLAY = "REPLAY"


class LedgerState(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


@dataclass(frozen=True)
class Reservation:
    status: ReserveStatus
    response: Optional[Any] = None


@dataclass
class LedgerEntry:
    state: LedgerState
    created_at_ms: int
    expires_at_ms: int
    response: Optional[Any] = None


def _system_clock_ms() -> int:
    return int(time.time() * 1000)


class IdempotencyStore(ABC):
    """reserve / complete / release contract shared by every backend"""

    @abstractmethod
    def reserve(self, key: str, ttl_ms: Optional[int] = None, now_ms: Optional[int] = None) -> Reservation:
        raise NotImplementedError

    @abstractmethod
    def complete(self, key: str, response: Any, ttl_ms: Optional[int] = None, now_ms: Optional[int] = None) -> None:
        raise NotImplementedError

    @abstractmethod
    def release(self, key: str) -> None:
        raise NotImplementedError


class InMemoryIdempotencyStore(IdempotencyStore):
    """Single-process ledger; one lock guards every read-modify-write"""

    def __init__(
            self,
            default_ttl_ms: int = DEFAULT_IDEMPOTENCY_TTL_MS,
            clock: Callable[[], int] = _system_clock_ms
    ):
        self.default_ttl_ms = default_ttl_ms
        self._clock = clock
        self._entries: Dict[str, LedgerEntry] = {}
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def _purge_expired(self, now_ms: int) -> None:
        expired = [key for key, entry in self._entries.items() if entry.expires_at_ms <= now_ms]
        for key in expired:
            del self._entries[key]

    def reserve(self, key: str, ttl_ms: Optional[int] = None, now_ms: Optional[int] = None) -> Reservation:
        now_ms = self._clock() if now_ms is None else now_ms
        ttl_ms = self.default_ttl_ms if ttl_ms is None else ttl_ms

        with self._lock:
            self._purge_expired(now_ms)

            existing = self._entries.get(key)
            if existing is None:
                self._entries[key] = LedgerEntry(
                    state=LedgerState.IN_PROGRESS,
                    created_at_ms=now_ms,
                    expires_at_ms=now_ms + ttl_ms,
                )
                return Reservation(ReserveStatus.ACQUIRED)

            if existing.state == LedgerState.COMPLETED:
                return Reservation(ReserveStatus.REPLAY, copy.deepcopy(existing.response))

            return Reservation(ReserveStatus.IN_PROGRESS)

    def complete(self, key: str, response: Any, ttl_ms: Optional[int] = None, now_ms: Optional[int] = None) -> None:
        now_ms = self._clock() if now_ms is None else now_ms
        ttl_ms = self.default_ttl_ms if ttl_ms is None else ttl_ms

        with self._lock:
            self._entries[key] = LedgerEntry(
                state=LedgerState.COMPLETED,
                created_at_ms=now_ms,
                expires_at_ms=now_ms + ttl_ms,
                response=copy.deepcopy(response),
            )

    def release(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class RedisIdempotencyStore(IdempotencyStore):
    """
    Shared ledger for multi-process deployments.

    Acquisition is a single SET NX PX so only one worker can move a key
    from absent to IN_PROGRESS; Redis expires entries on its own, so no
    purge pass is needed. Responses must be JSON-serializable.
    """

    def __init__(self, client: redis.Redis, default_ttl_ms: int = DEFAULT_IDEMPOTENCY_TTL_MS):
        self.client = client
        self.default_ttl_ms = default_ttl_ms

    @staticmethod
    def _redis_key(key: str) -> str:
        return RedisKeys.IDEMPOTENCY_ENTRY.format(key=key)

    def reserve(self, key: str, ttl_ms: Optional[int] = None, now_ms: Optional[int] = None) -> Reservation:
        now_ms = _system_clock_ms() if now_ms is None else now_ms
        ttl_ms = self.default_ttl_ms if ttl_ms is None else ttl_ms
        redis_key = self._redis_key(key)

        marker = json.dumps({"state": LedgerState.IN_PROGRESS.value, "createdAtMs": now_ms})
        if self.client.set(redis_key, marker, nx=True, px=ttl_ms):
            return Reservation(ReserveStatus.ACQUIRED)

        raw = self.client.get(redis_key)
        if raw is None:
            # Expired between SET NX and GET; one more attempt decides it
            if self.client.set(redis_key, marker, nx=True, px=ttl_ms):
                return Reservation(ReserveStatus.ACQUIRED)
            return Reservation(ReserveStatus.IN_PROGRESS)

        entry = json.loads(raw)
        if entry.get("state") == LedgerState.COMPLETED.value:
            return Reservation(ReserveStatus.REPLAY, entry.get("response"))

        return Reservation(ReserveStatus.IN_PROGRESS)

    def complete(self, key: str, response: Any, ttl_ms: Optional[int] = None, now_ms: Optional[int] = None) -> None:
        now_ms = _system_clock_ms() if now_ms is None else now_ms
        ttl_ms = self.default_ttl_ms if ttl_ms is None else ttl_ms

        payload = json.dumps({
            "state": LedgerState.COMPLETED.value,
            "createdAtMs": now_ms,
            "response": response,
        })
        self.client.set(self._redis_key(key), payload, px=ttl_ms)

    def release(self, key: str) -> None:
        self.client.delete(self._redis_key(key))


def build_idempotency_store(backend: str, ttl_seconds: int) -> IdempotencyStore:
    """Construct the configured ledger backend"""
    ttl_ms = ttl_seconds * 1000
    if backend == "redis":
        from clinicbook.config.redis import get_redis

        logger.info("Using Redis idempotency ledger")
        return RedisIdempotencyStore(get_redis(), default_ttl_ms=ttl_ms)

    if backend != "memory":
        raise ValueError(f"Unknown idempotency backend: {backend}")

    return InMemoryIdempotencyStore(default_ttl_ms=ttl_ms)
