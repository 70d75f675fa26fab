"""In-memory state for the group bot: active senders, history, rate windows
and cached replies.

Everything here is process-local and disappears on restart. A background
sweep evicts stale entries from all four collections on a fixed period.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Generic, List, Optional, Set, Tuple, TypeVar

from app.config import StoreConfig
from app.obs.logger import log_event
from app.obs.metrics import inc_counter, set_gauge

V = TypeVar("V")
R = TypeVar("R")

Clock = Callable[[], float]


@dataclass
class ActiveSender:
    id: str
    last_active_at: float
    joined_at: float
    message_count: int = 0
    last_command: Optional[str] = None


@dataclass(frozen=True)
class HistoryEntry:
    timestamp: float
    sender: str
    command_type: str
    target: Optional[str] = None


@dataclass
class HistoryLog:
    id: str
    entries: Deque[HistoryEntry]
    last_cleanup_at: float  # set once at creation, never refreshed


@dataclass
class RateWindow:
    id: str
    window_start: float
    last_command_at: float
    count: int = 1


@dataclass
class CacheEntry:
    key: str
    value: Any
    created_at: float
    expires_at: float


class KeyedCollection(Generic[V]):
    """A dict whose per-key read-modify-write operations are atomic.

    Each key maps onto one of a fixed pool of striped locks, so operations on
    different keys rarely contend and no per-key lock has to be created or
    reclaimed. The index lock only covers the dict access itself. Lock order
    is always stripe -> index.
    """

    def __init__(self, name: str, stripes: int = 64):
        self.name = name
        self._entries: Dict[str, V] = {}
        self._index_lock = threading.Lock()
        self._stripes = [threading.Lock() for _ in range(stripes)]

    def _stripe(self, key: str) -> threading.Lock:
        return self._stripes[hash(key) % len(self._stripes)]

    def update(self, key: str, fn: Callable[[Optional[V]], Tuple[Optional[V], R]]) -> R:
        """Apply ``fn`` to the current entry (or None) under the key's lock.

        ``fn`` returns ``(new_entry, result)``; a ``None`` entry deletes the key.
        """
        with self._stripe(key):
            with self._index_lock:
                current = self._entries.get(key)
            new, result = fn(current)
            if new is None:
                if current is not None:
                    with self._index_lock:
                        self._entries.pop(key, None)
            elif new is not current:
                with self._index_lock:
                    self._entries[key] = new
            return result

    def read(self, key: str, fn: Callable[[Optional[V]], R]) -> R:
        with self._stripe(key):
            with self._index_lock:
                current = self._entries.get(key)
            return fn(current)

    def pop(self, key: str) -> Optional[V]:
        with self._stripe(key):
            with self._index_lock:
                return self._entries.pop(key, None)

    def keys(self) -> List[str]:
        with self._index_lock:
            return list(self._entries)

    def evict_if(self, predicate: Callable[[V], bool]) -> int:
        removed = 0
        for key in self.keys():
            with self._stripe(key):
                with self._index_lock:
                    entry = self._entries.get(key)
                if entry is not None and predicate(entry):
                    with self._index_lock:
                        self._entries.pop(key, None)
                    removed += 1
        return removed

    def clear(self) -> None:
        with self._index_lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._index_lock:
            return len(self._entries)


class StateStore:
    """Owns the four collections and the periodic sweep.

    Construct one per process at startup, call ``start()`` from inside the
    event loop and ``await stop()`` at shutdown. ``sweep()`` can be called
    directly at any time.
    """

    def __init__(self, config: Optional[StoreConfig] = None, clock: Clock = time.time):
        self.config = config or StoreConfig()
        self.clock = clock
        self.active: KeyedCollection[ActiveSender] = KeyedCollection("active_users")
        self.history: KeyedCollection[HistoryLog] = KeyedCollection("conversation_history")
        self.rate_windows: KeyedCollection[RateWindow] = KeyedCollection("rate_limits")
        self.cache: KeyedCollection[CacheEntry] = KeyedCollection("cached_responses")
        self._sweep_task: Optional[asyncio.Task] = None

    # Active senders

    def record_activity(self, sender_id: str, command_type: Optional[str] = None) -> None:
        now = self.clock()

        def _upsert(rec: Optional[ActiveSender]):
            if rec is None:
                rec = ActiveSender(id=sender_id, last_active_at=now, joined_at=now)
            rec.last_active_at = now
            rec.message_count += 1
            if command_type:
                rec.last_command = command_type
            return rec, None

        self.active.update(sender_id, _upsert)

    def is_active(self, sender_id: str) -> bool:
        now = self.clock()
        ttl = self.config.active_ttl
        return self.active.read(
            sender_id,
            lambda rec: rec is not None and (now - rec.last_active_at) <= ttl,
        )

    def list_active(self) -> Set[str]:
        """All known senders. Not filtered by TTL; the sweep reconciles staleness."""
        return set(self.active.keys())

    def get_sender(self, sender_id: str) -> Optional[ActiveSender]:
        return self.active.read(
            sender_id, lambda rec: dataclasses.replace(rec) if rec is not None else None
        )

    def active_records(self) -> List[ActiveSender]:
        records = []
        for sender_id in self.active.keys():
            rec = self.get_sender(sender_id)
            if rec is not None:
                records.append(rec)
        return records

    def remove(self, sender_id: str) -> None:
        self.active.pop(sender_id)

    def evict_inactive(self, now: Optional[float] = None) -> int:
        now = self.clock() if now is None else now
        ttl = self.config.active_ttl
        return self.active.evict_if(lambda rec: (now - rec.last_active_at) > ttl)

    # Conversation history

    def append_history(self, sender_id: str, command_type: str, target: Optional[str] = None) -> None:
        now = self.clock()
        cap = self.config.history_cap

        def _append(log: Optional[HistoryLog]):
            if log is None:
                log = HistoryLog(id=sender_id, entries=deque(maxlen=cap), last_cleanup_at=now)
            log.entries.append(
                HistoryEntry(timestamp=now, sender=sender_id, command_type=command_type, target=target)
            )
            return log, None

        self.history.update(sender_id, _append)

    def get_history(self, sender_id: str) -> List[HistoryEntry]:
        return self.history.read(sender_id, lambda log: list(log.entries) if log is not None else [])

    def recent_senders(self) -> List[str]:
        seen: Dict[str, None] = {}
        for sender_id in self.history.keys():
            for entry in self.get_history(sender_id):
                seen.setdefault(entry.sender, None)
        return list(seen)

    # Response cache

    def get_cached(self, key: str) -> Optional[Any]:
        now = self.clock()

        def _check(entry: Optional[CacheEntry]):
            if entry is None or now > entry.expires_at:
                return None, None
            return entry, entry.value

        return self.cache.update(key, _check)

    def set_cached(self, key: str, value: Any) -> None:
        now = self.clock()
        entry = CacheEntry(key=key, value=value, created_at=now, expires_at=now + self.config.cache_ttl)
        self.cache.update(key, lambda _: (entry, None))

    # Maintenance

    def sweep(self) -> Dict[str, int]:
        now = self.clock()
        cfg = self.config
        removed = {
            "conversation": self.history.evict_if(
                lambda log: (now - log.last_cleanup_at) > cfg.conversation_ttl
            ),
            "cache": self.cache.evict_if(lambda entry: now > entry.expires_at),
            "active-users": self.evict_inactive(now),
            "rate-limits": self.rate_windows.evict_if(
                lambda w: w.last_command_at < now - cfg.rate_window
            ),
        }
        for kind, count in removed.items():
            if count:
                inc_counter("store_evictions_total", {"collection": kind}, amount=count)
                log_event("cleanup", type=kind, count=count)
        self._publish_gauges()
        return removed

    def stats(self) -> Dict[str, int]:
        return {
            "active_users": len(self.active),
            "conversation_history": len(self.history),
            "rate_limits": len(self.rate_windows),
            "cached_responses": len(self.cache),
        }

    def clear(self) -> None:
        for collection in (self.active, self.history, self.rate_windows, self.cache):
            collection.clear()

    def _publish_gauges(self) -> None:
        for name, size in self.stats().items():
            set_gauge("store_entries", size, {"collection": name})

    # Lifecycle

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def start(self) -> None:
        """Schedule the periodic sweep on the running event loop."""
        if self.running:
            return
        self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())
        log_event("sweep_started", interval_seconds=self.config.sweep_interval)

    async def stop(self) -> None:
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        log_event("sweep_stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.sweep_interval)
            try:
                self.sweep()
            except Exception as e:
                log_event("sweep_error", level="ERROR", error=str(e))
