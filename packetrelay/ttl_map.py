"""A thread-safe key/value map whose entries expire after a time-to-live."""

from __future__ import annotations

import logging
import threading
import time
import weakref
from datetime import timedelta
from typing import Any, Callable, Generic, Hashable, Iterator, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

Seconds = Union[int, float, timedelta]

DEFAULT_TTL = 60.0
DEFAULT_POLL_INTERVAL = 60.0


def _seconds(duration: Seconds) -> float:
    if isinstance(duration, timedelta):
        return duration.total_seconds()
    return float(duration)


class Clock:
    """Produces whole-second timestamps relative to a reference point.

    By default the reference point is the UNIX epoch and the time source is
    the system clock; both can be replaced, which is how tests drive time.
    """

    def __init__(self, time_fn: Callable[[], float] = time.time, base: float = 0.0) -> None:
        self._time_fn = time_fn
        self._base = float(base)

    def _relative(self, offset: float) -> int:
        elapsed = self._time_fn() + offset - self._base
        if elapsed < 0:
            raise ValueError("current time is earlier than the clock's reference point")
        return int(elapsed)

    def now_relative_secs(self) -> int:
        """Return the current time in whole seconds since the reference point."""
        return self._relative(0.0)

    def compute_expiration_secs(self, ttl: Seconds) -> int:
        """Return the time, in whole seconds, at which something living `ttl` expires."""
        return self._relative(_seconds(ttl))


class MapLocked(Exception):
    """Raised when a non-blocking lookup finds the map locked by someone else."""


class TimedValue(Generic[V]):
    """A value stored in a :class:`TtlMap` together with its expiration time."""

    __slots__ = ("value", "_expires_at", "_clock")

    def __init__(self, value: V, ttl: Seconds, clock: Clock) -> None:
        self.value = value
        self._expires_at = 0
        self._clock = clock
        self.update_expiration(ttl)

    def expiration_secs(self) -> int:
        """Return the expiration time in seconds relative to the clock's reference point."""
        return self._expires_at

    def update_expiration(self, ttl: Seconds) -> None:
        """Move the expiration time to now + `ttl`."""
        try:
            self._expires_at = self._clock.compute_expiration_secs(ttl)
        except (ValueError, OverflowError) as error:
            logger.warning("failed to increment key expiration: %s", error)

    def __repr__(self) -> str:
        return f"TimedValue(value={self.value!r}, expires_at={self._expires_at})"


class _Entry(Generic[K, V]):
    """Common behaviour of occupied and vacant entries."""

    def __init__(self, owner: "TtlMap[K, V]", key: K) -> None:
        self._owner = owner
        self.key = key

    def __enter__(self) -> "_Entry[K, V]":
        self._owner._lock.acquire()
        return self

    def __exit__(self, *args: Any) -> None:
        self._owner._lock.release()


class OccupiedEntry(_Entry[K, V]):
    """A view into an entry of the map that holds a value.

    Using the entry as a context manager holds the map's lock for the block.
    """

    def get(self) -> TimedValue[V]:
        """Return the stored value, resetting its expiration."""
        with self._owner._lock:
            stored = self._owner._inner[self.key]
            stored.update_expiration(self._owner._ttl)
            return stored

    def get_mut(self) -> TimedValue[V]:
        """Return the stored value for modification, resetting its expiration."""
        return self.get()

    def insert(self, value: V) -> TimedValue[V]:
        """Replace the stored value, returning the previous one."""
        with self._owner._lock:
            old = self._owner._inner[self.key]
            self._owner._inner[self.key] = self._owner._wrap(value)
            return old


class VacantEntry(_Entry[K, V]):
    """A view into an entry of the map that holds no value.

    Using the entry as a context manager holds the map's lock for the block.
    """

    def insert(self, value: V) -> TimedValue[V]:
        """Store `value` under the entry's key and return the stored wrapper."""
        with self._owner._lock:
            stored = self._owner._wrap(value)
            self._owner._inner[self.key] = stored
            return stored


class TtlMap(Generic[K, V]):
    """A map whose entries are removed once their time-to-live elapses.

    The TTL of an entry is reset whenever it is (re)inserted or read through
    :meth:`get`, :meth:`try_get`, :meth:`get_mut` or an entry view. Expired
    entries are pruned every `poll_interval` seconds by a background thread;
    pass ``None`` as `poll_interval` to prune only through :meth:`prune`.
    """

    def __init__(
        self,
        ttl: Seconds = DEFAULT_TTL,
        poll_interval: Optional[Seconds] = DEFAULT_POLL_INTERVAL,
        clock: Optional[Clock] = None,
    ) -> None:
        self._ttl = _seconds(ttl)
        self._clock = clock if clock is not None else Clock()
        self._inner: dict[K, TimedValue[V]] = {}
        self._lock = threading.RLock()
        stop = threading.Event()
        self._finalizer = weakref.finalize(self, stop.set)
        if poll_interval is not None:
            interval = _seconds(poll_interval)
            if interval <= 0:
                raise ValueError("poll_interval must be positive")
            thread = threading.Thread(
                target=TtlMap._cleanup_loop,
                args=(weakref.ref(self), interval, stop),
                name="ttl-map-cleanup",
                daemon=True,
            )
            thread.start()

    @staticmethod
    def _cleanup_loop(ref: "weakref.ref[TtlMap[Any, Any]]", interval: float, stop: threading.Event) -> None:
        while not stop.wait(interval):
            owner = ref()
            if owner is None:
                return
            owner.prune()
            del owner

    def _wrap(self, value: V) -> TimedValue[V]:
        return TimedValue(value, self._ttl, self._clock)

    def now_relative_secs(self) -> int:
        """Return the clock's current time in seconds, or 0 if it cannot be read."""
        try:
            return self._clock.now_relative_secs()
        except (ValueError, OverflowError):
            return 0

    def get(self, key: K) -> Optional[TimedValue[V]]:
        """Return the stored value for `key`, resetting its expiration, or None."""
        with self._lock:
            stored = self._inner.get(key)
            if stored is not None:
                stored.update_expiration(self._ttl)
            return stored

    def try_get(self, key: K) -> Optional[TimedValue[V]]:
        """Like :meth:`get`, but raise :class:`MapLocked` instead of waiting for the lock."""
        if not self._lock.acquire(blocking=False):
            raise MapLocked(f"map is locked, cannot look up {key!r}")
        try:
            stored = self._inner.get(key)
            if stored is not None:
                stored.update_expiration(self._ttl)
            return stored
        finally:
            self._lock.release()

    def get_mut(self, key: K) -> Optional[TimedValue[V]]:
        """Return the stored value for modification, resetting its expiration."""
        return self.get(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._inner)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._inner

    def __iter__(self) -> Iterator[K]:
        with self._lock:
            return iter(list(self._inner))

    def insert(self, key: K, value: V) -> Optional[V]:
        """Store `value` under `key`, returning the value it replaced, if any."""
        with self._lock:
            previous = self._inner.get(key)
            self._inner[key] = self._wrap(value)
            return previous.value if previous is not None else None

    def entry(self, key: K) -> Union[OccupiedEntry[K, V], VacantEntry[K, V]]:
        """Return a view of the entry for `key` for in-place updates."""
        with self._lock:
            if key in self._inner:
                return OccupiedEntry(self, key)
            return VacantEntry(self, key)

    def prune(self) -> None:
        """Remove every entry whose expiration time has been reached."""
        try:
            now_secs = self._clock.now_relative_secs()
        except (ValueError, OverflowError):
            logger.warning("failed to get current time when pruning entries")
            return
        with self._lock:
            if not any(v.expiration_secs() <= now_secs for v in self._inner.values()):
                return
            self._inner = {
                key: stored for key, stored in self._inner.items() if stored.expiration_secs() > now_secs
            }

    def close(self) -> None:
        """Stop the background cleanup thread."""
        self._finalizer()

    def __enter__(self) -> "TtlMap[K, V]":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()