# Overview: Service-layer snapshot cache with TTL, invalidation and in-flight load deduplication.

from __future__ import annotations

import threading
import time
from concurrent.futures import Future


class SnapshotCache:
    """
    Single-value cache around an expensive loader.

    - A value older than ttl_seconds is stale and rebuilt on next get().
    - Concurrent get() calls on a cold cache share one loader call: the
      first caller publishes a Future and builds; the rest wait on it.
    - invalidate() drops the value and detaches any in-flight build, so a
      build started before an invalidation never repopulates the cache.
    - A loader failure reaches every waiter and nothing is cached.

    The lock is only held to read/publish state, never around the loader.
    """

    def __init__(self, loader, ttl_seconds: float, clock=time.monotonic):
        self._loader = loader
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._value = None
        self._loaded_at: float | None = None
        self._in_flight: Future | None = None
        self._generation = 0

    def _fresh(self) -> bool:
        if self._loaded_at is None:
            return False
        return (self._clock() - self._loaded_at) < self.ttl_seconds

    def get(self):
        with self._lock:
            if self._fresh():
                return self._value
            if self._in_flight is not None:
                future = self._in_flight
                owner = False
            else:
                future = Future()
                self._in_flight = future
                generation = self._generation
                owner = True

        if not owner:
            return future.result()

        try:
            value = self._loader()
        except BaseException as exc:
            with self._lock:
                if self._in_flight is future:
                    self._in_flight = None
            future.set_exception(exc)
            raise

        with self._lock:
            if self._generation == generation:
                self._value = value
                self._loaded_at = self._clock()
            if self._in_flight is future:
                self._in_flight = None
        future.set_result(value)
        return value

    def invalidate(self) -> None:
        with self._lock:
            self._value = None
            self._loaded_at = None
            self._in_flight = None
            self._generation += 1

    @property
    def is_loaded(self) -> bool:
        with self._lock:
            return self._fresh()
