# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Reference-counted lifecycle manager for shared fixtures.

Several workloads share one expensive resource (the echo server). The
manager starts a resource on its first acquire, keeps it alive while any
holder remains, and stops it when the last holder releases it.
"""

import itertools
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from perfbench.application.ports import FixtureResource
from perfbench.domain.errors import DuplicateNameError, FixtureStartError, NotFoundError

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class FixtureHandle:
    """Proof of one acquire; release it exactly once.

    Attributes:
        name: Fixture name.
        value: Value returned by the resource's start() (e.g. server address).
        handle_id: Sequence number, unique per manager.
        generation: Lifetime of the resource this handle refers to.
    """

    name: str
    value: Any
    handle_id: int
    generation: int = 0
    released: bool = False


@dataclass(eq=False)
class _FixtureEntry:
    resource: FixtureResource
    lifecycle_lock: threading.Lock = field(default_factory=threading.Lock)
    ref_count: int = 0
    value: Any = None
    live: bool = False
    # Bumped on every start and on shutdown; handles from older lifetimes are stale
    generation: int = 0


class FixtureManager:
    """Starts shared resources at most once and stops them when unused.

    Locking:
    - ``_lock`` guards the name -> entry table and every ref count. It is
      held only while reading or updating that table, never across a
      resource's start() or stop().
    - Each entry has its own lifecycle lock serializing that fixture's
      start/stop. Concurrent acquirers of the same fixture wait for the one
      start in progress; acquirers of other fixtures are not blocked.

    Example:
        >>> manager = FixtureManager()
        >>> manager.register("echo_server", EchoServerFixture(...))
        >>> handle = manager.acquire("echo_server")
        >>> handle.value.ws_url
        'ws://127.0.0.1:54021/echo'
        >>> manager.release(handle)  # last holder: server stopped
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, _FixtureEntry] = {}
        self._handle_ids = itertools.count(1)

    def register(self, name: str, resource: FixtureResource) -> None:
        """Register a resource under a name.

        Raises:
            DuplicateNameError: If the name is taken
        """
        with self._lock:
            if name in self._entries:
                raise DuplicateNameError(f"Fixture '{name}' is already registered")
            self._entries[name] = _FixtureEntry(resource=resource)
        logger.debug(f"Registered fixture {name}")

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._entries)

    def _entry(self, name: str) -> _FixtureEntry:
        with self._lock:
            entry = self._entries.get(name)
        if entry is None:
            raise NotFoundError(f"Fixture '{name}' is not registered")
        return entry

    def acquire(self, name: str) -> FixtureHandle:
        """Take a reference to a fixture, starting it if nobody holds it.

        Args:
            name: Registered fixture name

        Returns:
            Handle carrying the resource's value

        Raises:
            NotFoundError: If the fixture is not registered
            FixtureStartError: If start() failed (ref count left unchanged)
        """
        entry = self._entry(name)

        with entry.lifecycle_lock:
            with self._lock:
                if entry.ref_count > 0:
                    entry.ref_count += 1
                    logger.debug(f"Fixture {name} reused (refs={entry.ref_count})")
                    return FixtureHandle(
                        name, entry.value, next(self._handle_ids), entry.generation
                    )

            logger.info(f"Starting fixture {name}")
            try:
                value = entry.resource.start()
            except Exception as e:
                logger.error(f"Fixture {name} failed to start: {e}")
                raise FixtureStartError(f"Fixture '{name}' failed to start: {e}") from e

            with self._lock:
                entry.value = value
                entry.live = True
                entry.ref_count = 1
                entry.generation += 1
                return FixtureHandle(name, value, next(self._handle_ids), entry.generation)

    def release(self, handle: FixtureHandle) -> None:
        """Drop one reference; the last release stops the resource.

        Releasing a handle twice, or a handle outstanding across shutdown(),
        is a no-op even if the fixture has been started again since. The
        count never goes below zero.
        """
        entry = self._entry(handle.name)

        with self._lock:
            if handle.released:
                logger.debug(f"Fixture {handle.name} handle {handle.handle_id} already released")
                return
            handle.released = True

        with entry.lifecycle_lock:
            with self._lock:
                if handle.generation != entry.generation or entry.ref_count == 0:
                    logger.debug(
                        f"Fixture {handle.name} handle {handle.handle_id} is stale "
                        f"(generation {handle.generation}, current {entry.generation})"
                    )
                    return
                entry.ref_count -= 1
                if entry.ref_count > 0:
                    logger.debug(f"Fixture {handle.name} released (refs={entry.ref_count})")
                    return
                entry.live = False
                entry.value = None

            logger.info(f"Stopping fixture {handle.name}")
            entry.resource.stop()

    @contextmanager
    def lease(self, name: str) -> Iterator[Any]:
        """Acquire for the duration of a with-block, yielding the value."""
        handle = self.acquire(name)
        try:
            yield handle.value
        finally:
            self.release(handle)

    def shutdown(self) -> None:
        """Force-stop every live fixture regardless of outstanding holders.

        Idempotent: a second call, or releases arriving afterwards, do nothing.
        """
        with self._lock:
            entries = list(self._entries.items())

        for name, entry in entries:
            with entry.lifecycle_lock:
                with self._lock:
                    if not entry.live:
                        continue
                    outstanding = entry.ref_count
                    entry.ref_count = 0
                    entry.live = False
                    entry.value = None
                    entry.generation += 1

                logger.info(f"Force-stopping fixture {name} (outstanding refs={outstanding})")
                try:
                    entry.resource.stop()
                except Exception as e:
                    logger.error(f"Fixture {name} failed to stop: {e}")

    def ref_count(self, name: str) -> int:
        entry = self._entry(name)
        with self._lock:
            return entry.ref_count

    def is_live(self, name: str) -> bool:
        entry = self._entry(name)
        with self._lock:
            return entry.live
