"""
Chart State - Update Queue

Serializes the data refreshes triggered by resolved state changes so
overlapping edits never race.

One operation runs at a time. While it runs, at most one request waits
in the pending slot; a newer request overwrites it (latest wins). When
the running operation finishes, the pending request is drained.

    k1 running, enqueue(k2), enqueue(k3)  →  runs k1, then k3
                                              enqueue(k2) returns False

Usage:
    queue = UpdateQueue(refresh=fetcher.refresh, state=lambda: current.state)
    ran = await queue.enqueue("countries")
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Mapping

from chartstate.classifier import UpdatePlan, classify
from chartstate.logging import EventLogger

RefreshCallback = Callable[[UpdatePlan], Awaitable[Any]]
StateProvider = Callable[[], Mapping[str, Any]]
Classifier = Callable[..., UpdatePlan]


class UpdateQueue:
    """Single-flight refresh coordinator with a one-slot, latest-wins queue."""

    def __init__(
        self,
        refresh: RefreshCallback,
        state: StateProvider | None = None,
        classifier: Classifier = classify,
        events: EventLogger | None = None,
    ):
        self._refresh = refresh
        self._state = state
        self._classifier = classifier
        self._events = events or EventLogger("update_queue")
        self._running = False
        self._pending: tuple[str, asyncio.Future] | None = None
        self._in_flight: asyncio.Future | None = None  # waiter of the drained key
        self._stats = {
            "requested": 0,
            "executed": 0,
            "skipped": 0,
            "superseded": 0,
            "failed": 0,
        }

    @property
    def is_updating(self) -> bool:
        return self._running

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    @property
    def pending_key(self) -> str | None:
        return self._pending[0] if self._pending is not None else None

    def stats(self) -> dict[str, Any]:
        return {**self._stats, "running": self._running, "pending": self.pending_key}

    # ─── Enqueue ─────────────────────────────────────────────────────

    async def enqueue(self, key: str) -> bool:
        """
        Request a refresh for `key`. Returns True once it has run, False
        if a newer request superseded it while it waited. An error from
        the refresh is raised to the caller that requested that key.
        """
        self._stats["requested"] += 1
        if self._running:
            return await self._wait_in_slot(key)

        self._running = True
        first_error: Exception | None = None
        try:
            try:
                await self._execute(key)
            except Exception as e:
                first_error = e
            await self._drain()
        except asyncio.CancelledError:
            self._cancel_pending()
            raise
        finally:
            self._running = False

        if first_error is not None:
            raise first_error
        return True

    async def _wait_in_slot(self, key: str) -> bool:
        if self._pending is not None:
            old_key, old_future = self._pending
            if not old_future.done():
                old_future.set_result(False)
            self._stats["superseded"] += 1
            self._events.on_update_superseded(old_key, key)
        future = asyncio.get_running_loop().create_future()
        self._pending = (key, future)
        return await future

    async def _drain(self):
        while self._pending is not None:
            key, future = self._pending
            self._pending = None
            if future.cancelled():
                continue
            self._in_flight = future
            try:
                await self._execute(key)
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(True)
            self._in_flight = None

    def _cancel_pending(self):
        waiters = [self._in_flight]
        if self._pending is not None:
            waiters.append(self._pending[1])
        self._pending = None
        self._in_flight = None
        for future in waiters:
            if future is not None and not future.done():
                future.cancel()

    # ─── Execution ───────────────────────────────────────────────────

    async def _execute(self, key: str):
        state = self._state() if self._state is not None else None
        plan = self._classifier(key, state)
        if plan.is_noop:
            self._stats["skipped"] += 1
            self._events.on_update_skipped(key)
            return

        self._events.on_update_start(key, plan.to_dict())
        start = time.monotonic()
        try:
            await self._refresh(plan)
        except Exception as e:
            self._stats["failed"] += 1
            self._events.on_update_error(key, e)
            raise
        self._stats["executed"] += 1
        self._events.on_update_end(key, "completed", time.monotonic() - start)
