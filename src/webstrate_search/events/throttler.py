"""Per-key throttling of repeated calls with latest-arguments-win semantics."""

import asyncio
import contextlib
import threading
from collections.abc import Callable, Hashable
from dataclasses import dataclass, field
from typing import Any

import structlog

logger = structlog.get_logger()

SWEEP_FACTOR = 10


@dataclass
class ThrottleEntry:
    """Throttle state for a single key.

    Attributes:
        last_execution: Loop clock time of the last actual execution.
        pending: Handle of the scheduled deferred execution, if any.
        pending_action: Callable the deferred execution will run.
        pending_args: Arguments of the most recent deferred call.
        generation: Incremented each time a deferred execution is scheduled.
    """

    last_execution: float
    pending: asyncio.TimerHandle | None = None
    pending_action: Callable[..., Any] | None = None
    pending_args: tuple[Any, ...] = field(default_factory=tuple)
    generation: int = 0

    def clear_pending(self) -> None:
        """Cancel and forget the deferred execution, if any."""
        if self.pending is not None:
            self.pending.cancel()
        self.pending = None
        self.pending_action = None
        self.pending_args = ()


class Throttler:
    """Runs at most one call per key per delay window.

    The first call for a key runs immediately. Calls arriving inside the
    cooldown window replace each other: only the most recent one runs, at
    the end of the window. State transitions for a key happen under one
    lock, and a deferred execution checks that it is still the current one
    before running.
    """

    def __init__(
        self,
        delay: float,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Initialize throttler.

        Args:
            delay: Minimum seconds between executions for the same key.
            loop: Event loop for deferred executions. Defaults to the
                running loop at the time of the first call.
        """
        if delay <= 0:
            raise ValueError("Throttle delay must be positive")
        self._delay = delay
        self._loop = loop
        self._entries: dict[Hashable, ThrottleEntry] = {}
        self._lock = threading.Lock()
        self._sweep_task: asyncio.Task[None] | None = None
        self._coalesced_count = 0

    @property
    def pending_count(self) -> int:
        """Number of keys with a deferred execution scheduled."""
        with self._lock:
            return sum(1 for e in self._entries.values() if e.pending is not None)

    @property
    def coalesced_calls(self) -> int:
        """Number of deferred calls discarded in favour of a newer one."""
        return self._coalesced_count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(self, key: Hashable, action: Callable[..., Any], *args: Any) -> bool:
        """Run ``action(*args)`` now or at the end of the key's cooldown.

        Args:
            key: Throttle key, typically a document id.
            action: Callable to run.
            *args: Arguments passed to the action.

        Returns:
            True if the action ran immediately, False if it was deferred.
        """
        loop = self._get_loop()
        now = loop.time()

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.pending is not None:
                entry.clear_pending()
                self._coalesced_count += 1

            if entry is None or entry.last_execution + self._delay <= now:
                self._entries[key] = ThrottleEntry(last_execution=now)
                run_now = True
            else:
                when = entry.last_execution + self._delay
                entry.generation += 1
                entry.pending = loop.call_at(when, self._fire, key, entry.generation)
                entry.pending_action = action
                entry.pending_args = args
                run_now = False

        if run_now:
            action(*args)
        else:
            logger.debug("throttle_deferred", key=key, delay=self._delay)
        return run_now

    def _fire(self, key: Hashable, generation: int) -> None:
        """Run the deferred execution for a key, if it is still current."""
        loop = self._get_loop()
        with self._lock:
            entry = self._entries.get(key)
            if (
                entry is None
                or entry.pending is None
                or entry.generation != generation
            ):
                return
            action, args = entry.pending_action, entry.pending_args
            entry.clear_pending()
            entry.last_execution = loop.time()

        assert action is not None
        try:
            action(*args)
        except Exception:
            logger.exception("throttled_call_failed", key=key)

    def cancel(self, key: Hashable) -> bool:
        """Discard the deferred execution for a key.

        The cooldown of the key is left untouched.

        Args:
            key: Throttle key.

        Returns:
            True if a deferred execution was discarded.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.pending is None:
                return False
            entry.clear_pending()
        logger.debug("throttle_cancelled", key=key)
        return True

    def restart(self, key: Hashable) -> None:
        """Record an execution done outside the throttler for a key.

        Discards any deferred execution and starts a new cooldown window,
        so calls arriving right after are deferred.

        Args:
            key: Throttle key.
        """
        now = self._get_loop().time()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                entry.clear_pending()
            self._entries[key] = ThrottleEntry(last_execution=now)

    def flush(self) -> int:
        """Run every deferred execution immediately.

        Returns:
            Number of deferred executions that were run.
        """
        with self._lock:
            due = [
                (key, entry.generation)
                for key, entry in self._entries.items()
                if entry.pending is not None
            ]

        for key, generation in due:
            self._fire(key, generation)
        return len(due)

    def sweep(self) -> int:
        """Forget keys whose cooldown has elapsed and that have nothing pending.

        Returns:
            Number of evicted keys.
        """
        now = self._get_loop().time()
        with self._lock:
            expired = [
                key
                for key, entry in self._entries.items()
                if entry.pending is None and entry.last_execution + self._delay < now
            ]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.debug("throttle_swept", evicted=len(expired))
        return len(expired)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._delay * SWEEP_FACTOR)
            self.sweep()

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        self._get_loop()
        if self._sweep_task is None:
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Stop the sweep and discard every deferred execution."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None

        with self._lock:
            discarded = 0
            for entry in self._entries.values():
                if entry.pending is not None:
                    discarded += 1
                entry.clear_pending()
            self._entries.clear()

        logger.info("throttler_stopped", discarded=discarded)
