"""
Reconciliation state machine with a request-coalescing queue.

Each store owns one ``Reconciler``. It has a single in-flight slot and a
single pending-next marker:

    CLEAN ──mark_dirty──▶ DIRTY_PENDING ──task starts──▶ DIRTY_IN_FLIGHT
      ▲                                                    │   │
      └────────────── call succeeded, nothing pending ─────┘   │
    ERROR ◀──────────── call failed, nothing pending ──────────┘

While a call is in flight, any number of ``mark_dirty`` calls set the
pending-next marker; when the call resolves exactly one follow-up is issued.
Calls are never cancelled.
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional

from storefront.logging import get_logger

logger = get_logger(__name__)


class SyncState(str, Enum):
    CLEAN = "clean"
    DIRTY_PENDING = "dirty_pending"
    DIRTY_IN_FLIGHT = "dirty_in_flight"
    ERROR = "error"


class Reconciler:
    """
    Serialises remote reconciliation for one store.

    Args:
        name: Label used in log lines
        run_once: Coroutine function performing one full reconciliation.
            Returns True on success, False on a classified failure.
        on_state_change: Called synchronously after every state transition
    """

    def __init__(
        self,
        name: str,
        run_once: Callable[[], Awaitable[bool]],
        on_state_change: Optional[Callable[[], None]] = None,
    ):
        self.name = name
        self._run_once = run_once
        self._on_state_change = on_state_change
        self._task: Optional[asyncio.Task] = None
        self._pending_next = False
        self._state = SyncState.CLEAN

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def _set_state(self, state: SyncState) -> None:
        if state is self._state:
            return
        logger.debug(f"{self.name}: {self._state.value} -> {state.value}")
        self._state = state
        if self._on_state_change is not None:
            self._on_state_change()

    def _start(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Outside an event loop the work stays pending until flush()
            return
        self._task = loop.create_task(self._drain())

    def mark_dirty(self) -> None:
        """Record new local intent and schedule a reconciliation."""
        if self.in_flight:
            self._pending_next = True
            return
        self._set_state(SyncState.DIRTY_PENDING)
        self._start()

    def reset(self) -> None:
        """Forget pending work. An in-flight call still runs to completion."""
        self._pending_next = False
        if not self.in_flight:
            self._set_state(SyncState.CLEAN)

    async def _drain(self) -> None:
        while True:
            self._pending_next = False
            self._set_state(SyncState.DIRTY_IN_FLIGHT)
            try:
                ok = await self._run_once()
            except Exception as e:
                logger.error(f"{self.name}: reconciliation crashed: {e}", exc_info=True)
                ok = False
            if self._pending_next:
                continue
            self._set_state(SyncState.CLEAN if ok else SyncState.ERROR)
            return

    async def flush(self) -> None:
        """
        Wait until no reconciliation is in flight or queued.

        Starts a round trip first when the store is dirty or in error and
        nothing is running.
        """
        if not self.in_flight and self._state in (SyncState.DIRTY_PENDING, SyncState.ERROR):
            self._start()
        while self.in_flight:
            await asyncio.shield(self._task)
