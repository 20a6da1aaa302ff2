"""Scene Bounded Context - Readiness tracking.

Decides when a streamed scene is queryable.

    Unloaded -> Loading -> Ready | TimedOut

Progress notifications (pending-tile counts) race a per-scene deadline.
Whichever wins resolves a single future that every waiter shares, so all
waiters are released together, exactly once. A timeout is not an error:
waiters proceed against whatever geometry has loaded and their results are
flagged best-effort.

Ready also requires geometry: a scene whose tiles all failed and that has no
terrain never becomes Ready, it can only time out.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from enum import Enum
from typing import Callable

from domain.scene.asset import SceneAsset

logger = logging.getLogger(__name__)


class ReadinessState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    TIMED_OUT = "timed_out"


class ReadinessTracker:
    """Single-resolution readiness future for one SceneAsset.

    Args:
        asset: Scene to observe
        deadline_s: Seconds from start() until waiters are released regardless
    """

    def __init__(self, asset: SceneAsset, deadline_s: float) -> None:
        if deadline_s < 0:
            raise ValueError("deadline_s must be >= 0")
        self._asset = asset
        self._deadline_s = deadline_s
        self._state = ReadinessState.UNLOADED
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_thread: int | None = None
        self._released: asyncio.Future[ReadinessState] | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._caught_up = False

    @property
    def state(self) -> ReadinessState:
        return self._state

    @property
    def deadline_s(self) -> float:
        return self._deadline_s

    @property
    def best_effort(self) -> bool:
        """True while answers may be incomplete because the deadline won.

        Turns False again if streaming finishes after the timeout.
        """
        return self._state is ReadinessState.TIMED_OUT and not self._caught_up

    def start(self) -> None:
        """Enter Loading, subscribe to progress and arm the deadline.

        Must be called from the event loop that will await wait().
        """
        if self._state is not ReadinessState.UNLOADED:
            raise RuntimeError("ReadinessTracker already started")
        loop = asyncio.get_running_loop()
        self._loop = loop
        self._loop_thread = threading.get_ident()
        self._released = loop.create_future()
        self._state = ReadinessState.LOADING
        self._unsubscribe = self._asset.add_progress_listener(self._on_progress)
        self._timer = loop.call_later(self._deadline_s, self._on_deadline)
        logger.debug(
            "Readiness tracking started for %s (deadline %.1fs)",
            self._asset.source_id or "scene",
            self._deadline_s,
        )
        # Covers scenes that are already settled (e.g. terrain only)
        self._evaluate(self._asset.pending_count)

    async def wait(self) -> ReadinessState:
        """Suspend until Ready or TimedOut; returns the resolved state."""
        if self._released is None:
            raise RuntimeError("ReadinessTracker not started")
        # shield: one cancelled waiter must not cancel the shared future
        return await asyncio.shield(self._released)

    def close(self) -> None:
        """Cancel the deadline and stop listening. Pending waiters are cancelled."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._detach()
        if self._released is not None and not self._released.done():
            self._released.cancel()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _on_progress(self, pending: int) -> None:
        if self._loop is None:
            return
        if threading.get_ident() == self._loop_thread:
            self._evaluate(pending)
        else:
            self._loop.call_soon_threadsafe(self._evaluate, pending)

    def _evaluate(self, pending: int) -> None:
        if pending != 0 or not self._asset.has_geometry:
            return
        if self._state is ReadinessState.LOADING:
            self._release(ReadinessState.READY)
            logger.info("Scene %s ready", self._asset.source_id or "scene")
        elif self._state is ReadinessState.TIMED_OUT and not self._caught_up:
            self._caught_up = True
            self._detach()
            logger.info(
                "Scene %s finished streaming after its readiness deadline",
                self._asset.source_id or "scene",
            )

    def _on_deadline(self) -> None:
        self._timer = None
        if self._state is not ReadinessState.LOADING:
            return
        logger.warning(
            "Scene %s not ready after %.1fs (%d tiles pending, %d loaded); "
            "continuing best-effort",
            self._asset.source_id or "scene",
            self._deadline_s,
            self._asset.pending_count,
            self._asset.loaded_count,
        )
        self._release(ReadinessState.TIMED_OUT)

    def _release(self, state: ReadinessState) -> None:
        self._state = state
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._released is not None and not self._released.done():
            self._released.set_result(state)
        if state is ReadinessState.READY:
            self._detach()

    def _detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
