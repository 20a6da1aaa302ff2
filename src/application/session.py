"""Scene sessions.

A SceneSession is one opened scene: its SceneAsset, the ReadinessTracker
watching it, and the background task streaming its tiles. The readiness
deadline starts when the session is opened and covers describing the source;
closing a session cancels streaming and the timer.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from domain.scene.asset import SceneAsset
from domain.scene.errors import SceneInitFailure
from domain.scene.readiness import ReadinessState, ReadinessTracker
from domain.scene.repositories import SceneSource
from domain.scene.value_objects import SceneDescription

from application.streaming import TileStreamer

logger = logging.getLogger(__name__)


async def describe_source(
    source: SceneSource, timeout_s: float | None = None
) -> SceneDescription:
    """Ask a source for its scene; any failure is a SceneInitFailure.

    A source that has not described its scene within ``timeout_s`` fails too.
    """
    try:
        return await asyncio.wait_for(source.describe(), timeout_s)
    except SceneInitFailure:
        raise
    except asyncio.TimeoutError as e:
        raise SceneInitFailure(
            source.source_id, f"no scene description within {timeout_s}s"
        ) from e
    except Exception as e:
        raise SceneInitFailure(source.source_id, f"{type(e).__name__}: {e}") from e



class SceneSession:
    """An opened, streaming scene."""

    def __init__(
        self,
        asset: SceneAsset,
        tracker: ReadinessTracker,
        streaming: asyncio.Task[None] | None,
    ) -> None:
        self.asset = asset
        self.tracker = tracker
        self._streaming = streaming
        self._closed = False

    @classmethod
    async def open(
        cls,
        source: SceneSource,
        *,
        deadline_s: float,
        concurrency: int = 8,
    ) -> "SceneSession":
        """Describe the source, start streaming and readiness tracking.

        The deadline covers describing the source as well: readiness gets
        whatever budget the description left. Returns once streaming has
        started; await ``session.tracker.wait()`` for readiness.

        Raises:
            SceneInitFailure: If the source cannot describe its scene, or
                does not describe it within the deadline
        """
        loop = asyncio.get_running_loop()
        opened_at = loop.time()
        description = await describe_source(source, deadline_s)
        remaining_s = max(deadline_s - (loop.time() - opened_at), 0.0)
        asset = SceneAsset(
            description.tiles, terrain=description.terrain, source_id=source.source_id
        )
        logger.info(
            "Opening scene %s: %d tiles, terrain %s",
            source.source_id,
            len(description.tiles),
            "present" if description.terrain is not None else "absent (flat)",
        )

        tracker = ReadinessTracker(asset, remaining_s)
        streamer = TileStreamer(asset, source, description.tiles, concurrency)
        streamer.request_all()
        tracker.start()
        task = (
            asyncio.create_task(streamer.run(), name=f"stream:{source.source_id}")
            if description.tiles
            else None
        )
        return cls(asset, tracker, task)

    @property
    def closed(self) -> bool:
        return self._closed

    async def wait_ready(self) -> ReadinessState:
        return await self.tracker.wait()

    async def close(self) -> None:
        """Stop streaming and readiness tracking. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        self.tracker.close()
        if self._streaming is not None and not self._streaming.done():
            self._streaming.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._streaming
        logger.debug("Scene %s closed", self.asset.source_id)
