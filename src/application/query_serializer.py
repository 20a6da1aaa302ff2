"""Collision query engine.

QuerySerializer runs every query as validate -> await readiness -> cast ->
classify, and owns the choice between the two scene models:

    shared    One scene per engine, opened once by initialize_scene().
              Readiness is paid once; casts are serialized FIFO on a lock.
    isolated  initialize_scene() only checks that the source can be opened.
              Every query opens a fresh scene, waits for its readiness, casts
              and closes it. Queries run in parallel.

The readiness deadline is one budget per scene opening: describing the
source (manifest fetch, DEM load) and waiting for tiles both count against
it, so a query is answered within the deadline plus cast time.

Casts run in a worker thread (asyncio.to_thread) against an immutable
SceneSnapshot, so the event loop keeps streaming tiles meanwhile.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from domain.collision.services import build_result
from domain.collision.value_objects import CollisionResult
from domain.geodesy.value_objects import GeodeticPosition
from domain.scene.errors import SceneClosedError
from domain.scene.repositories import SceneSource

from application.config import EngineSettings, IsolationMode
from application.session import SceneSession, describe_source

logger = logging.getLogger(__name__)

SourceFactory = Callable[[str], SceneSource]


@dataclass(frozen=True)
class SceneHandle:
    """Reference to an initialized scene, passed explicitly to every query."""

    asset_source: str
    isolation: IsolationMode
    session: SceneSession | None = field(default=None, compare=False, repr=False)


class QuerySerializer:
    """Entry point for initialize_scene / check_collision.

    Args:
        settings: Engine configuration
        source_factory: Builds a SceneSource for an asset source string
    """

    def __init__(self, settings: EngineSettings, source_factory: SourceFactory) -> None:
        self._settings = settings
        self._source_factory = source_factory
        self._caster = settings.ray_caster()
        self._thresholds = settings.thresholds()
        self._init_lock = asyncio.Lock()
        self._cast_lock = asyncio.Lock()
        self._handle: SceneHandle | None = None
        self._shut_down = False

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def handle(self) -> SceneHandle | None:
        return self._handle

    # ------------------------------------------------------------------
    # Scene lifecycle
    # ------------------------------------------------------------------
    async def initialize_scene(self, asset_source: str | None = None) -> SceneHandle:
        """Open the scene and wait until it is Ready or its deadline passes.

        Idempotent: later calls return the existing handle. The shared model
        holds a single scene, so a different source is rejected.

        Raises:
            SceneInitFailure: If the source cannot be opened
            ValueError: If a different source is requested after initialization
        """
        source_id = asset_source or self._settings.asset_source
        async with self._init_lock:
            if self._shut_down:
                raise SceneClosedError(source_id)
            if self._handle is not None:
                if self._handle.asset_source != source_id:
                    raise ValueError(
                        f"Engine already initialized with {self._handle.asset_source!r}"
                    )
                return self._handle

            isolation = self._settings.isolation
            if isolation is IsolationMode.ISOLATED:
                # Fail fast on a broken source; scenes are opened per query
                await describe_source(
                    self._source_factory(source_id), self._settings.readiness_deadline_s
                )
                self._handle = SceneHandle(source_id, isolation)
                logger.info("Isolated scene source %s verified", source_id)
                return self._handle

            session = await self._open_session(source_id)
            try:
                state = await session.wait_ready()
            except BaseException:
                await session.close()
                raise
            self._handle = SceneHandle(source_id, isolation, session)
            logger.info("Shared scene %s initialized (%s)", source_id, state.value)
            return self._handle

    async def shutdown(self) -> None:
        """Close the shared scene, if any. Later queries raise SceneClosedError."""
        async with self._init_lock:
            self._shut_down = True
            handle, self._handle = self._handle, None
        if handle is not None and handle.session is not None:
            await handle.session.close()
        logger.info("Query engine shut down")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    async def check_collision(
        self, handle: SceneHandle, position: GeodeticPosition | Any
    ) -> CollisionResult:
        """Classify a probe position against the scene.

        ``position`` is a GeodeticPosition or a decoded JSON object; it is
        validated before the scene is touched.

        Raises:
            InvalidInputError: If the position is malformed
            SceneClosedError: If the engine has been shut down
        """
        if not isinstance(position, GeodeticPosition):
            position = GeodeticPosition.from_mapping(position)

        if handle.isolation is IsolationMode.ISOLATED:
            return await self._check_isolated(handle, position)

        session = handle.session
        if self._shut_down or session is None or session.closed:
            raise SceneClosedError(handle.asset_source)
        await session.wait_ready()
        async with self._cast_lock:
            return await self._cast(session, position)

    async def _check_isolated(
        self, handle: SceneHandle, position: GeodeticPosition
    ) -> CollisionResult:
        if self._shut_down:
            raise SceneClosedError(handle.asset_source)
        session = await self._open_session(handle.asset_source)
        try:
            await session.wait_ready()
            return await self._cast(session, position)
        finally:
            await session.close()

    async def _cast(self, session: SceneSession, position: GeodeticPosition) -> CollisionResult:
        best_effort = session.tracker.best_effort
        snapshot = session.asset.snapshot()
        report = await asyncio.to_thread(self._caster.cast, snapshot, position)
        result = build_result(
            report,
            self._thresholds,
            position=position,
            terrain=snapshot.terrain,
            best_effort=best_effort,
        )
        logger.debug(
            "Query (%.6f, %.6f, %.2f) -> %s%s",
            position.longitude,
            position.latitude,
            position.height,
            result.verdict.value,
            " (best effort)" if best_effort else "",
        )
        return result

    async def _open_session(self, source_id: str) -> SceneSession:
        return await SceneSession.open(
            self._source_factory(source_id),
            deadline_s=self._settings.readiness_deadline_s,
            concurrency=self._settings.tile_load_concurrency,
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    def status(self) -> dict[str, Any]:
        """Snapshot of engine state for health reporting."""
        status: dict[str, Any] = {
            "isolation": self._settings.isolation.value,
            "strategy": self._settings.strategy.value,
            "initialized": self._handle is not None,
        }
        handle = self._handle
        if handle is not None and handle.session is not None:
            asset = handle.session.asset
            status.update(
                readiness=handle.session.tracker.state.value,
                bestEffort=handle.session.tracker.best_effort,
                pendingTiles=asset.pending_count,
                loadedTiles=asset.loaded_count,
                failedTiles=asset.failed_count,
            )
        return status
