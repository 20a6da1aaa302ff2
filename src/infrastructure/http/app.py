"""HTTP boundary (FastAPI).

    POST /api/check-collision   {"longitude", "latitude", "height"}
        200  CollisionResult (camelCase keys, plus "collision")
        400  {"error": "Invalid input", "details": [...]}
        500  {"error": "Internal server error"}
    GET  /health                engine and scene status

The engine is created in the application lifespan. In the shared model the
scene is opened at startup; if that fails the server still starts and every
query retries initialization (and answers 500 while it keeps failing).
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from domain.geodesy.errors import InvalidInputError
from domain.geodesy.value_objects import GeodeticPosition
from domain.scene.errors import SceneInitFailure

from application.config import EngineSettings
from application.query_serializer import QuerySerializer, SourceFactory
from infrastructure.logging_setup import setup_logging
from infrastructure.scene import TilesetManifestSource

logger = logging.getLogger(__name__)


def create_app(
    settings: EngineSettings | None = None,
    source_factory: SourceFactory | None = None,
) -> FastAPI:
    """Build the API around a fresh QuerySerializer."""
    settings = settings or EngineSettings()
    factory: SourceFactory = source_factory or TilesetManifestSource

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        engine = QuerySerializer(settings, factory)
        app.state.engine = engine
        try:
            await engine.initialize_scene()
        except SceneInitFailure as e:
            logger.error("Scene initialization failed at startup: %s", e)
        try:
            yield
        finally:
            await engine.shutdown()

    app = FastAPI(
        title="Drone Clearance API",
        description="Collision and proximity checks against a streamed 3D scene",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.post("/api/check-collision")
    async def check_collision(request: Request) -> JSONResponse:
        engine: QuerySerializer = request.app.state.engine
        try:
            try:
                payload = await request.json()
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise InvalidInputError([("body", "must be valid JSON")]) from e
            # Malformed queries never reach the scene, not even an init retry
            position = GeodeticPosition.from_mapping(payload)
            handle = engine.handle or await engine.initialize_scene()
            result = await engine.check_collision(handle, position)
        except InvalidInputError as e:
            logger.info("Rejected query: %s", e)
            return JSONResponse(
                status_code=400,
                content={
                    "error": "Invalid input",
                    "details": [{"field": f, "message": m} for f, m in e.errors],
                },
            )
        except Exception:
            logger.exception("Collision check failed")
            return JSONResponse(
                status_code=500, content={"error": "Internal server error"}
            )
        return JSONResponse(content=result.to_response())

    @app.get("/health")
    async def health(request: Request) -> dict:
        engine: QuerySerializer = request.app.state.engine
        return {"status": "ok", **engine.status()}

    return app


def main() -> None:
    """Run the API with uvicorn using environment configuration."""
    settings = EngineSettings()
    setup_logging(settings.log_level, json_format=settings.log_json)
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        log_config=None,
    )


if __name__ == "__main__":
    main()
