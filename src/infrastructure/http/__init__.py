"""HTTP boundary for the collision query engine."""

from .app import create_app

__all__ = ["create_app"]
