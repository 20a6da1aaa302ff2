"""Geodesy Bounded Context - Error Hierarchy."""

from __future__ import annotations

from typing import Any


class GeodesyError(Exception):
    """Base error for geodesy operations."""


class InvalidInputError(GeodesyError):
    """A geodetic position is malformed (out of range or non-finite).

    Raised before any scene interaction; the caller can always recover by
    resubmitting valid data.

    Attributes:
        errors: Field-level problems as (field, message) pairs
    """

    def __init__(self, errors: list[tuple[str, str]]) -> None:
        self.errors = errors
        detail = "; ".join(f"{field}: {message}" for field, message in errors)
        super().__init__(f"Invalid geodetic position ({detail})")

    @classmethod
    def from_validation(cls, exc: Any) -> "InvalidInputError":
        """Build from a pydantic ValidationError."""
        errors = [
            (".".join(str(p) for p in err["loc"]) or "position", err["msg"])
            for err in exc.errors()
        ]
        return cls(errors)
