"""Root pytest configuration for all tests.

Domain tests build value objects directly (no I/O). Infrastructure tests
write their inputs under tmp_path. Shared builders live in tests/helpers.py.
"""

from __future__ import annotations

import logging

import pytest


@pytest.fixture(autouse=True)
def _debug_logging(caplog: pytest.LogCaptureFixture) -> None:
    """Capture DEBUG records from the project packages in every test."""
    for name in ("domain", "application", "infrastructure"):
        caplog.set_level(logging.DEBUG, logger=name)
