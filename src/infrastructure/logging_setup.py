"""Entry-point logging configuration.

Library modules only call logging.getLogger(__name__); handlers and levels
are configured here, once, by the process entry point.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time

_CONFIGURED_ATTR = "_clearance_configured"
_TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per line: {"t", "lvl", "name", "msg"[, "exc_info"]}."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "t": int(time.time() * 1000),
            "lvl": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(level: str | None = None, *, json_format: bool = False) -> None:
    """Configure the root logger once.

    Level precedence: explicit argument, then LOG_LEVEL, then INFO.
    Unknown level names fall back to INFO.
    """
    root = logging.getLogger()
    if getattr(root, _CONFIGURED_ATTR, False):
        return

    name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    resolved = logging.getLevelName(name)
    if not isinstance(resolved, int):
        resolved = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if json_format else logging.Formatter(_TEXT_FORMAT))

    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(resolved)
    setattr(root, _CONFIGURED_ATTR, True)
