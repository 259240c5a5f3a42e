"""Project-wide logging utilities that honour `RuntimeConfig`.

Only storage lifecycle events are logged, always at DEBUG: temp-file
allocation and release, window materialization, shared-source closing and
file save/load. Individual reads and writes are never logged.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from . import config as cx_config

LIFECYCLE_EVENTS = {
    "allocate": "Allocated owned storage %s",
    "release": "Released owned storage %s",
    "materialize": "Materialized window at %d (%d of %d bytes kept)",
    "materialize-source": "Materializing tree before overwriting its source %s",
    "close-source": "Closed shared source %s",
    "save": "Saved tree to %s",
    "load": "Loaded tree from %s (%d nodes)",
}


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger configured according to the runtime configuration."""

    logger_name = "ptreex" if name is None else f"ptreex.{name}"
    runtime = cx_config.runtime_config()
    logger = logging.getLogger(logger_name)
    logger.setLevel(runtime.log_level)
    return logger


def log_lifecycle(logger: logging.Logger, event: str, *args: Any) -> None:
    """Emit the DEBUG record for one storage lifecycle ``event``."""

    try:
        template = LIFECYCLE_EVENTS[event]
    except KeyError:
        raise ValueError(f"Unknown lifecycle event '{event}'.") from None
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(template, *args, extra={"lifecycle_event": event})


__all__ = ["LIFECYCLE_EVENTS", "get_logger", "log_lifecycle"]
