"""
ModelCache — Debug logging gate.

Cache flush/hit chatter is only emitted when ``debug_mode`` is enabled,
so the library stays quiet in production logs by default.
"""

from __future__ import annotations

import logging
from typing import Any, Optional


class CacheDebugger:
    """Logger wrapper that only emits when debug mode is on."""

    __slots__ = ("_enabled", "_logger")

    def __init__(self, enabled: bool = False, logger: Optional[logging.Logger] = None):
        self._enabled = enabled
        self._logger = logger or logging.getLogger("modelcache.debug")

    @property
    def enabled(self) -> bool:
        return self._enabled

    def debug(self, message: str, *args: Any) -> None:
        if self._enabled:
            self._logger.debug(message, *args)

    def info(self, message: str, *args: Any) -> None:
        if self._enabled:
            self._logger.info(message, *args)

    def error(self, message: str, *args: Any) -> None:
        if self._enabled:
            self._logger.error(message, *args)
