"""Exception types and the in-process error buffer."""

from __future__ import annotations

import logging
import threading
import traceback
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Deque, Dict, List, Optional


class RoomwatchError(Exception):
    """Base class for errors raised by the pipeline."""


class SiteConfigError(RoomwatchError):
    """A site is missing required configuration and stays dormant."""


class MalformedRecordError(RoomwatchError, ValueError):
    """A listing record cannot be stored (e.g. it has no ``link``)."""


class OracleError(RoomwatchError):
    """The classification endpoint returned an unusable response."""


class EmptyReplyError(OracleError):
    """The classification endpoint answered with no text."""


@dataclass(slots=True)
class ErrorEntry:
    """Representation of a single buffered failure."""

    timestamp: str
    path: str
    method: str
    message: str
    stack: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "timestamp": self.timestamp,
            "path": self.path,
            "method": self.method,
            "message": self.message,
            "stack": self.stack,
        }


class ErrorBuffer:
    """Ordered buffer of failures waiting to be mailed as a digest.

    ``flush`` hands entries out at most once: they are gone from the buffer
    even if the email that carries them later fails.
    """

    def __init__(self, maxlen: Optional[int] = None) -> None:
        self._entries: Deque[ErrorEntry] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def add(self, entry: ErrorEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def flush(self) -> List[ErrorEntry]:
        """Return every buffered entry and empty the buffer."""

        with self._lock:
            entries = list(self._entries)
            self._entries.clear()
        return entries

    def has_pending(self) -> bool:
        with self._lock:
            return bool(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def capture(
        self,
        logger: logging.Logger,
        scope: str,
        exc: BaseException,
        message: str = "",
    ) -> ErrorEntry:
        """Log *exc* under *scope* and buffer it for the error digest."""

        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        text = str(exc) or type(exc).__name__
        if message:
            text = f"{message}\n{text}"

        logger.error("Error in %s: %s", scope, text, exc_info=exc)

        entry = ErrorEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            path=f"/{scope}",
            method="SYSTEM",
            message=text,
            stack=stack,
        )
        self.add(entry)
        return entry


__all__ = [
    "RoomwatchError",
    "SiteConfigError",
    "MalformedRecordError",
    "OracleError",
    "EmptyReplyError",
    "ErrorEntry",
    "ErrorBuffer",
]
