"""Filesystem and timing helpers shared by the pipeline stages."""

from __future__ import annotations

import logging
import os
import random
import time
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], None]


def ensure_parent_dir(path: str | os.PathLike[str]) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    return p


def atomic_write_text(path: str | os.PathLike[str], text: str) -> None:
    """Write *text* to a sibling temp file and rename it over *path*.

    Readers see either the previous content or the new content, never a
    partial write. The temp file is removed if anything fails before the
    rename.
    """

    target = ensure_parent_dir(path)
    tmp_path = target.with_name(target.name + ".tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, target)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def format_delay(seconds: float) -> str:
    if seconds < 60:
        value, unit = round(seconds), "second"
    elif seconds < 3600:
        value, unit = round(seconds / 60), "minute"
    else:
        value, unit = round(seconds / 3600), "hour"
    return f"{value} {unit}{'' if value == 1 else 's'}"


def random_delay(
    min_seconds: float = 0.5,
    max_seconds: float = 2.0,
    *,
    sleep: Sleeper = time.sleep,
    rng: Optional[random.Random] = None,
) -> float:
    """Sleep for a uniformly random duration and return it."""

    rng = rng or random
    delay = rng.uniform(min_seconds, max_seconds)
    logger.debug("Delaying for %s...", format_delay(delay))
    sleep(delay)
    return delay


__all__ = ["ensure_parent_dir", "atomic_write_text", "format_delay", "random_delay", "Sleeper"]
