"""Line-delimited JSON stores for queued and viewed listings.

Both stores are plain files owned by a single worker process. Every
mutation other than a single-line append goes through a temp file and an
atomic rename, so a crash leaves either the old or the new content.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Generic, Iterable, Iterator, List, Optional, Set, Type, TypeVar

from pydantic import ValidationError

from .errors import MalformedRecordError
from .models import ListingRecord
from .util import atomic_write_text, ensure_parent_dir

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=ListingRecord)


def _iter_lines(path: Path) -> Iterator[str]:
    """Yield the non-blank lines of *path*; a missing file has no lines."""

    try:
        handle = open(path, "r", encoding="utf-8")
    except FileNotFoundError:
        return
    with handle:
        for raw in handle:
            line = raw.rstrip("\r\n")
            if line.strip():
                yield line


def read_link(line: str) -> Optional[str]:
    """Return the ``link`` of a JSON line, or ``None`` when it has none."""

    try:
        obj = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(obj, dict):
        return None
    link = obj.get("link")
    if isinstance(link, str) and link:
        return link
    return None


class ViewedStore:
    """Links the pipeline does not need to reconsider, one ``{"link"}`` per line."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    def load(self) -> Set[str]:
        links: Set[str] = set()
        if not self.path.exists():
            logger.info("Viewed links file does not exist yet: %s", self.path)
            return links
        for line in _iter_lines(self.path):
            link = read_link(line)
            if link is None:
                logger.warning("Viewed file: failed to parse line: %s", line)
                continue
            links.add(link)
        logger.debug("Loaded %d viewed links from %s", len(links), self.path)
        return links

    def __contains__(self, link: object) -> bool:
        return link in self.load()

    def add(self, link: str) -> None:
        ensure_parent_dir(self.path)
        with open(self.path, "a", encoding="utf-8") as handle:
            handle.write(json.dumps({"link": link}, ensure_ascii=False) + "\n")
            handle.flush()
            os.fsync(handle.fileno())

    def size(self) -> int:
        """Current length of the file in bytes, 0 when it does not exist."""

        try:
            return self.path.stat().st_size
        except FileNotFoundError:
            return 0

    def truncate(self, size: int) -> None:
        """Cut the file back to *size* bytes, undoing appends made after it."""

        if not self.path.exists():
            return
        with open(self.path, "r+b") as handle:
            handle.truncate(size)
            handle.flush()
            os.fsync(handle.fileno())

    def prune(self, universe: Iterable[str]) -> int:
        """Keep only links present in *universe*; return how many were dropped.

        Lines without a readable link are kept as they are.
        """

        if not self.path.exists():
            logger.info("Viewed links file does not exist yet: %s", self.path)
            return 0

        keep = set(universe)
        kept: List[str] = []
        dropped = 0
        for line in _iter_lines(self.path):
            link = read_link(line)
            if link is None:
                logger.warning("Viewed file: keeping unparsable line: %s", line)
                kept.append(line)
            elif link in keep:
                kept.append(line)
            else:
                dropped += 1

        atomic_write_text(self.path, "".join(f"{line}\n" for line in kept))
        logger.info("Pruned %d viewed link(s) from %s; %d remain", dropped, self.path, len(kept))
        return dropped


@dataclass(slots=True)
class QueueSnapshot(Generic[RecordT]):
    """Records parsed from the queue plus the lines that failed validation."""

    records: List[RecordT] = field(default_factory=list)
    malformed: List[str] = field(default_factory=list)


class QueueStore(Generic[RecordT]):
    """Append-only queue of discovered listings, one JSON record per line."""

    def __init__(
        self,
        path: str | os.PathLike[str],
        record_model: Type[RecordT],
        viewed: ViewedStore,
    ) -> None:
        self.path = Path(path)
        self.record_model = record_model
        self.viewed = viewed

    def links(self) -> Set[str]:
        links: Set[str] = set()
        for line in _iter_lines(self.path):
            link = read_link(line)
            if link is not None:
                links.add(link)
        return links

    def __contains__(self, link: object) -> bool:
        return any(read_link(line) == link for line in _iter_lines(self.path))

    def is_empty(self) -> bool:
        return next(_iter_lines(self.path), None) is None

    def load(self) -> QueueSnapshot[RecordT]:
        snapshot: QueueSnapshot[RecordT] = QueueSnapshot()
        for line in _iter_lines(self.path):
            try:
                snapshot.records.append(self.record_model.model_validate_json(line))
            except ValidationError:
                snapshot.malformed.append(line)
        return snapshot

    def append(self, record: RecordT) -> bool:
        """Append *record* unless its link is already queued.

        Returns ``True`` when a line was written.
        """

        if not getattr(record, "link", None):
            raise MalformedRecordError(f"Record is missing required 'link' field: {record!r}")
        if not isinstance(record, self.record_model):
            raise MalformedRecordError(
                f"Expected {self.record_model.__name__}, got {type(record).__name__}"
            )

        if record.link in self:
            logger.info("Link already exists in queue: %s", record.link)
            return False

        ensure_parent_dir(self.path)
        with open(self.path, "a", encoding="utf-8") as handle:
            handle.write(record.model_dump_json() + "\n")
            handle.flush()
            os.fsync(handle.fileno())
        logger.debug("Queued %s", record.link)
        return True

    def consume_and_promote(self, link: str) -> bool:
        """Remove *link* from the queue and record it as viewed.

        Other lines, unparsable ones included, are copied verbatim into a
        temp file which then replaces the queue. Nothing is visible to a
        reader of the queue until the rename. The digest entry for *link*
        must already be written when this is called.
        """

        tmp_path = self.path.with_name(self.path.name + ".tmp")
        found = False
        try:
            ensure_parent_dir(tmp_path)
            with open(tmp_path, "w", encoding="utf-8") as out:
                for line in _iter_lines(self.path):
                    if read_link(line) == link:
                        found = True
                        continue
                    out.write(line + "\n")
                out.flush()
                os.fsync(out.fileno())

            if not found:
                tmp_path.unlink(missing_ok=True)
                logger.warning("Link not found in queue: %s", link)
                return False

            mark = self.viewed.size()
            try:
                self.viewed.add(link)
                os.replace(tmp_path, self.path)
            except BaseException:
                # the queue still holds the link, so it must not stay viewed
                self.viewed.truncate(mark)
                raise
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise

        logger.info("Moved link to viewed: %s", link)
        return True


__all__ = ["ViewedStore", "QueueStore", "QueueSnapshot", "read_link"]
