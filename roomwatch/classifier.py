"""Classify queued listings and promote them into the digest."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .digest import NotificationDigest
from .errors import EmptyReplyError, ErrorBuffer
from .models import ListingRecord
from .oracle import ClassificationOracle, Verdict, parse_verdict
from .sites.base import SiteAdapter
from .stores import QueueStore

logger = logging.getLogger(__name__)


def load_prompt(path: str | os.PathLike[str]) -> Optional[str]:
    """Return the stripped system prompt, or ``None`` when missing or empty."""

    prompt_path = Path(path)
    if not prompt_path.exists():
        logger.warning("Classification prompt file not found: %s", prompt_path)
        return None
    content = prompt_path.read_text(encoding="utf-8").strip()
    if not content:
        logger.warning("Classification prompt file is empty: %s", prompt_path)
        return None
    return content


@dataclass(slots=True)
class ClassifyResult:
    """Outcome of one classification pass over a site's queue."""

    site: str
    promoted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped_malformed: int = 0
    dormant: bool = False


class Classifier:
    """Runs every queued record of one site through the oracle."""

    def __init__(
        self,
        site: SiteAdapter,
        queue: QueueStore,
        digest: NotificationDigest,
        oracle: Optional[ClassificationOracle],
        system_prompt: Optional[str],
        errors: ErrorBuffer,
    ) -> None:
        self.site = site
        self.queue = queue
        self.digest = digest
        self.oracle = oracle
        self.system_prompt = (system_prompt or "").strip() or None
        self.errors = errors
        if self.system_prompt is None or self.oracle is None:
            logger.warning("%s classifier failed to initialise; it will stay dormant.", self.site.name)

    @property
    def scope(self) -> str:
        return f"{self.site.name}.Classifier"

    def ready(self) -> bool:
        if self.system_prompt is None or self.oracle is None:
            return False
        if self.queue.is_empty():
            logger.info("%s: no queued listings in %s", self.site.name, self.queue.path)
            return False
        return True

    def classify(self) -> ClassifyResult:
        result = ClassifyResult(site=self.site.slug)
        if not self.ready():
            result.dormant = True
            return result

        snapshot = self.queue.load()
        result.skipped_malformed = len(snapshot.malformed)
        for line in snapshot.malformed:
            self.errors.capture(
                logger,
                self.scope,
                ValueError("queued line failed validation"),
                f"Failed to parse line: {line}",
            )

        for record in snapshot.records:
            try:
                self.classify_record(record)
            except Exception as exc:
                self.errors.capture(logger, self.scope, exc, f"Error classifying record: {record.link}")
                result.failed.append(record.link)
            else:
                result.promoted.append(record.link)

        logger.info(
            "%s: classified %d listing(s), %d failed, %d malformed",
            self.site.name,
            len(result.promoted),
            len(result.failed),
            result.skipped_malformed,
        )
        return result

    def classify_record(self, record: ListingRecord) -> Verdict:
        """Classify *record*, add it to the digest, then retire it from the queue.

        The digest write happens before the queue rewrite, so a crash in
        between can repeat a notification but never lose one.
        """

        prompt = self.site.render_prompt(record)
        reply = self.oracle.complete(self.system_prompt, prompt)
        if not reply or not reply.strip():
            raise EmptyReplyError(f"Empty classification reply for {record.link}")

        verdict = parse_verdict(reply)
        self.digest.insert(self.site.render_entry(record, verdict), verdict.score)
        self.queue.consume_and_promote(record.link)
        return verdict


__all__ = ["Classifier", "ClassifyResult", "load_prompt"]
