"""Ranked HTML digest of classified listings awaiting an email send."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from html import escape
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from .util import atomic_write_text

logger = logging.getLogger(__name__)

ENTRY_MARKER = "<!-- roomwatch:entry{score} -->"
_MARKER_RE = re.compile(r"<!-- roomwatch:entry(?: score=(\d{1,3}))? -->")
_SCORE_RE = re.compile(r'data-score="(\d{1,3})"')

_ENVELOPE = """<!DOCTYPE html>
<html>
  <head>
    <meta charset="UTF-8">
    <title>{title}</title>
  </head>
  <body style="margin:0; padding:0; background-color:#ffffff;">
    <div style="font-family: Arial, sans-serif; font-size: 14px; color: #333;">
{body}
    </div>
  </body>
</html>
"""


@dataclass(slots=True)
class DigestEntry:
    html: str
    score: Optional[int] = None

    @property
    def rank(self) -> int:
        return self.score if self.score is not None else 0


def render_entry(
    *,
    title: str,
    url: str,
    score: Optional[int],
    fields: Iterable[Tuple[str, str]],
    assessment: Optional[str] = None,
) -> str:
    """Render one listing as a self-contained ``<div>`` block."""

    parts = [
        f'<div data-score="{score if score is not None else ""}" '
        'style="border: 1px solid #ccc; padding: 16px; margin-bottom: 16px; border-radius: 6px;">',
        '<h3 style="margin-top: 0; margin-bottom: 8px;">'
        f'<a href="{escape(url, quote=True)}" style="text-decoration: none; color: #1a73e8;">'
        f"{escape(title)}</a></h3>",
    ]
    if score is not None:
        parts.append(f'<p style="margin: 4px 0;"><strong>Matching:</strong> {score}%</p>')
    for label, value in fields:
        parts.append(f'<p style="margin: 4px 0;"><strong>{escape(label)}:</strong> {escape(value)}</p>')
    if assessment:
        parts.append('<p style="margin: 8px 0;"><strong>Assessment:</strong></p>')
        parts.append(
            '<p style="margin: 8px 0; background-color: #f3f3f3; padding: 8px; '
            'border-left: 4px solid #1a73e8;"><em>'
            + escape(assessment).replace("\n", "<br>")
            + "</em></p>"
        )
    parts.append("</div>")
    return "\n".join(parts)


def _score_of(html: str) -> Optional[int]:
    match = _SCORE_RE.search(html)
    return int(match.group(1)) if match else None


def _marker(score: Optional[int]) -> str:
    return ENTRY_MARKER.format(score=f" score={score}" if score is not None else "")


class NotificationDigest:
    """Single HTML file of entries kept sorted by score, highest first."""

    def __init__(self, path: str | os.PathLike[str], title: str = "New Listings Found!") -> None:
        self.path = Path(path)
        self.title = title

    def entries(self) -> List[DigestEntry]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        # re.split with one group yields [prefix, score, html, score, html, ...]
        parts = _MARKER_RE.split(text)
        entries: List[DigestEntry] = []
        leading = parts[0].strip()
        if leading:
            entries.append(DigestEntry(html=leading, score=_score_of(leading)))
        for score, chunk in zip(parts[1::2], parts[2::2]):
            html = chunk.strip()
            if html:
                entries.append(DigestEntry(html=html, score=int(score) if score else None))
        return entries

    def is_empty(self) -> bool:
        return not self.entries()

    def insert(self, html: str, score: Optional[int] = None) -> None:
        """Add an entry and rewrite the file atomically in rank order.

        Entries with equal scores keep their insertion order.
        """

        entries = self.entries()
        if score is None:
            score = _score_of(html)
        entries.append(DigestEntry(html=html.strip(), score=score))
        entries.sort(key=lambda entry: entry.rank, reverse=True)
        atomic_write_text(
            self.path,
            "".join(f"{_marker(entry.score)}\n{entry.html}\n" for entry in entries),
        )
        logger.debug("Digest %s now holds %d entr(ies)", self.path, len(entries))

    def render(self) -> Optional[str]:
        """Wrap the accumulated entries in the email envelope."""

        entries = self.entries()
        if not entries:
            return None
        body = "\n\n".join(entry.html for entry in entries)
        return _ENVELOPE.format(title=escape(self.title), body=body)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


__all__ = ["DigestEntry", "NotificationDigest", "render_entry", "ENTRY_MARKER"]
