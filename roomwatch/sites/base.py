"""Base class for aggregator site adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple, Type
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup, Tag

from ..config import SiteConfig
from ..digest import render_entry
from ..errors import SiteConfigError
from ..heuristics import is_recent, normalise_text
from ..models import ListingEntry, ListingPage, ListingRecord
from ..oracle import Verdict

HEADERS: Dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/124.0.0.0 Safari/537.36"
    ),
    "Accept-Language": "en-US,en;q=0.9",
}


def with_query_param(url: str, key: str, value: Any) -> str:
    """Return *url* with query parameter *key* set to *value*."""

    parts = urlparse(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != key]
    query.append((key, str(value)))
    return urlunparse(parts._replace(query=urlencode(query)))


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


def text_of(el: Optional[Tag]) -> str:
    return normalise_text(el.get_text(" ", strip=True)) if el else ""


def required_text(root: Tag, selector: str, what: str) -> str:
    """Text of the first match for *selector*; raises when it is missing or empty."""

    text = text_of(root.select_one(selector))
    if not text:
        raise ValueError(f"{what} not found (selector {selector!r})")
    return text


class SiteAdapter(ABC):
    """Knows how to page through, scrape and present one aggregator.

    The adapter never talks to the network itself: it builds URLs and turns
    HTML handed to it into entries and records.
    """

    slug: str
    env_prefix: str
    record_model: Type[ListingRecord]
    page_param: str = "page"
    # Sites that publish a "posted N days ago" signal treat a missing one as stale.
    requires_recency: bool = False
    detail_delay: Tuple[float, float] = (0.0, 0.0)
    wait_selector: Optional[str] = None

    def __init__(self, config: SiteConfig) -> None:
        missing = [
            f"{self.env_prefix}_{suffix}"
            for suffix, value in (("BASE_URL", config.base_url), ("SEARCH_BASE_URL", config.search_url))
            if not value
        ]
        if missing:
            raise SiteConfigError(f"{self.slug}: missing required setting(s): {', '.join(missing)}")
        self.config = config
        self.base_url: str = config.base_url or ""
        self.search_url: str = config.search_url or ""
        self.page_delay: Tuple[float, float] = config.page_delay
        if config.detail_delay is not None:
            self.detail_delay = config.detail_delay

    @property
    def name(self) -> str:
        return self.slug.capitalize()

    def page_url(self, page_no: int) -> str:
        return with_query_param(self.search_url, self.page_param, page_no)

    def listing_url(self, link: str) -> str:
        return urljoin(self.base_url, link)

    def is_recent(self, entry: ListingEntry) -> bool:
        if entry.recency is None:
            return not self.requires_recency
        return is_recent(entry.recency)

    def context_options(self) -> Dict[str, Any]:
        """Keyword arguments for the browser context of this site."""

        return {
            "user_agent": HEADERS["User-Agent"],
            "locale": "en-US",
            "extra_http_headers": {"Accept-Language": HEADERS["Accept-Language"]},
        }

    def prepare_session(self, page: Any) -> None:
        """Bring a fresh browser session into a usable state (login, cookies)."""

    @abstractmethod
    def parse_listing_page(self, html: str) -> ListingPage:
        ...

    @abstractmethod
    def parse_detail(self, html: str, link: str) -> ListingRecord:
        ...

    @abstractmethod
    def render_prompt(self, record: ListingRecord) -> str:
        ...

    @abstractmethod
    def entry_title(self, record: ListingRecord) -> str:
        ...

    @abstractmethod
    def summary_fields(self, record: ListingRecord) -> List[Tuple[str, str]]:
        ...

    def render_entry(self, record: ListingRecord, verdict: Verdict) -> str:
        return render_entry(
            title=self.entry_title(record) or "Unknown location",
            url=self.listing_url(record.link),
            score=verdict.score,
            fields=self.summary_fields(record),
            assessment=verdict.assessment or None,
        )


__all__ = ["SiteAdapter", "HEADERS", "with_query_param", "make_soup", "text_of", "required_text"]
