"""Paginated discovery of new listings and queueing of their details."""

from __future__ import annotations

import logging
import random
import time
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional, Protocol, Set, Tuple

from .errors import ErrorBuffer
from .models import ListingPage
from .sites.base import SiteAdapter
from .stores import QueueStore, ViewedStore
from .util import Sleeper, random_delay

logger = logging.getLogger(__name__)


class PageSource(Protocol):
    """Anything that can turn a URL into rendered HTML."""

    def fetch(self, url: str) -> str:
        ...


SessionFactory = Callable[[SiteAdapter], AbstractContextManager]


@dataclass(slots=True)
class CrawlResult:
    """Outcome of crawling a single site."""

    site: str
    new_links: List[str] = field(default_factory=list)
    queued: int = 0
    failed: List[str] = field(default_factory=list)


def iter_pages(
    source: PageSource,
    site: SiteAdapter,
    *,
    sleep: Sleeper = time.sleep,
    rng: Optional[random.Random] = None,
) -> Iterator[Tuple[int, ListingPage]]:
    """Yield ``(page_no, page)`` from page 1 until the results run out.

    Stops on a page reporting zero results (not yielded) and after a page
    with no next-page affordance. The caller may stop early by closing the
    generator; the inter-page delay only happens when another page is
    requested.
    """

    page_no = 1
    while True:
        url = site.page_url(page_no)
        logger.info("%s: scraping page %d (%s)", site.name, page_no, url)
        page = site.parse_listing_page(source.fetch(url))
        if page.no_results:
            logger.info("%s: no results on page %d; stopping.", site.name, page_no)
            return
        yield page_no, page
        if not page.has_next:
            logger.info("%s: last page reached; stopping.", site.name)
            return
        page_no += 1
        random_delay(*site.page_delay, sleep=sleep, rng=rng)


class Crawler:
    """Finds links not seen before for one site and queues their details."""

    def __init__(
        self,
        site: SiteAdapter,
        queue: QueueStore,
        viewed: ViewedStore,
        errors: ErrorBuffer,
        session_factory: SessionFactory,
        *,
        sleep: Sleeper = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.site = site
        self.queue = queue
        self.viewed = viewed
        self.errors = errors
        self.session_factory = session_factory
        self.sleep = sleep
        self.rng = rng

    @property
    def scope(self) -> str:
        return f"{self.site.name}.Crawler"

    def known_links(self) -> Set[str]:
        """Links already viewed or waiting in the queue."""

        known = self.viewed.load() | self.queue.links()
        logger.info("%s: loaded %d previously seen links.", self.site.name, len(known))
        return known

    def find_new_links(self, source: PageSource) -> List[str]:
        """Walk the search pages and return recent links not seen before.

        Afterwards the viewed store is pruned to the links observed during
        this walk, so listings that dropped off the site are forgotten.
        """

        known = self.known_links()
        new_links: List[str] = []
        seen_now: Set[str] = set()

        for page_no, page in iter_pages(source, self.site, sleep=self.sleep, rng=self.rng):
            stale_found = False
            for entry in page.entries:
                seen_now.add(entry.link)
                if not self.site.is_recent(entry):
                    stale_found = True
                    continue
                if entry.link in known or entry.link in new_links:
                    continue
                new_links.append(entry.link)
            logger.debug("%s: page %d had %d entries", self.site.name, page_no, len(page.entries))
            # Results are newest first, so one stale entry means the rest are stale too.
            if stale_found:
                logger.info("%s: reached listings outside the lookback window; stopping.", self.site.name)
                break

        logger.info("%s: scraping finished; found %d new links.", self.site.name, len(new_links))
        self.viewed.prune(seen_now)
        return new_links

    def crawl(self) -> CrawlResult:
        """Discover new links and append a record for each to the queue."""

        result = CrawlResult(site=self.site.slug)
        with self.session_factory(self.site) as source:
            result.new_links = self.find_new_links(source)
            for index, link in enumerate(result.new_links):
                if index and self.site.detail_delay[1] > 0:
                    random_delay(*self.site.detail_delay, sleep=self.sleep, rng=self.rng)
                try:
                    url = self.site.listing_url(link)
                    logger.info("Scraping from link: %s", url)
                    record = self.site.parse_detail(source.fetch(url), link)
                except Exception as exc:
                    self.errors.capture(logger, self.scope, exc, f"Error scraping link: {link}")
                    result.failed.append(link)
                    continue
                if self.queue.append(record):
                    result.queued += 1

        logger.info(
            "%s: queued %d new listing(s), %d failed",
            self.site.name,
            result.queued,
            len(result.failed),
        )
        return result


__all__ = ["PageSource", "CrawlResult", "Crawler", "iter_pages"]
