"""Adapter for Huurwoningen (huurwoningen.nl) rental listings."""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Tuple

from ..heuristics import trim_truncated_description
from ..models import Feature, HuurwoningenRecord, ListingEntry, ListingPage
from .base import SiteAdapter, make_soup, required_text, text_of

logger = logging.getLogger(__name__)

COUNT_SELECTOR = ".search-list-header__count"
ITEM_SELECTOR = ".listing-search-item"
ITEM_LINK_SELECTOR = "a.listing-search-item__link.listing-search-item__link--title"
ITEM_RECENCY_SELECTOR = ".listing-reactions-counter__details > span"
NEXT_PAGE_SELECTOR = "a.pagination__link--next"
COOKIE_REJECT_SELECTOR = "#onetrust-reject-all-handler"

FEATURE_SECTIONS = (
    "section.page__details--transfer",
    "section.page__details--dimensions",
    "section.page__details--construction",
    "section.page__details--layout",
    "section.page__details--outdoor",
    "section.page__details--contract_conditions",
)


class HuurwoningenSite(SiteAdapter):
    slug = "huurwoningen"
    env_prefix = "HUURWO"
    record_model = HuurwoningenRecord
    page_param = "page"
    requires_recency = True
    detail_delay = (3.0, 5.0)
    wait_selector = COUNT_SELECTOR

    def context_options(self) -> Dict[str, Any]:
        options = super().context_options()
        options.update(
            timezone_id="Europe/Amsterdam",
            viewport={"width": 1366, "height": 768},
        )
        options["extra_http_headers"]["Referer"] = self.listing_url("/en")
        return options

    def prepare_session(self, page: Any) -> None:
        # No login needed; only dismiss the cookie wall once.
        page.goto(self.listing_url("/en"))
        try:
            button = page.wait_for_selector(COOKIE_REJECT_SELECTOR, timeout=5000, state="visible")
            button.click()
            logger.info("Rejected all cookies.")
        except Exception:
            logger.warning("Reject All button not found or not visible. Continuing without clicking.")

    # ------------------------------------------------------------------
    # Parsing

    def parse_listing_page(self, html: str) -> ListingPage:
        soup = make_soup(html)
        count_text = text_of(soup.select_one(COUNT_SELECTOR))
        if not count_text:
            raise ValueError(f"result counter {COUNT_SELECTOR!r} not found")
        digits = "".join(ch for ch in count_text if ch.isdigit())
        if not digits or int(digits) == 0:
            return ListingPage(no_results=True)

        entries: List[ListingEntry] = []
        for item in soup.select(ITEM_SELECTOR):
            anchor = item.select_one(ITEM_LINK_SELECTOR)
            href = (anchor.get("href") or "").strip() if anchor else ""
            if not href:
                continue
            counter = item.select_one(ITEM_RECENCY_SELECTOR)
            entries.append(ListingEntry(link=href, recency=text_of(counter) if counter else None))

        return ListingPage(entries=entries, has_next=soup.select_one(NEXT_PAGE_SELECTOR) is not None)

    def parse_detail(self, html: str, link: str) -> HuurwoningenRecord:
        soup = make_soup(html)
        title = required_text(soup, "h1.listing-detail-summary__title", "title")

        description = ""
        block = soup.select_one(".listing-detail-description__truncated")
        if block is not None:
            block = copy.copy(block)
            heading = block.find("h2")
            if heading is not None:
                heading.decompose()
            # Free accounts get a cut-off description; drop the partial sentence.
            description = trim_truncated_description(block.get_text(" ", strip=True))

        features: List[Feature] = []
        for section_selector in FEATURE_SECTIONS:
            section = soup.select_one(section_selector)
            if section is None:
                continue
            terms = section.select("dt.listing-features__term, dd.listing-features__term")
            descriptions = section.select("dd.listing-features__description")
            for term, desc in zip(terms, descriptions):
                main = text_of(desc.select_one(".listing-features__main-description"))
                sub = text_of(desc.select_one(".listing-features__sub-description"))
                if main and "view all" not in sub.lower():
                    features.append(Feature(label=text_of(term), value=main))

        return HuurwoningenRecord(link=link, title=title, description=description, features=features)

    # ------------------------------------------------------------------
    # Presentation

    def render_prompt(self, record: HuurwoningenRecord) -> str:
        features = "".join(f"{f.label}: {f.value}\n" for f in record.features)
        return "\n".join(
            [
                "Listing Details:",
                f"\nDescription:\n{record.description.strip()}",
                f"\nFeatures:\n{features}",
            ]
        )

    def entry_title(self, record: HuurwoningenRecord) -> str:
        return record.title

    def summary_fields(self, record: HuurwoningenRecord) -> List[Tuple[str, str]]:
        return [
            ("Type", record.feature_value("Type of house") or "N/A"),
            ("Area", record.feature_value("Living area") or "N/A"),
            ("Available", f"{record.feature_value('Available') or 'N/A'} → N/A"),
            ("Cost", record.feature_value("Rental price") or "N/A"),
        ]


__all__ = ["HuurwoningenSite"]
