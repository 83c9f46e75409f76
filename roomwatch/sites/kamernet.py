"""Adapter for Kamernet (kamernet.nl) room listings."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from bs4 import Tag

from ..config import SiteConfig
from ..errors import SiteConfigError
from ..heuristics import parse_amount
from ..models import Feature, KamernetRecord, ListingEntry, ListingPage
from ..util import random_delay
from .base import SiteAdapter, make_soup, required_text, text_of

logger = logging.getLogger(__name__)

LISTING_LINK_SELECTOR = 'a[href^="/en/for-rent/"]'
NEXT_PAGE_SELECTOR = 'button[aria-label="Go to next page"]'
_NO_RESULTS_RE = re.compile(r"couldn.t find any results", re.IGNORECASE)


def _section(soup: Tag, heading: str) -> Optional[Tag]:
    """The ``<section>`` whose own ``<h5>`` contains *heading*."""

    for h5 in soup.find_all("h5"):
        if heading in h5.get_text() and h5.parent is not None and h5.parent.name == "section":
            return h5.parent
    return None


def _direct_ps(el: Tag) -> List[str]:
    return [text_of(p) for p in el.find_all("p", recursive=False)]


def _blocks_with_p(root: Optional[Tag]) -> List[Tag]:
    if root is None:
        return []
    return [div for div in root.find_all("div") if div.find("p", recursive=False) is not None]


def _icon_block(soup: Tag, icon: str) -> Tuple[str, str]:
    """Return the (h6, p) texts of the block holding the *icon* svg."""

    svg = soup.select_one(f'svg[data-testid="{icon}"]')
    wrapper = svg.find_parent("div") if svg is not None else None
    block = wrapper.find_parent("div") if wrapper is not None else None
    if block is None:
        return "", ""
    return text_of(block.find("h6")), text_of(block.find("p"))


class KamernetSite(SiteAdapter):
    slug = "kamernet"
    env_prefix = "KAMERNET"
    record_model = KamernetRecord
    page_param = "pageNo"
    wait_selector = LISTING_LINK_SELECTOR

    def __init__(self, config: SiteConfig) -> None:
        super().__init__(config)
        if not config.email or not config.password:
            raise SiteConfigError("kamernet: KAMERNET_EMAIL and KAMERNET_PASSWORD are required to log in")

    # ------------------------------------------------------------------
    # Session

    def prepare_session(self, page: Any) -> None:
        logger.info("No Kamernet session found; logging in...")
        page.goto(self.listing_url("/en"))
        page.get_by_role("button", name="Log in").click()
        random_delay()
        page.get_by_role("textbox", name="Email").fill(self.config.email)
        random_delay()
        page.get_by_role("textbox", name="Password").fill(self.config.password)
        random_delay()
        page.get_by_role("button", name="Log In").click()

        accept = page.get_by_role("button", name="Accept all")
        try:
            if accept.is_visible():
                accept.click()
        except Exception:  # pragma: no cover - consent banner is optional
            logger.debug("Consent banner not handled", exc_info=True)
        logger.info("Kamernet login successful; saving session.")

    # ------------------------------------------------------------------
    # Parsing

    def parse_listing_page(self, html: str) -> ListingPage:
        soup = make_soup(html)
        if _NO_RESULTS_RE.search(soup.get_text(" ", strip=True)):
            return ListingPage(no_results=True)

        entries: List[ListingEntry] = []
        seen: set[str] = set()
        for anchor in soup.select(LISTING_LINK_SELECTOR):
            href = (anchor.get("href") or "").strip()
            if not href or href.startswith("/en/for-rent/properties") or href in seen:
                continue
            seen.add(href)
            entries.append(ListingEntry(link=href))

        button = soup.select_one(NEXT_PAGE_SELECTOR)
        has_next = button is not None and not (
            button.has_attr("disabled")
            or button.get("aria-disabled") == "true"
            or "Mui-disabled" in (button.get("class") or [])
        )
        return ListingPage(entries=entries, has_next=has_next)

    def parse_detail(self, html: str, link: str) -> KamernetRecord:
        soup = make_soup(html)

        cost_breakdown: Dict[str, float] = {}
        for row in _blocks_with_p(soup.find(id="cost-breakups")):
            label = text_of(row.find("p", recursive=False))
            amount = parse_amount(text_of(row.find("h6", recursive=False)))
            if label and amount is not None:
                cost_breakdown[label] = amount

        floor_area, property_type = _icon_block(soup, "StraightenIcon")
        available_from, available_until = _icon_block(soup, "CalendarTodayIcon")

        about = _section(soup, "About the place")
        paragraphs = about.select("pre p") if about is not None else []
        description = "\n".join(text for text in (text_of(p) for p in paragraphs) if text)
        if not description:
            raise ValueError("description not found")

        details: List[str] = []
        # the heading uses either a straight or a curly apostrophe
        for block in _blocks_with_p(_section(soup, "What you")):
            for text in _direct_ps(block)[:1]:
                if text and text not in details:
                    details.append(text)

        ideal_tenant: List[Feature] = []
        for row in _blocks_with_p(_section(soup, "ideal tenant")):
            texts = _direct_ps(row)
            if len(texts) >= 2:
                ideal_tenant.append(Feature(label=texts[0], value=texts[1]))

        return KamernetRecord(
            link=link,
            street=required_text(soup, 'a[href="#map"]', "street"),
            cost_breakdown=cost_breakdown,
            floor_area=floor_area or None,
            property_type=property_type or None,
            available_from=available_from or None,
            available_until=available_until or None,
            description=description,
            details=details,
            features=ideal_tenant,
        )

    # ------------------------------------------------------------------
    # Presentation

    @staticmethod
    def _cost_line(record: KamernetRecord) -> str:
        return " | ".join(f"{label}: {value:g}" for label, value in record.cost_breakdown.items())

    def render_prompt(self, record: KamernetRecord) -> str:
        ideal_tenant = "\n".join(f"{f.label}: {f.value}" for f in record.features)
        return "\n".join(
            [
                "Listing Details:",
                f"Cost Breakdown: {self._cost_line(record)}",
                f"Floor Area: {record.floor_area or ''}",
                f"Property Type: {record.property_type or ''}",
                f"Available From: {record.available_from or ''}",
                f"Available Until: {record.available_until or ''}",
                f"Street: {record.street}",
                f"Details: {', '.join(record.details)}",
                f"\nDescription:\n{record.description.strip()}",
                f"\nIdeal Tenant:\n{ideal_tenant}",
            ]
        )

    def entry_title(self, record: KamernetRecord) -> str:
        return record.street

    def summary_fields(self, record: KamernetRecord) -> List[Tuple[str, str]]:
        return [
            ("Type", record.property_type or "N/A"),
            ("Area", record.floor_area or "Unknown"),
            ("Available", f"{record.available_from or 'N/A'} → {record.available_until or 'N/A'}"),
            ("Cost", self._cost_line(record) or "No cost information provided"),
        ]


__all__ = ["KamernetSite"]
