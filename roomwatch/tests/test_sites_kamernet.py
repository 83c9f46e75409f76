"""Tests for the Kamernet adapter."""

from __future__ import annotations

import textwrap

import pytest

from roomwatch.config import SiteConfig
from roomwatch.errors import SiteConfigError
from roomwatch.oracle import Verdict
from roomwatch.sites.kamernet import KamernetSite

SEARCH_HTML = textwrap.dedent(
    """
    <html><body>
      <main>
        <a href="/en/for-rent/room-amsterdam/keizersgracht/room-2345">Room Keizersgracht</a>
        <a href="/en/for-rent/room-amsterdam/keizersgracht/room-2345"><img alt="photo"></a>
        <a href="/en/for-rent/properties-amsterdam">All properties in Amsterdam</a>
        <a href="/en/for-rent/studio-amsterdam/damrak/studio-99">Studio Damrak</a>
        <a href="/en/about">About</a>
      </main>
      <nav><button aria-label="Go to next page" class="MuiButtonBase-root"></button></nav>
    </body></html>
    """
)

DETAIL_HTML = textwrap.dedent(
    """
    <html><body>
      <main>
        <a href="#map">Keizersgracht, Amsterdam</a>
        <div class="facts">
          <div class="fact"><div><svg data-testid="StraightenIcon"></svg></div><h6>18 m²</h6><p>Room</p></div>
          <div class="fact"><div><svg data-testid="CalendarTodayIcon"></svg></div><h6>01-11-2026</h6><p>Indefinite period</p></div>
        </div>
        <div id="cost-breakups">
          <div><p>Rent</p><h6>€ 950</h6></div>
          <div><p>Service costs</p><h6>€ 1,050.50</h6></div>
        </div>
        <section>
          <h5>About the place</h5>
          <pre><p>Sunny room near the canals.</p><p>Shared kitchen.</p></pre>
        </section>
        <section>
          <h5>What you'll get</h5>
          <div><p>Furnished</p></div>
          <div><p>Internet included</p></div>
        </section>
        <section>
          <h5>Your ideal tenant</h5>
          <div><p>Age</p><p>20 - 30</p></div>
          <div><p>Status</p><p>Working professional</p></div>
        </section>
      </main>
    </body></html>
    """
)


def test_parse_listing_page_deduplicates_listing_links(kamernet_site):
    page = kamernet_site.parse_listing_page(SEARCH_HTML)

    assert page.links == [
        "/en/for-rent/room-amsterdam/keizersgracht/room-2345",
        "/en/for-rent/studio-amsterdam/damrak/studio-99",
    ]
    assert all(entry.recency is None for entry in page.entries)
    assert page.has_next is True
    assert page.no_results is False


@pytest.mark.parametrize(
    "button",
    [
        '<button aria-label="Go to next page" disabled></button>',
        '<button aria-label="Go to next page" class="MuiButtonBase-root Mui-disabled"></button>',
        '<button aria-label="Go to next page" aria-disabled="true"></button>',
        "",
    ],
)
def test_disabled_or_missing_next_button_ends_pagination(kamernet_site, button):
    html = f'<html><body><a href="/en/for-rent/room-amsterdam/a/room-1">Room</a>{button}</body></html>'

    assert kamernet_site.parse_listing_page(html).has_next is False


def test_parse_listing_page_detects_empty_search(kamernet_site):
    html = "<html><body><h4>Sorry, we couldn't find any results for your search</h4></body></html>"

    assert kamernet_site.parse_listing_page(html).no_results is True


def test_parse_detail_extracts_all_fields(kamernet_site):
    record = kamernet_site.parse_detail(DETAIL_HTML, "/en/for-rent/room-amsterdam/keizersgracht/room-2345")

    assert record.site == "kamernet"
    assert record.street == "Keizersgracht, Amsterdam"
    assert record.cost_breakdown == {"Rent": 950.0, "Service costs": 1050.5}
    assert record.floor_area == "18 m²"
    assert record.property_type == "Room"
    assert record.available_from == "01-11-2026"
    assert record.available_until == "Indefinite period"
    assert record.description == "Sunny room near the canals.\nShared kitchen."
    assert record.details == ["Furnished", "Internet included"]
    assert [(f.label, f.value) for f in record.features] == [
        ("Age", "20 - 30"),
        ("Status", "Working professional"),
    ]


def test_parse_detail_tolerates_missing_facts_and_partial_cost_rows(kamernet_site):
    html = (
        DETAIL_HTML.replace('<svg data-testid="StraightenIcon"></svg>', "")
        .replace("<div><p>Rent</p><h6>€ 950</h6></div>", "<div><p>Deposit on request</p></div>")
        .replace("What you'll get", "What you’ll get")
    )

    record = kamernet_site.parse_detail(html, "/en/for-rent/x")

    assert record.floor_area is None
    assert record.property_type is None
    assert record.available_from == "01-11-2026"
    assert record.cost_breakdown == {"Service costs": 1050.5}
    assert record.details == ["Furnished", "Internet included"]


def test_parse_detail_requires_description(kamernet_site):
    html = DETAIL_HTML.replace("About the place", "Something else")

    with pytest.raises(ValueError):
        kamernet_site.parse_detail(html, "/en/for-rent/x")


def test_prompt_and_entry_render_cost_breakdown(kamernet_site):
    record = kamernet_site.parse_detail(DETAIL_HTML, "/en/for-rent/room-amsterdam/keizersgracht/room-2345")

    prompt = kamernet_site.render_prompt(record)
    html = kamernet_site.render_entry(record, Verdict(assessment="Nice.", score=64))

    assert "Cost Breakdown: Rent: 950 | Service costs: 1050.5" in prompt
    assert "Age: 20 - 30" in prompt
    assert "Details: Furnished, Internet included" in prompt
    assert "Keizersgracht, Amsterdam</a>" in html
    assert "<strong>Available:</strong> 01-11-2026 → Indefinite period" in html


def test_page_url_uses_page_no_parameter(kamernet_site):
    assert kamernet_site.page_url(2) == "https://kamernet.nl/en/for-rent/rooms-amsterdam?radius=5&pageNo=2"


def test_missing_credentials_make_site_dormant():
    config = SiteConfig(
        slug="kamernet",
        base_url="https://kamernet.nl",
        search_url="https://kamernet.nl/en/for-rent/rooms-amsterdam",
    )

    with pytest.raises(SiteConfigError):
        KamernetSite(config)
