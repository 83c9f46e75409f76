"""Shared fakes for the pipeline tests."""

from __future__ import annotations

import json
from contextlib import nullcontext
from typing import Dict, List, Tuple

import pytest

from roomwatch.config import SiteConfig
from roomwatch.digest import NotificationDigest
from roomwatch.errors import ErrorBuffer
from roomwatch.models import HuurwoningenRecord, ListingEntry, ListingPage
from roomwatch.sites.base import SiteAdapter
from roomwatch.sites.huurwoningen import HuurwoningenSite
from roomwatch.sites.kamernet import KamernetSite
from roomwatch.stores import QueueStore, ViewedStore


class StubSite(SiteAdapter):
    """Site whose pages are tiny JSON documents instead of HTML."""

    slug = "stub"
    env_prefix = "STUB"
    record_model = HuurwoningenRecord
    requires_recency = True

    def parse_listing_page(self, html: str) -> ListingPage:
        data = json.loads(html)
        return ListingPage(
            entries=[ListingEntry(link=link, recency=recency) for link, recency in data.get("entries", [])],
            has_next=data.get("has_next", False),
            no_results=data.get("no_results", False),
        )

    def parse_detail(self, html: str, link: str) -> HuurwoningenRecord:
        data = json.loads(html)
        if "error" in data:
            raise ValueError(data["error"])
        return HuurwoningenRecord(link=link, title=data["title"], description=data.get("description", ""))

    def render_prompt(self, record: HuurwoningenRecord) -> str:
        return f"{record.title}\n{record.description}"

    def entry_title(self, record: HuurwoningenRecord) -> str:
        return record.title

    def summary_fields(self, record: HuurwoningenRecord) -> List[Tuple[str, str]]:
        return [("Cost", record.feature_value("Rental price") or "N/A")]


class FakeSource:
    """Serves canned pages by URL and remembers what was fetched."""

    def __init__(self, pages: Dict[str, str]) -> None:
        self.pages = pages
        self.fetched: List[str] = []

    def fetch(self, url: str) -> str:
        self.fetched.append(url)
        if url not in self.pages:
            raise RuntimeError(f"navigation failed: {url}")
        return self.pages[url]

    def session_factory(self, site):
        return nullcontext(self)


class FakeOracle:
    """Returns queued replies in order; exceptions in the list are raised."""

    def __init__(self, *replies) -> None:
        self.replies = list(replies)
        self.calls: List[Tuple[str, str]] = []

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeTransport:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: List[Tuple[str, str]] = []

    def send(self, subject: str, html: str) -> str:
        if self.fail:
            raise ConnectionError("smtp unavailable")
        self.sent.append((subject, html))
        return f"<msg-{len(self.sent)}@test>"


def listing_json(entries, has_next=False, no_results=False) -> str:
    return json.dumps({"entries": entries, "has_next": has_next, "no_results": no_results})


def detail_json(title: str, description: str = "Bright flat") -> str:
    return json.dumps({"title": title, "description": description})


@pytest.fixture
def make_stub_site():
    def _make(**overrides) -> StubSite:
        config = SiteConfig(
            slug="stub", base_url="https://stub.test", search_url="https://stub.test/search", **overrides
        )
        return StubSite(config)

    return _make


@pytest.fixture
def stub_site(make_stub_site) -> StubSite:
    return make_stub_site()


@pytest.fixture
def huurwoningen_site() -> HuurwoningenSite:
    return HuurwoningenSite(
        SiteConfig(
            slug="huurwoningen",
            base_url="https://www.huurwoningen.nl",
            search_url="https://www.huurwoningen.nl/en/in/amsterdam/?price=0-1500",
        )
    )


@pytest.fixture
def kamernet_site() -> KamernetSite:
    return KamernetSite(
        SiteConfig(
            slug="kamernet",
            base_url="https://kamernet.nl",
            search_url="https://kamernet.nl/en/for-rent/rooms-amsterdam?radius=5",
            email="tenant@example.com",
            password="secret",
        )
    )


@pytest.fixture
def errors() -> ErrorBuffer:
    return ErrorBuffer()


@pytest.fixture
def viewed(tmp_path) -> ViewedStore:
    return ViewedStore(tmp_path / "stub" / "stub-viewed.ndjson")


@pytest.fixture
def queue(tmp_path, viewed) -> QueueStore:
    return QueueStore(tmp_path / "stub" / "stub-new-listings.ndjson", HuurwoningenRecord, viewed)


@pytest.fixture
def digest(tmp_path) -> NotificationDigest:
    return NotificationDigest(tmp_path / "notification-queue.html")


@pytest.fixture
def make_record():
    def _make(link: str, title: str = "Flat", description: str = "Bright flat") -> HuurwoningenRecord:
        return HuurwoningenRecord(link=link, title=title, description=description)

    return _make


@pytest.fixture
def fakes():
    """Namespace of fake collaborator classes and page builders."""

    class _Fakes:
        Source = FakeSource
        Oracle = FakeOracle
        Transport = FakeTransport
        listing = staticmethod(listing_json)
        detail = staticmethod(detail_json)

    return _Fakes
