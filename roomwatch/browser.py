"""Playwright-backed page source with a persisted per-site session."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from playwright.sync_api import (
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeoutError,
    sync_playwright,
)

from .sites.base import SiteAdapter
from .util import ensure_parent_dir

logger = logging.getLogger(__name__)


class BrowserSession:
    """Headless Chromium session for one site.

    The browser storage state (cookies, login) is saved to *state_path* after
    the site prepared a fresh session and reused on the next run. An
    unreadable state file is discarded and the session prepared again.
    """

    def __init__(
        self,
        site: SiteAdapter,
        state_path: Path,
        *,
        timeout: int = 20,
        headless: bool = True,
    ) -> None:
        self.site = site
        self.state_path = Path(state_path)
        self._timeout_ms = max(timeout, 1) * 1000
        self._headless = headless
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    def __enter__(self) -> "BrowserSession":
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def open(self) -> None:
        self._playwright = sync_playwright().start()
        try:
            self._browser = self._playwright.chromium.launch(headless=self._headless)
            self._context = self._new_context()
            self._page = self._context.new_page()
            self._page.set_default_timeout(self._timeout_ms)
            self._page.set_default_navigation_timeout(self._timeout_ms)
        except BaseException:
            self.close()
            raise

    def _load_state(self) -> Optional[str]:
        if not self.state_path.exists():
            return None
        try:
            json.loads(self.state_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Invalid auth file %s. Will prepare a new session.", self.state_path)
            self.state_path.unlink(missing_ok=True)
            return None
        return str(self.state_path)

    def _new_context(self):
        options = self.site.context_options()
        state = self._load_state()
        if state is not None:
            logger.info("Loading saved %s session...", self.site.name)
            return self._browser.new_context(storage_state=state, **options)

        context = self._browser.new_context(**options)
        page = context.new_page()
        try:
            self.site.prepare_session(page)
        except BaseException:
            context.close()
            raise
        finally:
            if not page.is_closed():
                page.close()
        ensure_parent_dir(self.state_path)
        context.storage_state(path=str(self.state_path))
        return context

    def fetch(self, url: str) -> str:
        if self._page is None:
            raise RuntimeError("BrowserSession is not open")
        logger.debug("Navigating to %s", url)
        try:
            self._page.goto(url, wait_until="domcontentloaded")
        except PlaywrightTimeoutError as exc:
            logger.warning("Playwright navigation timeout for %s: %s", url, exc)
            raise
        except PlaywrightError as exc:
            logger.error("Playwright error navigating to %s: %s", url, exc)
            raise
        if self.site.wait_selector:
            try:
                self._page.wait_for_selector(self.site.wait_selector, timeout=5000)
            except PlaywrightTimeoutError:
                logger.debug("Selector %s did not appear on %s", self.site.wait_selector, url)
        return self._page.content()

    def close(self) -> None:
        try:
            if self._context is not None:
                self._context.close()
        finally:
            try:
                if self._browser is not None:
                    self._browser.close()
            finally:
                if self._playwright is not None:
                    self._playwright.stop()
                self._playwright = self._browser = self._context = self._page = None


__all__ = ["BrowserSession"]
