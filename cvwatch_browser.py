# cvwatch_browser.py
"""
Playwright-backed automation driver: one headless Chromium page that logs in
to the console, opens the conversion log, and exposes the small document
surface the extractor and pager need.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from cvwatch_config import BROWSER_ARGS, NAV_TIMEOUT, USER_AGENT, Settings
from cvwatch_errors import AuthenticationError, DocumentError
from cvwatch_extractor import TableSnapshot

# Read-only snapshot of every table on the page.
_TABLES_JS = """() => {
  const norm = (s) => String(s ?? "").replace(/\\s+/g, " ").trim();
  return Array.from(document.querySelectorAll("table")).map((t) => {
    const trs = Array.from(t.querySelectorAll("tbody tr"));
    return {
      headers: Array.from(t.querySelectorAll("thead th")).map((x) => norm(x.textContent)),
      rows: trs.map((tr) => Array.from(tr.querySelectorAll("td")).map((td) => norm(td.textContent))),
      rowTexts: trs.map((tr) => tr.innerText || ""),
    };
  });
}"""

# Click the first enabled, visible a/button whose text is one of `labels`.
_CLICK_TEXT_JS = """(labels) => {
  const isDisabled = (el) => {
    const cls = (el.getAttribute("class") || "").toLowerCase();
    if (cls.includes("disabled")) return true;
    if (el.getAttribute("aria-disabled") === "true") return true;
    return !!el.disabled;
  };
  const next = Array.from(document.querySelectorAll("a,button")).find((el) => {
    const t = (el.textContent || "").trim();
    if (!labels.includes(t) || isDisabled(el)) return false;
    const r = el.getBoundingClientRect();
    return r.width > 0 && r.height > 0;
  });
  if (!next) return false;
  next.click();
  return true;
}"""

_INFO_SELECTOR = ".dataTables_info"


class PWDocument:
    """The document surface over a live Playwright page."""

    def __init__(self, page, logger: logging.Logger):
        self._page = page
        self._logger = logger
        self._navigations = 0
        page.on("framenavigated", self._on_navigated)

    def _on_navigated(self, frame) -> None:
        if frame == self._page.main_frame:
            self._navigations += 1

    @property
    def navigation_count(self) -> int:
        return self._navigations

    def query_tables(self) -> List[TableSnapshot]:
        try:
            data = self._page.evaluate(_TABLES_JS)
        except PlaywrightError as e:
            raise DocumentError(str(e)) from e
        return [TableSnapshot.from_dict(d) for d in data or []]

    def click_selector(self, selector: str) -> bool:
        el = self._page.query_selector(selector)
        if el is None:
            return False
        try:
            el.click(timeout=5000)
        except PlaywrightError as e:
            self._logger.debug("Click failed for %s: %s", selector, e)
            return False
        return True

    def click_text(self, labels: List[str]) -> bool:
        return bool(self._page.evaluate(_CLICK_TEXT_JS, labels))

    def wait_for_load(self, timeout_s: float) -> None:
        try:
            self._page.wait_for_load_state("networkidle", timeout=timeout_s * 1000)
        except PlaywrightTimeoutError:
            self._logger.debug("Load state not idle after %.1fs; continuing", timeout_s)

    def pause(self, seconds: float) -> None:
        self._page.wait_for_timeout(seconds * 1000)

    def info_text(self) -> str:
        el = self._page.query_selector(_INFO_SELECTOR)
        return (el.text_content() or "") if el else ""


class PWClient:
    def __init__(self, logger: logging.Logger, headless: bool = True):
        self._logger = logger
        self._pl = sync_playwright().start()
        try:
            self._browser = self._pl.chromium.launch(headless=headless, args=list(BROWSER_ARGS))
            self._context = self._browser.new_context(user_agent=USER_AGENT, locale="ja-JP")
            self._page = self._context.new_page()
        except BaseException:
            self._pl.stop()
            raise
        self._page.set_default_timeout(NAV_TIMEOUT * 1000)
        self._page.set_default_navigation_timeout(NAV_TIMEOUT * 1000)
        self.document = PWDocument(self._page, logger)

    def login(self, settings: Settings) -> None:
        page = self._page
        self._logger.info("Logging in: %s", settings.login_url)
        page.goto(settings.login_url, wait_until="domcontentloaded")
        page.wait_for_selector(settings.username_selector)
        page.fill(settings.username_selector, settings.login_id)
        page.fill(settings.password_selector, settings.password)

        try:
            with page.expect_navigation(wait_until="networkidle"):
                page.click(settings.submit_selector)
        except PlaywrightTimeoutError:
            self._logger.debug("No navigation after submit; checking location anyway")

        page.wait_for_timeout(800)
        if not page.url.startswith(settings.after_login_prefix):
            raise AuthenticationError(f"Login seems failed. current url={page.url}")
        self._logger.debug("Logged in: %s", page.url)

    def open(self, url: str) -> PWDocument:
        self._logger.info("Opening conversion log: %s", url)
        self._page.goto(url, wait_until="networkidle")
        return self.document

    def close(self) -> None:
        for closer in (self._context.close, self._browser.close, self._pl.stop):
            try:
                closer()
            except PlaywrightError as e:
                self._logger.debug("Browser shutdown: %r", e)

    def __enter__(self) -> "PWClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
