"""In-memory stand-ins for the browser document used across the tests."""
from __future__ import annotations

from typing import Dict, List, Optional

from cvwatch_errors import DocumentError, NotificationError
from cvwatch_extractor import TableSnapshot
from cvwatch_pager import NEXT_SELECTORS

HEADERS = ["注文日時", "クリック日時", "広告ID", "広告名", "サイト名", "OS", "リファラ", "ステータス"]
_COLUMNS = ["order_at", "click_at", "ad_id", "ad_name", "site_name", "os", "referrer", "status"]


def row(order_at: str, ad_id: str = "A1", ad_name: str = "Ad One", site_name: str = "SiteA",
        os: str = "iOS", referrer: str = "", status: str = "承認待ち", click_at: str = "") -> Dict[str, str]:
    return {
        "order_at": order_at, "click_at": click_at, "ad_id": ad_id, "ad_name": ad_name,
        "site_name": site_name, "os": os, "referrer": referrer, "status": status,
    }


def make_table(rows: List[Dict[str, str]], headers: Optional[List[str]] = None) -> TableSnapshot:
    headers = list(HEADERS if headers is None else headers)
    cells = [[r.get(c, "") for c in _COLUMNS[: len(headers)]] for r in rows]
    return TableSnapshot(headers=headers, rows=cells, row_texts=["\t".join(c) for c in cells])


def paged(rows: List[Dict[str, str]], page_size: int) -> List[List[TableSnapshot]]:
    """Split rows into pages, each page a document holding one conversion table."""
    return [[make_table(rows[i:i + page_size])] for i in range(0, len(rows), page_size)] or [[make_table([])]]


class FakeDocument:
    """
    Pages of tables with a "next" control. `next_selector` is the only CSS
    selector that matches; with `text_only` only the text fallback does.
    `stuck` makes the control clickable without changing the page.
    `unreadable_after_click` makes that many reads after each move fail the way
    a page being replaced by a navigation does.
    """

    def __init__(self, pages: List[List[TableSnapshot]], *, next_selector: str = NEXT_SELECTORS[0],
                 text_only: bool = False, stuck: bool = False, navigate: bool = False,
                 ready_after: int = 0, unreadable_after_click: int = 0):
        self.pages = pages
        self.index = 0
        self.next_selector = next_selector
        self.text_only = text_only
        self.stuck = stuck
        self.navigate = navigate
        self.ready_after = ready_after
        self.unreadable_after_click = unreadable_after_click
        self._unreadable = 0
        self.navigation_count = 0
        self.clicks: List[str] = []
        self.queries = 0
        self.paused = 0.0

    def query_tables(self) -> List[TableSnapshot]:
        self.queries += 1
        if self._unreadable:
            self._unreadable -= 1
            raise DocumentError("Execution context was destroyed, most likely because of a navigation")
        if self.queries <= self.ready_after:
            return []
        return self.pages[self.index]

    def _move(self, what: str) -> bool:
        if self.index >= len(self.pages) - 1 and not self.stuck:
            return False
        self.clicks.append(what)
        self._unreadable = self.unreadable_after_click
        if not self.stuck:
            self.index += 1
            if self.navigate:
                self.navigation_count += 1
        return True

    def click_selector(self, selector: str) -> bool:
        if self.text_only or selector != self.next_selector:
            return False
        return self._move(selector)

    def click_text(self, labels: List[str]) -> bool:
        if not self.text_only or "次へ" not in labels:
            return False
        return self._move("text")

    def wait_for_load(self, timeout_s: float) -> None:
        pass

    def pause(self, seconds: float) -> None:
        self.paused += seconds

    def info_text(self) -> str:
        return ""


class RecordingNotifier:
    def __init__(self, fail_on: Optional[int] = None):
        self.messages: List[str] = []
        self.fail_on = fail_on

    def send(self, text: str) -> None:
        if self.fail_on is not None and len(self.messages) == self.fail_on:
            raise NotificationError("webhook down")
        self.messages.append(text)
