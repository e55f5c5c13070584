# cvwatch_pager.py
"""
Pagination Driver: move the conversion table to its next page and report
whether the visible rows actually changed.

"Changed" is decided by a signature of the selected table (first and last row
text, bounded length), captured before and after the click. Candidates are
tried in order through a chain of locator strategies; the first one whose
activation changes the signature wins. A click that leaves the signature as it
was, or whose page cannot be read afterwards, is a non-move; the next locator is
tried, and when none moves the caller ends its paging loop.

Besides `query_tables()` (which may raise DocumentError while a navigation is
in flight) and `pause()`, the document must provide:
  click_selector(selector) -> bool     activate the first match, False if none
  click_text(labels) -> bool           activate an enabled, visible a/button by label
  navigation_count -> int              main-frame navigations seen so far
  wait_for_load(timeout_s) -> None     bounded wait after a navigation
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Sequence, Tuple

from cvwatch_config import POLL_INTERVAL, SETTLE_TIMEOUT
from cvwatch_errors import DocumentError
from cvwatch_extractor import HeaderMap, select_table

logger = logging.getLogger("cv.pager")

SIGNATURE_MAX = 2000
POST_CLICK_PAUSE = 0.3


def table_signature(document, header_map: HeaderMap) -> str:
    """First and last row text of the conversion table; "" when it cannot be read right now."""
    try:
        tables = document.query_tables()
    except DocumentError as e:
        logger.debug("Signature read failed mid-navigation: %s", e)
        return ""
    best = select_table(tables, header_map)
    if best is None or not best.row_texts:
        return ""
    return f"{best.row_texts[0]}||{best.row_texts[-1]}"[:SIGNATURE_MAX]


# -----------------------------
# Locator strategies
# -----------------------------

@dataclass(frozen=True)
class SelectorLocator:
    selector: str

    def activate(self, document) -> bool:
        return bool(document.click_selector(self.selector))

    def __str__(self) -> str:
        return f"selector {self.selector!r}"


@dataclass(frozen=True)
class TextLabelLocator:
    labels: Tuple[str, ...]

    def activate(self, document) -> bool:
        return bool(document.click_text(list(self.labels)))

    def __str__(self) -> str:
        return f"text {'/'.join(self.labels)}"


NEXT_SELECTORS = (
    'a.paginate_button.next:not(.disabled)',
    'a.next:not(.disabled)',
    'li.next:not(.disabled) a',
    'a[rel="next"]',
    'button[aria-label="Next"]:not([disabled])',
    'a[aria-label="Next"]:not(.disabled)',
)
NEXT_LABELS = ("次へ", "Next", "›", ">")

DEFAULT_LOCATORS = tuple(SelectorLocator(s) for s in NEXT_SELECTORS) + (TextLabelLocator(NEXT_LABELS),)


# -----------------------------
# Advance
# -----------------------------

def _wait_settled(document, header_map: HeaderMap, before: str, nav_before: int,
                  timeout_s: float, interval_s: float) -> str:
    """First of: a navigation, or the signature moving off `before`. Returns how it ended."""
    polls = max(1, math.ceil(timeout_s / interval_s))
    for _ in range(polls):
        if document.navigation_count > nav_before:
            document.wait_for_load(timeout_s)
            return "navigation"
        sig = table_signature(document, header_map)
        if sig and sig != before:
            return "rerender"
        document.pause(interval_s)
    return "timeout"


def advance(
    document,
    header_map: HeaderMap,
    locators: Sequence = DEFAULT_LOCATORS,
    settle_timeout_s: float = SETTLE_TIMEOUT,
    interval_s: float = POLL_INTERVAL,
) -> bool:
    before = table_signature(document, header_map)

    for loc in locators:
        nav_before = document.navigation_count
        if not loc.activate(document):
            continue
        how = _wait_settled(document, header_map, before, nav_before, settle_timeout_s, interval_s)
        document.pause(POST_CLICK_PAUSE)
        after = table_signature(document, header_map)
        if after and after != before:
            logger.debug("Advanced via %s (%s)", loc, how)
            return True
        logger.debug("Clicked %s but table did not change (%s)", loc, how)

    return False
