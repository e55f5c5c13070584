# cvwatch_extractor.py
"""
Row Extractor: locate the conversion-log table in a rendered document and
return its visible rows as plain field maps.

The console's markup is not a stable contract, so the table is picked by a
score over its header cells rather than by a fixed selector:

    score = 1000 * (expected headings present) + (data rows)

A heading matches a header cell exactly or as a substring. Column positions are
resolved per field against the chosen table's own headers; a field whose header
is absent yields "" on every row.

A document is anything exposing `query_tables() -> List[TableSnapshot]` and
`pause(seconds)`; see cvwatch_browser.PWDocument for the live implementation.
`tables_from_html` gives the same snapshots from server-rendered HTML.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from bs4 import BeautifulSoup

from cvwatch_config import HEADER_DEFAULTS, POLL_INTERVAL, TABLE_TIMEOUT
from cvwatch_errors import DocumentError, TableNotFoundError
from cvwatch_helper import normalize_ws

logger = logging.getLogger("cv.extractor")

# Field order matters only for logging; scoring uses the first seven.
SCORED_FIELDS = ("order_at", "click_at", "ad_id", "ad_name", "site_name", "os", "referrer")
REQUIRED_FIELDS = ("order_at", "ad_id", "ad_name")
ROW_FIELDS = SCORED_FIELDS + ("status",)


# -----------------------------
# Data model
# -----------------------------

@dataclass
class HeaderMap:
    order_at: str = HEADER_DEFAULTS["order_at"]
    click_at: str = HEADER_DEFAULTS["click_at"]
    ad_id: str = HEADER_DEFAULTS["ad_id"]
    ad_name: str = HEADER_DEFAULTS["ad_name"]
    site_name: str = HEADER_DEFAULTS["site_name"]
    os: str = HEADER_DEFAULTS["os"]
    referrer: str = HEADER_DEFAULTS["referrer"]
    status: str = HEADER_DEFAULTS["status"]

    @classmethod
    def from_dict(cls, d: Mapping[str, str]) -> "HeaderMap":
        return cls(**{k: d.get(k, getattr(cls, k)) for k in ROW_FIELDS})

    def target(self, field_name: str) -> str:
        return getattr(self, field_name, "") or ""


@dataclass
class TableSnapshot:
    headers: List[str] = field(default_factory=list)
    rows: List[List[str]] = field(default_factory=list)
    row_texts: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "TableSnapshot":
        return cls(
            headers=[normalize_ws(h) for h in d.get("headers") or []],
            rows=[[normalize_ws(c) for c in r] for r in d.get("rows") or []],
            row_texts=[str(t or "") for t in d.get("rowTexts") or d.get("row_texts") or []],
        )

    @property
    def row_count(self) -> int:
        return len(self.rows)


# -----------------------------
# Header matching / scoring
# -----------------------------

def header_matches(headers: List[str], target: str) -> bool:
    if not target:
        return False
    return any(h == target or target in h for h in headers)


def header_index(headers: List[str], target: str) -> int:
    if not target:
        return -1
    for i, h in enumerate(headers):
        if h == target:
            return i
    for i, h in enumerate(headers):
        if target in h:
            return i
    return -1


def score_table(table: TableSnapshot, header_map: HeaderMap) -> int:
    matched = sum(1 for f in SCORED_FIELDS if header_matches(table.headers, header_map.target(f)))
    return matched * 1000 + table.row_count


def select_table(tables: List[TableSnapshot], header_map: HeaderMap) -> Optional[TableSnapshot]:
    """Highest-scoring table; first one wins ties. None when nothing scores above zero."""
    best: Optional[TableSnapshot] = None
    best_score = 0
    for t in tables:
        s = score_table(t, header_map)
        if s > best_score:
            best, best_score = t, s
    return best


def is_table_ready(tables: List[TableSnapshot], header_map: HeaderMap) -> bool:
    for t in tables:
        if all(header_matches(t.headers, header_map.target(f)) for f in REQUIRED_FIELDS) and t.row_count > 0:
            return True
    return False


# -----------------------------
# Waiting / extraction
# -----------------------------

def wait_for_table(document, header_map: HeaderMap, timeout_s: float = TABLE_TIMEOUT,
                   interval_s: float = POLL_INTERVAL) -> List[TableSnapshot]:
    """
    Poll the document until a table carries the order-time, ad id and ad name
    headings and at least one data row. Returns that poll's snapshots.
    Raises TableNotFoundError on timeout.
    """
    polls = max(1, math.ceil(timeout_s / interval_s))
    for attempt in range(polls):
        try:
            tables = document.query_tables()
        except DocumentError as e:
            logger.debug("Table read failed (poll %d): %s", attempt + 1, e)
            tables = []
        if is_table_ready(tables, header_map):
            if attempt:
                logger.debug("Table ready after %d polls", attempt + 1)
            return tables
        document.pause(interval_s)
    raise TableNotFoundError(
        f"No table with headings {[header_map.target(f) for f in REQUIRED_FIELDS]} "
        f"and data rows within {timeout_s:.0f}s"
    )


def rows_from_table(table: TableSnapshot, header_map: HeaderMap) -> List[Dict[str, str]]:
    idx = {f: header_index(table.headers, header_map.target(f)) for f in ROW_FIELDS}
    out: List[Dict[str, str]] = []
    for cells in table.rows:
        if not cells:
            continue
        out.append({f: (cells[i] if 0 <= i < len(cells) else "") for f, i in idx.items()})
    return out


def extract(document, header_map: HeaderMap, timeout_s: float = TABLE_TIMEOUT) -> List[Dict[str, str]]:
    """Block until the table is rendered, then return the best table's rows (top to bottom)."""
    tables = wait_for_table(document, header_map, timeout_s)
    best = select_table(tables, header_map)
    if best is None:
        return []
    rows = rows_from_table(best, header_map)
    logger.debug("Extracted %d rows (tables=%d, headers=%s)", len(rows), len(tables), best.headers)
    return rows


# -----------------------------
# Server-rendered substitute
# -----------------------------

def tables_from_html(html: str) -> List[TableSnapshot]:
    """Snapshot every <table> in `html` the same way the in-page query does."""
    soup = BeautifulSoup(html or "", "html.parser")
    out: List[TableSnapshot] = []
    for table in soup.find_all("table"):
        headers = [normalize_ws(th.get_text(" ")) for th in table.select("thead th")]
        rows: List[List[str]] = []
        texts: List[str] = []
        for tr in table.select("tbody tr"):
            rows.append([normalize_ws(td.get_text(" ")) for td in tr.find_all("td")])
            texts.append(tr.get_text("\t", strip=True))
        out.append(TableSnapshot(headers=headers, rows=rows, row_texts=texts))
    return out


# -----------------------------
# Pager info ("xx件中" etc.)
# -----------------------------

_TOTAL_RES = [
    re.compile(r"of\s+([\d,]+)\s+entries", re.I),   # Showing 1 to 20 of 79 entries
    re.compile(r"全\s*([\d,]+)\s*件"),               # 全79件
    re.compile(r"([\d,]+)\s*件中"),                  # 79件中
]

def detect_total_count(text: str) -> Optional[int]:
    t = normalize_ws(text)
    if not t:
        return None
    for rx in _TOTAL_RES:
        m = rx.search(t)
        if m:
            return int(m.group(1).replace(",", ""))
    return None
