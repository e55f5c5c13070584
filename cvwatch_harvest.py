# cvwatch_harvest.py
"""
Harvest Controller: walks the conversion table page by page.

Two protocols, picked by the caller from the persisted `initialized` flag:

bootstrap_harvest
    First run. Collect every event of the current month without notifying.
    Rows are newest-first, so a page whose events are all from earlier months
    means no later page can hold current-month rows.

incremental_harvest
    Every later run. Collect events whose fingerprint is not yet known. The
    first page with nothing new ends the walk: deeper pages only hold older rows.

Both stop when the pager cannot move or after `max_pages`. Driver errors
propagate; there is no partial recovery. `HarvestResult.observed` lists every
fingerprint seen on the walked pages, including rows outside the result, so a
bootstrap can mark earlier-month rows as known.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Collection, List

from cvwatch_config import MAX_PAGES_BOOTSTRAP, MAX_PAGES_INCREMENTAL, SETTLE_TIMEOUT, TABLE_TIMEOUT
from cvwatch_extractor import HeaderMap, extract
from cvwatch_normalize import Event, PriceTable, normalize_rows
from cvwatch_pager import advance
from cvwatch_state import uniq_by_fingerprint

logger = logging.getLogger("cv.harvest")

STOP_OLDER_MONTH = "older_month"
STOP_NO_NEW = "no_new"
STOP_NO_MOVEMENT = "no_movement"
STOP_MAX_PAGES = "max_pages"


@dataclass
class HarvestResult:
    events: List[Event] = field(default_factory=list)
    observed: List[str] = field(default_factory=list)   # every fingerprint on every walked page
    pages_walked: int = 0
    stop_reason: str = STOP_MAX_PAGES


def bootstrap_harvest(
    document,
    header_map: HeaderMap,
    prices: PriceTable,
    target_month: str,
    max_pages: int = MAX_PAGES_BOOTSTRAP,
    table_timeout_s: float = TABLE_TIMEOUT,
    settle_timeout_s: float = SETTLE_TIMEOUT,
) -> HarvestResult:
    collected: List[Event] = []
    result = HarvestResult()

    for page in range(max_pages):
        rows = extract(document, header_map, table_timeout_s)
        events = normalize_rows(rows, prices)
        result.pages_walked = page + 1
        result.observed.extend(e.fingerprint for e in events)

        in_month = [e for e in events if e.month_key == target_month]
        collected.extend(in_month)
        logger.debug("Page %d: rows=%d events=%d in_month=%d", page + 1, len(rows), len(events), len(in_month))

        if events and all(e.month_key < target_month for e in events):
            result.stop_reason = STOP_OLDER_MONTH
            break

        if page + 1 >= max_pages:
            break
        if not advance(document, header_map, settle_timeout_s=settle_timeout_s):
            result.stop_reason = STOP_NO_MOVEMENT
            break

    result.events = uniq_by_fingerprint(collected)
    logger.info(
        "Bootstrap walked %d page(s), stop=%s, %s events=%d",
        result.pages_walked, result.stop_reason, target_month, len(result.events),
    )
    return result


def incremental_harvest(
    document,
    header_map: HeaderMap,
    prices: PriceTable,
    seen: Collection[str],
    max_pages: int = MAX_PAGES_INCREMENTAL,
    table_timeout_s: float = TABLE_TIMEOUT,
    settle_timeout_s: float = SETTLE_TIMEOUT,
) -> HarvestResult:
    seen_set = set(seen)
    collected: List[Event] = []
    result = HarvestResult()

    for page in range(max_pages):
        rows = extract(document, header_map, table_timeout_s)
        events = normalize_rows(rows, prices)
        result.pages_walked = page + 1
        result.observed.extend(e.fingerprint for e in events)

        fresh = [e for e in events if e.fingerprint not in seen_set]
        collected.extend(fresh)
        logger.debug("Page %d: rows=%d events=%d new=%d", page + 1, len(rows), len(events), len(fresh))

        if not fresh:
            result.stop_reason = STOP_NO_NEW
            break

        if page + 1 >= max_pages:
            break
        if not advance(document, header_map, settle_timeout_s=settle_timeout_s):
            result.stop_reason = STOP_NO_MOVEMENT
            break

    result.events = uniq_by_fingerprint(collected)
    logger.info(
        "Incremental walked %d page(s), stop=%s, new events=%d",
        result.pages_walked, result.stop_reason, len(result.events),
    )
    return result
