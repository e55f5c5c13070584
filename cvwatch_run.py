#!/usr/bin/env python3
"""
cvwatch_run.py: one scheduled pass over the conversion log.

  1) log in and open the conversion log
  2) first run ever: bootstrap this month's total and the seen-set, no notifications
     later runs: collect unseen events, update monthly totals, notify once per event
  3) save state (only after everything above succeeded)

Operator parameters come from the environment (see cvwatch_config.py); the
command line only controls logging. Schedule invocations so they never overlap:
the state file is not locked.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass, field
from typing import List, Optional

from cvwatch_config import (
    MAX_PAGES_BOOTSTRAP,
    MAX_PAGES_INCREMENTAL,
    SEEN_CAP,
    UNRESOLVED_LIST_LIMIT,
    load_settings,
)
from cvwatch_errors import CVWatchError
from cvwatch_extractor import HeaderMap, detect_total_count
from cvwatch_harvest import bootstrap_harvest, incremental_harvest
from cvwatch_helper import current_month_key, setup_logger, stable_dedupe
from cvwatch_normalize import Event, PriceTable, load_price_table
from cvwatch_notify import SlackNotifier, build_event_message, build_unresolved_warning, unresolved_label
from cvwatch_state import (
    CVState,
    add_to_totals,
    duplicate_fingerprints,
    load_state,
    merge_seen,
    save_state,
    seed_month,
)

logger = logging.getLogger("cv.run")

MODE_BOOTSTRAP = "bootstrap"
MODE_INCREMENTAL = "incremental"


@dataclass
class RunOutcome:
    mode: str
    state: CVState
    events: List[Event] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)
    changed: bool = False


def unresolved_labels(events: List[Event], prices: PriceTable) -> List[str]:
    """Events that fell through to a zero default because the table has no entry for them."""
    return stable_dedupe(
        unresolved_label(e) for e in events
        if e.unit_price == 0 and not prices.has_entry(e.ad_id, e.ad_name)
    )


def run_cycle(
    document,
    state: CVState,
    prices: PriceTable,
    header_map: HeaderMap,
    notifier,
    *,
    current_month: str,
    console_url: str,
    max_pages_bootstrap: int = MAX_PAGES_BOOTSTRAP,
    max_pages_incremental: int = MAX_PAGES_INCREMENTAL,
    seen_cap: int = SEEN_CAP,
) -> RunOutcome:
    """
    Run one harvest against `document` and return the updated state.
    Nothing is written here; the caller persists `outcome.state` when
    `outcome.changed` is true. A notifier failure propagates.
    """
    if not state.initialized:
        result = bootstrap_harvest(document, header_map, prices, current_month, max_pages=max_pages_bootstrap)
        events = result.events

        dup = duplicate_fingerprints(events)
        if dup:
            logger.warning("Duplicate fingerprints in bootstrap rows: %d", dup)

        seed_month(state.monthly_totals, current_month, events)
        # rows from earlier months on the walked pages count as known, not new
        state.seen_fingerprints = merge_seen(state.seen_fingerprints, result.observed, seen_cap)
        state.initialized = True
        logger.info("Bootstrapped %s total from %d rows (no notify).", current_month, len(events))
        return RunOutcome(mode=MODE_BOOTSTRAP, state=state, events=events, changed=True)

    result = incremental_harvest(
        document, header_map, prices, state.seen_fingerprints, max_pages=max_pages_incremental
    )
    events = result.events
    if not events:
        logger.info("No new CV. No notify.")
        return RunOutcome(mode=MODE_INCREMENTAL, state=state)

    add_to_totals(state.monthly_totals, events)
    unresolved = unresolved_labels(events, prices)

    for e in events:
        notifier.send(build_event_message(e, state.month_total(e.month_key), console_url))

    if unresolved:
        logger.warning("Unresolved unit price for %d ad(s): %s", len(unresolved), "; ".join(unresolved[:UNRESOLVED_LIST_LIMIT]))
        notifier.send(build_unresolved_warning(unresolved))

    state.seen_fingerprints = merge_seen(state.seen_fingerprints, [e.fingerprint for e in events], seen_cap)
    logger.info("Notified %d CV(s).", len(events))
    return RunOutcome(mode=MODE_INCREMENTAL, state=state, events=events, unresolved=unresolved, changed=True)


# -----------------------------
# CLI
# -----------------------------

def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Conversion-log watcher, one harvest + notify pass")
    ap.add_argument("--level", default="INFO", help="Logging level (DEBUG, INFO, ...)")
    ap.add_argument("--log-path", default=None, help="Optional log file")
    return ap.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    setup_logger("cv", args.level, args.log_path)

    try:
        settings = load_settings()
        prices = load_price_table(settings.price_file)
        state = load_state(settings.state_file)
        header_map = HeaderMap.from_dict(settings.headers)
        month = current_month_key(settings.site_tz)
        logger.info(
            "State: initialized=%s seen=%d | month=%s",
            state.initialized, len(state.seen_fingerprints), month,
        )

        from cvwatch_browser import PWClient

        with PWClient(logger, headless=settings.headless) as client:
            client.login(settings)
            document = client.open(settings.cv_log_url)

            total = detect_total_count(document.info_text())
            if total is not None:
                logger.info("Detected total entries (from UI): %d", total)

            outcome = run_cycle(
                document,
                state,
                prices,
                header_map,
                SlackNotifier(settings.webhook_url, settings.slack_channel),
                current_month=month,
                console_url=settings.cv_log_url,
                max_pages_bootstrap=settings.max_pages_bootstrap,
                max_pages_incremental=settings.max_pages_incremental,
            )

        if outcome.changed:
            save_state(settings.state_file, outcome.state)
            logger.info("Wrote state: %s", settings.state_file)
    except CVWatchError as e:
        logger.error("%s: %s", type(e).__name__, e)
        return 1
    except Exception:
        logger.exception("Run failed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
