# cvwatch_state.py
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from cvwatch_config import SEEN_CAP
from cvwatch_helper import now_utc_iso, read_json, write_json_atomic
from cvwatch_schema import STATE_VERSION, coerce_state_record, validate_state_record

logger = logging.getLogger("cv.state")


@dataclass
class CVState:
    initialized: bool = False
    seen_fingerprints: List[str] = field(default_factory=list)
    monthly_totals: Dict[str, Dict[str, float]] = field(default_factory=dict)
    version: int = STATE_VERSION
    updated_at: Optional[str] = None

    @classmethod
    def from_record(cls, rec: dict) -> "CVState":
        return cls(
            initialized=bool(rec.get("initialized")),
            seen_fingerprints=[str(x) for x in rec.get("seenFingerprints") or []],
            monthly_totals={
                str(k): {"revenue": v.get("revenue", 0), "count": v.get("count", 0)}
                for k, v in (rec.get("monthlyTotals") or {}).items()
            },
            version=rec.get("version") or STATE_VERSION,
            updated_at=rec.get("updatedAt"),
        )

    def to_record(self) -> dict:
        return {
            "version": self.version,
            "initialized": self.initialized,
            "seenFingerprints": list(self.seen_fingerprints),
            "monthlyTotals": {k: dict(v) for k, v in self.monthly_totals.items()},
            "updatedAt": self.updated_at,
        }

    def month_total(self, month_key: str) -> Dict[str, float]:
        return self.monthly_totals.get(month_key) or {"revenue": 0, "count": 0}


# -----------------------------
# Dedup
# -----------------------------

def merge_seen(previous: Sequence[str], new: Sequence[str], cap: int = SEEN_CAP) -> List[str]:
    """
    Concatenate, keep the LAST occurrence of each fingerprint, and keep at most
    `cap` entries by dropping the oldest. Empty entries are discarded.
    """
    merged = list(previous or []) + list(new or [])
    seen: set = set()
    out_rev: List[str] = []
    for k in reversed(merged):
        if len(out_rev) >= cap:
            break
        if not k or k in seen:
            continue
        seen.add(k)
        out_rev.append(k)
    out_rev.reverse()
    return out_rev


def uniq_by_fingerprint(events: Iterable) -> list:
    """Keep the first event for each fingerprint, in order."""
    seen: set = set()
    out = []
    for e in events or []:
        if e is None or not e.fingerprint or e.fingerprint in seen:
            continue
        seen.add(e.fingerprint)
        out.append(e)
    return out


def duplicate_fingerprints(events: Iterable) -> int:
    """Number of fingerprints that occur more than once (collision diagnostic)."""
    counts = Counter(e.fingerprint for e in events)
    return sum(1 for c in counts.values() if c > 1)


# -----------------------------
# Aggregates
# -----------------------------

def add_to_totals(totals: Dict[str, Dict[str, float]], events: Iterable) -> Dict[str, Dict[str, float]]:
    for e in events:
        cur = totals.get(e.month_key) or {"revenue": 0, "count": 0}
        cur["count"] = cur.get("count", 0) + 1
        cur["revenue"] = cur.get("revenue", 0) + e.unit_price
        totals[e.month_key] = cur
    return totals


def seed_month(totals: Dict[str, Dict[str, float]], month_key: str, events: Iterable) -> Dict[str, Dict[str, float]]:
    """Reset `month_key` and fill it from `events` (bootstrap)."""
    bucket = {"revenue": 0, "count": 0}
    for e in events:
        bucket["count"] += 1
        bucket["revenue"] += e.unit_price
    totals[month_key] = bucket
    return totals


# -----------------------------
# Persistence
# -----------------------------

def load_state(path: Path | str) -> CVState:
    raw = read_json(path, None)
    if raw is None:
        if Path(path).exists():
            logger.warning("State file %s is unreadable; starting uninitialized.", path)
        return CVState()
    record = coerce_state_record(raw, logger=logger)
    ok, errs = validate_state_record(record, logger=logger)
    if not ok:
        logger.warning("State file %s failed validation (%s); starting uninitialized.", path, "; ".join(errs))
        return CVState()
    return CVState.from_record(record)


def save_state(path: Path | str, state: CVState) -> None:
    state.updated_at = now_utc_iso()
    write_json_atomic(path, state.to_record())
    logger.debug("Saved state: %s (seen=%d months=%d)", path, len(state.seen_fingerprints), len(state.monthly_totals))
