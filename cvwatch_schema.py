# cvwatch_schema.py
"""
Canonical shape of the persisted state record and lightweight validators.

STATE RECORD (saved as cv_data.json)
----------------------------------------------------------------------
{
  "version": 1,
  "initialized": true,                                # false until the first successful run
  "seenFingerprints": ["<sha1>", ...],                # oldest first, capped
  "monthlyTotals": {"2024-06": {"revenue": 12000, "count": 4}, ...},
  "updatedAt": "2024-06-30T12:00:00.000Z"             # ISO-8601 in UTC, or null
}

Older files used `seenKeys` / `monthly`; `coerce_state_record(...)` maps those
onto the current keys before validation.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple

STATE_VERSION = 1

STATE_REQUIRED_KEYS = ("version", "initialized", "seenFingerprints", "monthlyTotals", "updatedAt")

_LEGACY_KEYS = {
    "seenKeys": "seenFingerprints",
    "monthly": "monthlyTotals",
}


def new_state_record() -> Dict[str, Any]:
    return {
        "version": STATE_VERSION,
        "initialized": False,
        "seenFingerprints": [],
        "monthlyTotals": {},
        "updatedAt": None,
    }


def coerce_state_record(data: Any, logger: Optional[Any] = None) -> Dict[str, Any]:
    """
    Return a canonical state record. Anything that is not an object becomes
    the empty record; legacy keys are renamed; missing keys get defaults.
    """
    if not isinstance(data, Mapping):
        if logger and data is not None:
            logger.warning("State record is not an object (%s); starting empty.", type(data).__name__)
        return new_state_record()

    out = new_state_record()
    for k, v in data.items():
        key = _LEGACY_KEYS.get(k, k)
        if key != k and key in data:
            continue
        if key != k and logger:
            logger.debug("schema: renaming legacy key %s -> %s", k, key)
        out[key] = v

    if not isinstance(out["seenFingerprints"], list):
        out["seenFingerprints"] = []
    if not isinstance(out["monthlyTotals"], Mapping):
        out["monthlyTotals"] = {}
    out["initialized"] = bool(out["initialized"])
    return out


def _validate_totals(totals: Mapping[str, Any]) -> List[str]:
    errs: List[str] = []
    for month, bucket in totals.items():
        if not isinstance(bucket, Mapping):
            errs.append(f"monthlyTotals[{month!r}] must be an object")
            continue
        for k in ("revenue", "count"):
            if not isinstance(bucket.get(k), (int, float)) or isinstance(bucket.get(k), bool):
                errs.append(f"monthlyTotals[{month!r}].{k} must be a number")
    return errs


def validate_state_record(
    record: Mapping[str, Any],
    logger: Optional[Any] = None,
    raise_on_error: bool = False,
) -> Tuple[bool, List[str]]:
    """
    Validate a record against the canonical schema.

    Returns (ok, errors). If `raise_on_error=True`, raises ValueError on failure.
    """
    errs: List[str] = []
    if not isinstance(record, Mapping):
        errs.append("Top-level JSON must be an object/dict.")
    else:
        errs.extend(f"missing key '{k}'" for k in STATE_REQUIRED_KEYS if k not in record)
        if "initialized" in record and not isinstance(record["initialized"], bool):
            errs.append("`initialized` must be a boolean.")
        seen = record.get("seenFingerprints")
        if "seenFingerprints" in record and not (isinstance(seen, list) and all(isinstance(x, str) for x in seen)):
            errs.append("`seenFingerprints` must be a list of strings.")
        totals = record.get("monthlyTotals")
        if "monthlyTotals" in record:
            if isinstance(totals, Mapping):
                errs.extend(_validate_totals(totals))
            else:
                errs.append("`monthlyTotals` must be an object.")
        if record.get("updatedAt") is not None and not isinstance(record.get("updatedAt"), str):
            errs.append("`updatedAt` must be a string (ISO-8601 UTC) or null.")

    ok = not errs
    if not ok and logger:
        logger.debug("schema.validate_state_record: FAIL -> %s", "; ".join(errs))
    if not ok and raise_on_error:
        raise ValueError("; ".join(errs))
    return ok, errs


__all__ = [
    "STATE_VERSION",
    "STATE_REQUIRED_KEYS",
    "new_state_record",
    "coerce_state_record",
    "validate_state_record",
]
