# cvwatch_normalize.py
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from cvwatch_errors import PriceTableError
from cvwatch_helper import normalize_ws, read_json, sha1

UNKNOWN_MONTH = "unknown"


# -----------------------------
# Price table
# -----------------------------

def _to_price(value: Any) -> int:
    """Coerce a price-table value to a non-negative whole amount; anything unusable is 0."""
    try:
        v = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(v) or v <= 0:
        return 0
    return round(v)


def _check_price(where: str, value: Any) -> None:
    # json accepts 1e400 and Infinity; neither is a usable amount
    if isinstance(value, float) and not math.isfinite(value):
        raise PriceTableError(f"{where} is not a finite number ({value})")


@dataclass
class PriceTable:
    by_ad_id: Dict[str, Any] = field(default_factory=dict)
    by_ad_name: Dict[str, Any] = field(default_factory=dict)
    default_unit_price: Any = 0

    @classmethod
    def from_dict(cls, d: Any) -> "PriceTable":
        if not isinstance(d, Mapping):
            raise PriceTableError("price table must be a JSON object")
        by_id = d.get("byAdId") or {}
        by_name = d.get("byAdName") or {}
        if not isinstance(by_id, Mapping) or not isinstance(by_name, Mapping):
            raise PriceTableError("byAdId / byAdName must be objects")
        for k, v in by_id.items():
            _check_price(f"byAdId[{k!r}]", v)
        for k, v in by_name.items():
            _check_price(f"byAdName[{k!r}]", v)
        _check_price("defaultUnitPrice", d.get("defaultUnitPrice", 0))
        return cls(
            by_ad_id={str(k).strip(): v for k, v in by_id.items()},
            by_ad_name={str(k).strip(): v for k, v in by_name.items()},
            default_unit_price=d.get("defaultUnitPrice", 0),
        )

    def has_entry(self, ad_id: str, ad_name: str) -> bool:
        ad_id, ad_name = (ad_id or "").strip(), (ad_name or "").strip()
        return bool(
            (ad_id and self.by_ad_id.get(ad_id) is not None)
            or (ad_name and self.by_ad_name.get(ad_name) is not None)
        )

    def resolve(self, ad_id: str, ad_name: str) -> int:
        """by id, then by name, then the default. 0 means unresolved."""
        ad_id, ad_name = (ad_id or "").strip(), (ad_name or "").strip()
        if ad_id and self.by_ad_id.get(ad_id) is not None:
            return _to_price(self.by_ad_id[ad_id])
        if ad_name and self.by_ad_name.get(ad_name) is not None:
            return _to_price(self.by_ad_name[ad_name])
        return _to_price(self.default_unit_price)


def load_price_table(path) -> PriceTable:
    data = read_json(path, None)
    if data is None:
        raise PriceTableError(f"{path} not found or invalid")
    return PriceTable.from_dict(data)


# -----------------------------
# Event
# -----------------------------

@dataclass
class Event:
    fingerprint: str
    event_time: str
    ad_id: str
    ad_name: str
    site_name: str
    os: str
    referrer: str
    unit_price: int
    month_key: str
    order_at: str = ""
    click_at: str = ""
    status: str = ""

    @property
    def ad_key(self) -> str:
        return self.ad_id or self.ad_name


def month_key_from(event_time: str) -> str:
    s = normalize_ws(event_time)
    return s[:7] if len(s) >= 7 else UNKNOWN_MONTH


def fingerprint(event_time: str, ad_key: str, site_name: str, os: str, referrer: str, ad_name: str) -> str:
    # status is left out on purpose: approval state changes after the fact
    return sha1("|".join([event_time, ad_key, site_name, os, referrer, ad_name]))


def normalize_row(row: Mapping[str, Any], prices: PriceTable) -> Optional[Event]:
    order_at = normalize_ws(row.get("order_at"))
    click_at = normalize_ws(row.get("click_at"))
    event_time = order_at or click_at

    ad_id = normalize_ws(row.get("ad_id"))
    ad_name = normalize_ws(row.get("ad_name"))
    site_name = normalize_ws(row.get("site_name"))
    os_name = normalize_ws(row.get("os"))
    referrer = normalize_ws(row.get("referrer"))

    ad_key = ad_id or ad_name
    if not event_time or not ad_key:
        return None

    return Event(
        fingerprint=fingerprint(event_time, ad_key, site_name, os_name, referrer, ad_name),
        event_time=event_time,
        ad_id=ad_id,
        ad_name=ad_name,
        site_name=site_name,
        os=os_name,
        referrer=referrer,
        unit_price=prices.resolve(ad_id, ad_name),
        month_key=month_key_from(event_time),
        order_at=order_at,
        click_at=click_at,
        status=normalize_ws(row.get("status")),
    )


def normalize_rows(rows: Iterable[Mapping[str, Any]], prices: PriceTable) -> List[Event]:
    out: List[Event] = []
    for r in rows or []:
        ev = normalize_row(r, prices)
        if ev is not None:
            out.append(ev)
    return out
