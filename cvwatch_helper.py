#!/usr/bin/env python3
# cvwatch_helper.py: shared helpers for the conversion-log watcher

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, List, Optional
from zoneinfo import ZoneInfo

# ── Logging ─────────────────────────────────────────────────────────────────────
_LOG_FORMAT = "%(asctime)s %(levelname)-7s %(message)s"

def setup_logger(name: str, level: str = "INFO", logfile: Optional[Path | str] = None) -> logging.Logger:
    """Console logger, plus `logfile` unless CV_LOG_POLICY=never. CV_LOG_LEVEL wins over `level`."""
    level = (os.getenv("CV_LOG_LEVEL") or "").strip() or level
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    targets = {getattr(h, "baseFilename", "<stream>") for h in logger.handlers}
    handlers: List[logging.Handler] = []
    if "<stream>" not in targets:
        handlers.append(logging.StreamHandler())
    if logfile and (os.getenv("CV_LOG_POLICY") or "").strip().lower() != "never":
        path = Path(logfile).resolve()
        if str(path) not in targets:
            path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(path, encoding="utf-8"))
    for h in handlers:
        h.setFormatter(logging.Formatter(_LOG_FORMAT))
        logger.addHandler(h)
    return logger

# ── Text utils ──────────────────────────────────────────────────────────────────
_WS_RE = re.compile(r"\s+")
def normalize_ws(s: Any) -> str:
    if s is None:
        return ""
    return _WS_RE.sub(" ", str(s).replace("\xa0", " ")).strip()

def sha1(s: str) -> str:
    return hashlib.sha1((s or "").encode("utf-8")).hexdigest()

def fmt_yen(n: Any) -> str:
    try:
        v = round(float(n))
    except (TypeError, ValueError):
        v = 0
    return f"{v:,}円"

# ── Time utils ──────────────────────────────────────────────────────────────────
def now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")

def current_month_key(tz_name: str, now: Optional[datetime] = None) -> str:
    """YYYY-MM of `now` (default: current instant) in the given civil calendar."""
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(ZoneInfo(tz_name)).strftime("%Y-%m")

# ── JSON I/O ────────────────────────────────────────────────────────────────────
def read_json(path: Path | str, fallback: Any = None) -> Any:
    """Load JSON from `path`; return `fallback` when missing or unparseable."""
    p = Path(path)
    if not p.exists():
        return fallback
    try:
        with p.open("r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError):
        return fallback

def write_json_atomic(path: Path | str, obj: Any) -> None:
    """Write JSON to a sibling temp file, then replace `path` in one step."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{p.name}.", suffix=".tmp", dir=str(p.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(obj, f, ensure_ascii=False, indent=2)
            f.write("\n")
        os.replace(tmp, p)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise

# ── Misc helpers ────────────────────────────────────────────────────────────────
def stable_dedupe(seq: Iterable[Any]) -> List[Any]:
    return list(dict.fromkeys(seq))
