#!/usr/bin/env python3
# cvwatch_config.py: shared configuration for the conversion-log watcher

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from cvwatch_errors import ConfigError

# ── Files ───────────────────────────────────────────────────────────────────────
# State and price files live in the working directory unless overridden
STATE_FILE_DEFAULT: str = "cv_data.json"
PRICE_FILE_DEFAULT: str = "prices.json"

# ── Target site ─────────────────────────────────────────────────────────────────
LOGIN_URL_DEFAULT: str = "https://admin.adservice.jp/"
AFTER_LOGIN_URL_PREFIX_DEFAULT: str = "https://admin.adservice.jp/partneradmin/"

USERNAME_SELECTOR_DEFAULT: str = 'input[name="loginId"]'
PASSWORD_SELECTOR_DEFAULT: str = 'input[name="password"]'
SUBMIT_SELECTOR_DEFAULT: str = 'button[type="submit"], input[type="submit"]'

# Civil calendar the console displays its timestamps in (IANA name)
SITE_TZ_DEFAULT: str = "Asia/Tokyo"

# Conversion-log table headings (env overrides: HEADER_*)
HEADER_DEFAULTS: dict[str, str] = {
    "order_at": "注文日時",
    "click_at": "クリック日時",
    "ad_id": "広告ID",
    "ad_name": "広告名",
    "site_name": "サイト名",
    "os": "OS",
    "referrer": "リファラ",
    "status": "ステータス",
}

# ── Harvest bounds ──────────────────────────────────────────────────────────────
MAX_PAGES_BOOTSTRAP: int = 50
MAX_PAGES_INCREMENTAL: int = 10
SEEN_CAP: int = 3000

# ── Waits (seconds) ─────────────────────────────────────────────────────────────
TABLE_TIMEOUT: float = 60.0     # first appearance of the conversion table
SETTLE_TIMEOUT: float = 5.0     # post-click navigation / re-render
POLL_INTERVAL: float = 0.25
NAV_TIMEOUT: float = 60.0

# ── Browser ─────────────────────────────────────────────────────────────────────
USER_AGENT: str = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)
BROWSER_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--no-zygote",
)

# ── Notification ────────────────────────────────────────────────────────────────
WEBHOOK_TIMEOUT: int = 20       # seconds
UNRESOLVED_LIST_LIMIT: int = 20

_REQUIRED_ENV = ("ADSERVICE_ID", "ADSERVICE_PASS", "SLACK_WEBHOOK_URL", "CV_LOG_URL")


@dataclass
class Settings:
    login_id: str
    password: str
    webhook_url: str
    cv_log_url: str
    login_url: str = LOGIN_URL_DEFAULT
    after_login_prefix: str = AFTER_LOGIN_URL_PREFIX_DEFAULT
    username_selector: str = USERNAME_SELECTOR_DEFAULT
    password_selector: str = PASSWORD_SELECTOR_DEFAULT
    submit_selector: str = SUBMIT_SELECTOR_DEFAULT
    slack_channel: Optional[str] = None
    headers: dict[str, str] = field(default_factory=lambda: dict(HEADER_DEFAULTS))
    max_pages_bootstrap: int = MAX_PAGES_BOOTSTRAP
    max_pages_incremental: int = MAX_PAGES_INCREMENTAL
    state_file: Path = Path(STATE_FILE_DEFAULT)
    price_file: Path = Path(PRICE_FILE_DEFAULT)
    site_tz: str = SITE_TZ_DEFAULT
    headless: bool = True


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer (got {raw!r})") from None
    if value < 1:
        raise ConfigError(f"{name} must be >= 1 (got {value})")
    return value


def _site_tz(env: Mapping[str, str]) -> str:
    name = (env.get("CV_SITE_TZ") or "").strip() or SITE_TZ_DEFAULT
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigError(f"CV_SITE_TZ is not a known time zone (got {name!r})") from None
    return name


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from the environment. Raises ConfigError when a required
    value is missing, a numeric override is malformed or the site time zone
    is unknown.
    """
    env = os.environ if env is None else env

    missing = [k for k in _REQUIRED_ENV if not (env.get(k) or "").strip()]
    if missing:
        raise ConfigError(f"Missing env: {', '.join(missing)}")

    headers = {
        key: env.get(f"HEADER_{key.upper()}") or default
        for key, default in HEADER_DEFAULTS.items()
    }

    return Settings(
        login_id=env["ADSERVICE_ID"],
        password=env["ADSERVICE_PASS"],
        webhook_url=env["SLACK_WEBHOOK_URL"],
        cv_log_url=env["CV_LOG_URL"],
        login_url=env.get("LOGIN_URL") or LOGIN_URL_DEFAULT,
        after_login_prefix=env.get("AFTER_LOGIN_URL_PREFIX") or AFTER_LOGIN_URL_PREFIX_DEFAULT,
        username_selector=env.get("USERNAME_SELECTOR") or USERNAME_SELECTOR_DEFAULT,
        password_selector=env.get("PASSWORD_SELECTOR") or PASSWORD_SELECTOR_DEFAULT,
        submit_selector=env.get("SUBMIT_SELECTOR") or SUBMIT_SELECTOR_DEFAULT,
        slack_channel=env.get("SLACK_CHANNEL") or None,
        headers=headers,
        max_pages_bootstrap=_int_env(env, "MAX_PAGES", MAX_PAGES_BOOTSTRAP),
        max_pages_incremental=_int_env(env, "MAX_PAGES_NORMAL", MAX_PAGES_INCREMENTAL),
        state_file=Path(env.get("CV_STATE_FILE") or STATE_FILE_DEFAULT),
        price_file=Path(env.get("CV_PRICE_FILE") or PRICE_FILE_DEFAULT),
        site_tz=_site_tz(env),
        headless=(env.get("CV_HEADLESS", "1").lower() in {"1", "true", "yes", "on"}),
    )
