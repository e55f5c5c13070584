# cvwatch_notify.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from cvwatch_config import UNRESOLVED_LIST_LIMIT, USER_AGENT, WEBHOOK_TIMEOUT
from cvwatch_errors import NotificationError
from cvwatch_helper import fmt_yen
from cvwatch_normalize import Event

logger = logging.getLogger("cv.notify")

UNRESOLVED_PRICE_MARKER = "未設定（prices.jsonに追加してください）"


# -----------------------------
# Payloads
# -----------------------------

def format_unit_price(unit_price: int) -> str:
    return fmt_yen(unit_price) if unit_price > 0 else UNRESOLVED_PRICE_MARKER


def build_event_message(event: Event, month_total: Mapping[str, Any], console_url: str) -> str:
    return (
        "🎉 新しい成果が発生しました！\n\n"
        f"日時: {event.event_time}\n"
        f"案件: {event.ad_name or '(不明)'}\n"
        f"サイト: {event.site_name or '(不明)'}\n"
        f"報酬単価: {format_unit_price(event.unit_price)}\n"
        f"今月の売上合計（現在）: {fmt_yen(month_total.get('revenue', 0))}（{event.month_key}）\n"
        f"管理画面を確認する: <{console_url}|管理画面を確認する>"
    )


def unresolved_label(event: Event) -> str:
    return f"{event.ad_id or '(no id)'} {event.ad_name or '(no name)'}"


def build_unresolved_warning(labels: List[str], limit: int = UNRESOLVED_LIST_LIMIT) -> str:
    lines = "\n".join(f"- {s}" for s in labels[:limit])
    return "⚠️ 単価が未設定の広告ID/広告名があります（prices.jsonに追加してください）\n" + lines


# -----------------------------
# Slack incoming webhook
# -----------------------------

def build_session() -> requests.Session:
    s = requests.Session()
    s.headers.update({"User-Agent": USER_AGENT, "Content-Type": "application/json"})
    # connection-level retries only; a POST is never replayed
    retry = Retry(total=2, connect=2, read=0, status=0, backoff_factor=0.5,
                  allowed_methods=frozenset(["GET", "HEAD"]), raise_on_status=False)
    adapter = HTTPAdapter(max_retries=retry, pool_connections=2, pool_maxsize=2)
    s.mount("http://", adapter)
    s.mount("https://", adapter)
    return s


class SlackNotifier:
    def __init__(self, webhook_url: str, channel: Optional[str] = None,
                 session: Optional[requests.Session] = None, timeout: int = WEBHOOK_TIMEOUT):
        self.webhook_url = webhook_url
        self.channel = channel
        self.session = session or build_session()
        self.timeout = timeout
        self.sent = 0

    def send(self, text: str) -> None:
        payload: Dict[str, Any] = {"text": text}
        if self.channel:
            payload["channel"] = self.channel
        try:
            resp = self.session.post(self.webhook_url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise NotificationError(f"Slack webhook request failed: {e}") from e
        if not resp.ok:
            raise NotificationError(
                f"Slack webhook failed: {resp.status_code} {resp.reason} {(resp.text or '')[:400]}"
            )
        self.sent += 1
        logger.debug("Slack webhook OK (%d sent)", self.sent)
