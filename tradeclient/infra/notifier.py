from __future__ import annotations

from typing import Optional

import requests
from loguru import logger

from tradeclient.config import settings
from tradeclient.domain.dto import TradeNotice
from tradeclient.domain.errors import GatewayError
from tradeclient.domain.interfaces import NotifierPort


def format_error(context: str, error: BaseException) -> str:
    line = f"🚨 {context}: {error}"
    if isinstance(error, GatewayError) and error.status_code is not None:
        line += f" (HTTP {error.status_code})"
    return line


def format_trade(notice: TradeNotice) -> str:
    parts = [f"{notice.action} {notice.symbol} x{notice.qty}", f"type={notice.type}"]
    if notice.order_class:
        parts.append(f"class={notice.order_class}")
    if notice.stop_loss is not None:
        parts.append(f"SL={notice.stop_loss:.2f}")
    if notice.take_profit is not None:
        parts.append(f"TP={notice.take_profit:.2f}")
    return "📈 " + " | ".join(parts)


class LogNotifier(NotifierPort):
    """Powiadomienia tylko do logu (gdy brak webhooka)."""

    def send_error(self, context: str, error: BaseException) -> None:
        logger.error(format_error(context, error))

    def send_trade_notification(self, notice: TradeNotice) -> None:
        logger.info(format_trade(notice))


class DiscordNotifier(NotifierPort):
    """
    Wysyła krótkie wiadomości tekstowe na webhook Discorda.
    Błędy dostarczenia logujemy i połykamy: powiadomienie to kanał poboczny.
    """

    def __init__(self, webhook_url: str, timeout: float = 5.0, session: Optional[requests.Session] = None) -> None:
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def send_error(self, context: str, error: BaseException) -> None:
        self._post(format_error(context, error))

    def send_trade_notification(self, notice: TradeNotice) -> None:
        self._post(format_trade(notice))

    def _post(self, content: str) -> None:
        try:
            resp = self.session.post(self.webhook_url, json={"content": content}, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.warning(f"Nie udało się wysłać powiadomienia: {e}")


def build_notifier() -> NotifierPort:
    if settings.DISCORD_WEBHOOK_URL:
        return DiscordNotifier(settings.DISCORD_WEBHOOK_URL, timeout=settings.NOTIFY_TIMEOUT_SEC)
    return LogNotifier()
