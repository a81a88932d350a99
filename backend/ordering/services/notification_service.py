# Overview: Supplier notification senders and the purchase order message template.

"""
Notification senders

A sender delivers one purchase order message to the supplier's recipients
and reports a single outcome. Transport details stay behind this interface;
the dispatch coordinator only sees SendResult.

Senders run on dispatch worker threads. They must not touch the DB session
or rely on the Flask application context; anything they need (logger, URL,
token) is handed to them at construction.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Protocol, Sequence

import httpx

from ..errors import ValidationError


@dataclass(frozen=True)
class SendResult:
    success: bool
    provider_message_id: str | None = None
    error: str | None = None


class NotificationSender(Protocol):
    def send(self, recipients: Sequence[dict], message: str, *, timeout: float) -> SendResult:
        ...


def build_purchase_order_message(order, signature: str = "") -> str:
    """
    Compact supplier message:

        [Purchase Order PO-251020-001]
        Fresh Farm
        <Tofu (300g): 8>
        Total quantity: 8

        Please confirm and reply.
    """
    lines = [f"[Purchase Order {order.order_number}]", f"{order.supplier_name}"]
    total = 0
    for item in order.items:
        spec = f" ({item.spec})" if item.spec else ""
        lines.append(f"<{item.name}{spec}: {item.quantity:,}>")
        total += item.quantity
    lines.append(f"Total quantity: {total:,}")
    if signature:
        lines.append("")
        lines.append(signature)
    return "\n".join(lines)


class LoggingNotificationSender:
    """Writes the message to the log and reports success. Default for development."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def send(self, recipients: Sequence[dict], message: str, *, timeout: float) -> SendResult:
        if not recipients:
            return SendResult(success=False, error="No notification recipients")
        phones = ", ".join(r.get("phone", "") for r in recipients)
        self.logger.info("Notification to %s:\n%s", phones, message)
        return SendResult(success=True, provider_message_id=f"log-{uuid.uuid4().hex[:12]}")


class WebhookNotificationSender:
    """
    POSTs {"recipients", "message", "message_type"} as JSON to a gateway URL.

    2xx with a body that does not say {"success": false} is a success. Timeouts
    and transport errors are failures, never exceptions.
    """

    def __init__(self, url: str, *, token: str | None = None, client: httpx.Client | None = None):
        if not url:
            raise ValidationError("NOTIFICATION_WEBHOOK_URL is required for the webhook backend")
        self.url = url
        self.token = token
        self.client = client

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def send(self, recipients: Sequence[dict], message: str, *, timeout: float) -> SendResult:
        if not recipients:
            return SendResult(success=False, error="No notification recipients")
        body = {
            "recipients": [{"name": r.get("name", ""), "phone": r.get("phone", "")} for r in recipients],
            "message": message,
            "message_type": "purchase_order",
        }
        try:
            if self.client is not None:
                resp = self.client.post(self.url, json=body, headers=self._headers(), timeout=timeout)
            else:
                with httpx.Client(timeout=timeout) as client:
                    resp = client.post(self.url, json=body, headers=self._headers())
        except httpx.TimeoutException:
            return SendResult(success=False, error=f"Notification gateway timed out after {timeout}s")
        except httpx.HTTPError as exc:
            return SendResult(success=False, error=f"Notification gateway error: {exc}")

        if resp.status_code >= 300:
            return SendResult(success=False, error=f"Notification gateway returned HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError:
            data = {}
        if isinstance(data, dict) and data.get("success") is False:
            return SendResult(success=False, error=str(data.get("message") or "Gateway reported failure"))
        message_id = data.get("message_id") if isinstance(data, dict) else None
        return SendResult(success=True, provider_message_id=message_id)


def create_sender(config, logger: logging.Logger) -> NotificationSender:
    backend = (config.get("NOTIFICATION_BACKEND") or "log").lower()
    if backend == "log":
        return LoggingNotificationSender(logger)
    if backend == "webhook":
        return WebhookNotificationSender(
            config.get("NOTIFICATION_WEBHOOK_URL", ""),
            token=config.get("NOTIFICATION_WEBHOOK_TOKEN") or None,
        )
    raise ValidationError(f"Unknown NOTIFICATION_BACKEND '{backend}'")


def get_sender(app) -> NotificationSender:
    sender = app.extensions.get("notification_sender")
    if sender is None:
        sender = create_sender(app.config, app.logger)
        app.extensions["notification_sender"] = sender
    return sender
