# cashback/notifications.py
import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

import requests

log = logging.getLogger("cashback.notifications")

# ─────────────────────────────────────────────────────────────────────────────
# Env config
# ─────────────────────────────────────────────────────────────────────────────

NOTIFY_URL = os.getenv("NOTIFY_URL", "").strip()
NOTIFY_API_KEY = os.getenv("NOTIFY_API_KEY", "")
NOTIFY_TIMEOUT = float(os.getenv("NOTIFY_TIMEOUT", "10"))


class NotificationError(Exception):
    pass


@dataclass(frozen=True)
class Notification:
    """Email request for a decided submission or withdrawal."""
    email: str
    status: str                       # approved | rejected
    brand_name: str
    amount: Optional[Decimal] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "email": self.email,
            "status": self.status,
            "brandName": self.brand_name,
        }
        if self.amount is not None:
            payload["cashbackAmount"] = float(self.amount)
        return payload


def _headers() -> Dict[str, str]:
    h = {"Content-Type": "application/json", "Accept": "application/json"}
    if NOTIFY_API_KEY:
        h["Authorization"] = f"Bearer {NOTIFY_API_KEY}"
    return h


def post_notification(payload: Dict[str, Any]) -> Dict[str, Any]:
    """POST one payload to the notification function. Raises on any failure."""
    if not NOTIFY_URL:
        raise NotificationError("Missing NOTIFY_URL in backend env.")

    r = requests.post(NOTIFY_URL, headers=_headers(), json=payload, timeout=NOTIFY_TIMEOUT)
    if r.status_code not in (200, 201, 202):
        raise NotificationError(f"Notification failed: {r.status_code} {r.text}")
    try:
        return r.json()
    except ValueError:
        return {}


def send_decision_notification(notification: Notification) -> bool:
    """
    Background-task entry point. Runs after the decision has committed, so a
    failure here is logged and reported as False, never raised.
    """
    if not NOTIFY_URL:
        log.info("NOTIFY_URL not set; skipping %s notification to %s",
                 notification.status, notification.email)
        return False

    try:
        post_notification(notification.to_payload())
    except (requests.RequestException, NotificationError):
        log.exception("Could not send %s notification to %s",
                      notification.status, notification.email)
        return False

    log.info("Sent %s notification to %s for %s",
             notification.status, notification.email, notification.brand_name)
    return True
