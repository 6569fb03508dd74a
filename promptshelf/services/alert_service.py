"""Operator alerts for failures that callers only see as opaque errors."""

from typing import Optional

import httpx

from promptshelf.config import settings
from promptshelf.logging_config import get_logger

logger = get_logger("alert_service")


def send_alert(level: str, message: str, context: Optional[dict] = None) -> bool:
    """POST an alert to the configured webhook.

    Args:
        level: INFO, WARNING, ERROR, CRITICAL
        message: Alert message
        context: Optional context dict

    Returns:
        True if the webhook accepted the alert
    """
    if not settings.alert_webhook_url:
        logger.warning(f"Alert not configured: {level} - {message}")
        return False

    payload = {
        "level": level,
        "service": "promptshelf",
        "message": message,
        "context": {k: str(v) for k, v in (context or {}).items()},
    }

    try:
        with httpx.Client(timeout=10) as client:
            response = client.post(settings.alert_webhook_url, json=payload)
            return 200 <= response.status_code < 300
    except httpx.HTTPError as e:
        logger.error(f"Failed to send alert: {e}")
        return False


def alert_error(message: str, context: Optional[dict] = None) -> bool:
    """Shortcut for ERROR level alert."""
    return send_alert("ERROR", message, context)
