# Overview: Fire-and-forget notifications for adjustment decisions and completed exports.

"""
Notification Sink

Delivery (push, email) lives outside this service. Callers hand events to
whatever notifiers the app registered; a failing notifier is logged and
never fails the operation that produced the event.

Notify only after commit: a notification must describe durable state.
"""

from __future__ import annotations

import logging
from typing import Callable

from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

Notifier = Callable[[str, dict], None]

_EXTENSION_KEY = "timeledger.notifiers"


def _log_notifier(event: str, payload: dict) -> None:
    logger.info("notification %s", event, extra={"notification_payload": payload})


def init_app(app) -> None:
    app.extensions[_EXTENSION_KEY] = [_log_notifier]


def register_notifier(app, notifier: Notifier) -> None:
    app.extensions.setdefault(_EXTENSION_KEY, []).append(notifier)


def notify(event: str, payload: dict) -> int:
    """Returns the number of notifiers that accepted the event."""
    if not has_app_context():
        return 0

    delivered = 0
    for notifier in current_app.extensions.get(_EXTENSION_KEY, []):
        try:
            notifier(event, payload)
            delivered += 1
        except Exception:
            logger.warning("notifier %r failed for %s", notifier, event, exc_info=True)
    return delivered
