# Overview: Logging setup for the app; plain text locally, JSON lines in production.

"""Structured logging for timeledger."""

from __future__ import annotations

import json
import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

_request_id: ContextVar[str | None] = ContextVar("timeledger_request_id", default=None)
_company_id: ContextVar[int | None] = ContextVar("timeledger_company_id", default=None)
_actor_id: ContextVar[int | None] = ContextVar("timeledger_actor_id", default=None)

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def bind_request_context(*, request_id: str | None = None, company_id: int | None = None,
                         actor_id: int | None = None) -> None:
    """Attach request-scoped fields to every log line emitted afterwards."""
    _request_id.set(request_id)
    _company_id.set(company_id)
    _actor_id.set(actor_id)


def current_context() -> dict[str, Any]:
    ctx = {
        "request_id": _request_id.get(),
        "company_id": _company_id.get(),
        "actor_id": _actor_id.get(),
    }
    return {k: v for k, v in ctx.items() if v is not None}


class JsonLineFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(current_context())

        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)

        return json.dumps(payload, default=str)


def configure_logging(app) -> logging.Logger:
    """
    Install a single handler on the "timeledger" logger.

    Idempotent: repeated app creation in tests does not stack handlers.
    """
    logger = logging.getLogger("timeledger")
    level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if getattr(handler, "_timeledger_handler", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler._timeledger_handler = True  # type: ignore[attr-defined]
    if app.config.get("LOG_FORMAT") == "json":
        handler.setFormatter(JsonLineFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
        )
    logger.addHandler(handler)
    return logger
