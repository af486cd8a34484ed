from __future__ import annotations

import logging
import re
import sys
from contextvars import ContextVar, Token
from typing import Any
from uuid import uuid4

EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
JWT_RE = re.compile(r"\beyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+")
SENSITIVE_KEYWORDS = {
    "email",
    "token",
    "password",
    "secret",
    "authorization",
    "phone",
    "nin",
    "cookie",
}
REDACTED = "[REDACTED]"
CORRELATION_ID_HEADER = "x-request-id"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s"
_correlation_id_ctx: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def _is_sensitive_key(key: str) -> bool:
    lower = key.lower()
    return any(keyword in lower for keyword in SENSITIVE_KEYWORDS)


def redact_text(value: str) -> str:
    return JWT_RE.sub(REDACTED, EMAIL_RE.sub(REDACTED, value))


def sanitize_value(value: Any, key_hint: str | None = None) -> Any:
    if key_hint and _is_sensitive_key(key_hint):
        return REDACTED
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, dict):
        clean: dict[str, Any] = {}
        for key, nested in value.items():
            clean[key] = sanitize_value(nested, key)
        return clean
    if isinstance(value, list):
        return [sanitize_value(item) for item in value]
    return value


def get_correlation_id() -> str | None:
    return _correlation_id_ctx.get()


def set_correlation_id(correlation_id: str) -> Token[str | None]:
    return _correlation_id_ctx.set(correlation_id)


def reset_correlation_id(token: Token[str | None]) -> None:
    _correlation_id_ctx.reset(token)


def new_correlation_id() -> str:
    return uuid4().hex


class RedactingFilter(logging.Filter):
    """Scrub PII and bearer material from records and stamp the correlation id."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact_text(record.getMessage())
        record.args = None
        payload = getattr(record, "ops_payload", None)
        if payload is not None:
            record.ops_payload = sanitize_value(payload)
        if not getattr(record, "correlation_id", None):
            record.correlation_id = get_correlation_id() or "-"
        return True


def configure_logging(level: int = logging.INFO) -> None:
    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        if any(isinstance(item, RedactingFilter) for item in handler.filters):
            return

    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(RedactingFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
