from __future__ import annotations

import json
import logging
import os
import re
import sys
from typing import Any

MASK = "***REDACTED***"

# header and payload keys whose values never reach a log line
SECRET_FIELDS = ("authorization", "bot_token", "token", "webhook_token")

CONTEXT_FIELDS = ("event_type", "request_id", "bucket", "status_code")

_SCRUBBERS = (
    # "Bot <token>" as sent in the Authorization header
    (re.compile(r"(?i)\b(bot\s+)[\w.\-]{20,}"), rf"\1{MASK}"),
    (
        re.compile(r'(?i)("?\b(?:' + "|".join(SECRET_FIELDS) + r')\b"?\s*[:=]\s*)("[^"]*"|[^",\s}]+)'),
        rf"\1{MASK}",
    ),
    # execute-webhook paths carry the webhook token in clear
    (re.compile(r"(/webhooks/\d+/)[\w.\-]+"), rf"\1{MASK}"),
)


def scrub(text: str, secrets: tuple[str, ...] = ()) -> str:
    for pattern, repl in _SCRUBBERS:
        text = pattern.sub(repl, text)
    for secret in secrets:
        text = text.replace(secret, MASK)
    return text


class RedactionFilter(logging.Filter):
    def __init__(self) -> None:
        super().__init__()
        token = os.getenv("DISCORD_TOKEN", "")
        self.secrets: tuple[str, ...] = (token,) if token else ()

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = scrub(record.getMessage(), self.secrets)
        record.args = ()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line; request context comes from ``extra=``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": round(record.created, 6),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(
            (name, getattr(record, name)) for name in CONTEXT_FIELDS if getattr(record, name, None) is not None
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), default=str)


def setup_logging(level: str) -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    handler.addFilter(RedactionFilter())
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level.upper())
    root.addHandler(handler)
    # aiohttp logs every connection reuse at DEBUG
    logging.getLogger("aiohttp").setLevel(max(root.level, logging.INFO))
