"""Logging setup for the webhook service, background jobs and CLI.

Plain text by default; one JSON object per line when ``json_format`` is on
(or ``NEXUS_LOG_JSON`` / ``CI`` is set in the environment). Both formats
mask credential query parameters and bearer tokens in the rendered message.
"""
from __future__ import annotations

import json
import logging
import os
import re
import sys
import time
from typing import Any, Optional

_CONTEXT_FIELDS = ("job_id", "user_id", "channel_id", "stage")

_SECRET_PARAM_RE = re.compile(r"(?i)\b(apikey|api_key|key|token|secret|signature)=([^&\s\"']+)")
_BEARER_RE = re.compile(r"(?i)\b(bearer)\s+([A-Za-z0-9._\-]+)")
_SLACK_TOKEN_RE = re.compile(r"\bxox[abposr]-[A-Za-z0-9-]+")


def redact(text: str) -> str:
    text = _SECRET_PARAM_RE.sub(r"\1=***", text)
    text = _BEARER_RE.sub(r"\1 ***", text)
    return _SLACK_TOKEN_RE.sub("xox*-***", text)


class RedactingFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return redact(super().format(record))


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created)) + f".{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "msg": redact(record.getMessage()),
        }
        if record.levelno >= logging.WARNING:
            entry["file"] = f"{record.filename}:{record.lineno}"
        if record.exc_info and record.exc_info[1]:
            entry["error"] = redact(str(record.exc_info[1]))
            entry["error_type"] = type(record.exc_info[1]).__name__
        for key in _CONTEXT_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        return json.dumps(entry, default=str, ensure_ascii=False)


def configure_logging(level: str = "INFO", json_format: Optional[bool] = None) -> None:
    if json_format is None:
        json_format = bool(os.environ.get("CI") or os.environ.get("NEXUS_LOG_JSON"))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            RedactingFormatter("%(asctime)s %(levelname)-5s %(name)s: %(message)s", datefmt="%H:%M:%S")
        )
    root.addHandler(handler)

    for noisy in ("urllib3", "httpx", "httpcore", "apscheduler", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
