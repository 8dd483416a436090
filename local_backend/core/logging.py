"""Structured logging configuration with per-service context tracking."""

from __future__ import annotations

import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .config import Settings, get_settings


# Service currently under test, set by the doctor runner
service_var: ContextVar[Optional[str]] = ContextVar("service", default=None)


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter."""

    def __init__(self, include_location: bool = False):
        super().__init__()
        self.include_location = include_location

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        service = service_var.get()
        if service:
            log_data["service"] = service

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self.include_location:
            log_data["location"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter for terminals."""

    def format(self, record: logging.LogRecord) -> str:
        service = service_var.get()
        svc = f"[{service}] " if service else ""
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        base = f"{timestamp} {record.levelname:8} {svc}{record.name}: {record.getMessage()}"

        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)

        return base


class SensitiveDataFilter(logging.Filter):
    """Filter sensitive data from logs."""

    SENSITIVE_KEYS = {
        "password",
        "passwd",
        "token",
        "secret",
        "authorization",
        "api_key",
        "encryption_key",
        "storepass",
    }

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage().lower()
        for key in self.SENSITIVE_KEYS:
            if key in message:
                record.msg = self._redact_value(record.getMessage(), key)
                record.args = None
        return True

    def _redact_value(self, text: str, key: str) -> str:
        """Redact values after sensitive keys."""
        # Match patterns like "key=value" or "key: value" or "'key': 'value'"
        patterns = [
            rf'({key}\s*[=:]\s*)[^\s,}}\]]+',
            rf"('{key}'\s*:\s*)[^\s,}}\]]+",
            rf'("{key}"\s*:\s*)[^\s,}}\]]+',
        ]
        for pattern in patterns:
            text = re.sub(pattern, r"\1[REDACTED]", text, flags=re.IGNORECASE)
        return text


def setup_logging(settings: Settings | None = None) -> None:
    """Configure logging for the CLI process."""
    settings = settings or get_settings()
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level))

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Diagnostics go to stderr so report tables on stdout stay clean
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(getattr(logging, settings.log_level))

    if settings.log_format == "json":
        handler.setFormatter(
            StructuredFormatter(include_location=settings.log_level == "DEBUG")
        )
    else:
        handler.setFormatter(TextFormatter())

    handler.addFilter(SensitiveDataFilter())

    root_logger.addHandler(handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("docker").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the local_backend prefix."""
    return logging.getLogger(f"local_backend.{name}")
