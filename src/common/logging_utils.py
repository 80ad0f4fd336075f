"""Centralized logging helpers.

Keeps log configuration in one place and provides the small utilities the
rest of the code uses for structured DEBUG traces: ``extra_context`` builds
the ``extra=`` payload, ``safe_url``/``redact`` keep secrets out of logs and
``Timer`` measures durations.
"""
from __future__ import annotations

import logging
import os
import re
import time
import urllib.parse
from typing import Any, Dict, Optional

from constants import Constants

_SENSITIVE_KEYS = ("password", "apikey", "api_key", "token", "secret", "authorization")
_QUERY_SECRET_RE = re.compile(r"(?i)((?:api_?key|token|password|secret)=)[^&]+")


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the root logger once.

    The level is taken from ``level``, then the ``UPACKCTL_LOG_LEVEL``
    environment variable, then INFO.
    """
    level_name = (level or os.environ.get(Constants.ENV_LOG_LEVEL) or "INFO").upper()
    level_value = getattr(logging, level_name, logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level_value, format=Constants.LOG_FORMAT)
    root.setLevel(level_value)


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records from ``logger`` would be emitted."""
    return logger.isEnabledFor(logging.DEBUG)


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build an ``extra`` mapping for structured log records.

    None values are dropped and secret-looking keys are redacted.
    """
    context: Dict[str, Any] = {}
    for key, value in fields.items():
        if value is None:
            continue
        if any(marker in key.lower() for marker in _SENSITIVE_KEYS):
            value = redact(value)
        context[key] = value
    return context


def redact(value: Any) -> str:
    """Mask a secret, keeping only enough to tell values apart."""
    if value is None:
        return ""
    text = str(value)
    if len(text) <= 4:
        return "****"
    return f"{text[:2]}****"


def safe_url(url: Optional[str]) -> str:
    """Strip userinfo and secret query parameters from a URL for logging."""
    if not url:
        return ""
    try:
        parts = urllib.parse.urlsplit(url)
    except ValueError:
        return _QUERY_SECRET_RE.sub(r"\1****", url)
    netloc = parts.hostname or ""
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    query = _QUERY_SECRET_RE.sub(r"\1****", parts.query)
    return urllib.parse.urlunsplit((parts.scheme, netloc or parts.netloc, parts.path, query, ""))


class Timer:
    """Context manager measuring wall time in milliseconds."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        self._end = None
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> int:
        end = self._end if self._end is not None else time.perf_counter()
        return int((end - self._start) * 1000)
