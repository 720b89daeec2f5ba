"""Logging filters that keep credentials out of log output."""

from __future__ import annotations

import logging
import re

_SENSITIVE_PATTERN = re.compile(
    r"(Bearer\s+[\w\.-]+|access_token\"?\s*[:=]\s*\"?[\w\.-]+\"?|secret_key\"?\s*[:=]\s*\"?[^\s\",]+\"?)",
    re.IGNORECASE,
)
_REDACTED = "**REDACTED**"


def scrub(text: str) -> str:
    return _SENSITIVE_PATTERN.sub(_REDACTED, text)


class SensitiveFilter(logging.Filter):
    """Replace bearer tokens and secrets in log messages with a redaction marker."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = scrub(record.msg)
        if isinstance(record.args, dict):
            record.args = {
                key: scrub(value) if isinstance(value, str) else value
                for key, value in record.args.items()
            }
        elif isinstance(record.args, tuple):
            record.args = tuple(
                scrub(arg) if isinstance(arg, str) else arg for arg in record.args
            )
        return True


__all__ = ["SensitiveFilter", "scrub"]
