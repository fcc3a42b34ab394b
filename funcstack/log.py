"""
Logging configuration for the CLI and the function host.

Log records pass through a filter that masks storage account keys and
passwords, since connection strings flow through the provisioning graph.
"""

import logging
import re
from typing import Any

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

_SENSITIVE_PATTERNS = [
    (re.compile(r"(?i)(AccountKey)=([^;\s]+)"), r"\1=***REDACTED***"),
    (re.compile(r"(?i)(password|pwd)\s*=\s*([^;\s]+)"), r"\1=***REDACTED***"),
    (re.compile(r"(?i)(SharedAccessSignature|sig)=([^;&\s]+)"), r"\1=***REDACTED***"),
]


def redact(value: Any) -> Any:
    """
    Mask secrets inside strings, recursing into lists and dicts.

    Non-string leaves are returned unchanged.
    """
    if isinstance(value, str):
        for pattern, replacement in _SENSITIVE_PATTERNS:
            value = pattern.sub(replacement, value)
        return value
    if isinstance(value, dict):
        return {key: redact(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(redact(item) for item in value)
    return value


class RedactingFilter(logging.Filter):
    """Masks secrets in the rendered message of every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(level: int | str = logging.INFO) -> None:
    """Configure the root logger once; later calls only change the level."""
    root = logging.getLogger()
    if not any(isinstance(f, RedactingFilter) for h in root.handlers for f in h.filters):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.addFilter(RedactingFilter())
        root.addHandler(handler)
    root.setLevel(level)
