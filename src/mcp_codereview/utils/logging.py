"""Logging setup, contextual loggers and secret masking."""

from __future__ import annotations

import logging
import sys
from typing import Any, MutableMapping, TextIO

_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"

# Record attributes rendered after the message when present. Only
# non-secret identifiers belong here.
CONTEXT_FIELDS = ("service", "instance", "flow_id")


class ContextFormatter(logging.Formatter):
    """Append ``[service=... instance=... flow_id=...]`` for set context fields."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = " ".join(
            f"{key}={getattr(record, key)}"
            for key in CONTEXT_FIELDS
            if getattr(record, key, None) is not None
        )
        return f"{line} [{context}]" if context else line


class ContextAdapter(logging.LoggerAdapter):
    """Attach fixed context to every record; call-site ``extra`` wins on clashes."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def context_logger(name: str, **context: Any) -> ContextAdapter:
    """Return a logger for *name* carrying the given context fields.

    Raises ``TypeError`` for a field outside :data:`CONTEXT_FIELDS`; unset
    (``None``) fields are dropped.
    """
    unknown = sorted(set(context) - set(CONTEXT_FIELDS))
    if unknown:
        raise TypeError(f"unsupported log context field(s): {', '.join(unknown)}")
    extra = {key: value for key, value in context.items() if value is not None}
    return ContextAdapter(logging.getLogger(name), extra)


def setup_logging(level: int = logging.WARNING, stream: TextIO | None = None) -> logging.Logger:
    """Configure the root logger to write to *stream* (stderr by default).

    stdout is reserved for the MCP stdio transport, so no handler may write
    there.  Existing root handlers are replaced.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(ContextFormatter(_FORMAT))
    root.addHandler(handler)
    root.setLevel(level)

    for name in ("mcp-codereview", "mcp_codereview"):
        logging.getLogger(name).setLevel(level)
    # httpx logs every request line at INFO, including full URLs.
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
    return logging.getLogger("mcp-codereview")


def mask_sensitive(value: str | None, keep: int = 4) -> str:
    """Return *value* with all but the first *keep* characters hidden.

    Values no longer than *keep* are fully masked.
    """
    if not value:
        return ""
    if len(value) <= keep:
        return "*" * len(value)
    return value[:keep] + "*" * (len(value) - keep)
