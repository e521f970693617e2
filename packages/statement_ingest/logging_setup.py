"""Logging for the ``statement_ingest`` package.

Library modules call ``get_logger(__name__)`` and never attach handlers of
their own; until an entry point calls :func:`configure_logging` the package
logger only carries a ``NullHandler``.

Records emitted while an upload is being processed are tagged with the upload
(``user:file``) through :func:`upload_context`, so interleaved output from a
host that ingests several statements stays attributable::

    2024-05-01 10:00:00 INFO statement_ingest.ingest.detect [7:visa.csv] detected format ...
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import IO

PACKAGE_LOGGER = "statement_ingest"
LEVEL_ENV_VAR = "STATEMENT_INGEST_LOG_LEVEL"
DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(upload)s] %(message)s"

_current_upload: ContextVar[str] = ContextVar("statement_ingest_upload", default="-")
_handler: logging.Handler | None = None


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        level = os.getenv(LEVEL_ENV_VAR) or logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    return logging.getLevelNamesMapping().get(name, logging.INFO)


class _UploadTagFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.upload = _current_upload.get()
        return True


@contextmanager
def upload_context(file_name: str, user_id: int) -> Iterator[None]:
    """Tag log records emitted inside the block with ``user_id:file_name``."""

    token = _current_upload.set(f"{user_id}:{file_name or '-'}")
    try:
        yield
    finally:
        _current_upload.reset(token)


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
) -> logging.Handler:
    """Attach one stream handler to the package logger and return it.

    ``level`` falls back to ``STATEMENT_INGEST_LOG_LEVEL``, then ``INFO``.
    Repeated calls return the handler installed by the first call.
    """

    global _handler
    if _handler is not None:
        return _handler

    pkg_logger = logging.getLogger(PACKAGE_LOGGER)
    for existing in list(pkg_logger.handlers):
        if isinstance(existing, logging.NullHandler):
            pkg_logger.removeHandler(existing)

    resolved = _resolve_level(level)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(resolved)
    handler.addFilter(_UploadTagFilter())
    handler.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT))

    pkg_logger.setLevel(resolved)
    pkg_logger.addHandler(handler)
    pkg_logger.propagate = False
    _handler = handler
    return handler


def get_logger(name: str) -> logging.Logger:
    pkg_logger = logging.getLogger(PACKAGE_LOGGER)
    if _handler is None and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = [
    "DEFAULT_FORMAT",
    "LEVEL_ENV_VAR",
    "configure_logging",
    "get_logger",
    "upload_context",
]
