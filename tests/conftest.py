"""Pytest configuration for test isolation.

Settings are read from the environment (``DATABASE_URL``, ``SI_*``), so a
developer's shell or ``.env`` could leak into tests. An autouse fixture clears
them for every test, and engines cached by ``db.client`` are disposed after
each test so per-test SQLite files are released. Logging configured by a CLI
invocation is undone as well.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
from db.client import dispose_engines

from statement_ingest import logging_setup

from tests.helpers.db import bootstrap_sqlite_db

_ENV_VARS = (
    "DATABASE_URL",
    "SI_BILLING_CUTOFF_DAY",
    "SI_FORMATS_PATH",
    "SI_PARSE_CONCURRENCY",
    "STATEMENT_INGEST_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    dispose_engines()
    _reset_logging()


def _reset_logging() -> None:
    handler = logging_setup._handler
    if handler is not None:
        pkg_logger = logging.getLogger(logging_setup.PACKAGE_LOGGER)
        pkg_logger.removeHandler(handler)
        pkg_logger.propagate = True
        logging_setup._handler = None


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """A fresh file-backed SQLite ledger for one test."""

    return bootstrap_sqlite_db(tmp_path / "ledger.db")
