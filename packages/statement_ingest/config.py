"""Runtime settings for ``statement_ingest``.

Settings are read from the process environment. Entry points (the CLI) load a
local ``.env`` with ``python-dotenv`` first; library callers may construct
:class:`IngestSettings` directly.

Environment variables
---------------------
``DATABASE_URL``
    SQLAlchemy URL of the ledger database.
``SI_BILLING_CUTOFF_DAY``
    Day of month (1..31) from which a billing date rolls to the next month.
    Unset means no roll-over.
``SI_FORMATS_PATH``
    JSON format registry; the packaged registry is used when unset.
``SI_PARSE_CONCURRENCY``
    Worker threads for row parsing and normalization (default 1).
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path

from .errors import ConfigurationError
from .ingest.formats import FormatRegistry, load_format_registry


def _parse_int(env: Mapping[str, str], key: str) -> int | None:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True, slots=True)
class IngestSettings:
    database_url: str | None = None
    cutoff_day: int | None = None
    formats_path: Path | None = None
    parse_concurrency: int = 1

    def __post_init__(self) -> None:
        if self.cutoff_day is not None and not 1 <= self.cutoff_day <= 31:
            raise ConfigurationError(
                f"billing cutoff day must be within 1..31, got {self.cutoff_day}"
            )
        if self.parse_concurrency < 1:
            raise ConfigurationError(
                f"parse concurrency must be a positive integer, got {self.parse_concurrency}"
            )

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> IngestSettings:
        env = os.environ if env is None else env
        formats_path = (env.get("SI_FORMATS_PATH") or "").strip()
        concurrency = _parse_int(env, "SI_PARSE_CONCURRENCY")
        return cls(
            database_url=(env.get("DATABASE_URL") or "").strip() or None,
            cutoff_day=_parse_int(env, "SI_BILLING_CUTOFF_DAY"),
            formats_path=Path(formats_path) if formats_path else None,
            parse_concurrency=1 if concurrency is None else concurrency,
        )

    def with_overrides(self, **changes: object) -> IngestSettings:
        """Return a copy with the non-``None`` keyword overrides applied."""

        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    def load_registry(self) -> FormatRegistry:
        return load_format_registry(self.formats_path)


__all__ = ["IngestSettings"]
