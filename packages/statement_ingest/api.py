"""Public entry point for statement uploads.

``upload_statement`` never raises for expected failures: an unrecognized
file, a store failure or a file with no usable rows all come back as an
:class:`UploadResult` with ``success=False`` and nothing written. Invalid
configuration still raises :class:`ConfigurationError`.
"""

from __future__ import annotations

from datetime import date

from .categories import CategoryResolver
from .config import IngestSettings
from .errors import StoreError, UnrecognizedFormatError
from .ingest.formats import FormatRegistry
from .logging_setup import get_logger
from .models import ImportBatch, UploadResult
from .persistence import PersistenceStore
from .pipeline import IngestPipeline

logger = get_logger(__name__)


def upload_statement(
    payload: bytes,
    *,
    file_name: str,
    user_id: int,
    store: PersistenceStore,
    category_resolver: CategoryResolver | None = None,
    format_hint: str | None = None,
    assigned_month: date | None = None,
    settings: IngestSettings | None = None,
    registry: FormatRegistry | None = None,
) -> UploadResult:
    """Ingest one statement file for ``user_id`` and summarize the outcome."""

    settings = settings or IngestSettings.from_env()
    registry = registry or settings.load_registry()
    pipeline = IngestPipeline(
        store=store,
        registry=registry,
        category_resolver=category_resolver,
        cutoff_day=settings.cutoff_day,
        concurrency=settings.parse_concurrency,
    )

    try:
        batch = pipeline.run(
            payload,
            file_name=file_name,
            user_id=user_id,
            format_hint=format_hint,
            assigned_month=assigned_month,
        )
    except (UnrecognizedFormatError, StoreError) as exc:
        logger.warning("upload of %r failed: %s", file_name, exc.message)
        batch = ImportBatch(
            file_name=file_name,
            user_id=user_id,
            format_name=exc.details.get("format_name"),
            total_parsed=exc.details.get("total_parsed", 0),
            failed=True,
            message=exc.message,
        )
    return UploadResult.from_batch(batch)


__all__ = ["upload_statement"]
