"""Public interface for the ``statement_ingest`` package.

Symbol re-exports only; see :mod:`statement_ingest.api` for the entry point
and :mod:`statement_ingest.pipeline` for the stages.
"""

from .api import upload_statement
from .categories import CategoryCache, CategoryResolver, DbCategoryResolver
from .config import IngestSettings
from .duplicates import DeduplicationEngine, compute_fingerprint
from .errors import (
    ConfigurationError,
    ConflictingSplitRuleError,
    IngestError,
    NormalizationError,
    RowError,
    StoreError,
    UnrecognizedFormatError,
)
from .ingest.formats import FormatRegistry, FormatSpec, load_format_registry
from .models import (
    ImportBatch,
    RawEntry,
    RowOutcome,
    RowStatus,
    TransactionCandidate,
    TransactionType,
    UploadResult,
)
from .persistence import PersistenceStore, SqlAlchemyStore
from .pipeline import BatchCommitter, IngestPipeline

__all__ = [
    # API
    "upload_statement",
    "IngestPipeline",
    "BatchCommitter",
    # Configuration
    "IngestSettings",
    "FormatRegistry",
    "FormatSpec",
    "load_format_registry",
    # Collaborators
    "CategoryCache",
    "CategoryResolver",
    "DbCategoryResolver",
    "DeduplicationEngine",
    "PersistenceStore",
    "SqlAlchemyStore",
    "compute_fingerprint",
    # Models
    "ImportBatch",
    "RawEntry",
    "RowOutcome",
    "RowStatus",
    "TransactionCandidate",
    "TransactionType",
    "UploadResult",
    # Errors
    "ConfigurationError",
    "ConflictingSplitRuleError",
    "IngestError",
    "NormalizationError",
    "RowError",
    "StoreError",
    "UnrecognizedFormatError",
]
