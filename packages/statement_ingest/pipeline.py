"""The statement ingestion pipeline.

One upload runs these stages in order:

1. read the file and detect its format (fatal when nothing matches)
2. parse, normalize, assign months and expand splits row by row; a failing
   row is recorded and skipped. Rows are pinned to the caller's month, else
   to the billing month printed in the statement, else assigned by cutoff
3. in a single store scope: drop duplicates, resolve categories and insert

``total_parsed`` counts input rows that produced at least one candidate;
``total_created`` is what the store confirmed after its scope committed.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date

from .categories import CategoryCache, CategoryResolver
from .duplicates import DeduplicationEngine, DedupResult, FingerprintedCandidate
from .errors import RowError, StoreError
from .ingest.adapters import parser_for
from .ingest.detect import FormatDetector
from .ingest.formats import FormatRegistry
from .ingest.readers import Row, StatementTable
from .logging_setup import get_logger, upload_context
from .models import ImportBatch, RowStatus, TransactionCandidate
from .normalizers import Normalizer
from .periods import MonthAssigner, apply_split_rules
from .persistence import PersistenceStore
from .pmap import p_map

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class _RowResult:
    row_index: int
    candidates: list[TransactionCandidate] = field(default_factory=list)
    error: RowError | None = None


@dataclass(frozen=True, slots=True)
class CommitReport:
    created: int
    dedup: DedupResult


class BatchCommitter:
    """Deduplicate, categorize and insert candidates in one store scope."""

    def __init__(
        self,
        store: PersistenceStore,
        category_resolver: CategoryResolver | None = None,
    ) -> None:
        self.store = store
        self.category_resolver = category_resolver
        self.dedup = DeduplicationEngine()

    def commit(self, user_id: int, candidates: list[TransactionCandidate]) -> CommitReport:
        with self.store.begin(user_id) as scope:
            dedup = self.dedup.filter(user_id, candidates, scope)
            categories = CategoryCache(self.category_resolver)
            to_insert = [
                FingerprintedCandidate(
                    replace(
                        item.candidate,
                        category_id=item.candidate.category_id
                        or categories.resolve_candidate(item.candidate),
                    ),
                    item.fingerprint,
                )
                for item in dedup.kept
            ]
            created = scope.commit_batch(user_id, to_insert) if to_insert else 0
        logger.debug("category lookups for batch: %d", categories.lookups)
        return CommitReport(created=created, dedup=dedup)


class IngestPipeline:
    def __init__(
        self,
        *,
        store: PersistenceStore,
        registry: FormatRegistry,
        category_resolver: CategoryResolver | None = None,
        cutoff_day: int | None = None,
        concurrency: int = 1,
    ) -> None:
        self.registry = registry
        self.detector = FormatDetector(registry)
        self.committer = BatchCommitter(store, category_resolver)
        self.cutoff_day = cutoff_day
        self.concurrency = concurrency

    def run(
        self,
        payload: bytes,
        *,
        file_name: str,
        user_id: int,
        format_hint: str | None = None,
        assigned_month: date | None = None,
    ) -> ImportBatch:
        """Ingest one statement file.

        Raises :class:`UnrecognizedFormatError` or :class:`StoreError` when the
        batch cannot be processed; nothing is written in either case.
        """

        with upload_context(file_name, user_id):
            return self._run(payload, file_name, user_id, format_hint, assigned_month)

    def _run(
        self,
        payload: bytes,
        file_name: str,
        user_id: int,
        format_hint: str | None,
        assigned_month: date | None,
    ) -> ImportBatch:
        batch = ImportBatch(file_name=file_name, user_id=user_id)
        logger.info("ingesting %r for user %s (%d bytes)", file_name, user_id, len(payload))

        table = StatementTable.from_bytes(payload, file_name)
        detected = self.detector.detect(table, file_name=file_name, format_hint=format_hint)
        batch.format_name = detected.spec.name

        parser = parser_for(detected)
        normalizer = Normalizer(detected.spec, file_name=file_name, account=detected.account)
        # An explicit month wins over the one printed in the statement.
        months = MonthAssigner(
            self.cutoff_day, fixed_month=assigned_month or detected.statement_month
        )

        def process(item: tuple[int, Row]) -> _RowResult | None:
            row_index, cells = item
            try:
                raw = parser.parse(row_index, cells)
                if raw is None:
                    return None
                candidate = months.assign(normalizer.normalize(raw))
                return _RowResult(row_index, apply_split_rules(candidate))
            except RowError as exc:
                return _RowResult(row_index, error=exc)

        results = [
            r
            for r in p_map(detected.data_rows(), process, concurrency=self.concurrency)
            if r is not None
        ]

        candidates: list[TransactionCandidate] = []
        for result in results:
            if result.error is not None:
                logger.warning("skipping %s", result.error.message)
                continue
            batch.total_parsed += 1
            candidates.extend(result.candidates)

        if batch.total_parsed == 0:
            self._record_outcomes(batch, results, None)
            batch.failed = True
            batch.message = "No transactions found in file"
            logger.warning("%r: no transactions found", file_name)
            return batch

        try:
            report = self.committer.commit(user_id, candidates)
        except StoreError as exc:
            exc.details.setdefault("total_parsed", batch.total_parsed)
            exc.details.setdefault("format_name", batch.format_name)
            raise
        batch.total_created = report.created
        self._record_outcomes(batch, results, report.dedup)
        batch.message = (
            f"File uploaded successfully: {report.created} created, "
            f"{len(report.dedup.duplicates)} duplicates skipped, {len(batch.errors)} rows failed"
        )
        logger.info(
            "ingested %r as %s: parsed=%d created=%d duplicates=%d errors=%d",
            file_name,
            batch.format_name,
            batch.total_parsed,
            batch.total_created,
            len(report.dedup.duplicates),
            len(batch.errors),
        )
        return batch

    @staticmethod
    def _record_outcomes(
        batch: ImportBatch, results: list[_RowResult], dedup: DedupResult | None
    ) -> None:
        duplicates: dict[int, list[str]] = {}
        if dedup is not None:
            for item in dedup.duplicates:
                duplicates.setdefault(item.candidate.row_index, []).append(item.fingerprint)

        for result in results:
            if result.error is not None:
                batch.record(result.row_index, RowStatus.ERROR, result.error.reason)
                continue
            dup_fps = duplicates.get(result.row_index, [])
            if dup_fps and len(dup_fps) == len(result.candidates):
                batch.record(
                    result.row_index, RowStatus.SKIP, "duplicate", fingerprint=dup_fps[0]
                )
            elif dup_fps:
                batch.record(
                    result.row_index,
                    RowStatus.SUCCESS,
                    f"{len(dup_fps)} of {len(result.candidates)} parts already imported",
                )
            else:
                batch.record(result.row_index, RowStatus.SUCCESS)


__all__ = ["BatchCommitter", "CommitReport", "IngestPipeline"]
