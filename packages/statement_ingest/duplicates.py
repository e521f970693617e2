"""Transaction fingerprints and duplicate filtering.

A fingerprint is the SHA-256 of a canonical JSON payload (sorted keys, compact
separators) over the fields that identify a charge:

- ``transaction_date`` (ISO), ``amount`` (2dp string), ``source``
- merchant name, whitespace-collapsed and casefolded
- ``card_number`` and ``reference_number`` (``None`` when absent); a card
  number taken from the file name counts as absent, so renaming a file
  does not change its fingerprints
- ``installment_index`` and ``halves_part`` so the parts of one split charge
  stay distinct from each other

Re-uploading a file therefore yields the same fingerprints, and rows already
in the store (or earlier in the same batch) are dropped as duplicates.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from .logging_setup import get_logger
from .models import DateRange, TransactionCandidate

logger = get_logger(__name__)


def normalize_merchant_key(name: str | None) -> str | None:
    if not name:
        return None
    key = re.sub(r"\s+", " ", name).strip().casefold()
    return key or None


def compute_fingerprint(candidate: TransactionCandidate) -> str:
    """Compute a stable SHA-256 fingerprint over a candidate's identity."""

    payload = {
        "transaction_date": candidate.transaction_date.isoformat(),
        "amount": f"{candidate.amount:.2f}",
        "source": candidate.source,
        "merchant": normalize_merchant_key(candidate.merchant_name),
        "card_number": None if candidate.card_from_file_name else candidate.card_number,
        "reference_number": (candidate.reference_number or "").strip() or None,
        "installment_index": candidate.installment_index,
        "halves_part": candidate.halves_part,
    }
    data = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def date_range_of(candidates: Sequence[TransactionCandidate]) -> DateRange | None:
    if not candidates:
        return None
    dates = [c.transaction_date for c in candidates]
    return DateRange(min(dates), max(dates))


class FingerprintSource(Protocol):
    def existing_fingerprints(self, user_id: int, date_range: DateRange) -> set[str]: ...


@dataclass(frozen=True, slots=True)
class FingerprintedCandidate:
    candidate: TransactionCandidate
    fingerprint: str


@dataclass(slots=True)
class DedupResult:
    kept: list[FingerprintedCandidate] = field(default_factory=list)
    duplicates: list[FingerprintedCandidate] = field(default_factory=list)


class DeduplicationEngine:
    """Filter candidates against the store and within the batch.

    The first occurrence of a fingerprint wins; later ones are duplicates.
    """

    def filter(
        self,
        user_id: int,
        candidates: Sequence[TransactionCandidate],
        store: FingerprintSource,
    ) -> DedupResult:
        result = DedupResult()
        window = date_range_of(candidates)
        if window is None:
            return result

        seen = set(store.existing_fingerprints(user_id, window))
        logger.debug(
            "%d existing fingerprints for user %s between %s and %s",
            len(seen),
            user_id,
            window.start,
            window.end,
        )
        for candidate in candidates:
            fp = compute_fingerprint(candidate)
            item = FingerprintedCandidate(candidate, fp)
            if fp in seen:
                logger.debug("row %d is a duplicate (%s)", candidate.row_index, fp[:12])
                result.duplicates.append(item)
                continue
            seen.add(fp)
            result.kept.append(item)
        return result


__all__ = [
    "DedupResult",
    "DeduplicationEngine",
    "FingerprintSource",
    "FingerprintedCandidate",
    "compute_fingerprint",
    "date_range_of",
    "normalize_merchant_key",
]
