from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal

from statement_ingest.duplicates import (
    DeduplicationEngine,
    compute_fingerprint,
    date_range_of,
    normalize_merchant_key,
)
from statement_ingest.models import DateRange, TransactionCandidate, TransactionType


def _candidate(**overrides) -> TransactionCandidate:
    values = {
        "row_index": 4,
        "transaction_date": date(2024, 1, 15),
        "billing_date": date(2024, 2, 10),
        "amount": Decimal("-42.50"),
        "type": TransactionType.EXPENSE,
        "merchant_name": "Cafe Nero",
        "source": "il_card_transactions",
        "card_number": "1234",
    }
    values.update(overrides)
    return TransactionCandidate(**values)


class _FakeStore:
    def __init__(self, fingerprints: set[str] | None = None) -> None:
        self.fingerprints = fingerprints or set()
        self.calls: list[tuple[int, DateRange]] = []

    def existing_fingerprints(self, user_id: int, date_range: DateRange) -> set[str]:
        self.calls.append((user_id, date_range))
        return set(self.fingerprints)


# ---------------------------------------------------------------------------
# Fingerprints
# ---------------------------------------------------------------------------


def test_fingerprint_is_stable_hex_sha256():
    fp = compute_fingerprint(_candidate())

    assert fp == compute_fingerprint(_candidate())
    assert len(fp) == 64
    int(fp, 16)


def test_fingerprint_ignores_merchant_case_whitespace_and_row_position():
    base = compute_fingerprint(_candidate())

    assert compute_fingerprint(_candidate(merchant_name="  CAFE   nero ")) == base
    assert compute_fingerprint(_candidate(row_index=99)) == base
    assert compute_fingerprint(_candidate(billing_date=date(2024, 3, 10))) == base
    assert compute_fingerprint(_candidate(category_id=7, notes="x")) == base


def test_fingerprint_distinguishes_identity_fields():
    base = compute_fingerprint(_candidate())
    variants = [
        _candidate(amount=Decimal("-42.51")),
        _candidate(transaction_date=date(2024, 1, 16)),
        _candidate(merchant_name="Cafe Roma"),
        _candidate(card_number="9999"),
        _candidate(reference_number="A1"),
        _candidate(source="il_bank_account"),
        _candidate(installments=3, installment_index=1),
        _candidate(is_halves=True, halves_part=2),
    ]

    fingerprints = {compute_fingerprint(v) for v in variants}

    assert base not in fingerprints
    assert len(fingerprints) == len(variants)


def test_card_taken_from_the_file_name_is_not_part_of_the_fingerprint():
    without_card = compute_fingerprint(_candidate(card_number=None))

    from_file = _candidate(card_number="2024", card_from_file_name=True)
    other_file = _candidate(card_number="9999", card_from_file_name=True)

    assert compute_fingerprint(from_file) == without_card
    assert compute_fingerprint(other_file) == without_card
    assert compute_fingerprint(_candidate(card_number="2024")) != without_card


def test_normalize_merchant_key():
    assert normalize_merchant_key(" Super   PHARM ") == "super pharm"
    assert normalize_merchant_key("   ") is None
    assert normalize_merchant_key(None) is None


def test_date_range_of_candidates():
    rows = [
        _candidate(transaction_date=date(2024, 1, 20)),
        _candidate(transaction_date=date(2024, 1, 3)),
    ]

    assert date_range_of(rows) == DateRange(date(2024, 1, 3), date(2024, 1, 20))
    assert date_range_of([]) is None


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


def test_rows_already_stored_are_duplicates():
    stored = _candidate()
    fresh = _candidate(merchant_name="Cafe Roma")
    store = _FakeStore({compute_fingerprint(stored)})

    result = DeduplicationEngine().filter(7, [stored, fresh], store)

    assert [item.candidate for item in result.kept] == [fresh]
    assert [item.candidate for item in result.duplicates] == [stored]
    assert store.calls == [(7, DateRange(date(2024, 1, 15), date(2024, 1, 15)))]


def test_first_occurrence_in_batch_wins():
    first = _candidate(row_index=4)
    second = replace(first, row_index=5)

    result = DeduplicationEngine().filter(7, [first, second], _FakeStore())

    assert [item.candidate.row_index for item in result.kept] == [4]
    assert [item.candidate.row_index for item in result.duplicates] == [5]
    assert result.kept[0].fingerprint == result.duplicates[0].fingerprint


def test_empty_batch_skips_store_lookup():
    store = _FakeStore()

    result = DeduplicationEngine().filter(7, [], store)

    assert result.kept == [] and result.duplicates == []
    assert store.calls == []
