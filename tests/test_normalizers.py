from __future__ import annotations

import re
from datetime import date
from decimal import Decimal

import pytest

from statement_ingest.errors import NormalizationError
from statement_ingest.ingest.formats import load_format_registry
from statement_ingest.models import RawEntry, TransactionType
from statement_ingest.normalizers import Normalizer, clean_merchant


def _card_spec():
    spec = load_format_registry().get("il_card_transactions")
    assert spec is not None
    return spec


def _bank_spec():
    spec = load_format_registry().get("il_bank_account")
    assert spec is not None
    return spec


def _entry(**fields: str) -> RawEntry:
    base = {"transaction_date": "2024-01-15", "amount": "42.50", "merchant": "Cafe Nero"}
    base.update(fields)
    return RawEntry(
        row_index=4,
        source_format="il_card_transactions",
        cells=(("בית עסק", base.get("merchant", "")),),
        fields={k: v for k, v in base.items() if v},
    )


# ---------------------------------------------------------------------------
# Amounts and types
# ---------------------------------------------------------------------------


def test_positive_card_charge_becomes_negative_expense():
    candidate = Normalizer(_card_spec()).normalize(_entry(amount="42.50"))

    assert candidate.amount == Decimal("-42.50")
    assert candidate.type is TransactionType.EXPENSE


def test_negative_card_amount_is_a_refund():
    candidate = Normalizer(_card_spec()).normalize(_entry(amount="-20"))

    assert candidate.amount == Decimal("20.00")
    assert candidate.type is TransactionType.INCOME


def test_bank_amount_keeps_its_sign():
    normalizer = Normalizer(_bank_spec())

    assert normalizer.normalize(_entry(amount="-350.2")).amount == Decimal("-350.20")
    assert normalizer.normalize(_entry(amount="9000")).type is TransactionType.INCOME


@pytest.mark.parametrize("text", ["10.005", "1.23456"])
def test_sub_cent_amount_is_rejected_not_rounded(text):
    with pytest.raises(NormalizationError, match="sub-cent") as excinfo:
        Normalizer(_bank_spec()).normalize(_entry(amount=text))

    assert excinfo.value.row_index == 4


def test_trailing_zero_decimals_are_accepted():
    assert Normalizer(_bank_spec()).normalize(_entry(amount="10.500")).amount == Decimal("10.50")


def test_zero_amount_is_an_expense():
    candidate = Normalizer(_card_spec()).normalize(_entry(amount="0"))

    assert candidate.amount == Decimal("0.00")
    assert str(candidate.amount) == "0.00"
    assert candidate.type is TransactionType.EXPENSE


# ---------------------------------------------------------------------------
# Other fields
# ---------------------------------------------------------------------------


def test_billing_date_defaults_to_transaction_date():
    normalizer = Normalizer(_card_spec())

    assert normalizer.normalize(_entry()).billing_date == date(2024, 1, 15)
    explicit = normalizer.normalize(_entry(billing_date="2024-02-10"))
    assert explicit.billing_date == date(2024, 2, 10)


def test_card_number_is_reduced_to_last_four_digits():
    candidate = Normalizer(_card_spec()).normalize(_entry(card_number="**** **** 9876"))

    assert candidate.card_number == "9876"


def test_card_number_falls_back_to_file_name():
    normalizer = Normalizer(_card_spec(), file_name="מ-1234.xlsx")

    from_file = normalizer.normalize(_entry())
    from_row = normalizer.normalize(_entry(card_number="5555"))

    assert (from_file.card_number, from_file.card_from_file_name) == ("1234", True)
    assert (from_row.card_number, from_row.card_from_file_name) == ("5555", False)


def test_bank_statement_never_takes_a_card_from_the_file_name():
    candidate = Normalizer(_bank_spec(), file_name="account_2024.csv").normalize(_entry())

    assert candidate.card_number is None
    assert candidate.card_from_file_name is False


def test_currency_from_alias_code_or_default():
    normalizer = Normalizer(_card_spec())

    assert normalizer.normalize(_entry(currency="$")).currency == "USD"
    assert normalizer.normalize(_entry(currency="gbp")).currency == "GBP"
    assert normalizer.normalize(_entry(currency="???")).currency == "ILS"
    assert normalizer.normalize(_entry()).currency == "ILS"


def test_source_defaults_to_format_name():
    assert Normalizer(_card_spec()).normalize(_entry()).source == "il_card_transactions"
    assert Normalizer(_card_spec(), source="visa").normalize(_entry()).source == "visa"


def test_source_carries_the_account_number():
    candidate = Normalizer(_bank_spec(), account="361645").normalize(_entry())

    assert candidate.source == "il_bank_account:361645"


def test_action_type_is_kept_in_notes():
    normalizer = Normalizer(_bank_spec())

    both = normalizer.normalize(_entry(action_type="העברה", notes="Dana"))
    action_only = normalizer.normalize(_entry(action_type="הוראת קבע"))

    assert both.notes == "העברה | Dana"
    assert both.merchant_name == "Cafe Nero"
    assert action_only.notes == "הוראת קבע"
    assert normalizer.normalize(_entry()).notes is None


def test_split_flags_are_carried():
    normalizer = Normalizer(_card_spec())

    plan = normalizer.normalize(_entry(installments="3", installment_index="2"))
    halves = normalizer.normalize(_entry(halves="true"))
    single = normalizer.normalize(_entry(installment_index="2"))

    assert (plan.installments, plan.installment_index) == (3, 2)
    assert halves.is_halves is True
    assert single.installment_index is None


def test_raw_record_is_preserved():
    candidate = Normalizer(_card_spec()).normalize(_entry())

    assert candidate.raw_record == {"בית עסק": "Cafe Nero"}


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "field, message",
    [
        ("transaction_date", "missing transaction date"),
        ("amount", "missing amount"),
        ("merchant", "missing merchant name"),
    ],
)
def test_missing_required_field_raises(field, message):
    with pytest.raises(NormalizationError, match=message) as excinfo:
        Normalizer(_card_spec()).normalize(_entry(**{field: ""}))

    assert excinfo.value.row_index == 4


# ---------------------------------------------------------------------------
# Merchant cleanup
# ---------------------------------------------------------------------------


def test_clean_merchant_collapses_whitespace_and_title_cases():
    assert clean_merchant("  SUPER   PHARM  ") == "Super Pharm"
    assert clean_merchant("שופרסל  דיל") == "שופרסל דיל"
    assert clean_merchant(None) == ""


def test_clean_merchant_removes_noise_patterns():
    noise = [re.compile(r"\bPAYPAL \*"), re.compile(r"\d{6,}")]

    assert clean_merchant("PAYPAL *SPOTIFY 123456789", noise) == "Spotify"
