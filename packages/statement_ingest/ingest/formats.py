"""Statement format registry.

Each supported export layout is declared as data in a JSON registry (the
packaged default lives in ``ingest/seeds/formats.v1.json``). A declaration
names the parser ``kind`` that understands the layout, the header aliases for
every canonical field, the subset of fields whose presence identifies the
layout, and the layout's quirks (date formats, decimal separator, encoding,
sign convention, merchant noise patterns). Preamble patterns pull the billing
month and the account number out of the lines above the header.

Header matching runs in two passes so that short aliases cannot steal a more
specific column: exact (normalized) header matches first, then substring
matches over the columns still unclaimed.
"""

from __future__ import annotations

import codecs
import re
from collections.abc import Iterator, Mapping, Sequence
from importlib import resources
from os import PathLike
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from ..errors import ConfigurationError

KNOWN_FIELDS: tuple[str, ...] = (
    "transaction_date",
    "billing_date",
    "amount",
    "debit",
    "credit",
    "balance",
    "merchant",
    "card_number",
    "reference",
    "branch",
    "currency",
    "halves",
    "installments",
    "notes",
    "action_type",
)

_KIND_AMOUNT_FIELDS: dict[str, tuple[str, ...]] = {
    "signed_amount": ("amount",),
    "debit_credit": ("debit", "credit"),
}

DEFAULT_REGISTRY_RESOURCE = "formats.v1.json"


def normalize_header(value: Any) -> str:
    """Canonical form of a header cell used for matching."""

    if value is None:
        return ""
    s = str(value).replace("\ufeff", "")
    return re.sub(r"\s+", " ", s).strip().casefold()


def _check_groups(option: str, patterns: list[str], groups: set[str]) -> list[str]:
    for pattern in patterns:
        try:
            compiled = re.compile(pattern)
        except re.error as exc:
            raise ValueError(f"invalid {option} pattern {pattern!r}: {exc}") from exc
        missing = sorted(groups - set(compiled.groupindex))
        if missing:
            raise ValueError(f"{option} pattern {pattern!r} lacks named groups {missing}")
    return patterns


class FormatSpec(BaseModel):
    """Declaration of a single statement layout."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    kind: Literal["signed_amount", "debit_credit"]
    description: str = ""
    columns: dict[str, list[str]]
    required: list[str]
    date_formats: list[str] = ["%d/%m/%Y", "%d-%m-%Y", "%Y-%m-%d", "%d.%m.%Y", "%d/%m/%y"]
    excel_serial_dates: bool = True
    decimal_separator: Literal[".", ","] = "."
    currency_symbols: list[str] = ["₪", "$", "€", "£"]
    encoding: str = "utf-8-sig"
    delimiter: str = ","
    currency: str = "ILS"
    currency_aliases: dict[str, str] = {}
    # Sign of an expense in the amount column ("positive" for card statements
    # that list charges as positive numbers).
    expense_sign: Literal["positive", "negative"] = "negative"
    merchant_noise: list[str] = []
    installment_pattern: str | None = None
    halves_true_values: list[str] = ["true", "1", "yes", "y", "v", "x"]
    header_scan_rows: int = 30
    # Card exports are named after the card ("מ-1234.xlsx"); other layouts
    # never take a card number from the file name.
    card_from_file_name: bool = False
    # Searched in the preamble rows above the header. Month patterns need
    # named groups ``month`` and ``year``; the offset shifts the matched
    # month (a statement billed in November reports October).
    statement_month_patterns: list[str] = []
    statement_month_offset: int = 0
    # Account patterns need a named group ``account``.
    account_patterns: list[str] = []

    @field_validator("name")
    @classmethod
    def _name_non_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must be non-empty")
        return v

    @field_validator("columns")
    @classmethod
    def _known_columns(cls, v: dict[str, list[str]]) -> dict[str, list[str]]:
        unknown = sorted(set(v) - set(KNOWN_FIELDS))
        if unknown:
            raise ValueError(f"unknown column fields: {unknown}")
        cleaned: dict[str, list[str]] = {}
        for field_name, aliases in v.items():
            names = [a.strip() for a in aliases if a.strip()]
            if not names:
                raise ValueError(f"column {field_name!r} declares no header aliases")
            cleaned[field_name] = names
        return cleaned

    @field_validator("currency")
    @classmethod
    def _currency_code(cls, v: str) -> str:
        code = v.upper()
        if len(code) != 3 or not code.isalpha():
            raise ValueError(f"currency must be a 3-letter code: {v!r}")
        return code

    @field_validator("encoding")
    @classmethod
    def _known_encoding(cls, v: str) -> str:
        try:
            codecs.lookup(v)
        except LookupError as exc:
            raise ValueError(f"unknown encoding: {v!r}") from exc
        return v

    @field_validator("delimiter")
    @classmethod
    def _single_char_delimiter(cls, v: str) -> str:
        if len(v) != 1:
            raise ValueError("delimiter must be a single character")
        return v

    @field_validator("merchant_noise")
    @classmethod
    def _compilable_noise(cls, v: list[str]) -> list[str]:
        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"invalid merchant_noise pattern {pattern!r}: {exc}") from exc
        return v

    @field_validator("installment_pattern")
    @classmethod
    def _installment_groups(cls, v: str | None) -> str | None:
        if v is None:
            return None
        try:
            compiled = re.compile(v)
        except re.error as exc:
            raise ValueError(f"invalid installment_pattern: {exc}") from exc
        if not {"index", "total"} <= set(compiled.groupindex):
            raise ValueError("installment_pattern needs named groups 'index' and 'total'")
        return v

    @field_validator("statement_month_patterns")
    @classmethod
    def _month_groups(cls, v: list[str]) -> list[str]:
        return _check_groups("statement_month_patterns", v, {"month", "year"})

    @field_validator("account_patterns")
    @classmethod
    def _account_groups(cls, v: list[str]) -> list[str]:
        return _check_groups("account_patterns", v, {"account"})

    @field_validator("header_scan_rows")
    @classmethod
    def _positive_scan(cls, v: int) -> int:
        if v < 1:
            raise ValueError("header_scan_rows must be >= 1")
        return v

    @model_validator(mode="after")
    def _consistent(self) -> FormatSpec:
        if not self.required:
            raise ValueError(f"format {self.name!r}: required must list at least one column")
        missing = [f for f in self.required if f not in self.columns]
        if missing:
            raise ValueError(f"format {self.name!r}: required fields without columns: {missing}")
        for field_name in ("transaction_date", "merchant", *_KIND_AMOUNT_FIELDS[self.kind]):
            if field_name not in self.columns:
                raise ValueError(
                    f"format {self.name!r} of kind {self.kind!r} needs a {field_name!r} column"
                )
        # Debit/credit parsers report credit minus debit.
        if self.kind == "debit_credit" and self.expense_sign != "negative":
            raise ValueError(
                f"format {self.name!r}: debit_credit formats use expense_sign=negative"
            )
        return self

    def match_header(self, cells: Sequence[Any]) -> dict[str, int] | None:
        """Map canonical fields to column positions, or ``None`` when the row
        is not this format's header."""

        normalized = [normalize_header(c) for c in cells]
        if not any(normalized):
            return None

        mapping: dict[str, int] = {}
        claimed: set[int] = set()
        aliases = {
            field_name: [normalize_header(a) for a in names]
            for field_name, names in self.columns.items()
        }

        # Pass 1: exact header matches.
        for field_name, names in aliases.items():
            for alias in names:
                pos = next(
                    (i for i, h in enumerate(normalized) if h == alias and i not in claimed),
                    None,
                )
                if pos is not None:
                    mapping[field_name] = pos
                    claimed.add(pos)
                    break

        # Pass 2: substring matches for fields still unresolved.
        for field_name, names in aliases.items():
            if field_name in mapping:
                continue
            for alias in names:
                pos = next(
                    (
                        i
                        for i, h in enumerate(normalized)
                        if h and alias in h and i not in claimed
                    ),
                    None,
                )
                if pos is not None:
                    mapping[field_name] = pos
                    claimed.add(pos)
                    break

        if all(f in mapping for f in self.required):
            return mapping
        return None


class _RegistryFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: int
    formats: list[FormatSpec]

    @model_validator(mode="after")
    def _unique_names(self) -> _RegistryFile:
        seen: set[str] = set()
        for spec in self.formats:
            if spec.name in seen:
                raise ValueError(f"duplicate format name: {spec.name!r}")
            seen.add(spec.name)
        if not self.formats:
            raise ValueError("registry declares no formats")
        return self


class FormatRegistry:
    """Ordered, immutable collection of :class:`FormatSpec` keyed by name."""

    def __init__(self, formats: Sequence[FormatSpec]) -> None:
        self._formats: tuple[FormatSpec, ...] = tuple(formats)
        self._by_name: Mapping[str, FormatSpec] = {f.name: f for f in self._formats}

    def __iter__(self) -> Iterator[FormatSpec]:
        return iter(self._formats)

    def __len__(self) -> int:
        return len(self._formats)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def get(self, name: str) -> FormatSpec | None:
        return self._by_name.get(name)

    def names(self) -> list[str]:
        return [f.name for f in self._formats]

    @classmethod
    def from_json(cls, text: str, *, origin: str = "<string>") -> FormatRegistry:
        try:
            parsed = _RegistryFile.model_validate_json(text)
        except ValidationError as exc:
            raise ConfigurationError(
                f"invalid format registry {origin}", {"errors": exc.errors(include_url=False)}
            ) from exc
        return cls(parsed.formats)


def load_format_registry(path: str | PathLike[str] | None = None) -> FormatRegistry:
    """Load a registry from ``path``, or the packaged default when ``None``."""

    if path is None:
        text = (
            resources.files(__package__)
            .joinpath("seeds", DEFAULT_REGISTRY_RESOURCE)
            .read_text(encoding="utf-8")
        )
        return FormatRegistry.from_json(text, origin=DEFAULT_REGISTRY_RESOURCE)

    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"cannot read format registry {p}: {exc}") from exc
    return FormatRegistry.from_json(text, origin=str(p))


__all__ = [
    "DEFAULT_REGISTRY_RESOURCE",
    "FormatRegistry",
    "FormatSpec",
    "KNOWN_FIELDS",
    "load_format_registry",
    "normalize_header",
]
