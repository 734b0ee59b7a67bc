"""Structured fiscal document (DTE) submitted to the tax authority.

The dataclasses are frozen and their field order is the serialization order,
so the same invoice always produces the same JSON and XML.
"""

from __future__ import annotations

import dataclasses
import types
import typing
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

SCHEMA_VERSION = 1

DOCUMENT_TYPE_CODES = {
    "invoice": "01",
    "tax_credit_note": "03",
    "credit_note": "05",
    "debit_note": "06",
}

PAYMENT_CONDITION_CASH = "1"
PAYMENT_CONDITION_CREDIT = "2"

PAYMENT_METHOD_CODES = {
    "cash": "01",
    "card": "03",
    "check": "04",
    "transfer": "05",
    "credit": "99",
}


@dataclass(frozen=True)
class DocumentIdentification:
    version: int
    environment: str
    document_type: str
    generation_code: str
    control_number: str
    series: str
    issue_date: str
    issue_time: str
    currency: str
    model_type: int = 1
    operation_type: int = 1


@dataclass(frozen=True)
class Address:
    department: str
    municipality: str
    complement: str


@dataclass(frozen=True)
class Issuer:
    nit: str
    nrc: str
    name: str
    trade_name: str
    activity_code: str
    activity_description: str
    establishment_code: str
    address: Address
    phone: str
    email: str
    establishment_type: str = "01"


@dataclass(frozen=True)
class Recipient:
    document_type: str
    document_number: str
    nit: Optional[str]
    dui: Optional[str]
    name: str
    address: Address
    phone: str
    email: str
    tax_exempt: bool


@dataclass(frozen=True)
class ItemTax:
    code: str
    name: str
    percentage: Decimal
    base: Decimal
    amount: Decimal


@dataclass(frozen=True)
class Item:
    number: int
    code: str
    description: str
    quantity: Decimal
    unit_of_measure: str
    unit_price: Decimal
    discount: Decimal
    non_subject_amount: Decimal
    exempt_amount: Decimal
    taxable_amount: Decimal
    tax_total: Decimal
    line_total: Decimal
    taxes: tuple[ItemTax, ...]
    note: str = ""


@dataclass(frozen=True)
class TaxBreakdown:
    code: str
    name: str
    amount: Decimal


@dataclass(frozen=True)
class Summary:
    total_non_subject: Decimal
    total_exempt: Decimal
    total_taxable: Decimal
    subtotal: Decimal
    global_discount: Decimal
    discount_percentage: Decimal
    total_taxes: Decimal
    grand_total: Decimal
    amount_in_words: str
    tax_breakdown: tuple[TaxBreakdown, ...]
    payment_condition: str
    payment_method: str
    payment_code: str
    payment_term_days: Optional[int]


@dataclass(frozen=True)
class Extension:
    delivered_by_name: str
    delivered_by_document: str
    received_by_name: str
    received_by_document: str
    notes: str
    vehicle_plate: Optional[str] = None


@dataclass(frozen=True)
class FiscalDocument:
    identification: DocumentIdentification
    issuer: Issuer
    recipient: Recipient
    items: tuple[Item, ...]
    summary: Summary
    extension: Extension

    def to_dict(self) -> dict[str, Any]:
        return to_primitive(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FiscalDocument":
        return from_primitive(cls, data)


def _unwrap_optional(hint):
    origin = typing.get_origin(hint)
    if origin in (typing.Union, types.UnionType):
        args = [arg for arg in typing.get_args(hint) if arg is not type(None)]
        if len(args) == 1:
            return args[0], True
    return hint, False


def field_hints(cls) -> list[tuple[str, Any, bool]]:
    """(name, concrete type, optional) for every dataclass field, in order."""

    hints = typing.get_type_hints(cls)
    resolved = []
    for field in dataclasses.fields(cls):
        hint, optional = _unwrap_optional(hints[field.name])
        resolved.append((field.name, hint, optional))
    return resolved


def sequence_item_type(hint):
    if typing.get_origin(hint) in (tuple, list):
        return typing.get_args(hint)[0]
    return None


def to_primitive(value):
    """JSON-safe structure: Decimals become strings, tuples become lists."""

    if dataclasses.is_dataclass(value):
        return {field.name: to_primitive(getattr(value, field.name)) for field in dataclasses.fields(value)}
    if isinstance(value, (tuple, list)):
        return [to_primitive(item) for item in value]
    if isinstance(value, Decimal):
        return str(value)
    return value


def convert_scalar(hint, raw):
    if raw is None:
        return None
    if hint is Decimal:
        return Decimal(str(raw))
    if hint is bool:
        if isinstance(raw, str):
            return raw.strip().lower() == "true"
        return bool(raw)
    if hint is int:
        return int(raw)
    if hint is str:
        return str(raw)
    raise TypeError(f"Unsupported fiscal document field type: {hint!r}")


def from_primitive(cls, data):
    values = {}
    for name, hint, optional in field_hints(cls):
        raw = data.get(name)
        if raw is None:
            if not optional:
                raise ValueError(f"{cls.__name__}.{name} is required.")
            values[name] = None
            continue

        item_type = sequence_item_type(hint)
        if item_type is not None:
            values[name] = tuple(
                from_primitive(item_type, item) if dataclasses.is_dataclass(item_type) else convert_scalar(item_type, item)
                for item in raw
            )
        elif dataclasses.is_dataclass(hint):
            values[name] = from_primitive(hint, raw)
        else:
            values[name] = convert_scalar(hint, raw)
    return cls(**values)
