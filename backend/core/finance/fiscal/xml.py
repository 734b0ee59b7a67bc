"""Deterministic XML encoding of `FiscalDocument`.

Elements follow dataclass field order. Sequences wrap one ``<item>`` per entry.
`None` is written as an empty element carrying ``nil="true"`` so it survives the
round trip distinct from an empty string.
"""

from __future__ import annotations

import dataclasses
import xml.etree.ElementTree as ET

from finance.fiscal.document import (
    SCHEMA_VERSION,
    FiscalDocument,
    convert_scalar,
    field_hints,
    sequence_item_type,
)

ROOT_TAG = "DTE"
ITEM_TAG = "item"
NIL_ATTRIBUTE = "nil"


class FiscalXMLError(ValueError):
    """Raised when a fiscal XML payload cannot be parsed back into a document."""


def _scalar_text(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _append_value(parent: ET.Element, tag: str, value) -> None:
    element = ET.SubElement(parent, tag)
    if value is None:
        element.set(NIL_ATTRIBUTE, "true")
    elif dataclasses.is_dataclass(value):
        _append_fields(element, value)
    elif isinstance(value, (tuple, list)):
        for item in value:
            _append_value(element, ITEM_TAG, item)
    else:
        element.text = _scalar_text(value)


def _append_fields(parent: ET.Element, instance) -> None:
    for field in dataclasses.fields(instance):
        _append_value(parent, field.name, getattr(instance, field.name))


def serialize_document(document: FiscalDocument) -> bytes:
    root = ET.Element(ROOT_TAG, {"schemaVersion": str(SCHEMA_VERSION)})
    _append_fields(root, document)
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def _read_value(element: ET.Element, hint, optional: bool):
    if element.get(NIL_ATTRIBUTE) == "true":
        if not optional:
            raise FiscalXMLError(f"<{element.tag}> is nil but required.")
        return None

    item_type = sequence_item_type(hint)
    if item_type is not None:
        return tuple(_read_value(child, item_type, False) for child in element.findall(ITEM_TAG))
    if dataclasses.is_dataclass(hint):
        return _read_fields(element, hint)
    return convert_scalar(hint, element.text or "")


def _read_fields(element: ET.Element, cls):
    values = {}
    for name, hint, optional in field_hints(cls):
        child = element.find(name)
        if child is None:
            raise FiscalXMLError(f"<{element.tag}> is missing <{name}>.")
        values[name] = _read_value(child, hint, optional)
    return cls(**values)


def parse_document(payload: bytes | str) -> FiscalDocument:
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    try:
        root = ET.fromstring(payload)
    except ET.ParseError as exc:
        raise FiscalXMLError(f"Malformed fiscal XML: {exc}") from exc
    if root.tag != ROOT_TAG:
        raise FiscalXMLError(f"Unexpected root element <{root.tag}>.")
    try:
        return _read_fields(root, FiscalDocument)
    except (ArithmeticError, TypeError, ValueError) as exc:
        if isinstance(exc, FiscalXMLError):
            raise
        raise FiscalXMLError(f"Invalid fiscal XML value: {exc}") from exc
