from __future__ import annotations

import logging
import re
from typing import Any


# NIT: 0614-010190-102-3 or its 14 bare digits.
_NIT_RE = re.compile(r"(?<!\d)(?:\d{14}|\d{4}-\d{6}-\d{3}-\d)(?!\d)")
# DUI: 01234567-8 or its 9 bare digits.
_DUI_RE = re.compile(r"(?<!\d)(?:\d{9}|\d{8}-\d)(?!\d)")


def mask_tax_ids(text: str) -> str:
    """Mask NIT/DUI patterns in a string.

    No digits are kept, partial masks still identify a taxpayer.
    """

    if not text:
        return text

    text = _NIT_RE.sub("***NIT***", text)
    text = _DUI_RE.sub("***DUI***", text)
    return text


class MaskTaxIdFilter(logging.Filter):
    """Logging filter to mask NIT/DUI in log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except Exception:  # pragma: no cover
            message = str(getattr(record, "msg", ""))

        masked = mask_tax_ids(str(message))

        # Replace the formatted message and clear args to avoid double formatting.
        record.msg = masked
        record.args = ()

        for key in ("nit", "dui", "tax_id"):
            if hasattr(record, key):
                value: Any = getattr(record, key)
                if isinstance(value, str):
                    setattr(record, key, mask_tax_ids(value))

        return True
