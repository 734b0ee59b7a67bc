from __future__ import annotations

import logging
import traceback

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from finance.errors import InvoicingError
from tenancy.logging import mask_tax_ids

logger = logging.getLogger(__name__)


def _request_meta(context) -> tuple[str, str]:
    request = (context or {}).get("request")
    if request is None:
        return "", ""
    return request.method, request.path


def invoicing_exception_handler(exc, context):
    """Render domain errors as `{"kind", "detail", ...}` with their HTTP status.

    Everything else falls through to DRF's default handler.
    """

    if isinstance(exc, InvoicingError):
        method, path = _request_meta(context)
        log = logger.error if exc.http_status >= 500 else logger.info
        log(
            "finance.api.error kind=%s status=%s method=%s path=%s detail=%s",
            exc.kind,
            exc.http_status,
            method,
            path,
            mask_tax_ids(exc.message),
        )
        payload = exc.to_dict()
        payload["detail"] = mask_tax_ids(payload["detail"])
        if settings.DEBUG:
            payload["traceback"] = traceback.format_exception(exc)
        return Response(payload, status=exc.http_status)

    if isinstance(exc, DjangoValidationError):
        messages = exc.messages if hasattr(exc, "messages") else [str(exc)]
        return Response(
            {"kind": "validation_error", "detail": "; ".join(messages)},
            status=status.HTTP_400_BAD_REQUEST,
        )

    return exception_handler(exc, context)
