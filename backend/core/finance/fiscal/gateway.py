from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from typing import Any, Callable, Mapping, Optional

from django.conf import settings
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from finance.errors import AuthoritySubmissionFailed
from finance.fiscal.adapters.base import ACCEPTED_CODE, AuthorityAdapterBase, AuthorityAdapterError
from finance.fiscal.document import FiscalDocument
from finance.fiscal.signing import Signer, get_signer
from finance.fiscal.xml import serialize_document
from tenancy.logging import mask_tax_ids

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 60.0


@dataclass(frozen=True)
class AuthorizationResult:
    response_code: str
    description: str
    authorization_code: Optional[str]
    authorized_at: Optional[datetime]
    signed_payload: bytes
    content_hash: str
    signature: str
    algorithm: str
    raw_response: dict[str, Any] = field(default_factory=dict)
    attempts: int = 1

    @property
    def accepted(self) -> bool:
        return self.response_code == ACCEPTED_CODE and bool(self.authorization_code)

    def to_dict(self) -> dict[str, Any]:
        return {
            "response_code": self.response_code,
            "description": self.description,
            "authorization_code": self.authorization_code,
            "authorized_at": self.authorized_at.isoformat() if self.authorized_at else None,
            "content_hash": self.content_hash,
            "signature": self.signature,
            "algorithm": self.algorithm,
            "attempts": self.attempts,
        }


def _parse_timestamp(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = parse_datetime(str(value))
        if parsed is None:
            return None
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, dt_timezone.utc)
    return parsed


class AuthorityGateway:
    """Signs, submits and interprets fiscal documents.

    Technical adapter failures are retried with exponential backoff up to
    `max_attempts`. The gateway never touches invoices: callers decide what a
    result or an `AuthoritySubmissionFailed` means for their state.
    """

    def __init__(
        self,
        adapter: AuthorityAdapterBase,
        signer: Signer,
        *,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.adapter = adapter
        self.signer = signer
        self.max_attempts = max(int(max_attempts), 1)
        self.backoff_seconds = max(float(backoff_seconds), 0.0)
        self.sleep = sleep

    @classmethod
    def from_settings(cls, adapter: AuthorityAdapterBase, signer: Signer | None = None, **kwargs) -> "AuthorityGateway":
        kwargs.setdefault("max_attempts", getattr(settings, "FISCAL_SUBMISSION_MAX_ATTEMPTS", 3))
        kwargs.setdefault("backoff_seconds", getattr(settings, "FISCAL_SUBMISSION_BACKOFF_SECONDS", 1.0))
        return cls(adapter, signer or get_signer(), **kwargs)

    def backoff_for(self, attempt: int) -> float:
        attempt = max(int(attempt), 1)
        return min(self.backoff_seconds * (2 ** (attempt - 1)), MAX_BACKOFF_SECONDS)

    def submit(self, document: FiscalDocument, *, metadata: Mapping[str, Any] | None = None) -> AuthorizationResult:
        payload = serialize_document(document)
        signed = self.signer.sign(payload)
        generation_code = document.identification.generation_code

        attempts = 0
        last_error: AuthorityAdapterError | None = None
        while attempts < self.max_attempts:
            attempts += 1
            try:
                response = self.adapter.submit_document(
                    payload,
                    content_hash=signed.content_hash,
                    signature=signed.signature,
                    algorithm=signed.algorithm,
                    metadata=metadata,
                )
            except AuthorityAdapterError as exc:
                if not exc.retryable:
                    logger.warning(
                        "fiscal.authority.refused document=%s attempt=%s error=%s",
                        generation_code,
                        attempts,
                        mask_tax_ids(str(exc)),
                    )
                    raise AuthoritySubmissionFailed(
                        str(exc),
                        transient=False,
                        response_code=getattr(exc, "code", None),
                        attempts=attempts,
                    ) from exc

                last_error = exc
                logger.warning(
                    "fiscal.authority.technical_error document=%s attempt=%s max_attempts=%s error=%s",
                    generation_code,
                    attempts,
                    self.max_attempts,
                    exc.__class__.__name__,
                )
                if attempts < self.max_attempts:
                    self.sleep(self.backoff_for(attempts))
                continue

            return self._interpret(response, payload=payload, signed=signed, attempts=attempts)

        logger.error(
            "fiscal.authority.exhausted document=%s attempts=%s",
            generation_code,
            attempts,
        )
        raise AuthoritySubmissionFailed(
            "Tax authority unavailable after retries.",
            transient=True,
            attempts=attempts,
        ) from last_error

    def _interpret(self, response: Mapping[str, Any], *, payload: bytes, signed, attempts: int) -> AuthorizationResult:
        raw = dict(response or {})
        code = str(raw.get("response_code") or "").strip()
        description = str(raw.get("description") or "").strip()
        authorization_code = (str(raw.get("authorization_code") or "").strip()) or None

        if not code:
            raise AuthoritySubmissionFailed(
                "Tax authority response has no response code.",
                transient=False,
                attempts=attempts,
            )
        if code != ACCEPTED_CODE:
            logger.info(
                "fiscal.authority.rejected response_code=%s attempts=%s",
                code,
                attempts,
            )
            raise AuthoritySubmissionFailed(
                description or f"Tax authority rejected the document ({code}).",
                transient=False,
                response_code=code,
                description=description,
                attempts=attempts,
            )
        if authorization_code is None:
            logger.error("fiscal.authority.accepted_without_code attempts=%s", attempts)
            raise AuthoritySubmissionFailed(
                "Tax authority accepted the document without an authorization code.",
                transient=False,
                response_code=code,
                description=description,
                attempts=attempts,
            )

        return AuthorizationResult(
            response_code=code,
            description=description,
            authorization_code=authorization_code,
            authorized_at=_parse_timestamp(raw.get("authorized_at")) or timezone.now(),
            signed_payload=payload,
            content_hash=signed.content_hash,
            signature=signed.signature,
            algorithm=signed.algorithm,
            raw_response=raw,
            attempts=attempts,
        )

    def query_status(self, authorization_code: str) -> dict[str, Any]:
        try:
            response = self.adapter.check_status(authorization_code)
        except AuthorityAdapterError as exc:
            raise AuthoritySubmissionFailed(
                str(exc),
                transient=exc.retryable,
                response_code=getattr(exc, "code", None),
            ) from exc
        return dict(response or {})
