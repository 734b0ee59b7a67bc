from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping

ACCEPTED_CODE = "200"


class AuthorityAdapterError(RuntimeError):
    """Base exception for tax authority adapter failures."""

    retryable: bool = True


class AuthorityTechnicalError(AuthorityAdapterError):
    """Technical failure talking to the authority (network, outages, 5xx)."""

    retryable = True


class AuthorityTimeoutError(AuthorityTechnicalError):
    """Authority request timed out."""

    retryable = True


class AuthorityRejectionError(AuthorityAdapterError):
    """Request refused by the authority without a usable response (not retryable)."""

    retryable = False

    def __init__(self, message: str, *, code: str | None = None, details: Mapping[str, Any] | None = None):
        super().__init__(message)
        self.code = code
        self.details = dict(details) if details else {}


class AuthorityAdapterBase(ABC):
    """Transport to a tax authority.

    Adapters only talk to the authority. Signing, retries, persistence and
    state transitions belong to the gateway and the invoice services.

    Responses are mappings with at least `response_code` and `description`;
    accepted submissions also carry `authorization_code` and `authorized_at`.
    """

    def __init__(self, *, timeout_seconds: float | None = None) -> None:
        self.timeout_seconds = timeout_seconds

    @abstractmethod
    def submit_document(
        self,
        payload: bytes,
        *,
        content_hash: str,
        signature: str,
        algorithm: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> Mapping[str, Any]:
        """Send signed XML bytes and return the authority's answer."""

    @abstractmethod
    def check_status(self, authorization_code: str) -> Mapping[str, Any]:
        """Query the authority for the current status of an authorization."""
