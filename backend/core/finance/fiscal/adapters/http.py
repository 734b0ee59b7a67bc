from __future__ import annotations

import base64
import json
import socket
from typing import Any, Mapping
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from .base import (
    AuthorityAdapterBase,
    AuthorityRejectionError,
    AuthorityTechnicalError,
    AuthorityTimeoutError,
)


class HttpAuthorityAdapter(AuthorityAdapterBase):
    """JSON-over-HTTPS transport with a bearer token.

    5xx, network errors and timeouts are technical (retryable). A 4xx answer
    with a `response_code` body is returned as a regular authority response;
    any other 4xx is a rejection.
    """

    def __init__(
        self,
        *,
        base_url: str,
        token: str = "",
        environment: str = "test",
        timeout_seconds: float | None = 15.0,
    ) -> None:
        super().__init__(timeout_seconds=timeout_seconds)
        if not base_url:
            raise ValueError("base_url is required for the HTTP authority adapter.")
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.environment = environment

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, body: Mapping[str, Any] | None = None) -> Mapping[str, Any]:
        data = json.dumps(body).encode("utf-8") if body is not None else None
        request = Request(
            f"{self.base_url}{path}",
            data=data,
            headers=self._headers(),
            method=method,
        )
        try:
            with urlopen(request, timeout=self.timeout_seconds) as response:  # nosec B310
                return self._decode(response.read())
        except HTTPError as exc:
            if exc.code >= 500:
                raise AuthorityTechnicalError(f"Authority returned HTTP {exc.code}.") from exc
            try:
                payload = self._decode(exc.read())
            except AuthorityTechnicalError:
                payload = {}
            if payload.get("response_code"):
                return payload
            raise AuthorityRejectionError(
                f"Authority refused the request with HTTP {exc.code}.",
                code=str(exc.code),
                details=payload,
            ) from exc
        except (socket.timeout, TimeoutError) as exc:
            raise AuthorityTimeoutError("Authority request timed out.") from exc
        except (URLError, OSError) as exc:
            raise AuthorityTechnicalError("Failed to reach the authority.") from exc

    @staticmethod
    def _decode(raw: bytes) -> dict[str, Any]:
        try:
            payload = json.loads(raw.decode("utf-8") or "{}")
        except (UnicodeDecodeError, ValueError) as exc:
            raise AuthorityTechnicalError("Authority returned a non-JSON body.") from exc
        if not isinstance(payload, dict):
            raise AuthorityTechnicalError("Authority returned an unexpected body.")
        if "response_code" in payload and payload["response_code"] is not None:
            payload["response_code"] = str(payload["response_code"])
        return payload

    def submit_document(
        self,
        payload: bytes,
        *,
        content_hash: str,
        signature: str,
        algorithm: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> Mapping[str, Any]:
        return self._request(
            "POST",
            "/documents",
            {
                "environment": self.environment,
                "content_hash": content_hash,
                "signature": signature,
                "algorithm": algorithm,
                "document": base64.b64encode(payload).decode("ascii"),
                "metadata": dict(metadata or {}),
            },
        )

    def check_status(self, authorization_code: str) -> Mapping[str, Any]:
        return self._request("GET", f"/documents/{quote(authorization_code, safe='')}/status")
