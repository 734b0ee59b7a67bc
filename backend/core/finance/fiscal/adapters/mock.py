from __future__ import annotations

import secrets
import string
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Mapping

from django.utils import timezone

from .base import ACCEPTED_CODE, AuthorityAdapterBase, AuthorityTechnicalError, AuthorityTimeoutError

_CODE_ALPHABET = string.ascii_uppercase + string.digits


class MockAuthorityAdapter(AuthorityAdapterBase):
    """Simulated tax authority for local development and tests.

    Behavior:
    - The first `fail_times` submissions raise a technical (or timeout) error.
    - Afterwards every submission answers with `response_code`; "200" authorizes
      and returns an authorization code, anything else is a rejection.
    - `check_status(...)` reports AUTHORIZED for codes this process handed out,
      up to the last `max_authorizations` of them.
    """

    max_authorizations = 1000

    # Shared by every instance: the factory builds a new adapter per call.
    _authorizations: OrderedDict[str, dict[str, Any]] = OrderedDict()
    _authorizations_lock = threading.Lock()

    def __init__(
        self,
        *,
        response_code: str = ACCEPTED_CODE,
        description: str | None = None,
        fail_times: int = 0,
        timeout_failures: bool = False,
        omit_authorization_code: bool = False,
        environment: str = "test",
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__()
        self.response_code = str(response_code)
        self.description = description
        self.fail_times = fail_times
        self.timeout_failures = timeout_failures
        self.omit_authorization_code = omit_authorization_code
        self.environment = environment
        self.clock = clock
        self.submissions: list[dict[str, Any]] = []

    def _authorization_code(self) -> str:
        suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(9))
        return f"A{int(self.clock() * 1000)}{suffix}"

    def submit_document(
        self,
        payload: bytes,
        *,
        content_hash: str,
        signature: str,
        algorithm: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> Mapping[str, Any]:
        self.submissions.append(
            {
                "payload": payload,
                "content_hash": content_hash,
                "signature": signature,
                "algorithm": algorithm,
                "metadata": dict(metadata or {}),
            }
        )
        if len(self.submissions) <= self.fail_times:
            if self.timeout_failures:
                raise AuthorityTimeoutError("Simulated authority timeout.")
            raise AuthorityTechnicalError("Simulated authority outage.")

        if self.response_code != ACCEPTED_CODE:
            return {
                "response_code": self.response_code,
                "description": self.description or "Document rejected",
                "authorization_code": None,
                "authorized_at": None,
                "environment": self.environment,
            }

        authorization_code = None if self.omit_authorization_code else self._authorization_code()
        response = {
            "response_code": ACCEPTED_CODE,
            "description": self.description or "Transaction processed successfully",
            "authorization_code": authorization_code,
            "authorized_at": timezone.now().isoformat(),
            "control_number": f"NC{int(self.clock() * 1000)}",
            "environment": self.environment,
        }
        if authorization_code:
            self._remember(authorization_code, {"status": "AUTHORIZED", "content_hash": content_hash})
        return response

    def _remember(self, authorization_code: str, record: dict[str, Any]) -> None:
        with self._authorizations_lock:
            self._authorizations[authorization_code] = record
            while len(self._authorizations) > self.max_authorizations:
                self._authorizations.popitem(last=False)

    def check_status(self, authorization_code: str) -> Mapping[str, Any]:
        with self._authorizations_lock:
            known = self._authorizations.get(authorization_code)
        if known is None:
            return {
                "response_code": "404",
                "description": "Authorization code not found",
                "status": "UNKNOWN",
                "checked_at": timezone.now().isoformat(),
            }
        return {
            "response_code": ACCEPTED_CODE,
            "description": "Document authorized",
            "status": known["status"],
            "checked_at": timezone.now().isoformat(),
        }
