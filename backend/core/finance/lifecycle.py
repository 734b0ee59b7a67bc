"""Invoice lifecycle.

- draft   -> issued                 (fiscal document authorized)
- issued  -> paid | void | expired  (payments, cancellation, due date passed)
- paid, void, expired               (terminal)

No transition re-enters draft.
"""

from __future__ import annotations

from django.db import models

from finance.errors import AlreadyVoided, InvalidStateTransition


class InvoiceStatus(models.TextChoices):
    DRAFT = "draft", "Draft"
    ISSUED = "issued", "Issued"
    PAID = "paid", "Paid"
    VOID = "void", "Void"
    EXPIRED = "expired", "Expired"


VALID_TRANSITIONS: dict[str, frozenset[str]] = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.ISSUED}),
    InvoiceStatus.ISSUED: frozenset(
        {InvoiceStatus.PAID, InvoiceStatus.VOID, InvoiceStatus.EXPIRED}
    ),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.VOID: frozenset(),
    InvoiceStatus.EXPIRED: frozenset(),
}

TERMINAL_STATES = frozenset(
    state for state, targets in VALID_TRANSITIONS.items() if not targets
)


def is_valid_transition(from_state: str, to_state: str) -> bool:
    return to_state in VALID_TRANSITIONS.get(from_state, frozenset())


def allowed_transitions(from_state: str) -> frozenset[str]:
    return VALID_TRANSITIONS.get(from_state, frozenset())


def validate_transition(from_state: str, to_state: str) -> None:
    if from_state == InvoiceStatus.VOID and to_state == InvoiceStatus.VOID:
        raise AlreadyVoided()
    if not is_valid_transition(from_state, to_state):
        raise InvalidStateTransition(str(from_state), str(to_state))
