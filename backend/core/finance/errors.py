from __future__ import annotations

from typing import Any, Iterable


class InvoicingError(RuntimeError):
    """Base error of the invoicing domain.

    `kind` is the machine-readable identifier rendered at the API boundary and
    `http_status` the status the DRF exception handler maps it to.
    """

    kind = "invoicing_error"
    http_status = 400

    def __init__(self, message: str = "", **details: Any) -> None:
        super().__init__(message or self.__class__.__doc__ or self.kind)
        self.message = message or (self.__class__.__doc__ or self.kind).strip()
        self.details = {key: value for key, value in details.items() if value is not None}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"kind": self.kind, "detail": self.message}
        payload.update(self.details)
        return payload


class TenantContextMissing(InvoicingError):
    """Tenant context is required."""

    kind = "tenant_context_missing"


class InvoiceValidationError(InvoicingError):
    """Invoice input is invalid."""

    kind = "validation_error"

    def __init__(self, message: str = "", *, field: str | None = None, position: int | None = None):
        super().__init__(message, field=field, position=position)
        self.field = field
        self.position = position


class EmptyInvoice(InvoiceValidationError):
    """An invoice needs at least one line item."""

    kind = "empty_invoice"


class InvalidDiscount(InvoiceValidationError):
    """Global discount must be between zero and the invoice subtotal."""

    kind = "invalid_discount"


class InvoiceReferenceError(InvoicingError):
    """Referenced entity does not exist for this company."""

    kind = "reference_error"
    http_status = 404


class UnknownCustomer(InvoiceReferenceError):
    """Customer not found."""

    kind = "unknown_customer"


class UnknownProduct(InvoiceReferenceError):
    """Product not found."""

    kind = "unknown_product"


class UnknownTaxDefinition(InvoiceReferenceError):
    """Tax definition not found or inactive."""

    kind = "unknown_tax_definition"

    def __init__(self, message: str = "", *, tax_ids: Iterable[Any] | None = None):
        ids = sorted(str(tax_id) for tax_id in tax_ids) if tax_ids else None
        super().__init__(message, tax_ids=ids)
        self.tax_ids = ids or []


class InvoiceNotFound(InvoiceReferenceError):
    """Invoice not found."""

    kind = "invoice_not_found"


class InvalidStateTransition(InvoicingError):
    """Invoice state does not allow this operation."""

    kind = "invalid_state_transition"
    http_status = 409

    def __init__(self, from_state: str, to_state: str, message: str = ""):
        super().__init__(
            message or f"Invoice cannot move from '{from_state}' to '{to_state}'.",
            from_state=from_state,
            to_state=to_state,
        )
        self.from_state = from_state
        self.to_state = to_state


class AlreadyVoided(InvalidStateTransition):
    kind = "already_voided"

    def __init__(self, message: str = ""):
        super().__init__("void", "void", message or "Invoice is already void.")


class IssuanceInProgress(InvalidStateTransition):
    kind = "issuance_in_progress"

    def __init__(self, from_state: str = "draft", message: str = ""):
        super().__init__(
            from_state,
            "issued",
            message or "Another issuance of this invoice is in progress.",
        )


class IncompleteFiscalData(InvoicingError):
    """Invoice lacks data required by the fiscal document."""

    kind = "incomplete_fiscal_data"
    http_status = 422

    def __init__(self, problems: Iterable[str], message: str = ""):
        problems = list(problems)
        super().__init__(message or "; ".join(problems), problems=problems)
        self.problems = problems


class AuthorityNotConfigured(InvoicingError):
    """Company has no active tax authority configuration."""

    kind = "authority_not_configured"
    http_status = 409


class AuthoritySubmissionFailed(InvoicingError):
    """Submission to the tax authority failed.

    `transient` is true when retries were exhausted on technical failures and the
    same document may be submitted again later; false on a business rejection.
    """

    kind = "authority_submission_failed"

    def __init__(
        self,
        message: str = "",
        *,
        transient: bool,
        response_code: str | None = None,
        description: str | None = None,
        attempts: int | None = None,
    ):
        super().__init__(
            message or description or "Tax authority submission failed.",
            transient=transient,
            response_code=response_code,
            description=description,
            attempts=attempts,
        )
        self.transient = transient
        self.response_code = response_code
        self.description = description
        self.attempts = attempts
        self.http_status = 502 if transient else 422


class TotalsInvariantError(InvoicingError):
    """Stored totals disagree with their components."""

    kind = "invariant_violation"
    http_status = 500
