from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Iterable, Mapping, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import Q, Sum
from django.utils import timezone

from finance.calculator import (
    InvoiceTotals,
    LineInput,
    LineResult,
    aggregate_lines,
    assert_invoice_totals,
    calculate_invoice,
)
from finance.errors import (
    IncompleteFiscalData,
    InvalidStateTransition,
    InvoiceNotFound,
    InvoiceValidationError,
    IssuanceInProgress,
    TenantContextMissing,
    TotalsInvariantError,
    UnknownCustomer,
    UnknownProduct,
)
from finance.fiscal.adapters import get_authority_adapter
from finance.fiscal.builder import build_fiscal_document
from finance.fiscal.gateway import AuthorityGateway, AuthorizationResult
from finance.lifecycle import InvoiceStatus, validate_transition
from finance.models import (
    Client,
    Invoice,
    InvoiceLine,
    InvoicePayment,
    InvoiceSequence,
    Product,
    TaxAssessment,
)
from finance.money import ZERO, subtract, to_decimal, to_money
from finance.taxes import TaxAssessmentResult, default_tax_rates, resolve_tax_rates
from ledger.models import LedgerEntry
from ledger.services import append_ledger_entry
from tenancy.context import get_current_company
from tenancy.logging import mask_tax_ids

logger = logging.getLogger(__name__)

DEFAULT_CREDIT_DAYS = 30


def _require_company(company=None):
    company = company or get_current_company()
    if company is None:
        raise TenantContextMissing(
            "Tenant context is required. Call within a tenant-scoped request."
        )
    return company


def invoice_snapshot(invoice: Invoice) -> dict[str, Any]:
    return {
        "id": invoice.pk,
        "number": invoice.number,
        "status": invoice.status,
        "customer_id": invoice.customer_id,
        "subtotal": str(invoice.subtotal),
        "total_taxes": str(invoice.total_taxes),
        "global_discount": str(invoice.global_discount),
        "grand_total": str(invoice.grand_total),
        "due_date": invoice.due_date.isoformat() if invoice.due_date else None,
        "authorization_code": invoice.authorization_code or None,
    }


def _resolve_customer(company, customer) -> Client:
    if isinstance(customer, Client):
        customer_id = customer.pk
    else:
        customer_id = customer
    try:
        return Client.all_objects.get(pk=int(customer_id), company=company, active=True)
    except (Client.DoesNotExist, TypeError, ValueError) as exc:
        raise UnknownCustomer(f"Customer {customer_id} not found.") from exc


def _resolve_products(company, raw_lines: list[Mapping[str, Any]]) -> dict[int, Product]:
    product_ids = set()
    for raw in raw_lines:
        product_id = raw.get("product_id", raw.get("product"))
        if isinstance(product_id, Product):
            product_id = product_id.pk
        if product_id in (None, ""):
            continue
        try:
            product_ids.add(int(product_id))
        except (TypeError, ValueError) as exc:
            raise UnknownProduct(f"Product {product_id} not found.") from exc

    products = {
        product.id: product
        for product in Product.all_objects.filter(company=company, active=True, id__in=product_ids)
    }
    missing = sorted(product_ids - set(products))
    if missing:
        raise UnknownProduct(
            f"Products not found: {', '.join(str(product_id) for product_id in missing)}.",
            product_ids=missing,
        )
    return products


def _line_product(raw: Mapping[str, Any], products: dict[int, Product]) -> Optional[Product]:
    product_id = raw.get("product_id", raw.get("product"))
    if isinstance(product_id, Product):
        product_id = product_id.pk
    if product_id in (None, ""):
        return None
    return products[int(product_id)]


def build_line_inputs(company, customer: Client, lines: Iterable[Mapping[str, Any]]) -> list[LineInput]:
    """Resolve products and taxes of raw line payloads.

    A line without a `taxes` key gets the company's default taxes, unless the
    customer or the product is tax exempt. An explicit list (even empty) is
    applied as given.
    """

    raw_lines = list(lines or [])
    products = _resolve_products(company, raw_lines)
    defaults = None
    inputs = []

    for position, raw in enumerate(raw_lines, start=1):
        product = _line_product(raw, products)

        unit_price = raw.get("unit_price")
        if unit_price in (None, ""):
            if product is None:
                raise InvoiceValidationError(
                    "unit_price is required when no product is given.",
                    field="unit_price",
                    position=position,
                )
            unit_price = product.sale_price

        tax_ids = raw.get("taxes", raw.get("tax_ids"))
        if tax_ids is None:
            exempt = customer.tax_exempt or (product is not None and product.tax_exempt)
            if exempt:
                rates = []
            else:
                if defaults is None:
                    defaults = default_tax_rates(company)
                rates = defaults
        else:
            rates = resolve_tax_rates(company, tax_ids)

        description = (raw.get("description") or "").strip()
        if not description and product is not None:
            description = product.name

        inputs.append(
            LineInput(
                quantity=raw.get("quantity"),
                unit_price=unit_price,
                discount=raw.get("discount") if raw.get("discount") not in (None, "") else ZERO,
                taxes=tuple(rates),
                description=description,
                product_id=product.pk if product else None,
                product_code=product.code if product else "",
                unit_of_measure=product.unit_of_measure if product else "UNI",
                note=(raw.get("note") or "").strip(),
            )
        )
    return inputs


def _allocate_number(company) -> str:
    sequence, _created = InvoiceSequence.all_objects.select_for_update().get_or_create(company=company)
    sequence.last_number += 1
    sequence.save(update_fields=["last_number", "updated_at"])
    prefix = getattr(settings, "INVOICE_NUMBER_PREFIX", "FAC")
    return f"{prefix}{sequence.last_number:08d}"


def _persist_lines(invoice: Invoice, totals: InvoiceTotals) -> None:
    for line in totals.lines:
        stored = InvoiceLine.all_objects.create(
            company=invoice.company,
            invoice=invoice,
            position=line.position,
            product_id=line.product_id,
            product_code=line.product_code,
            unit_of_measure=line.unit_of_measure or "UNI",
            description=line.description,
            quantity=line.quantity,
            unit_price=line.unit_price,
            discount=line.discount,
            subtotal=line.subtotal,
            tax_total=line.tax_total,
            line_total=line.line_total,
            note=line.note,
        )
        TaxAssessment.all_objects.bulk_create(
            [
                TaxAssessment(
                    company=invoice.company,
                    line=stored,
                    tax_definition_id=assessment.tax_definition_id,
                    tax_code=assessment.code,
                    tax_name=assessment.name,
                    base=assessment.base,
                    percentage=assessment.percentage,
                    amount=assessment.amount,
                )
                for assessment in line.assessments
            ]
        )


def _default_due_date(issue_date: date, payment_method: str, customer: Client) -> Optional[date]:
    if payment_method != Invoice.PaymentMethod.CREDIT:
        return None
    return issue_date + timedelta(days=customer.credit_days or DEFAULT_CREDIT_DAYS)


def create_invoice(
    company,
    customer,
    lines: Iterable[Mapping[str, Any]],
    global_discount=ZERO,
    *,
    series: str = "A",
    document_type: str = Invoice.DocumentType.INVOICE,
    issue_date: Optional[date] = None,
    due_date: Optional[date] = None,
    payment_method: str = Invoice.PaymentMethod.CASH,
    notes: str = "",
    actor=None,
    request=None,
) -> Invoice:
    """Compute and persist a draft invoice with its lines and tax assessments.

    Totals are computed before anything is written. The number allocation, the
    invoice, its lines, their assessments and the ledger entry share one
    transaction.
    """

    company = _require_company(company)
    customer = _resolve_customer(company, customer)
    line_inputs = build_line_inputs(company, customer, lines)
    totals = calculate_invoice(line_inputs, global_discount)
    assert_invoice_totals(totals)

    issue_date = issue_date or timezone.localdate()
    if due_date is None:
        due_date = _default_due_date(issue_date, payment_method, customer)
    if due_date is not None and due_date < issue_date:
        raise InvoiceValidationError("due_date cannot be before issue_date.", field="due_date")

    with transaction.atomic():
        invoice = Invoice(
            company=company,
            number=_allocate_number(company),
            series=series or "",
            document_type=document_type,
            issue_date=issue_date,
            due_date=due_date,
            status=InvoiceStatus.DRAFT,
            subtotal=totals.subtotal,
            total_taxes=totals.total_taxes,
            global_discount=totals.global_discount,
            grand_total=totals.grand_total,
            payment_method=payment_method,
            notes=notes or "",
            customer=customer,
            issued_by=actor if getattr(actor, "is_authenticated", False) else None,
        )
        invoice.save(force_insert=True)
        _persist_lines(invoice, totals)

        append_ledger_entry(
            company=company,
            actor=actor,
            action=LedgerEntry.ACTION_CREATE,
            resource_label=Invoice._meta.label,
            resource_pk=invoice.pk,
            request=request,
            event_type="finance.invoice.created",
            data_after=invoice_snapshot(invoice),
            metadata={"lines": len(totals.lines)},
        )

    logger.info(
        "finance.invoice.created company_id=%s invoice_id=%s number=%s lines=%s grand_total=%s",
        company.id,
        invoice.pk,
        invoice.number,
        len(totals.lines),
        invoice.grand_total,
    )
    return invoice


def _lock_invoice(company, invoice_id) -> Invoice:
    try:
        return Invoice.all_objects.select_for_update().get(pk=int(invoice_id), company=company)
    except (Invoice.DoesNotExist, TypeError, ValueError) as exc:
        raise InvoiceNotFound(f"Invoice {invoice_id} not found.") from exc


def get_invoice(invoice_id, *, company=None) -> Invoice:
    company = _require_company(company)
    try:
        return (
            Invoice.all_objects.select_related("company", "customer")
            .prefetch_related("lines__tax_assessments", "payments")
            .get(pk=int(invoice_id), company=company)
        )
    except (Invoice.DoesNotExist, TypeError, ValueError) as exc:
        raise InvoiceNotFound(f"Invoice {invoice_id} not found.") from exc


def _stored_line_results(invoice: Invoice) -> list[LineResult]:
    results = []
    for line in invoice.lines.all().prefetch_related("tax_assessments").order_by("position"):
        results.append(
            LineResult(
                position=line.position,
                quantity=to_decimal(line.quantity),
                unit_price=to_money(line.unit_price),
                discount=to_money(line.discount),
                subtotal=to_money(line.subtotal),
                tax_total=to_money(line.tax_total),
                line_total=to_money(line.line_total),
                assessments=tuple(
                    TaxAssessmentResult(
                        tax_definition_id=assessment.tax_definition_id,
                        code=assessment.tax_code,
                        name=assessment.tax_name,
                        base=to_money(assessment.base),
                        percentage=to_money(assessment.percentage),
                        amount=to_money(assessment.amount),
                    )
                    for assessment in line.tax_assessments.all()
                ),
                description=line.description,
                product_id=line.product_id,
                product_code=line.product_code,
                unit_of_measure=line.unit_of_measure,
                note=line.note,
            )
        )
    return results


def verify_stored_totals(invoice: Invoice) -> InvoiceTotals:
    """Re-aggregate persisted lines and compare them with the invoice header."""

    totals = aggregate_lines(_stored_line_results(invoice), invoice.global_discount)
    assert_invoice_totals(totals)
    mismatched = [
        name
        for name in ("subtotal", "total_taxes", "grand_total")
        if to_money(getattr(invoice, name)) != getattr(totals, name)
    ]
    if mismatched:
        logger.error(
            "finance.invoice.invariant_violation company_id=%s invoice_id=%s fields=%s",
            invoice.company_id,
            invoice.pk,
            ",".join(mismatched),
        )
        raise TotalsInvariantError(
            "Stored invoice totals disagree with its lines.",
            invoice_id=invoice.pk,
            fields=mismatched,
        )
    return totals


def update_draft_invoice(
    invoice_id,
    *,
    company=None,
    customer=None,
    lines: Optional[Iterable[Mapping[str, Any]]] = None,
    global_discount=None,
    actor=None,
    request=None,
    **fields,
) -> Invoice:
    """Edit a draft invoice; lines, when given, replace the existing ones."""

    company = _require_company(company)
    editable = {"series", "document_type", "issue_date", "due_date", "payment_method", "notes"}
    unknown = set(fields) - editable
    if unknown:
        raise InvoiceValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}.")

    with transaction.atomic():
        invoice = _lock_invoice(company, invoice_id)
        if invoice.status != InvoiceStatus.DRAFT:
            raise InvalidStateTransition(
                invoice.status,
                InvoiceStatus.DRAFT,
                "Only draft invoices can be edited.",
            )
        if invoice.submission_claimed_at is not None:
            if invoice.submission_claimed_at >= _claim_stale_before(timezone.now()):
                raise IssuanceInProgress(invoice.status)
            logger.warning(
                "finance.invoice.stale_claim_cleared company_id=%s invoice_id=%s claimed_at=%s",
                company.id,
                invoice.pk,
                invoice.submission_claimed_at.isoformat(),
            )
            invoice.submission_claimed_at = None

        before = invoice_snapshot(invoice)
        if customer is not None:
            invoice.customer = _resolve_customer(company, customer)
        for name, value in fields.items():
            setattr(invoice, name, value)
        if invoice.due_date is not None and invoice.due_date < invoice.issue_date:
            raise InvoiceValidationError("due_date cannot be before issue_date.", field="due_date")

        discount = invoice.global_discount if global_discount is None else global_discount
        if lines is not None:
            totals = calculate_invoice(build_line_inputs(company, invoice.customer, lines), discount)
        else:
            totals = aggregate_lines(_stored_line_results(invoice), discount)
        assert_invoice_totals(totals)

        invoice.subtotal = totals.subtotal
        invoice.total_taxes = totals.total_taxes
        invoice.global_discount = totals.global_discount
        invoice.grand_total = totals.grand_total

        if lines is not None:
            TaxAssessment.all_objects.filter(line__invoice=invoice).delete()
            InvoiceLine.all_objects.filter(invoice=invoice).delete()
        invoice.save()
        if lines is not None:
            _persist_lines(invoice, totals)

        append_ledger_entry(
            company=company,
            actor=actor,
            action=LedgerEntry.ACTION_UPDATE,
            resource_label=Invoice._meta.label,
            resource_pk=invoice.pk,
            request=request,
            event_type="finance.invoice.updated",
            data_before=before,
            data_after=invoice_snapshot(invoice),
            metadata={"lines_replaced": lines is not None},
        )

    logger.info(
        "finance.invoice.updated company_id=%s invoice_id=%s lines_replaced=%s",
        company.id,
        invoice.pk,
        lines is not None,
    )
    return invoice


def _release_claim(company, invoice_id, claimed_at) -> None:
    Invoice.all_objects.filter(
        pk=invoice_id,
        company=company,
        status=InvoiceStatus.DRAFT,
        submission_claimed_at=claimed_at,
    ).update(submission_claimed_at=None)


def _claim_stale_before(now):
    ttl = int(getattr(settings, "FISCAL_ISSUE_CLAIM_TTL_SECONDS", 300))
    return now - timedelta(seconds=ttl)


def _claim_for_issue(company, invoice: Invoice, claimed_at) -> None:
    stale_before = _claim_stale_before(claimed_at)
    claimed = (
        Invoice.all_objects.filter(pk=invoice.pk, company=company, status=InvoiceStatus.DRAFT)
        .filter(Q(submission_claimed_at__isnull=True) | Q(submission_claimed_at__lt=stale_before))
        .update(submission_claimed_at=claimed_at)
    )
    if claimed:
        return

    current_status = (
        Invoice.all_objects.filter(pk=invoice.pk, company=company)
        .values_list("status", flat=True)
        .first()
    )
    if current_status is not None and current_status != InvoiceStatus.DRAFT:
        validate_transition(current_status, InvoiceStatus.ISSUED)
    raise IssuanceInProgress(current_status or InvoiceStatus.DRAFT)


def issue_invoice(
    invoice_id,
    *,
    company=None,
    actor=None,
    request=None,
    adapter=None,
    signer=None,
    gateway: AuthorityGateway | None = None,
) -> tuple[Invoice, AuthorizationResult]:
    """draft -> issued: build the DTE, get it authorized, record the outcome.

    Steps:
    1) Claim the draft (conditional UPDATE); a concurrent caller loses with
       `IssuanceInProgress`.
    2) Build the fiscal document from the persisted invoice.
    3) Sign and submit it through the gateway (no transaction is open).
    4) In one transaction: re-check the claim, re-verify totals, store the
       document and authorization, move to `issued`, append the ledger entry.

    Any failure releases the claim and leaves the invoice in `draft` with no
    fiscal data attached.
    """

    company = _require_company(company)
    invoice = get_invoice(invoice_id, company=company)
    if invoice.status != InvoiceStatus.DRAFT:
        validate_transition(invoice.status, InvoiceStatus.ISSUED)

    logger.info(
        "finance.invoice.issue.started company_id=%s invoice_id=%s",
        company.id,
        invoice.pk,
    )

    claimed_at = timezone.now()
    _claim_for_issue(company, invoice, claimed_at)

    try:
        # Re-read under the claim so header and lines come from the same state.
        invoice = get_invoice(invoice.pk, company=company)
        if not invoice.lines.all():
            raise IncompleteFiscalData(["Invoice must have at least one line item."])
        verify_stored_totals(invoice)
        document = build_fiscal_document(invoice, issued_at=claimed_at)

        if gateway is None:
            gateway = AuthorityGateway.from_settings(
                adapter or get_authority_adapter(company.id),
                signer,
            )
        result = gateway.submit(
            document,
            metadata={"company_id": company.id, "invoice_id": invoice.pk, "number": invoice.number},
        )

        with transaction.atomic():
            locked = _lock_invoice(company, invoice.pk)
            if locked.status != InvoiceStatus.DRAFT or locked.submission_claimed_at != claimed_at:
                logger.error(
                    "finance.invoice.issue.claim_lost company_id=%s invoice_id=%s authorization_code=%s",
                    company.id,
                    invoice.pk,
                    result.authorization_code,
                )
                raise IssuanceInProgress(locked.status)

            before = invoice_snapshot(locked)
            locked.status = InvoiceStatus.ISSUED
            locked.fiscal_document = document.to_dict()
            locked.fiscal_xml = result.signed_payload.decode("utf-8")
            locked.content_hash = result.content_hash
            locked.signature = result.signature
            locked.signature_algorithm = result.algorithm
            locked.authority_response = result.raw_response
            locked.authorization_code = result.authorization_code
            locked.authorized_at = result.authorized_at
            locked.submission_claimed_at = None
            if locked.issued_by_id is None and getattr(actor, "is_authenticated", False):
                locked.issued_by = actor
            locked.save()

            append_ledger_entry(
                company=company,
                actor=actor,
                action=LedgerEntry.ACTION_TRANSITION,
                resource_label=Invoice._meta.label,
                resource_pk=locked.pk,
                request=request,
                event_type="finance.invoice.issued",
                data_before=before,
                data_after=invoice_snapshot(locked),
                metadata={
                    "content_hash": result.content_hash,
                    "algorithm": result.algorithm,
                    "attempts": result.attempts,
                },
            )
    except Exception as exc:
        _release_claim(company, invoice.pk, claimed_at)
        logger.warning(
            "finance.invoice.issue.failed company_id=%s invoice_id=%s kind=%s error=%s",
            company.id,
            invoice.pk,
            getattr(exc, "kind", exc.__class__.__name__),
            mask_tax_ids(str(exc)),
        )
        raise

    logger.info(
        "finance.invoice.issue.completed company_id=%s invoice_id=%s authorization_code=%s attempts=%s",
        company.id,
        locked.pk,
        result.authorization_code,
        result.attempts,
    )
    return locked, result


def void_invoice(
    invoice_id,
    reason: str,
    *,
    company=None,
    actor=None,
    request=None,
) -> Invoice:
    """issued -> void. The reason is appended to the invoice notes."""

    company = _require_company(company)
    reason = (reason or "").strip()
    if not reason:
        raise InvoiceValidationError("A void reason is required.", field="reason")

    with transaction.atomic():
        invoice = _lock_invoice(company, invoice_id)
        validate_transition(invoice.status, InvoiceStatus.VOID)

        before = invoice_snapshot(invoice)
        note = f"Voided: {reason}"
        invoice.notes = f"{invoice.notes}\n{note}" if invoice.notes else note
        invoice.status = InvoiceStatus.VOID
        invoice.voided_at = timezone.now()
        invoice.save()

        append_ledger_entry(
            company=company,
            actor=actor,
            action=LedgerEntry.ACTION_TRANSITION,
            resource_label=Invoice._meta.label,
            resource_pk=invoice.pk,
            request=request,
            event_type="finance.invoice.voided",
            data_before=before,
            data_after=invoice_snapshot(invoice),
            metadata={"reason": mask_tax_ids(reason)},
        )

    logger.info(
        "finance.invoice.voided company_id=%s invoice_id=%s",
        company.id,
        invoice.pk,
    )
    return invoice


def amount_paid(invoice: Invoice):
    total = InvoicePayment.all_objects.filter(invoice=invoice).aggregate(total=Sum("amount"))["total"]
    return to_money(total or ZERO)


def record_payment(
    invoice_id,
    amount,
    *,
    company=None,
    payment_date: Optional[date] = None,
    method: Optional[str] = None,
    reference: str = "",
    notes: str = "",
    actor=None,
    request=None,
) -> tuple[Invoice, InvoicePayment]:
    """Register a payment; the invoice becomes `paid` once fully covered."""

    company = _require_company(company)
    try:
        amount = to_money(amount)
    except ValueError as exc:
        raise InvoiceValidationError("amount is not a number.", field="amount") from exc
    if amount <= 0:
        raise InvoiceValidationError("Payment amount must be greater than zero.", field="amount")

    with transaction.atomic():
        invoice = _lock_invoice(company, invoice_id)
        if invoice.status != InvoiceStatus.ISSUED:
            raise InvalidStateTransition(
                invoice.status,
                InvoiceStatus.PAID,
                "Payments can only be recorded for issued invoices.",
            )

        outstanding = subtract(invoice.grand_total, amount_paid(invoice))
        if amount > outstanding:
            raise InvoiceValidationError(
                f"Payment exceeds the outstanding balance of {outstanding}.",
                field="amount",
            )

        payment = InvoicePayment.all_objects.create(
            company=company,
            invoice=invoice,
            amount=amount,
            payment_date=payment_date or timezone.localdate(),
            method=method or invoice.payment_method,
            reference=reference or "",
            notes=notes or "",
            recorded_by=actor if getattr(actor, "is_authenticated", False) else None,
        )
        append_ledger_entry(
            company=company,
            actor=actor,
            action=LedgerEntry.ACTION_CREATE,
            resource_label=InvoicePayment._meta.label,
            resource_pk=payment.pk,
            request=request,
            event_type="finance.invoice.payment_recorded",
            data_after={
                "invoice_id": invoice.pk,
                "amount": str(payment.amount),
                "payment_date": payment.payment_date.isoformat(),
                "method": payment.method,
            },
        )

        if outstanding == amount:
            before = invoice_snapshot(invoice)
            invoice.status = InvoiceStatus.PAID
            invoice.payment_date = payment.payment_date
            invoice.save()
            append_ledger_entry(
                company=company,
                actor=actor,
                action=LedgerEntry.ACTION_TRANSITION,
                resource_label=Invoice._meta.label,
                resource_pk=invoice.pk,
                request=request,
                event_type="finance.invoice.paid",
                data_before=before,
                data_after=invoice_snapshot(invoice),
            )

    logger.info(
        "finance.invoice.payment_recorded company_id=%s invoice_id=%s payment_id=%s status=%s",
        company.id,
        invoice.pk,
        payment.pk,
        invoice.status,
    )
    return invoice, payment


def expire_overdue_invoices(today: Optional[date] = None, *, company=None, actor=None) -> list[int]:
    """issued -> expired for invoices past their due date and not fully paid."""

    company = _require_company(company)
    today = today or timezone.localdate()
    candidate_ids = list(
        Invoice.all_objects.filter(
            company=company,
            status=InvoiceStatus.ISSUED,
            due_date__isnull=False,
            due_date__lt=today,
        ).values_list("id", flat=True)
    )

    expired = []
    for invoice_id in candidate_ids:
        with transaction.atomic():
            invoice = _lock_invoice(company, invoice_id)
            if invoice.status != InvoiceStatus.ISSUED:
                continue
            if amount_paid(invoice) >= to_money(invoice.grand_total):
                continue

            before = invoice_snapshot(invoice)
            invoice.status = InvoiceStatus.EXPIRED
            invoice.save()
            append_ledger_entry(
                company=company,
                actor=actor,
                action=LedgerEntry.ACTION_TRANSITION,
                resource_label=Invoice._meta.label,
                resource_pk=invoice.pk,
                event_type="finance.invoice.expired",
                data_before=before,
                data_after=invoice_snapshot(invoice),
                metadata={"today": today.isoformat()},
            )
            expired.append(invoice.pk)

    logger.info(
        "finance.invoice.expired company_id=%s candidates=%s expired=%s",
        company.id,
        len(candidate_ids),
        len(expired),
    )
    return expired


def check_authorization_status(
    invoice_id,
    *,
    company=None,
    adapter=None,
    gateway: AuthorityGateway | None = None,
) -> dict[str, Any]:
    """Ask the authority about an issued invoice's authorization; read-only."""

    company = _require_company(company)
    invoice = get_invoice(invoice_id, company=company)
    if not invoice.authorization_code:
        raise InvalidStateTransition(
            invoice.status,
            InvoiceStatus.ISSUED,
            "Invoice has no authorization code; issue it first.",
        )

    if gateway is None:
        gateway = AuthorityGateway.from_settings(adapter or get_authority_adapter(company.id))
    response = gateway.query_status(invoice.authorization_code)

    logger.info(
        "finance.invoice.authorization_status company_id=%s invoice_id=%s response_code=%s",
        company.id,
        invoice.pk,
        response.get("response_code"),
    )
    return {
        "invoice_id": invoice.pk,
        "number": invoice.number,
        "status": invoice.status,
        "authorization_code": invoice.authorization_code,
        "authority": response,
    }
