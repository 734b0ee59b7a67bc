from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from django.conf import settings
from django.utils import timezone

from finance.errors import IncompleteFiscalData
from finance.fiscal.amount_words import amount_in_words
from finance.fiscal.document import (
    DOCUMENT_TYPE_CODES,
    PAYMENT_CONDITION_CASH,
    PAYMENT_CONDITION_CREDIT,
    PAYMENT_METHOD_CODES,
    SCHEMA_VERSION,
    Address,
    DocumentIdentification,
    Extension,
    FiscalDocument,
    Issuer,
    Item,
    ItemTax,
    Recipient,
    Summary,
    TaxBreakdown,
)
from finance.money import HUNDRED, ZERO, add, quantize, to_money

logger = logging.getLogger(__name__)

MIN_NIT_LENGTH = 10
DEFAULT_DEPARTMENT = "06"
DEFAULT_MUNICIPALITY = "01"
DEFAULT_CREDIT_TERM_DAYS = 30


def _ordered_lines(invoice) -> list:
    return sorted(invoice.lines.all(), key=lambda line: line.position)


def collect_fiscal_problems(invoice, lines=None) -> list[str]:
    """Every reason the invoice cannot become a fiscal document."""

    lines = _ordered_lines(invoice) if lines is None else lines
    company = invoice.company
    customer = invoice.customer
    problems = []

    nit = (company.nit or "").strip()
    if len(nit) < MIN_NIT_LENGTH:
        problems.append("Company NIT is missing or invalid.")
    if not (customer.nit or "").strip() and not (customer.dui or "").strip():
        problems.append("Customer must have a NIT or DUI.")
    if not lines:
        problems.append("Invoice must have at least one line item.")
    for line in lines:
        if not (line.description or "").strip():
            problems.append(f"Line {line.position} has no description.")
        if line.quantity is None or line.quantity <= 0:
            problems.append(f"Line {line.position} has no quantity.")
        if line.unit_price is None:
            problems.append(f"Line {line.position} has no unit price.")
    if invoice.grand_total is None or invoice.grand_total <= 0:
        problems.append("Invoice grand total must be greater than zero.")
    return problems


def _company_address(company) -> Address:
    return Address(
        department=company.department or DEFAULT_DEPARTMENT,
        municipality=company.municipality or DEFAULT_MUNICIPALITY,
        complement=company.address or "",
    )


def _build_items(lines, *, exempt: bool) -> tuple[Item, ...]:
    items = []
    for line in lines:
        subtotal = to_money(line.subtotal)
        taxes = tuple(
            ItemTax(
                code=assessment.tax_code,
                name=assessment.tax_name,
                percentage=quantize(assessment.percentage),
                base=to_money(assessment.base),
                amount=to_money(assessment.amount),
            )
            for assessment in sorted(line.tax_assessments.all(), key=lambda a: a.id)
        )
        items.append(
            Item(
                number=line.position,
                code=line.product_code or "",
                description=line.description,
                quantity=quantize(line.quantity),
                unit_of_measure=line.unit_of_measure or "UNI",
                unit_price=to_money(line.unit_price),
                discount=to_money(line.discount),
                non_subject_amount=ZERO,
                exempt_amount=subtotal if exempt else ZERO,
                taxable_amount=ZERO if exempt else subtotal,
                tax_total=to_money(line.tax_total),
                line_total=to_money(line.line_total),
                taxes=taxes,
                note=line.note or "",
            )
        )
    return tuple(items)


def _tax_breakdown(items) -> tuple[TaxBreakdown, ...]:
    # Grouped by tax code in order of first appearance.
    totals: dict[str, list] = {}
    for item in items:
        for tax in item.taxes:
            entry = totals.setdefault(tax.code, [tax.name, ZERO])
            entry[1] = add(entry[1], tax.amount)
    return tuple(TaxBreakdown(code=code, name=name, amount=amount) for code, (name, amount) in totals.items())


def _build_summary(invoice, items, *, exempt: bool) -> Summary:
    subtotal = to_money(invoice.subtotal)
    discount = to_money(invoice.global_discount)
    discount_percentage = quantize(discount * HUNDRED / subtotal) if discount > 0 and subtotal > 0 else ZERO

    is_credit = invoice.payment_method == "credit"
    term_days: Optional[int] = None
    if is_credit:
        term_days = invoice.customer.credit_days or DEFAULT_CREDIT_TERM_DAYS

    return Summary(
        total_non_subject=ZERO,
        total_exempt=subtotal if exempt else ZERO,
        total_taxable=ZERO if exempt else subtotal,
        subtotal=subtotal,
        global_discount=discount,
        discount_percentage=discount_percentage,
        total_taxes=to_money(invoice.total_taxes),
        grand_total=to_money(invoice.grand_total),
        amount_in_words=amount_in_words(invoice.grand_total),
        tax_breakdown=_tax_breakdown(items),
        payment_condition=PAYMENT_CONDITION_CREDIT if is_credit else PAYMENT_CONDITION_CASH,
        payment_method=invoice.payment_method,
        payment_code=PAYMENT_METHOD_CODES.get(invoice.payment_method, "99"),
        payment_term_days=term_days,
    )


def build_fiscal_document(
    invoice,
    *,
    environment: Optional[str] = None,
    currency: Optional[str] = None,
    issued_at: Optional[datetime] = None,
) -> FiscalDocument:
    """Map a persisted invoice (company, customer, lines, assessments) to its DTE.

    Raises `IncompleteFiscalData` listing every missing requirement.
    """

    lines = _ordered_lines(invoice)
    problems = collect_fiscal_problems(invoice, lines)
    if problems:
        logger.info(
            "fiscal.document.incomplete company_id=%s invoice_id=%s problems=%s",
            invoice.company_id,
            invoice.pk,
            len(problems),
        )
        raise IncompleteFiscalData(problems)

    company = invoice.company
    customer = invoice.customer
    environment = environment or getattr(settings, "FISCAL_ENVIRONMENT", "test")
    currency = currency or getattr(settings, "FISCAL_CURRENCY", "USD")
    issued_at = timezone.localtime(issued_at or timezone.now())
    document_type = DOCUMENT_TYPE_CODES[invoice.document_type]
    establishment = company.establishment_code or "0001"
    exempt = bool(customer.tax_exempt)

    customer_nit = (customer.nit or "").strip() or None
    customer_dui = (customer.dui or "").strip() or None

    items = _build_items(lines, exempt=exempt)

    document = FiscalDocument(
        identification=DocumentIdentification(
            version=SCHEMA_VERSION,
            environment=environment,
            document_type=document_type,
            generation_code=invoice.number,
            control_number=f"DTE-{document_type}-{establishment}-{invoice.number}",
            series=invoice.series or "",
            issue_date=invoice.issue_date.isoformat(),
            issue_time=issued_at.strftime("%H:%M:%S"),
            currency=currency,
        ),
        issuer=Issuer(
            nit=company.nit.strip(),
            nrc=company.nrc or "",
            name=company.name,
            trade_name=company.trade_name or company.name,
            activity_code=company.activity_code or "",
            activity_description=company.economic_activity or "",
            establishment_code=establishment,
            address=_company_address(company),
            phone=company.phone or "",
            email=company.email or "",
        ),
        recipient=Recipient(
            document_type="NIT" if customer_nit else "DUI",
            document_number=customer_nit or customer_dui,
            nit=customer_nit,
            dui=customer_dui,
            name=customer.display_name,
            address=Address(
                department=DEFAULT_DEPARTMENT,
                municipality=DEFAULT_MUNICIPALITY,
                complement=customer.address or "",
            ),
            phone=customer.phone or "",
            email=customer.email or "",
            tax_exempt=exempt,
        ),
        items=items,
        summary=_build_summary(invoice, items, exempt=exempt),
        extension=Extension(
            delivered_by_name=customer.display_name,
            delivered_by_document=customer_nit or customer_dui,
            received_by_name=company.legal_representative or "",
            received_by_document=company.nit.strip(),
            notes=invoice.notes or "",
        ),
    )
    logger.info(
        "fiscal.document.built company_id=%s invoice_id=%s items=%s",
        invoice.company_id,
        invoice.pk,
        len(items),
    )
    return document

