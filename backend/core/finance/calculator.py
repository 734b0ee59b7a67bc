"""Pure invoice arithmetic.

Lines and totals are computed here, before anything is persisted. Functions
take plain values and return frozen results; nothing touches the database.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Sequence

from finance.errors import EmptyInvoice, InvalidDiscount, InvoiceValidationError, TotalsInvariantError
from finance.money import ZERO, add, multiply, percentage, quantize, subtract, to_decimal, to_money, to_quantity
from finance.taxes import TaxAssessmentResult, TaxRate, assess_taxes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineInput:
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal = ZERO
    taxes: tuple[TaxRate, ...] = ()
    description: str = ""
    product_id: Optional[int] = None
    product_code: str = ""
    unit_of_measure: str = "UNI"
    note: str = ""


@dataclass(frozen=True)
class LineResult:
    position: int
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal
    subtotal: Decimal
    tax_total: Decimal
    line_total: Decimal
    assessments: tuple[TaxAssessmentResult, ...] = ()
    description: str = ""
    product_id: Optional[int] = None
    product_code: str = ""
    unit_of_measure: str = "UNI"
    note: str = ""


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    total_taxes: Decimal
    global_discount: Decimal
    grand_total: Decimal
    lines: tuple[LineResult, ...] = field(default_factory=tuple)


def _decimal_field(value, name: str, position: Optional[int]) -> Decimal:
    try:
        number = to_decimal(value)
    except ValueError as exc:
        raise InvoiceValidationError(f"{name} is not a number.", field=name, position=position) from exc
    if not number.is_finite():
        raise InvoiceValidationError(f"{name} is not a number.", field=name, position=position)
    # Line columns hold two decimal places.
    if number != quantize(number):
        raise InvoiceValidationError(
            f"{name} accepts at most two decimal places.",
            field=name,
            position=position,
        )
    return number


def calculate_line(line: LineInput, position: int) -> LineResult:
    quantity = _decimal_field(line.quantity, "quantity", position)
    unit_price = _decimal_field(line.unit_price, "unit_price", position)
    discount = _decimal_field(line.discount if line.discount is not None else ZERO, "discount", position)

    if quantity <= 0:
        raise InvoiceValidationError("quantity must be greater than zero.", field="quantity", position=position)
    if unit_price < 0:
        raise InvoiceValidationError("unit_price cannot be negative.", field="unit_price", position=position)
    if discount < 0:
        raise InvoiceValidationError("discount cannot be negative.", field="discount", position=position)

    quantity = to_quantity(quantity)
    unit_price = to_money(unit_price)
    discount = to_money(discount)

    subtotal = subtract(multiply(quantity, unit_price), discount)
    if subtotal < 0:
        raise InvoiceValidationError(
            "discount cannot exceed quantity * unit_price.",
            field="discount",
            position=position,
        )

    assessments = tuple(assess_taxes(subtotal, line.taxes))
    tax_total = add(*(assessment.amount for assessment in assessments))
    line_total = add(subtotal, tax_total)

    return LineResult(
        position=position,
        quantity=quantity,
        unit_price=unit_price,
        discount=discount,
        subtotal=subtotal,
        tax_total=tax_total,
        line_total=line_total,
        assessments=assessments,
        description=line.description,
        product_id=line.product_id,
        product_code=line.product_code,
        unit_of_measure=line.unit_of_measure,
        note=line.note,
    )


def aggregate_lines(lines: Sequence[LineResult], global_discount=ZERO) -> InvoiceTotals:
    if not lines:
        raise EmptyInvoice()

    try:
        discount = to_money(global_discount if global_discount is not None else ZERO)
    except ValueError as exc:
        raise InvalidDiscount("global_discount is not a number.", field="global_discount") from exc

    subtotal = add(*(line.subtotal for line in lines))
    total_taxes = add(*(line.tax_total for line in lines))

    if discount < 0:
        raise InvalidDiscount("global_discount cannot be negative.", field="global_discount")
    if discount > subtotal:
        raise InvalidDiscount("global_discount cannot exceed the subtotal.", field="global_discount")

    return InvoiceTotals(
        subtotal=subtotal,
        total_taxes=total_taxes,
        global_discount=discount,
        grand_total=subtract(add(subtotal, total_taxes), discount),
        lines=tuple(lines),
    )


def calculate_invoice(lines: Sequence[LineInput], global_discount=ZERO) -> InvoiceTotals:
    """Compute every line (positions start at 1) and aggregate them."""

    if not lines:
        raise EmptyInvoice()
    results = [calculate_line(line, position) for position, line in enumerate(lines, start=1)]
    return aggregate_lines(results, global_discount)


def assert_line_consistency(line: LineResult) -> None:
    problems = []
    if line.subtotal != subtract(multiply(line.quantity, line.unit_price), line.discount):
        problems.append("subtotal")
    for assessment in line.assessments:
        if assessment.amount != percentage(assessment.base, assessment.percentage):
            problems.append(f"assessment:{assessment.code or assessment.tax_definition_id}")
    if line.tax_total != add(*(assessment.amount for assessment in line.assessments)):
        problems.append("tax_total")
    if line.line_total != add(line.subtotal, line.tax_total):
        problems.append("line_total")

    if problems:
        logger.error(
            "finance.calculator.invariant_violation position=%s fields=%s",
            line.position,
            ",".join(problems),
        )
        raise TotalsInvariantError(
            f"Line {line.position} is inconsistent: {', '.join(problems)}.",
            position=line.position,
            fields=problems,
        )


def assert_invoice_totals(totals: InvoiceTotals) -> None:
    for line in totals.lines:
        assert_line_consistency(line)

    problems = []
    if totals.lines:
        if totals.subtotal != add(*(line.subtotal for line in totals.lines)):
            problems.append("subtotal")
        if totals.total_taxes != add(*(line.tax_total for line in totals.lines)):
            problems.append("total_taxes")
    if totals.grand_total != subtract(add(totals.subtotal, totals.total_taxes), totals.global_discount):
        problems.append("grand_total")
    if min(totals.subtotal, totals.total_taxes, totals.global_discount, totals.grand_total) < 0:
        problems.append("negative_amount")
    if totals.global_discount > totals.subtotal:
        problems.append("global_discount")

    if problems:
        logger.error(
            "finance.calculator.invariant_violation scope=invoice fields=%s",
            ",".join(problems),
        )
        raise TotalsInvariantError(
            f"Invoice totals are inconsistent: {', '.join(problems)}.",
            fields=problems,
        )
