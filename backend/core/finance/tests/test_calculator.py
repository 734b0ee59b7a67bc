from decimal import Decimal

from django.test import SimpleTestCase

from finance.calculator import (
    InvoiceTotals,
    LineInput,
    aggregate_lines,
    assert_invoice_totals,
    calculate_invoice,
    calculate_line,
)
from finance.errors import EmptyInvoice, InvalidDiscount, InvoiceValidationError, TotalsInvariantError
from finance.taxes import TaxRate

VAT = TaxRate(tax_definition_id=1, percentage=Decimal("13.00"), code="IVA", name="IVA 13%")
EXCISE = TaxRate(tax_definition_id=2, percentage=Decimal("5.00"), code="FOV", name="FOVIAL")


def scenario_line(**overrides) -> LineInput:
    values = {
        "quantity": Decimal("2"),
        "unit_price": Decimal("25.99"),
        "discount": Decimal("0"),
        "taxes": (VAT,),
    }
    values.update(overrides)
    return LineInput(**values)


class LineCalculationTests(SimpleTestCase):
    def test_single_line_with_vat(self):
        line = calculate_line(scenario_line(), 1)

        self.assertEqual(line.subtotal, Decimal("51.98"))
        self.assertEqual(line.tax_total, Decimal("6.76"))
        self.assertEqual(line.line_total, Decimal("58.74"))
        self.assertEqual(len(line.assessments), 1)
        self.assertEqual(line.assessments[0].base, Decimal("51.98"))

    def test_each_tax_is_rounded_separately(self):
        line = calculate_line(scenario_line(quantity="1", unit_price="0.10", taxes=(VAT, EXCISE)), 1)

        self.assertEqual([a.amount for a in line.assessments], [Decimal("0.01"), Decimal("0.01")])
        self.assertEqual(line.tax_total, Decimal("0.02"))
        self.assertEqual(line.line_total, Decimal("0.12"))

    def test_line_discount_reduces_the_taxable_base(self):
        line = calculate_line(scenario_line(discount="1.98"), 1)

        self.assertEqual(line.subtotal, Decimal("50.00"))
        self.assertEqual(line.tax_total, Decimal("6.50"))

    def test_line_without_taxes(self):
        line = calculate_line(scenario_line(taxes=()), 1)

        self.assertEqual(line.tax_total, Decimal("0.00"))
        self.assertEqual(line.line_total, line.subtotal)

    def test_rejects_invalid_quantity_price_and_discount(self):
        cases = [
            ({"quantity": "0"}, "quantity"),
            ({"quantity": "-1"}, "quantity"),
            ({"unit_price": "-0.01"}, "unit_price"),
            ({"discount": "-1"}, "discount"),
            ({"discount": "51.99"}, "discount"),
            ({"quantity": "two"}, "quantity"),
        ]
        for overrides, field in cases:
            with self.subTest(overrides=overrides):
                with self.assertRaises(InvoiceValidationError) as ctx:
                    calculate_line(scenario_line(**overrides), 3)
                self.assertEqual(ctx.exception.field, field)
                self.assertEqual(ctx.exception.position, 3)

    def test_rejects_values_finer_than_two_decimal_places(self):
        cases = [
            ({"quantity": "0.004"}, "quantity"),
            ({"quantity": "1.005"}, "quantity"),
            ({"unit_price": "10.001"}, "unit_price"),
            ({"discount": "0.005"}, "discount"),
            ({"quantity": "NaN"}, "quantity"),
        ]
        for overrides, field in cases:
            with self.subTest(overrides=overrides):
                with self.assertRaises(InvoiceValidationError) as ctx:
                    calculate_line(scenario_line(**overrides), 1)
                self.assertEqual(ctx.exception.field, field)

    def test_trailing_zeros_beyond_two_places_are_accepted(self):
        line = calculate_line(scenario_line(quantity="1.500", unit_price="10.000", discount="0"), 1)

        self.assertEqual(line.quantity, Decimal("1.50"))
        self.assertEqual(line.subtotal, Decimal("15.00"))

    def test_discount_equal_to_gross_is_allowed(self):
        line = calculate_line(scenario_line(discount="51.98"), 1)
        self.assertEqual(line.subtotal, Decimal("0.00"))
        self.assertEqual(line.line_total, Decimal("0.00"))


class InvoiceAggregationTests(SimpleTestCase):
    def test_two_lines_with_global_discount(self):
        totals = calculate_invoice([scenario_line(), scenario_line()], Decimal("10.00"))

        self.assertEqual(totals.subtotal, Decimal("103.96"))
        self.assertEqual(totals.total_taxes, Decimal("13.52"))
        self.assertEqual(totals.global_discount, Decimal("10.00"))
        self.assertEqual(totals.grand_total, Decimal("107.48"))
        self.assertEqual([line.position for line in totals.lines], [1, 2])
        assert_invoice_totals(totals)

    def test_global_discount_does_not_change_taxes(self):
        without = calculate_invoice([scenario_line()], Decimal("0"))
        with_discount = calculate_invoice([scenario_line()], Decimal("20.00"))

        self.assertEqual(without.total_taxes, with_discount.total_taxes)
        self.assertEqual(with_discount.grand_total, without.grand_total - Decimal("20.00"))

    def test_aggregation_is_idempotent(self):
        totals = calculate_invoice([scenario_line(), scenario_line(quantity="3")], Decimal("5"))
        again = aggregate_lines(totals.lines, totals.global_discount)

        self.assertEqual(totals, again)

    def test_empty_invoice(self):
        with self.assertRaises(EmptyInvoice):
            calculate_invoice([], Decimal("0"))

    def test_global_discount_bounds(self):
        with self.assertRaises(InvalidDiscount):
            calculate_invoice([scenario_line()], Decimal("-0.01"))
        with self.assertRaises(InvalidDiscount):
            calculate_invoice([scenario_line()], Decimal("51.99"))

        totals = calculate_invoice([scenario_line()], Decimal("51.98"))
        self.assertEqual(totals.grand_total, Decimal("6.76"))

    def test_inconsistent_totals_are_reported_not_fixed(self):
        totals = calculate_invoice([scenario_line()], Decimal("0"))
        tampered = InvoiceTotals(
            subtotal=totals.subtotal,
            total_taxes=totals.total_taxes,
            global_discount=totals.global_discount,
            grand_total=totals.grand_total + Decimal("0.01"),
            lines=totals.lines,
        )

        with self.assertLogs("finance.calculator", level="ERROR"):
            with self.assertRaises(TotalsInvariantError) as ctx:
                assert_invoice_totals(tampered)
        self.assertEqual(ctx.exception.details["fields"], ["grand_total"])
