from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal

from django.test import TestCase

from finance.errors import IncompleteFiscalData
from finance.fiscal.builder import build_fiscal_document
from finance.fiscal.xml import parse_document, serialize_document
from finance.models import Invoice
from finance.services import create_invoice, get_invoice
from finance.tests.helpers import make_client, make_company, make_product, make_vat, scenario_line

ISSUED_AT = datetime(2026, 1, 10, 15, 30, tzinfo=dt_timezone.utc)


class BuildFiscalDocumentTests(TestCase):
    def setUp(self):
        self.company = make_company("acme", legal_representative="Ana Pérez")
        self.vat = make_vat(self.company)
        self.product = make_product(self.company)

    def _invoice(self, customer, lines, global_discount=Decimal("0"), **fields):
        invoice = create_invoice(
            self.company,
            customer,
            lines,
            global_discount,
            issue_date=date(2026, 1, 10),
            **fields,
        )
        return get_invoice(invoice.pk, company=self.company)

    def test_maps_issuer_recipient_items_and_summary(self):
        customer = make_client(self.company)
        invoice = self._invoice(
            customer,
            [
                scenario_line(self.vat, product_id=self.product.id, note="Entrega parcial"),
                scenario_line(self.vat, description="Folder tamaño carta"),
            ],
            Decimal("10.00"),
        )

        document = build_fiscal_document(invoice, environment="test", issued_at=ISSUED_AT)

        self.assertEqual(document.identification.document_type, "01")
        self.assertEqual(document.identification.generation_code, invoice.number)
        self.assertEqual(document.identification.issue_date, "2026-01-10")
        self.assertEqual(document.identification.currency, "USD")
        self.assertEqual(document.issuer.nit, "0614-010190-102-3")
        self.assertEqual(document.recipient.document_type, "NIT")
        self.assertIsNone(document.recipient.dui)

        self.assertEqual([item.number for item in document.items], [1, 2])
        self.assertEqual(document.items[0].code, "P001")
        self.assertEqual(document.items[0].note, "Entrega parcial")
        self.assertEqual(document.items[1].description, "Folder tamaño carta")
        self.assertEqual(document.items[0].taxable_amount, Decimal("51.98"))
        self.assertEqual(document.items[0].exempt_amount, Decimal("0.00"))

        summary = document.summary
        self.assertEqual(summary.subtotal, Decimal("103.96"))
        self.assertEqual(summary.total_taxes, Decimal("13.52"))
        self.assertEqual(summary.grand_total, Decimal("107.48"))
        self.assertEqual(summary.amount_in_words, "107 dólares con 48/100")
        self.assertEqual(len(summary.tax_breakdown), 1)
        self.assertEqual(summary.tax_breakdown[0].amount, Decimal("13.52"))
        self.assertEqual(summary.payment_condition, "1")
        self.assertIsNone(summary.payment_term_days)
        self.assertEqual(document.extension.received_by_name, "Ana Pérez")

    def test_exempt_customer_amounts_go_to_the_exempt_bucket(self):
        customer = make_client(self.company, code="C002", tax_exempt=True)
        invoice = self._invoice(customer, [scenario_line(self.vat, taxes=[])])

        document = build_fiscal_document(invoice, issued_at=ISSUED_AT)

        self.assertEqual(document.items[0].exempt_amount, Decimal("51.98"))
        self.assertEqual(document.items[0].taxable_amount, Decimal("0.00"))
        self.assertEqual(document.summary.total_exempt, Decimal("51.98"))
        self.assertEqual(document.summary.total_taxable, Decimal("0.00"))
        self.assertTrue(document.recipient.tax_exempt)

    def test_credit_sale_uses_customer_terms(self):
        customer = make_client(self.company, code="C003", credit_days=45)
        invoice = self._invoice(
            customer,
            [scenario_line(self.vat)],
            payment_method=Invoice.PaymentMethod.CREDIT,
        )

        summary = build_fiscal_document(invoice, issued_at=ISSUED_AT).summary

        self.assertEqual(summary.payment_condition, "2")
        self.assertEqual(summary.payment_term_days, 45)

    def test_customer_identified_by_dui(self):
        customer = make_client(self.company, code="C004", nit="", dui="01234567-8")
        invoice = self._invoice(customer, [scenario_line(self.vat)])

        document = build_fiscal_document(invoice, issued_at=ISSUED_AT)

        self.assertEqual(document.recipient.document_type, "DUI")
        self.assertEqual(document.recipient.document_number, "01234567-8")

    def test_reports_every_missing_requirement(self):
        customer = make_client(self.company, code="C005", nit="")
        invoice = self._invoice(customer, [scenario_line(self.vat)])
        invoice.company.nit = "123"

        with self.assertRaises(IncompleteFiscalData) as ctx:
            build_fiscal_document(invoice, issued_at=ISSUED_AT)

        self.assertEqual(len(ctx.exception.problems), 2)

    def test_same_invoice_serializes_to_the_same_bytes(self):
        invoice = self._invoice(make_client(self.company), [scenario_line(self.vat)])

        first = serialize_document(build_fiscal_document(invoice, issued_at=ISSUED_AT))
        second = serialize_document(build_fiscal_document(invoice, issued_at=ISSUED_AT))

        self.assertEqual(first, second)
        self.assertEqual(parse_document(first).summary.grand_total, Decimal("58.74"))
