from decimal import Decimal

from django.test import TestCase

from finance.errors import InvoiceValidationError, UnknownTaxDefinition
from finance.models import TaxDefinition
from finance.taxes import default_tax_rates, resolve_tax_rates, save_tax_definition
from finance.tests.helpers import make_company, make_vat
from ledger.models import LedgerEntry


class TaxResolutionTests(TestCase):
    def setUp(self):
        self.company = make_company("acme")
        self.other = make_company("beta")
        self.vat = make_vat(self.company)
        self.fovial = TaxDefinition.all_objects.create(
            company=self.company,
            name="FOVIAL",
            code="FOV",
            percentage=Decimal("5.00"),
            category=TaxDefinition.Category.EXCISE,
        )

    def test_resolves_in_requested_order_without_duplicates(self):
        rates = resolve_tax_rates(self.company, [self.fovial.id, self.vat.id, self.fovial.id])

        self.assertEqual([rate.code for rate in rates], ["FOV", "IVA"])
        self.assertEqual(rates[1].percentage, Decimal("13.00"))

    def test_unknown_inactive_and_foreign_ids_fail_together(self):
        foreign = make_vat(self.other)
        inactive = TaxDefinition.all_objects.create(
            company=self.company,
            name="Old",
            code="OLD",
            percentage=Decimal("1.00"),
            category=TaxDefinition.Category.MUNICIPAL,
            active=False,
        )

        with self.assertRaises(UnknownTaxDefinition) as ctx:
            resolve_tax_rates(self.company, [self.vat.id, foreign.id, inactive.id, 999999])

        self.assertEqual(
            set(ctx.exception.tax_ids),
            {str(foreign.id), str(inactive.id), "999999"},
        )
        self.assertEqual(ctx.exception.http_status, 404)

    def test_default_rates(self):
        self.assertEqual([rate.code for rate in default_tax_rates(self.company)], ["IVA"])
        self.assertEqual(default_tax_rates(self.other), [])


class SaveTaxDefinitionTests(TestCase):
    def setUp(self):
        self.company = make_company("acme")
        self.vat = make_vat(self.company)

    def test_new_default_clears_previous_default_of_the_category(self):
        reduced = save_tax_definition(
            company=self.company,
            name="IVA reducido",
            code="IVA-R",
            percentage=Decimal("10"),
            category=TaxDefinition.Category.VAT,
            is_default=True,
        )

        self.vat.refresh_from_db()
        self.assertFalse(self.vat.is_default)
        self.assertTrue(reduced.is_default)
        self.assertEqual(
            TaxDefinition.all_objects.filter(
                company=self.company,
                category=TaxDefinition.Category.VAT,
                is_default=True,
            ).count(),
            1,
        )

    def test_defaults_of_other_categories_are_kept(self):
        save_tax_definition(
            company=self.company,
            name="FOVIAL",
            code="FOV",
            percentage=Decimal("5"),
            category=TaxDefinition.Category.EXCISE,
            is_default=True,
        )

        self.vat.refresh_from_db()
        self.assertTrue(self.vat.is_default)

    def test_update_writes_a_ledger_entry(self):
        save_tax_definition(company=self.company, instance=self.vat, percentage=Decimal("12.5"))

        self.vat.refresh_from_db()
        self.assertEqual(self.vat.percentage, Decimal("12.50"))
        entry = LedgerEntry.all_objects.filter(company=self.company, event_type="finance.tax.saved").latest("id")
        self.assertEqual(entry.action, LedgerEntry.ACTION_UPDATE)
        self.assertEqual(entry.data_before["percentage"], "13.00")
        self.assertEqual(entry.data_after["percentage"], "12.50")

    def test_duplicate_code_is_a_validation_error(self):
        with self.assertRaises(InvoiceValidationError) as ctx:
            save_tax_definition(
                company=self.company,
                name="Otro IVA",
                code="IVA",
                percentage=Decimal("13"),
                category=TaxDefinition.Category.VAT,
            )
        self.assertEqual(ctx.exception.field, "code")
