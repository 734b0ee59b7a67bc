from django.core.exceptions import ValidationError
from django.test import RequestFactory, TestCase

from finance.tests.helpers import make_company, make_member
from ledger.models import LedgerEntry
from ledger.services import append_ledger_entry, verify_chain
from tenancy.context import tenant_context


class LedgerChainTests(TestCase):
    def setUp(self):
        self.company_a = make_company("acme")
        self.company_b = make_company("beta")
        self.owner = make_member(self.company_a, "owner-a")

    def _append(self, company, index, **kwargs):
        return append_ledger_entry(
            company=company,
            actor=kwargs.pop("actor", None),
            action=LedgerEntry.ACTION_TRANSITION,
            resource_label="finance.Invoice",
            resource_pk=index,
            event_type="finance.invoice.issued",
            data_after={"status": "issued", "index": index},
            **kwargs,
        )

    def test_entries_link_per_tenant(self):
        first = self._append(self.company_a, 1)
        second = self._append(self.company_a, 2)
        other = self._append(self.company_b, 1)

        self.assertEqual(first.prev_hash, "")
        self.assertEqual(second.prev_hash, first.entry_hash)
        self.assertEqual(other.prev_hash, "")
        self.assertEqual(first.chain_id, f"tenant:{self.company_a.id}")
        self.assertTrue(verify_chain(self.company_a))
        self.assertTrue(verify_chain(self.company_b))

    def test_records_actor_and_request_metadata(self):
        request = RequestFactory().post("/api/finance/invoices/1/issue/")
        request.correlation_id = "corr-123"

        entry = self._append(self.company_a, 1, actor=self.owner, request=request, metadata={"attempts": 2})

        self.assertEqual(entry.actor_username, "owner-a")
        self.assertEqual(entry.correlation_id, "corr-123")
        self.assertEqual(entry.request_method, "POST")
        self.assertEqual(entry.request_path, "/api/finance/invoices/1/issue/")
        self.assertEqual(entry.metadata, {"attempts": 2})

    def test_tampering_breaks_verification(self):
        self._append(self.company_a, 1)
        second = self._append(self.company_a, 2)
        self._append(self.company_a, 3)

        LedgerEntry.all_objects.filter(pk=second.pk).update(data_after={"status": "void"})

        self.assertFalse(verify_chain(self.company_a))

    def test_removed_entry_breaks_verification(self):
        self._append(self.company_a, 1)
        second = self._append(self.company_a, 2)
        self._append(self.company_a, 3)

        LedgerEntry.all_objects.filter(pk=second.pk).delete()

        self.assertFalse(verify_chain(self.company_a))

    def test_entries_are_immutable(self):
        entry = self._append(self.company_a, 1)

        entry.event_type = "finance.invoice.voided"
        with self.assertRaises(ValidationError):
            entry.save()
        with self.assertRaises(ValidationError):
            entry.delete()

    def test_cross_tenant_writes_are_blocked(self):
        with tenant_context(self.company_b):
            with self.assertRaises(ValidationError):
                self._append(self.company_a, 1)

    def test_default_manager_follows_tenant_context(self):
        self._append(self.company_a, 1)
        self._append(self.company_b, 1)

        with tenant_context(self.company_a):
            self.assertEqual(LedgerEntry.objects.count(), 1)
        self.assertEqual(LedgerEntry.all_objects.count(), 2)
