from decimal import Decimal

from django.test import TestCase

from customers.models import CompanyMembership
from finance.models import Client, Invoice, Product
from finance.tests.helpers import make_client, make_company, make_member, make_product, make_vat
from ledger.models import LedgerEntry
from ledger.services import verify_chain


class CatalogAPITests(TestCase):
    def setUp(self):
        self.company_a = make_company("acme")
        self.company_b = make_company("beta")

        self.owner_a = make_member(self.company_a, "owner-a")
        self.manager_a = make_member(self.company_a, "manager-a", CompanyMembership.ROLE_MANAGER)
        self.member_a = make_member(self.company_a, "member-a", CompanyMembership.ROLE_MEMBER)

        self.client_b = make_client(self.company_b, code="B001")
        self.vat_a = make_vat(self.company_a)

    def _send(self, method, path, data=None, tenant="acme"):
        return getattr(self.client, method)(
            path,
            data=data or {},
            content_type="application/json",
            HTTP_X_TENANT_ID=tenant,
        )

    def _client_payload(self, **fields):
        payload = {
            "code": "C100",
            "client_type": "legal_entity",
            "name": "Ferretería El Martillo",
            "nit": "0614-010190-102-3",
            "address": "San Salvador",
            "email": "compras@martillo.example",
        }
        payload.update(fields)
        return payload

    def test_manager_creates_client_and_invoices_it_through_the_api(self):
        self.client.force_login(self.manager_a)

        created = self._send("post", "/api/finance/clients/", self._client_payload())
        self.assertEqual(created.status_code, 201)
        client_id = created.json()["id"]
        self.assertEqual(created.json()["display_name"], "Ferretería El Martillo")
        self.assertEqual(Client.all_objects.get(pk=client_id).company_id, self.company_a.id)

        product = self._send(
            "post",
            "/api/finance/products/",
            {"code": "P100", "name": "Martillo", "sale_price": "12.50", "unit_of_measure": "UNI"},
        )
        self.assertEqual(product.status_code, 201)

        invoice = self._send(
            "post",
            "/api/finance/invoices/",
            {"customer": client_id, "lines": [{"product": product.json()["id"], "quantity": "2"}]},
        )
        self.assertEqual(invoice.status_code, 201)
        self.assertEqual(invoice.json()["subtotal"], "25.00")
        self.assertEqual(invoice.json()["lines"][0]["description"], "Martillo")

        events = list(
            LedgerEntry.all_objects.filter(company=self.company_a)
            .order_by("id")
            .values_list("event_type", flat=True)
        )
        self.assertEqual(events[:2], ["finance.client.created", "finance.product.created"])
        self.assertTrue(verify_chain(self.company_a))

    def test_list_is_tenant_scoped_and_filterable(self):
        make_client(self.company_a, code="C001", name="Distribuidora Central")
        make_client(self.company_a, code="C002", name="Panadería Lucy", active=False)
        self.client.force_login(self.member_a)

        everything = self._send("get", "/api/finance/clients/")
        searched = self.client.get(
            "/api/finance/clients/",
            {"search": "panad"},
            HTTP_X_TENANT_ID="acme",
        )
        active_only = self.client.get(
            "/api/finance/clients/",
            {"active": "true"},
            HTTP_X_TENANT_ID="acme",
        )

        self.assertEqual(everything.status_code, 200)
        self.assertEqual({row["code"] for row in everything.json()}, {"C001", "C002"})
        self.assertEqual([row["code"] for row in searched.json()], ["C002"])
        self.assertEqual([row["code"] for row in active_only.json()], ["C001"])

        foreign = self._send("get", f"/api/finance/clients/{self.client_b.id}/")
        self.assertEqual(foreign.status_code, 404)

    def test_duplicate_code_or_nit_within_the_company_is_rejected(self):
        make_client(self.company_a, code="C100", nit="0614-250588-101-4")
        self.client.force_login(self.manager_a)

        same_code = self._send("post", "/api/finance/clients/", self._client_payload())
        same_nit = self._send(
            "post",
            "/api/finance/clients/",
            self._client_payload(code="C200", nit="0614-250588-101-4"),
        )
        other_company_code = self._send(
            "post",
            "/api/finance/clients/",
            self._client_payload(code="B001"),
        )

        self.assertEqual(same_code.status_code, 400)
        self.assertIn("code", same_code.json())
        self.assertEqual(same_nit.status_code, 400)
        self.assertIn("nit", same_nit.json())
        self.assertEqual(other_company_code.status_code, 201)

    def test_members_read_only_and_only_owners_deactivate(self):
        client_record = make_client(self.company_a, code="C001")

        self.client.force_login(self.member_a)
        self.assertEqual(self._send("post", "/api/finance/clients/", self._client_payload()).status_code, 403)
        self.assertEqual(self._send("get", f"/api/finance/clients/{client_record.id}/").status_code, 200)

        self.client.force_login(self.manager_a)
        patched = self._send("patch", f"/api/finance/clients/{client_record.id}/", {"credit_days": 30})
        self.assertEqual(patched.status_code, 200)
        self.assertEqual(patched.json()["credit_days"], 30)
        self.assertEqual(self._send("delete", f"/api/finance/clients/{client_record.id}/").status_code, 403)

        self.client.force_login(self.owner_a)
        self.assertEqual(self._send("delete", f"/api/finance/clients/{client_record.id}/").status_code, 204)

        client_record.refresh_from_db()
        self.assertFalse(client_record.active)
        entry = LedgerEntry.all_objects.filter(company=self.company_a).latest("id")
        self.assertEqual(entry.event_type, "finance.client.deactivated")
        self.assertEqual(entry.data_before["active"], True)
        self.assertEqual(entry.data_after["active"], False)

        rejected = self._send(
            "post",
            "/api/finance/invoices/",
            {
                "customer": client_record.id,
                "lines": [{"description": "Servicio", "quantity": "1", "unit_price": "10.00"}],
            },
        )
        self.assertEqual(rejected.status_code, 404)
        self.assertEqual(rejected.json()["kind"], "unknown_customer")
        self.assertFalse(Invoice.all_objects.filter(company=self.company_a).exists())

    def test_product_price_keeps_two_decimal_places(self):
        product = make_product(self.company_a)
        self.client.force_login(self.manager_a)

        too_precise = self._send("patch", f"/api/finance/products/{product.id}/", {"sale_price": "9.999"})
        negative = self._send("patch", f"/api/finance/products/{product.id}/", {"sale_price": "-1.00"})
        updated = self._send("patch", f"/api/finance/products/{product.id}/", {"sale_price": "9.99"})

        self.assertEqual(too_precise.status_code, 400)
        self.assertEqual(negative.status_code, 400)
        self.assertEqual(updated.status_code, 200)
        product.refresh_from_db()
        self.assertEqual(product.sale_price, Decimal("9.99"))
        self.assertEqual(Product.all_objects.filter(company=self.company_a).count(), 1)
