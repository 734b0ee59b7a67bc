from django.test import TestCase, override_settings

from finance.tests.helpers import make_company, make_member


@override_settings(ALLOWED_HOSTS=["testserver", ".example.com"])
class TenantContextMiddlewareTests(TestCase):
    def setUp(self):
        self.company = make_company("acme")
        self.other = make_company("beta")
        self.owner = make_member(self.company, "owner-a")
        self.client.force_login(self.owner)

    def test_header_selects_the_tenant(self):
        response = self.client.get(
            "/api/finance/invoices/",
            HTTP_X_TENANT_ID="ACME",
            HTTP_X_CORRELATION_ID="corr-test-001",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["X-Correlation-ID"], "corr-test-001")

    def test_subdomain_selects_the_tenant(self):
        response = self.client.get("/api/finance/invoices/", HTTP_HOST="acme.example.com")

        self.assertEqual(response.status_code, 200)

    def test_missing_tenant_is_rejected(self):
        response = self.client.get("/api/finance/invoices/")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["kind"], "tenant_context_missing")
        self.assertTrue(response["X-Correlation-ID"])

    def test_unknown_or_inactive_tenant_is_404(self):
        self.other.is_active = False
        self.other.save()

        unknown = self.client.get("/api/finance/invoices/", HTTP_X_TENANT_ID="nope")
        inactive = self.client.get("/api/finance/invoices/", HTTP_X_TENANT_ID="beta")

        self.assertEqual(unknown.status_code, 404)
        self.assertEqual(unknown.json()["kind"], "reference_error")
        self.assertEqual(inactive.status_code, 404)

    def test_host_and_header_must_agree(self):
        response = self.client.get(
            "/api/finance/invoices/",
            HTTP_HOST="beta.example.com",
            HTTP_X_TENANT_ID="acme",
        )

        self.assertEqual(response.status_code, 400)

    def test_exempt_paths_skip_resolution(self):
        token = self.client.post(
            "/api/auth/token/",
            data={"username": "owner-a", "password": "pass-1234"},
            content_type="application/json",
        )
        health = self.client.get("/healthz/")

        self.assertEqual(token.status_code, 200)
        self.assertIn("token", token.json())
        self.assertEqual(health.status_code, 200)
