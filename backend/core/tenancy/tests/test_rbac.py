from types import SimpleNamespace

from django.core.exceptions import ValidationError
from django.test import SimpleTestCase, override_settings

from tenancy.rbac import (
    ROLE_MANAGER,
    ROLE_MEMBER,
    ROLE_OWNER,
    get_role_matrix_for_resource,
    role_can,
    validate_rbac_overrides_schema,
)


class RoleMatrixTests(SimpleTestCase):
    def test_default_matrices(self):
        invoices = get_role_matrix_for_resource("invoices")
        taxes = get_role_matrix_for_resource("taxes")
        fiscal = get_role_matrix_for_resource("fiscal_config")

        self.assertTrue(role_can(invoices, ROLE_MEMBER, "GET"))
        self.assertFalse(role_can(invoices, ROLE_MEMBER, "POST"))
        self.assertTrue(role_can(invoices, ROLE_MANAGER, "POST"))
        self.assertFalse(role_can(invoices, ROLE_OWNER, "DELETE"))
        self.assertFalse(role_can(taxes, ROLE_MANAGER, "POST"))
        self.assertTrue(role_can(taxes, ROLE_OWNER, "PATCH"))
        self.assertFalse(role_can(fiscal, ROLE_MANAGER, "GET"))

    @override_settings(TENANT_ROLE_MATRICES={"taxes": {"POST": ["MANAGER", "OWNER"]}})
    def test_settings_overrides_apply(self):
        taxes = get_role_matrix_for_resource("taxes")

        self.assertTrue(role_can(taxes, ROLE_MANAGER, "POST"))
        self.assertFalse(role_can(taxes, ROLE_MANAGER, "PUT"))

    def test_company_overrides_apply_after_settings(self):
        company = SimpleNamespace(rbac_overrides={"invoices": {"POST": ["OWNER"]}})

        invoices = get_role_matrix_for_resource("invoices", company=company)

        self.assertFalse(role_can(invoices, ROLE_MANAGER, "POST"))
        self.assertTrue(role_can(invoices, ROLE_OWNER, "POST"))

    def test_invalid_company_overrides_are_ignored(self):
        company = SimpleNamespace(rbac_overrides={"invoices": {"POST": ["ROOT"]}})

        invoices = get_role_matrix_for_resource("invoices", company=company)

        self.assertTrue(role_can(invoices, ROLE_MANAGER, "POST"))

    def test_schema_validation(self):
        validate_rbac_overrides_schema({})
        validate_rbac_overrides_schema({"taxes": {"POST": ["owner"]}})

        invalid = [
            [],
            {"unknown": {"GET": ["OWNER"]}},
            {"taxes": ["OWNER"]},
            {"taxes": {"FETCH": ["OWNER"]}},
            {"taxes": {"POST": []}},
            {"taxes": {"POST": ["OWNER", "ROOT"]}},
        ]
        for overrides in invalid:
            with self.subTest(overrides=overrides):
                with self.assertRaises(ValidationError):
                    validate_rbac_overrides_schema(overrides)
