from decimal import Decimal

from django.contrib.auth import get_user_model

from customers.models import Company, CompanyMembership
from finance.fiscal.models import TenantFiscalConfig
from finance.models import Client, Product, TaxDefinition


def make_company(code="acme", **fields) -> Company:
    defaults = {
        "name": f"{code.title()} S.A. de C.V.",
        "nit": "0614-010190-102-3",
        "nrc": "123456-7",
        "activity_code": "46900",
        "economic_activity": "Venta al por mayor",
        "address": "Colonia Escalón, San Salvador",
        "department": "06",
        "municipality": "14",
        "email": f"facturas@{code}.example",
    }
    defaults.update(fields)
    return Company.objects.create(tenant_code=code, subdomain=code, **defaults)


def make_member(company, username, role=CompanyMembership.ROLE_OWNER):
    user = get_user_model().objects.create_user(
        username=username,
        email=f"{username}@example.com",
        password="pass-1234",
    )
    CompanyMembership.objects.create(company=company, user=user, role=role)
    return user


def make_client(company, code="C001", **fields) -> Client:
    defaults = {
        "name": "Distribuidora Central",
        "client_type": Client.ClientType.LEGAL_ENTITY,
        "nit": "0614-250588-101-4",
        "address": "Santa Tecla, La Libertad",
        "email": "compras@central.example",
    }
    defaults.update(fields)
    return Client.all_objects.create(company=company, code=code, **defaults)


def make_product(company, code="P001", **fields) -> Product:
    defaults = {
        "name": "Resma papel bond",
        "sale_price": Decimal("25.99"),
    }
    defaults.update(fields)
    return Product.all_objects.create(company=company, code=code, **defaults)


def make_vat(company, **fields) -> TaxDefinition:
    defaults = {
        "name": "IVA 13%",
        "code": "IVA",
        "percentage": Decimal("13.00"),
        "category": TaxDefinition.Category.VAT,
        "is_default": True,
    }
    defaults.update(fields)
    return TaxDefinition.all_objects.create(company=company, **defaults)


def make_mock_authority(company) -> TenantFiscalConfig:
    return TenantFiscalConfig.all_objects.create(
        company=company,
        provider_type=TenantFiscalConfig.ProviderType.MOCK,
        environment=TenantFiscalConfig.Environment.TEST,
    )


def scenario_line(tax, **fields) -> dict:
    line = {
        "description": "Resma papel bond",
        "quantity": Decimal("2"),
        "unit_price": Decimal("25.99"),
        "discount": Decimal("0"),
        "taxes": [tax.id],
    }
    line.update(fields)
    return line
