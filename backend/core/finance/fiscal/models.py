from __future__ import annotations

from django.db import models

from tenancy.models import BaseTenantModel


class TenantFiscalConfig(BaseTenantModel):
    """Per-company tax authority configuration.

    `api_token` is stored Fernet-encrypted (see `finance.fiscal.crypto`); only
    the HTTP provider uses it.
    """

    class ProviderType(models.TextChoices):
        MOCK = "mock", "Simulated authority"
        HTTP = "http", "HTTP authority"

    class Environment(models.TextChoices):
        TEST = "test", "Test"
        PRODUCTION = "production", "Production"

    provider_type = models.CharField(
        max_length=20,
        choices=ProviderType.choices,
        default=ProviderType.MOCK,
    )
    api_base_url = models.URLField(blank=True)
    api_token = models.TextField(blank=True)
    environment = models.CharField(
        max_length=20,
        choices=Environment.choices,
        default=Environment.TEST,
        db_index=True,
    )
    active = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ("-active", "-updated_at", "id")
        verbose_name = "Tenant Fiscal Config"
        verbose_name_plural = "Tenant Fiscal Configs"
        constraints = [
            models.UniqueConstraint(
                fields=("company", "provider_type"),
                name="uq_tenant_fiscal_config_provider_per_tenant",
            ),
            models.UniqueConstraint(
                fields=("company",),
                condition=models.Q(active=True),
                name="uq_tenant_fiscal_config_single_active_per_tenant",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.company_id}:{self.provider_type} ({self.environment})"
