from __future__ import annotations

from django.conf import settings

from finance.errors import AuthorityNotConfigured
from finance.fiscal.crypto import decrypt_token
from finance.fiscal.models import TenantFiscalConfig

from .base import AuthorityAdapterBase
from .http import HttpAuthorityAdapter
from .mock import MockAuthorityAdapter


def get_authority_adapter(company_id: int) -> AuthorityAdapterBase:
    """Return the adapter of the company's active authority configuration."""

    config = (
        TenantFiscalConfig.all_objects.only(
            "id",
            "company_id",
            "provider_type",
            "api_base_url",
            "api_token",
            "environment",
            "active",
        )
        .filter(company_id=company_id, active=True)
        .first()
    )
    if config is None:
        raise AuthorityNotConfigured(f"Company {company_id} has no active tax authority configuration.")

    provider_type = (config.provider_type or "").strip().lower()
    if provider_type == TenantFiscalConfig.ProviderType.MOCK:
        return MockAuthorityAdapter(environment=config.environment)
    if provider_type == TenantFiscalConfig.ProviderType.HTTP:
        return HttpAuthorityAdapter(
            base_url=config.api_base_url,
            token=decrypt_token(config.api_token),
            environment=config.environment,
            timeout_seconds=getattr(settings, "FISCAL_SUBMISSION_TIMEOUT_SECONDS", 15.0),
        )

    raise AuthorityNotConfigured(
        f"Unsupported provider_type={config.provider_type!r} for company={company_id}."
    )
