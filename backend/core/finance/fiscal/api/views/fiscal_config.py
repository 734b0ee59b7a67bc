from __future__ import annotations

import logging

from django.db import transaction
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from ledger.models import LedgerEntry
from ledger.services import append_ledger_entry
from finance.fiscal.api.serializers.fiscal_config import (
    TenantFiscalConfigReadSerializer,
    TenantFiscalConfigUpsertSerializer,
)
from finance.fiscal.crypto import encrypt_token
from finance.fiscal.models import TenantFiscalConfig
from tenancy.permissions import IsTenantRoleAllowed

logger = logging.getLogger(__name__)


def _config_snapshot(config: TenantFiscalConfig) -> dict:
    return {
        "id": config.id,
        "provider_type": config.provider_type,
        "api_base_url": config.api_base_url,
        "environment": config.environment,
        "active": config.active,
        "has_token": bool(config.api_token),
    }


class TenantFiscalConfigUpsertAPIView(APIView):
    permission_classes = [IsTenantRoleAllowed]
    tenant_resource_key = "fiscal_config"

    def get(self, request):
        config = TenantFiscalConfig.all_objects.filter(company=request.company, active=True).first()
        if config is None:
            return Response(
                {"kind": "authority_not_configured", "detail": "Fiscal configuration not found."},
                status=status.HTTP_404_NOT_FOUND,
            )

        return Response(
            TenantFiscalConfigReadSerializer(config).data,
            status=status.HTTP_200_OK,
        )

    def post(self, request):
        company = request.company
        serializer = TenantFiscalConfigUpsertSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        provider_type = serializer.validated_data["provider_type"]
        environment = serializer.validated_data["environment"]
        token_plain = serializer.validated_data.get("token", "") or ""

        logger.info(
            "fiscal.config.upsert.started company_id=%s provider_type=%s environment=%s",
            company.id,
            provider_type,
            environment,
        )

        encrypted = encrypt_token(token_plain) if token_plain else ""

        with transaction.atomic():
            previous = (
                TenantFiscalConfig.all_objects.select_for_update()
                .filter(company=company, active=True)
                .first()
            )
            before_payload = _config_snapshot(previous) if previous is not None else None

            # Single active config per tenant: deactivate all, then activate the chosen one.
            TenantFiscalConfig.all_objects.filter(company=company).update(active=False)

            defaults = {
                "api_base_url": serializer.validated_data.get("api_base_url", ""),
                "environment": environment,
                "active": True,
            }
            if encrypted:
                defaults["api_token"] = encrypted

            config, created = TenantFiscalConfig.all_objects.update_or_create(
                company=company,
                provider_type=provider_type,
                defaults=defaults,
            )

            append_ledger_entry(
                company=company,
                actor=request.user,
                action=LedgerEntry.ACTION_CREATE if created else LedgerEntry.ACTION_UPDATE,
                resource_label=TenantFiscalConfig._meta.label,
                resource_pk=config.id,
                request=request,
                event_type="finance.fiscal.config.upsert",
                data_before=before_payload,
                data_after=_config_snapshot(config),
                metadata={"tenant_resource_key": "fiscal_config"},
            )

        logger.info(
            "fiscal.config.upsert.completed company_id=%s config_id=%s provider_type=%s",
            company.id,
            config.id,
            provider_type,
        )

        return Response(
            TenantFiscalConfigReadSerializer(config).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )
