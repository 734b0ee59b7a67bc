from decimal import Decimal

from django.db import transaction
from django.forms.models import model_to_dict

from finance.errors import TenantContextMissing
from ledger.models import LedgerEntry
from ledger.services import append_ledger_entry
from tenancy.permissions import IsTenantRoleAllowed


def _instance_payload(instance) -> dict:
    fields = [
        field.name
        for field in instance._meta.fields
        if field.name not in {"company", "created_at", "updated_at"}
    ]
    payload = model_to_dict(instance, fields=fields)
    return {key: str(value) if isinstance(value, Decimal) else value for key, value in payload.items()}


class TenantScopedAPIViewMixin:
    """Base for tenant resources: role check plus company-filtered queryset.

    Writes made through the generic create/update/destroy hooks are recorded in
    the company's ledger. Destroy deactivates the record (`active=False`);
    catalog rows stay referenced by issued invoices.
    """

    permission_classes = [IsTenantRoleAllowed]
    model = None
    ordering = ()

    def initial(self, request, *args, **kwargs):
        if getattr(request, "company", None) is None:
            raise TenantContextMissing("Tenant context not found or invalid.")
        return super().initial(request, *args, **kwargs)

    def get_queryset(self):
        # all_objects + explicit company: the request tenant, never the ambient context.
        queryset = self.model.all_objects.filter(company=self.request.company)
        if self.ordering:
            return queryset.order_by(*self.ordering)
        return queryset

    def _append_ledger(self, action: str, instance, *, event: str, before=None, after=None):
        resource_key = getattr(self, "tenant_resource_key", "")
        append_ledger_entry(
            company=self.request.company,
            actor=getattr(self.request, "user", None),
            action=action,
            resource_label=self.model._meta.label,
            resource_pk=instance.pk,
            request=self.request,
            event_type=f"{self.model._meta.label_lower}.{event}",
            data_before=before,
            data_after=after,
            metadata={"tenant_resource_key": resource_key} if resource_key else {},
        )

    def perform_create(self, serializer):
        with transaction.atomic():
            instance = serializer.save(company=self.request.company)
            self._append_ledger(
                LedgerEntry.ACTION_CREATE,
                instance,
                event="created",
                after=_instance_payload(instance),
            )
        return instance

    def perform_update(self, serializer):
        with transaction.atomic():
            before = _instance_payload(serializer.instance)
            updated = serializer.save()
            self._append_ledger(
                LedgerEntry.ACTION_UPDATE,
                updated,
                event="updated",
                before=before,
                after=_instance_payload(updated),
            )
        return updated

    def perform_destroy(self, instance):
        with transaction.atomic():
            before = _instance_payload(instance)
            instance.active = False
            instance.save(update_fields=["active", "updated_at"])
            self._append_ledger(
                LedgerEntry.ACTION_UPDATE,
                instance,
                event="deactivated",
                before=before,
                after=_instance_payload(instance),
            )
