from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Sequence

from django.db import IntegrityError, transaction

from finance.errors import InvoiceValidationError, UnknownTaxDefinition
from finance.models import TaxDefinition
from finance.money import HUNDRED, ZERO, percentage, to_money, to_rate
from ledger.models import LedgerEntry
from ledger.services import append_ledger_entry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaxRate:
    """Snapshot of a tax definition taken when a line is computed."""

    tax_definition_id: int
    percentage: Decimal
    code: str = ""
    name: str = ""


@dataclass(frozen=True)
class TaxAssessmentResult:
    tax_definition_id: int
    code: str
    name: str
    base: Decimal
    percentage: Decimal
    amount: Decimal


def _rate_from_definition(definition: TaxDefinition) -> TaxRate:
    return TaxRate(
        tax_definition_id=definition.id,
        percentage=to_rate(definition.percentage),
        code=definition.code,
        name=definition.name,
    )


def resolve_tax_rates(company, tax_ids: Iterable[int]) -> list[TaxRate]:
    """Load rate snapshots for `tax_ids`, in the order given.

    Every id must name an active definition owned by `company`; otherwise the
    whole resolution fails with `UnknownTaxDefinition` listing the bad ids.
    """

    requested = []
    for tax_id in tax_ids:
        try:
            requested.append(int(tax_id))
        except (TypeError, ValueError) as exc:
            raise UnknownTaxDefinition(tax_ids=[tax_id]) from exc

    if not requested:
        return []

    definitions = {
        definition.id: definition
        for definition in TaxDefinition.all_objects.filter(
            company=company,
            active=True,
            id__in=set(requested),
        )
    }
    missing = [tax_id for tax_id in requested if tax_id not in definitions]
    if missing:
        raise UnknownTaxDefinition(
            f"Unknown or inactive tax definitions: {', '.join(str(m) for m in missing)}.",
            tax_ids=missing,
        )

    seen = set()
    rates = []
    for tax_id in requested:
        if tax_id in seen:
            continue
        seen.add(tax_id)
        rates.append(_rate_from_definition(definitions[tax_id]))
    return rates


def default_tax_rates(company) -> list[TaxRate]:
    definitions = TaxDefinition.all_objects.filter(
        company=company,
        active=True,
        is_default=True,
    ).order_by("category", "id")
    return [_rate_from_definition(definition) for definition in definitions]


def assess_taxes(base, rates: Sequence[TaxRate]) -> list[TaxAssessmentResult]:
    """Apply each rate to `base`; amounts are rounded half-up per rate."""

    base = to_money(base)
    results = []
    for rate in rates:
        rate_value = to_rate(rate.percentage)
        if rate_value < ZERO or rate_value > HUNDRED:
            raise InvoiceValidationError(
                f"Tax percentage {rate_value} is outside 0-100.",
                field="percentage",
            )
        results.append(
            TaxAssessmentResult(
                tax_definition_id=rate.tax_definition_id,
                code=rate.code,
                name=rate.name,
                base=base,
                percentage=rate_value,
                amount=percentage(base, rate_value),
            )
        )
    return results


def _tax_snapshot(definition: TaxDefinition) -> dict:
    return {
        "id": definition.id,
        "code": definition.code,
        "name": definition.name,
        "percentage": str(definition.percentage),
        "category": definition.category,
        "is_default": definition.is_default,
        "active": definition.active,
    }


def save_tax_definition(
    *,
    company,
    instance: TaxDefinition | None = None,
    actor=None,
    request=None,
    **fields,
) -> TaxDefinition:
    """Create or update a tax definition.

    Marking a definition as default clears the flag on the other definitions
    of the same category, inside the same transaction, with those rows locked.
    """

    with transaction.atomic():
        created = instance is None
        if created:
            instance = TaxDefinition(company=company)
            before = None
        else:
            instance = TaxDefinition.all_objects.select_for_update().get(
                pk=instance.pk,
                company=company,
            )
            before = _tax_snapshot(instance)

        for name, value in fields.items():
            setattr(instance, name, value)
        instance.percentage = to_rate(instance.percentage)

        if instance.is_default and instance.active:
            siblings = (
                TaxDefinition.all_objects.select_for_update()
                .filter(company=company, category=instance.category, is_default=True)
                .exclude(pk=instance.pk)
            )
            cleared = list(siblings.values_list("id", flat=True))
            if cleared:
                TaxDefinition.all_objects.filter(id__in=cleared).update(is_default=False)
                logger.info(
                    "finance.tax.default_cleared company_id=%s category=%s tax_ids=%s",
                    company.id,
                    instance.category,
                    ",".join(str(tax_id) for tax_id in cleared),
                )

        try:
            with transaction.atomic():
                instance.save()
        except IntegrityError as exc:
            raise InvoiceValidationError(
                f"Tax code '{instance.code}' already exists for this company.",
                field="code",
            ) from exc

        append_ledger_entry(
            company=company,
            actor=actor,
            action=LedgerEntry.ACTION_CREATE if created else LedgerEntry.ACTION_UPDATE,
            resource_label=TaxDefinition._meta.label,
            resource_pk=instance.pk,
            request=request,
            event_type="finance.tax.saved",
            data_before=before,
            data_after=_tax_snapshot(instance),
        )

    logger.info(
        "finance.tax.saved company_id=%s tax_id=%s code=%s default=%s",
        company.id,
        instance.pk,
        instance.code,
        instance.is_default,
    )
    return instance
