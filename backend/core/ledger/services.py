from __future__ import annotations

import hashlib
import json

from django.db import IntegrityError, transaction
from django.utils import timezone

from ledger.models import LedgerEntry


def _canonical_json(value) -> str:
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=True,
        default=str,
    )


def _build_entry_hash(payload: dict, prev_hash: str) -> str:
    payload_json = _canonical_json(payload)
    material = f"{prev_hash}{payload_json}".encode("utf-8")
    return hashlib.sha256(material).hexdigest()


def _entry_payload(entry: LedgerEntry) -> dict:
    return {
        "chain_id": entry.chain_id,
        "company_id": entry.company_id,
        "actor_username": entry.actor_username,
        "action": entry.action,
        "event_type": entry.event_type,
        "resource_label": entry.resource_label,
        "resource_pk": entry.resource_pk,
        "occurred_at": entry.occurred_at.isoformat(),
        "correlation_id": entry.correlation_id,
        "request_method": entry.request_method,
        "request_path": entry.request_path,
        "data_before": entry.data_before,
        "data_after": entry.data_after,
        "metadata": entry.metadata,
    }


def append_ledger_entry(
    *,
    company,
    actor,
    action: str,
    resource_label: str,
    resource_pk,
    request=None,
    event_type: str = "",
    data_before: dict | None = None,
    data_after: dict | None = None,
    metadata: dict | None = None,
) -> LedgerEntry:
    """Append a new immutable entry to the company's chain.

    Callers invoke this inside the transaction that performs the audited change,
    so the entry and the change commit or roll back together.
    """

    if getattr(company, "id", None) is None:
        raise ValueError("company is required for ledger entries.")

    actor_obj = actor if getattr(actor, "is_authenticated", False) else None
    entry_kwargs = {
        "company": company,
        "actor": actor_obj,
        "actor_username": (getattr(actor_obj, "username", "") or "").strip(),
        "action": action,
        "event_type": event_type or f"{resource_label}.{action.lower()}",
        "resource_label": resource_label,
        "resource_pk": str(resource_pk or ""),
        "occurred_at": timezone.now(),
        "correlation_id": (getattr(request, "correlation_id", "") or "")[:64],
        "request_method": (getattr(request, "method", "") or "").upper(),
        "request_path": (getattr(request, "path", "") or "")[:255],
        "chain_id": f"tenant:{company.id}",
        # Round-trip through JSON so the hashed payload equals what the row stores.
        "data_before": json.loads(_canonical_json(data_before)),
        "data_after": json.loads(_canonical_json(data_after)),
        "metadata": json.loads(_canonical_json(metadata if isinstance(metadata, dict) else {})),
    }

    for _attempt in range(5):
        prev_hash = (
            LedgerEntry.all_objects.filter(chain_id=entry_kwargs["chain_id"])
            .order_by("-id")
            .values_list("entry_hash", flat=True)
            .first()
            or ""
        )
        entry = LedgerEntry(prev_hash=prev_hash, **entry_kwargs)
        entry.entry_hash = _build_entry_hash(_entry_payload(entry), prev_hash)

        try:
            with transaction.atomic():
                entry.save(force_insert=True)
            return entry
        except IntegrityError as exc:
            # Concurrent writers may race on prev_hash uniqueness. Retry with a new prev_hash.
            if "uq_ledger_prev_hash_per_chain" in str(exc) or "prev_hash" in str(exc):
                continue
            raise

    raise RuntimeError("Failed to append ledger entry (concurrency retries exhausted).")


def verify_chain(company) -> bool:
    """Recompute every hash of the company's chain in insertion order."""

    prev_hash = ""
    entries = LedgerEntry.all_objects.filter(chain_id=f"tenant:{company.id}").order_by("id")
    for entry in entries.iterator():
        if entry.prev_hash != prev_hash:
            return False
        if _build_entry_hash(_entry_payload(entry), prev_hash) != entry.entry_hash:
            return False
        prev_hash = entry.entry_hash
    return True
