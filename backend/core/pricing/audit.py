from __future__ import annotations

import hashlib
import json

from django.db import IntegrityError, transaction
from django.utils import timezone

from hierarchy.exceptions import DataIntegrityError
from pricing.models import PricingChange


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


def _payload(
    *,
    action: str,
    resource_label: str,
    resource_pk: str,
    actor_id,
    occurred_at,
    data_before,
    data_after,
) -> dict:
    return {
        "action": action,
        "resource_label": resource_label,
        "resource_pk": resource_pk,
        "actor_id": actor_id,
        "occurred_at": occurred_at.isoformat(),
        "data_before": data_before,
        "data_after": data_after,
    }


def record_pricing_change(
    *,
    action: str,
    resource_label: str,
    resource_pk: str,
    actor=None,
    data_before: dict | None = None,
    data_after: dict | None = None,
) -> PricingChange:
    """Append a new immutable pricing audit record.

    Retries on concurrent writers racing for the same ``prev_hash`` so the
    chain stays linear.
    """

    actor_id = getattr(actor, "pk", None)
    occurred_at = timezone.now()
    # Normalize through JSON so the stored and hashed payloads are identical.
    data_before = json.loads(_canonical_json(data_before)) if data_before is not None else None
    data_after = json.loads(_canonical_json(data_after)) if data_after is not None else None

    for _attempt in range(5):
        prev_hash = (
            PricingChange.objects.order_by("-id").values_list("entry_hash", flat=True).first()
            or ""
        )
        payload = _payload(
            action=action,
            resource_label=resource_label,
            resource_pk=resource_pk,
            actor_id=actor_id,
            occurred_at=occurred_at,
            data_before=data_before,
            data_after=data_after,
        )
        change = PricingChange(
            action=action,
            resource_label=resource_label,
            resource_pk=resource_pk,
            actor_id=actor_id,
            occurred_at=occurred_at,
            prev_hash=prev_hash,
            entry_hash=_build_entry_hash(payload, prev_hash),
            data_before=data_before,
            data_after=data_after,
        )
        try:
            with transaction.atomic():
                change.save(force_insert=True)
            return change
        except IntegrityError as exc:
            msg = str(exc)
            if "prev_hash" in msg or "entry_hash" in msg:
                continue
            raise

    raise RuntimeError("Failed to append pricing change (concurrency retries exhausted).")


def verify_pricing_chain() -> int:
    """Recompute every hash in order; return the number of verified records."""

    prev_hash = ""
    count = 0
    for change in PricingChange.objects.order_by("id").iterator():
        if change.prev_hash != prev_hash:
            raise DataIntegrityError(f"Pricing change {change.pk} is not linked to its predecessor.")
        payload = _payload(
            action=change.action,
            resource_label=change.resource_label,
            resource_pk=change.resource_pk,
            actor_id=change.actor_id,
            occurred_at=change.occurred_at,
            data_before=change.data_before,
            data_after=change.data_after,
        )
        if _build_entry_hash(payload, prev_hash) != change.entry_hash:
            raise DataIntegrityError(f"Pricing change {change.pk} hash mismatch.")
        prev_hash = change.entry_hash
        count += 1
    return count
