from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from django.db import transaction

from hierarchy.models import Actor, Capability, Tier
from hierarchy.services import get_actor, has_capability, is_direct_child
from pricing.audit import record_pricing_change
from pricing.exceptions import (
    AssignmentNotPermitted,
    NoRateConfigured,
    PricingError,
    RateBelowFloor,
)
from pricing.models import Channel, Direction, PricingChange, RateAssignment, Slab, SlabSet, TierRate
from pricing.resolver import RateResolver, get_channel
from pricing.slabs import SlabRange, overlapping_floor, validate_slab_table
from reseller_backend.config import EngineConfig, get_engine_config

logger = logging.getLogger(__name__)

_RATE_QUANTUM = Decimal("0.000001")
_ONE = Decimal("1")


def _to_rate(value: Any) -> Decimal:
    try:
        rate = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise PricingError(f"Invalid rate '{value}'.") from exc
    if not rate.is_finite() or rate < 0 or rate >= _ONE:
        raise PricingError(f"Rate {rate} must be a fraction in [0, 1).")
    if rate != rate.quantize(_RATE_QUANTUM):
        raise PricingError(f"Rate {rate} has more than 6 decimal places.")
    return rate


def _slab_snapshot(slab_set: SlabSet | None) -> dict | None:
    if slab_set is None:
        return None
    return {
        "version": slab_set.version,
        "slabs": [
            {
                "min_amount": slab.min_amount,
                "max_amount": slab.max_amount,
                "flat_fee": slab.flat_fee,
            }
            for slab in slab_set.slabs.order_by("min_amount")
        ],
    }


def _rate_snapshot(row) -> dict:
    return {
        "rate": row.rate,
        "is_enabled": row.is_enabled,
        "version": row.version,
    }


class RateAssignmentValidator:
    """Guards every downward delegation of a rate or slab table.

    All checks run before the first write; a rejected assignment leaves no
    trace besides the raised error.
    """

    def __init__(
        self,
        resolver: RateResolver | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self.config = config or get_engine_config()
        self.resolver = resolver or RateResolver(config=self.config)

    # -- authority -----------------------------------------------------

    def _check_authority(self, assigner: Actor, target: Actor) -> None:
        if not has_capability(assigner, Capability.ASSIGN_RATES):
            raise AssignmentNotPermitted(f"Actor {assigner.pk} may not assign rates.")
        if target.is_root:
            raise AssignmentNotPermitted("The root authority's pricing is its cost basis.")
        if not target.is_active:
            raise AssignmentNotPermitted(f"Target actor {target.pk} is inactive.")
        if assigner.is_root:
            return
        if not is_direct_child(assigner, target):
            raise AssignmentNotPermitted(
                f"Actor {assigner.pk} can only assign rates to its direct children."
            )

    def _require_root(self, assigner: Actor) -> None:
        if not (assigner.is_root and assigner.is_active):
            raise AssignmentNotPermitted("Only the root authority manages tier defaults.")

    # -- inbound rates -------------------------------------------------

    def rate_floor(self, assigner: Actor, channel: Channel) -> Decimal:
        assigner_rate = self.resolver.effective_inbound_rate(assigner, channel)
        return max(channel.cost_basis_rate, assigner_rate)

    def assign_rate(self, assigner_id, target_id, channel_id, rate) -> RateAssignment:
        assigner = get_actor(assigner_id)
        target = get_actor(target_id)
        channel = get_channel(channel_id)
        rate = _to_rate(rate)

        self._check_authority(assigner, target)
        if channel.direction != Direction.INBOUND:
            raise NoRateConfigured(f"Channel {channel.code} is priced by payout slabs.")
        floor = self.rate_floor(assigner, channel)
        if rate < floor:
            raise RateBelowFloor(
                rate,
                floor,
                f"Rate {rate} cannot be lower than {floor} on channel {channel.code}.",
            )

        with transaction.atomic():
            assignment = (
                RateAssignment.objects.select_for_update()
                .filter(actor=target, channel=channel)
                .first()
            )
            if assignment is None:
                assignment = RateAssignment.objects.create(
                    actor=target,
                    channel=channel,
                    rate=rate,
                    assigned_by=assigner,
                    is_enabled=True,
                )
                record_pricing_change(
                    action=PricingChange.ACTION_CREATE,
                    resource_label="RateAssignment",
                    resource_pk=str(assignment.pk),
                    actor=assigner,
                    data_after=_rate_snapshot(assignment),
                )
            elif (
                assignment.rate == rate
                and assignment.is_enabled
                and assignment.assigned_by_id == assigner.pk
            ):
                return assignment
            else:
                before = _rate_snapshot(assignment)
                assignment.rate = rate
                assignment.assigned_by = assigner
                assignment.is_enabled = True
                assignment.version += 1
                assignment.save(
                    update_fields=["rate", "assigned_by", "is_enabled", "version", "updated_at"]
                )
                record_pricing_change(
                    action=PricingChange.ACTION_UPDATE,
                    resource_label="RateAssignment",
                    resource_pk=str(assignment.pk),
                    actor=assigner,
                    data_before=before,
                    data_after=_rate_snapshot(assignment),
                )

        logger.info(
            "pricing.rate.assigned assigner_id=%s target_id=%s channel=%s rate=%s version=%s",
            assigner.pk,
            target.pk,
            channel.code,
            rate,
            assignment.version,
        )
        return assignment

    def remove_rate(self, assigner_id, target_id, channel_id) -> RateAssignment | None:
        """Disable an override so the target falls back to its tier default."""

        assigner = get_actor(assigner_id)
        target = get_actor(target_id)
        channel = get_channel(channel_id)
        self._check_authority(assigner, target)

        with transaction.atomic():
            assignment = (
                RateAssignment.objects.select_for_update()
                .filter(actor=target, channel=channel, is_enabled=True)
                .first()
            )
            if assignment is None:
                return None
            before = _rate_snapshot(assignment)
            assignment.is_enabled = False
            assignment.assigned_by = assigner
            assignment.version += 1
            assignment.save(update_fields=["is_enabled", "assigned_by", "version", "updated_at"])
            record_pricing_change(
                action=PricingChange.ACTION_DISABLE,
                resource_label="RateAssignment",
                resource_pk=str(assignment.pk),
                actor=assigner,
                data_before=before,
                data_after=_rate_snapshot(assignment),
            )

        logger.info(
            "pricing.rate.removed assigner_id=%s target_id=%s channel=%s",
            assigner.pk,
            target.pk,
            channel.code,
        )
        return assignment

    def assign_tier_rate(self, assigner_id, tier: str, channel_id, rate) -> TierRate:
        assigner = get_actor(assigner_id)
        channel = get_channel(channel_id)
        rate = _to_rate(rate)
        self._require_root(assigner)
        if tier not in Tier.values or tier == Tier.ROOT:
            raise AssignmentNotPermitted(f"Tier '{tier}' cannot carry a default rate.")
        if channel.direction != Direction.INBOUND:
            raise NoRateConfigured(f"Channel {channel.code} is priced by payout slabs.")
        if rate < channel.cost_basis_rate:
            raise RateBelowFloor(
                rate,
                channel.cost_basis_rate,
                f"Tier rate {rate} cannot be lower than the cost basis {channel.cost_basis_rate}.",
            )

        with transaction.atomic():
            row = TierRate.objects.select_for_update().filter(tier=tier, channel=channel).first()
            if row is None:
                row = TierRate.objects.create(tier=tier, channel=channel, rate=rate)
                record_pricing_change(
                    action=PricingChange.ACTION_CREATE,
                    resource_label="TierRate",
                    resource_pk=str(row.pk),
                    actor=assigner,
                    data_after=_rate_snapshot(row),
                )
            elif row.rate != rate or not row.is_enabled:
                before = _rate_snapshot(row)
                row.rate = rate
                row.is_enabled = True
                row.version += 1
                row.save(update_fields=["rate", "is_enabled", "version", "updated_at"])
                record_pricing_change(
                    action=PricingChange.ACTION_UPDATE,
                    resource_label="TierRate",
                    resource_pk=str(row.pk),
                    actor=assigner,
                    data_before=before,
                    data_after=_rate_snapshot(row),
                )
        return row

    # -- payout slabs --------------------------------------------------

    def _assigner_slab_floor(self, assigner: Actor) -> list[SlabRange]:
        try:
            return self.resolver.effective_slabs(assigner)
        except NoRateConfigured:
            if assigner.is_root:
                return []
            raise

    def assign_slabs(self, assigner_id, target_id, slabs: Iterable[Any]) -> SlabSet:
        assigner = get_actor(assigner_id)
        target = get_actor(target_id)
        self._check_authority(assigner, target)

        table = validate_slab_table(slabs)
        floor_table = self._assigner_slab_floor(assigner)
        for slab in table:
            floor_slab = overlapping_floor(slab, floor_table)
            if floor_slab is not None and slab.flat_fee < floor_slab.flat_fee:
                raise RateBelowFloor(
                    slab.flat_fee,
                    floor_slab.flat_fee,
                    f"Fee {slab.flat_fee} for amounts from {slab.min_amount} is below "
                    f"the assigner's fee {floor_slab.flat_fee}.",
                )

        slab_set = self._replace_table(owner={"actor": target}, table=table, assigner=assigner)
        logger.info(
            "pricing.slabs.assigned assigner_id=%s target_id=%s slabs=%s version=%s",
            assigner.pk,
            target.pk,
            len(table),
            slab_set.version,
        )
        return slab_set

    def assign_tier_slabs(self, assigner_id, tier: str, slabs: Iterable[Any]) -> SlabSet:
        assigner = get_actor(assigner_id)
        self._require_root(assigner)
        if tier not in Tier.values:
            raise AssignmentNotPermitted(f"Unknown tier '{tier}'.")
        table = validate_slab_table(slabs)
        return self._replace_table(owner={"tier": tier}, table=table, assigner=assigner)

    def _replace_table(self, *, owner: dict, table: list[SlabRange], assigner: Actor) -> SlabSet:
        with transaction.atomic():
            slab_set = SlabSet.objects.select_for_update().filter(**owner).first()
            before = _slab_snapshot(slab_set)
            if slab_set is None:
                slab_set = SlabSet.objects.create(assigned_by=assigner, **owner)
                action = PricingChange.ACTION_CREATE
            else:
                slab_set.slabs.all().delete()
                slab_set.assigned_by = assigner
                slab_set.version += 1
                slab_set.save(update_fields=["assigned_by", "version", "updated_at"])
                action = PricingChange.ACTION_UPDATE

            Slab.objects.bulk_create(
                [
                    Slab(
                        slab_set=slab_set,
                        min_amount=slab.min_amount,
                        max_amount=slab.max_amount,
                        flat_fee=slab.flat_fee,
                    )
                    for slab in table
                ]
            )
            record_pricing_change(
                action=action,
                resource_label="SlabSet",
                resource_pk=str(slab_set.pk),
                actor=assigner,
                data_before=before,
                data_after=_slab_snapshot(slab_set),
            )
        return slab_set
