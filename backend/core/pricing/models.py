from __future__ import annotations

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from hierarchy.models import Tier

_RATE_RANGE = Q(rate__gte=Decimal("0")) & Q(rate__lt=Decimal("1"))


class Direction(models.TextChoices):
    INBOUND = "INBOUND", "Inbound (pay-in)"
    OUTBOUND = "OUTBOUND", "Outbound (payout)"


class Channel(models.Model):
    """A priced payment instrument offered through an external processor."""

    code = models.SlugField(max_length=64, unique=True)
    name = models.CharField(max_length=255)
    direction = models.CharField(max_length=16, choices=Direction.choices, db_index=True)
    processor = models.CharField(max_length=64, db_index=True)
    cost_basis_rate = models.DecimalField(
        max_digits=9,
        decimal_places=6,
        default=Decimal("0"),
        help_text="Fraction the processor charges; the irreducible floor.",
    )
    response_codes = models.JSONField(
        default=list,
        blank=True,
        help_text="Substrings of the processor payment-method string that map to this channel.",
    )
    is_default = models.BooleanField(
        default=False,
        help_text="Fallback channel for its processor and direction.",
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("processor", "direction", "code")
        constraints = [
            models.CheckConstraint(
                condition=Q(cost_basis_rate__gte=Decimal("0")) & Q(cost_basis_rate__lt=Decimal("1")),
                name="ck_channel_cost_basis_range",
            ),
            models.UniqueConstraint(
                fields=("processor", "direction"),
                condition=Q(is_default=True),
                name="uq_channel_default_per_processor",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.processor}:{self.code} [{self.direction}]"


class TierRate(models.Model):
    """Default inbound rate for every actor of a tier on a channel."""

    tier = models.CharField(max_length=32, choices=Tier.choices)
    channel = models.ForeignKey(Channel, on_delete=models.PROTECT, related_name="tier_rates")
    rate = models.DecimalField(max_digits=9, decimal_places=6)
    is_enabled = models.BooleanField(default=True)
    version = models.PositiveIntegerField(default=1)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("tier", "channel_id")
        constraints = [
            models.UniqueConstraint(fields=("tier", "channel"), name="uq_tier_rate_tier_channel"),
            models.CheckConstraint(condition=_RATE_RANGE, name="ck_tier_rate_range"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.tier} @ {self.channel_id}: {self.rate}"


class RateAssignment(models.Model):
    """Actor-specific inbound rate, set by an ancestor."""

    actor = models.ForeignKey(
        "hierarchy.Actor",
        on_delete=models.PROTECT,
        related_name="rate_assignments",
    )
    channel = models.ForeignKey(Channel, on_delete=models.PROTECT, related_name="rate_assignments")
    rate = models.DecimalField(max_digits=9, decimal_places=6)
    assigned_by = models.ForeignKey(
        "hierarchy.Actor",
        on_delete=models.PROTECT,
        related_name="rates_assigned",
    )
    is_enabled = models.BooleanField(default=True)
    version = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("actor_id", "channel_id")
        constraints = [
            models.UniqueConstraint(fields=("actor", "channel"), name="uq_rate_assignment_actor_channel"),
            models.CheckConstraint(condition=_RATE_RANGE, name="ck_rate_assignment_range"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.actor_id} @ {self.channel_id}: {self.rate}"


class SlabSet(models.Model):
    """Flat-fee payout table owned by either one actor or one tier."""

    actor = models.OneToOneField(
        "hierarchy.Actor",
        on_delete=models.PROTECT,
        related_name="slab_set",
        null=True,
        blank=True,
    )
    tier = models.CharField(max_length=32, choices=Tier.choices, null=True, blank=True, unique=True)
    assigned_by = models.ForeignKey(
        "hierarchy.Actor",
        on_delete=models.PROTECT,
        related_name="slab_sets_assigned",
        null=True,
        blank=True,
    )
    version = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("id",)
        constraints = [
            models.CheckConstraint(
                condition=(Q(actor__isnull=False) & Q(tier__isnull=True))
                | (Q(actor__isnull=True) & Q(tier__isnull=False)),
                name="ck_slab_set_single_owner",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        owner = f"actor:{self.actor_id}" if self.actor_id else f"tier:{self.tier}"
        return f"SlabSet {owner} v{self.version}"


class Slab(models.Model):
    slab_set = models.ForeignKey(SlabSet, on_delete=models.CASCADE, related_name="slabs")
    min_amount = models.DecimalField(max_digits=14, decimal_places=2)
    max_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Inclusive upper bound; empty means no upper bound.",
    )
    flat_fee = models.DecimalField(max_digits=14, decimal_places=2)

    class Meta:
        ordering = ("min_amount", "id")
        constraints = [
            models.UniqueConstraint(fields=("slab_set", "min_amount"), name="uq_slab_set_min_amount"),
            models.CheckConstraint(
                condition=Q(min_amount__gte=Decimal("0")) & Q(flat_fee__gte=Decimal("0")),
                name="ck_slab_non_negative",
            ),
            models.CheckConstraint(
                condition=Q(max_amount__isnull=True) | Q(max_amount__gte=F("min_amount")),
                name="ck_slab_range_order",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        upper = self.max_amount if self.max_amount is not None else "+"
        return f"{self.min_amount}-{upper}: {self.flat_fee}"


class PricingChange(models.Model):
    """Append-only (immutable) audit record of a pricing change.

    Records are hash-chained: each ``entry_hash`` covers the canonical payload
    and the previous record's hash, so edits made below the application layer
    are detectable by ``pricing.audit.verify_pricing_chain``.
    """

    ACTION_CREATE = "CREATE"
    ACTION_UPDATE = "UPDATE"
    ACTION_DISABLE = "DISABLE"
    ACTION_CHOICES = [
        (ACTION_CREATE, "Create"),
        (ACTION_UPDATE, "Update"),
        (ACTION_DISABLE, "Disable"),
    ]

    action = models.CharField(max_length=20, choices=ACTION_CHOICES)
    resource_label = models.CharField(max_length=80)
    resource_pk = models.CharField(max_length=64, blank=True)
    actor = models.ForeignKey(
        "hierarchy.Actor",
        on_delete=models.PROTECT,
        related_name="pricing_changes",
        null=True,
        blank=True,
    )
    occurred_at = models.DateTimeField(default=timezone.now)
    prev_hash = models.CharField(max_length=64, blank=True, default="")
    entry_hash = models.CharField(max_length=64, unique=True)
    data_before = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    data_after = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)

    class Meta:
        ordering = ("-occurred_at", "-id")
        constraints = [
            models.UniqueConstraint(fields=("prev_hash",), name="uq_pricing_change_prev_hash"),
        ]
        verbose_name = "Pricing Change"
        verbose_name_plural = "Pricing Changes"

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.occurred_at:%Y-%m-%d %H:%M:%S} {self.resource_label}:{self.action}"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValidationError("Pricing changes are immutable; updates are not allowed.")
        if not self.entry_hash:
            raise ValidationError("entry_hash is required. Use pricing.audit.record_pricing_change().")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):  # pragma: no cover - enforced behavior
        raise ValidationError("Pricing changes are immutable; deletes are not allowed.")
