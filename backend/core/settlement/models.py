from __future__ import annotations

from decimal import Decimal

from django.db import models
from django.db.models import Q

from pricing.models import Direction


class Settlement(models.Model):
    """Idempotency record and status of one settled transaction."""

    class Status(models.TextChoices):
        CREATED = "CREATED", "Created"
        SUCCESS = "SUCCESS", "Success"
        FAILED = "FAILED", "Failed"

    reference = models.CharField(max_length=128, unique=True)
    direction = models.CharField(max_length=16, choices=Direction.choices)
    actor = models.ForeignKey("hierarchy.Actor", on_delete=models.PROTECT, related_name="settlements")
    channel = models.ForeignKey(
        "pricing.Channel",
        on_delete=models.PROTECT,
        related_name="settlements",
        null=True,
        blank=True,
    )
    amount = models.DecimalField(max_digits=16, decimal_places=2)
    rate = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    fee = models.DecimalField(max_digits=16, decimal_places=2, default=Decimal("0.00"))
    charge = models.DecimalField(max_digits=16, decimal_places=2, default=Decimal("0.00"))
    net_amount = models.DecimalField(max_digits=16, decimal_places=2)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.CREATED, db_index=True)
    commission_recorded_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Set once the commission split of an inbound settlement is recorded.",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-id",)
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=Decimal("0")),
                name="ck_settlement_amount_positive",
            ),
        ]
        indexes = [
            models.Index(fields=("actor", "status"), name="idx_settlement_actor_status"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.direction} {self.reference} {self.amount} [{self.status}]"
