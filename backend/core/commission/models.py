from __future__ import annotations

from decimal import Decimal

from django.db import models
from django.db.models import Q


class CommissionCredit(models.Model):
    """One beneficiary's margin on one settled inbound transaction.

    Rows are created before the ledger is touched so a failed credit can be
    retried out of band; ``(reference, beneficiary)`` is unique, which is what
    keeps a replayed distribution from paying twice.
    """

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        CREDITED = "CREDITED", "Credited"
        FAILED = "FAILED", "Failed"

    reference = models.CharField(max_length=128, db_index=True)
    beneficiary = models.ForeignKey(
        "hierarchy.Actor",
        on_delete=models.PROTECT,
        related_name="commission_credits",
    )
    source = models.ForeignKey(
        "hierarchy.Actor",
        on_delete=models.PROTECT,
        related_name="commissions_generated",
    )
    channel = models.ForeignKey(
        "pricing.Channel",
        on_delete=models.PROTECT,
        related_name="commission_credits",
    )
    level = models.PositiveSmallIntegerField(help_text="Hops above the transacting actor.")
    rate = models.DecimalField(max_digits=9, decimal_places=6, help_text="Margin rate earned.")
    amount = models.DecimalField(max_digits=16, decimal_places=2)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING, db_index=True)
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True)
    next_retry_at = models.DateTimeField(null=True, blank=True)
    credited_at = models.DateTimeField(null=True, blank=True)
    ledger_entry = models.OneToOneField(
        "ledger.LedgerEntry",
        on_delete=models.PROTECT,
        related_name="commission_credit",
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("reference", "level")
        constraints = [
            models.UniqueConstraint(
                fields=("reference", "beneficiary"),
                name="uq_commission_credit_reference_beneficiary",
            ),
            models.CheckConstraint(
                condition=Q(amount__gt=Decimal("0")),
                name="ck_commission_credit_amount_positive",
            ),
        ]
        indexes = [
            models.Index(fields=("status", "next_retry_at"), name="idx_commission_credit_retry"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.reference} -> {self.beneficiary_id}: {self.amount} [{self.status}]"
