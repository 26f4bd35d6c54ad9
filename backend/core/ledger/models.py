from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q


def _default_currency() -> str:
    return str(getattr(settings, "ENGINE", {}).get("CURRENCY") or "INR").upper()


class Account(models.Model):
    """Wallet of one actor. Created at onboarding, never deleted."""

    actor = models.OneToOneField(
        "hierarchy.Actor",
        on_delete=models.PROTECT,
        related_name="account",
    )
    available = models.DecimalField(max_digits=16, decimal_places=2, default=Decimal("0.00"))
    held = models.DecimalField(max_digits=16, decimal_places=2, default=Decimal("0.00"))
    currency = models.CharField(max_length=3, default=_default_currency)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("id",)
        constraints = [
            models.CheckConstraint(
                condition=Q(available__gte=Decimal("0")),
                name="ck_account_available_non_negative",
            ),
            models.CheckConstraint(
                condition=Q(held__gte=Decimal("0")),
                name="ck_account_held_non_negative",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Account {self.pk} ({self.actor_id}) {self.available}/{self.held} {self.currency}"

    def delete(self, *args, **kwargs):  # pragma: no cover - enforced behavior
        raise ValidationError("Accounts are never deleted.")


class LedgerEntry(models.Model):
    """Append-only (immutable) record of one change to ``Account.available``.

    Replaying the entries of an account in id order reproduces its available
    balance exactly; ``resulting_balance`` is the running total after the entry.
    """

    class Kind(models.TextChoices):
        CREDIT = "CREDIT", "Credit"
        DEBIT = "DEBIT", "Debit"
        HOLD = "HOLD", "Hold"
        REFUND = "REFUND", "Refund"
        COMMISSION = "COMMISSION", "Commission"

    account = models.ForeignKey(Account, on_delete=models.PROTECT, related_name="entries")
    kind = models.CharField(max_length=16, choices=Kind.choices)
    delta = models.DecimalField(max_digits=16, decimal_places=2)
    resulting_balance = models.DecimalField(max_digits=16, decimal_places=2)
    reference = models.CharField(max_length=128, db_index=True)
    description = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-id",)
        indexes = [
            models.Index(fields=("account", "id"), name="idx_ledger_entry_account"),
        ]
        verbose_name = "Ledger Entry"
        verbose_name_plural = "Ledger Entries"

    def __str__(self) -> str:  # pragma: no cover - admin/debug helper
        return f"{self.kind} {self.delta} -> {self.resulting_balance} [{self.reference}]"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValidationError("Ledger entries are immutable; updates are not allowed.")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):  # pragma: no cover - enforced behavior
        raise ValidationError("Ledger entries are immutable; deletes are not allowed.")


class PayoutHold(models.Model):
    """Funds reserved for one outbound transfer, keyed by its reference."""

    class State(models.TextChoices):
        CREATED = "CREATED", "Created"
        SUCCESS = "SUCCESS", "Success"
        FAILED = "FAILED", "Failed"

    account = models.ForeignKey(Account, on_delete=models.PROTECT, related_name="holds")
    reference = models.CharField(max_length=128, unique=True)
    amount = models.DecimalField(max_digits=16, decimal_places=2)
    state = models.CharField(max_length=16, choices=State.choices, default=State.CREATED)
    created_at = models.DateTimeField(auto_now_add=True)
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ("-id",)
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=Decimal("0")),
                name="ck_payout_hold_amount_positive",
            ),
        ]
        indexes = [
            models.Index(fields=("account", "state"), name="idx_payout_hold_account_state"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Hold {self.reference} {self.amount} [{self.state}]"
