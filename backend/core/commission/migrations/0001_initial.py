# Generated manually. Keep in sync with commission/models.py.

from decimal import Decimal

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("hierarchy", "0001_initial"),
        ("ledger", "0001_initial"),
        ("pricing", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="CommissionCredit",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("reference", models.CharField(db_index=True, max_length=128)),
                ("level", models.PositiveSmallIntegerField(help_text="Hops above the transacting actor.")),
                ("rate", models.DecimalField(decimal_places=6, help_text="Margin rate earned.", max_digits=9)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=16)),
                (
                    "status",
                    models.CharField(
                        choices=[("PENDING", "Pending"), ("CREDITED", "Credited"), ("FAILED", "Failed")],
                        db_index=True,
                        default="PENDING",
                        max_length=16,
                    ),
                ),
                ("attempts", models.PositiveIntegerField(default=0)),
                ("last_error", models.TextField(blank=True)),
                ("next_retry_at", models.DateTimeField(blank=True, null=True)),
                ("credited_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "beneficiary",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="commission_credits",
                        to="hierarchy.actor",
                    ),
                ),
                (
                    "source",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="commissions_generated",
                        to="hierarchy.actor",
                    ),
                ),
                (
                    "channel",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="commission_credits",
                        to="pricing.channel",
                    ),
                ),
                (
                    "ledger_entry",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="commission_credit",
                        to="ledger.ledgerentry",
                    ),
                ),
            ],
            options={
                "ordering": ("reference", "level"),
                "constraints": [
                    models.UniqueConstraint(
                        fields=("reference", "beneficiary"),
                        name="uq_commission_credit_reference_beneficiary",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", Decimal("0"))),
                        name="ck_commission_credit_amount_positive",
                    ),
                ],
                "indexes": [
                    models.Index(fields=["status", "next_retry_at"], name="idx_commission_credit_retry"),
                ],
            },
        ),
    ]
