# Generated manually. Keep in sync with ledger/models.py.

from decimal import Decimal

import django.db.models.deletion
from django.db import migrations, models

import ledger.models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("hierarchy", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Account",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("available", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=16)),
                ("held", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=16)),
                ("currency", models.CharField(default=ledger.models._default_currency, max_length=3)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "actor",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="account",
                        to="hierarchy.actor",
                    ),
                ),
            ],
            options={
                "ordering": ("id",),
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("available__gte", Decimal("0"))),
                        name="ck_account_available_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("held__gte", Decimal("0"))),
                        name="ck_account_held_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="LedgerEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("CREDIT", "Credit"),
                            ("DEBIT", "Debit"),
                            ("HOLD", "Hold"),
                            ("REFUND", "Refund"),
                            ("COMMISSION", "Commission"),
                        ],
                        max_length=16,
                    ),
                ),
                ("delta", models.DecimalField(decimal_places=2, max_digits=16)),
                ("resulting_balance", models.DecimalField(decimal_places=2, max_digits=16)),
                ("reference", models.CharField(db_index=True, max_length=128)),
                ("description", models.CharField(blank=True, max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="entries",
                        to="ledger.account",
                    ),
                ),
            ],
            options={
                "verbose_name": "Ledger Entry",
                "verbose_name_plural": "Ledger Entries",
                "ordering": ("-id",),
                "indexes": [
                    models.Index(fields=["account", "id"], name="idx_ledger_entry_account"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PayoutHold",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("reference", models.CharField(max_length=128, unique=True)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=16)),
                (
                    "state",
                    models.CharField(
                        choices=[("CREATED", "Created"), ("SUCCESS", "Success"), ("FAILED", "Failed")],
                        default="CREATED",
                        max_length=16,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="holds",
                        to="ledger.account",
                    ),
                ),
            ],
            options={
                "ordering": ("-id",),
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", Decimal("0"))),
                        name="ck_payout_hold_amount_positive",
                    ),
                ],
                "indexes": [
                    models.Index(fields=["account", "state"], name="idx_payout_hold_account_state"),
                ],
            },
        ),
    ]
