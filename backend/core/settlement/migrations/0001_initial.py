# Generated manually. Keep in sync with settlement/models.py.

from decimal import Decimal

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("hierarchy", "0001_initial"),
        ("pricing", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Settlement",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("reference", models.CharField(max_length=128, unique=True)),
                (
                    "direction",
                    models.CharField(
                        choices=[("INBOUND", "Inbound (pay-in)"), ("OUTBOUND", "Outbound (payout)")],
                        max_length=16,
                    ),
                ),
                ("amount", models.DecimalField(decimal_places=2, max_digits=16)),
                ("rate", models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ("fee", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=16)),
                ("charge", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=16)),
                ("net_amount", models.DecimalField(decimal_places=2, max_digits=16)),
                (
                    "status",
                    models.CharField(
                        choices=[("CREATED", "Created"), ("SUCCESS", "Success"), ("FAILED", "Failed")],
                        db_index=True,
                        default="CREATED",
                        max_length=16,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "actor",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="settlements",
                        to="hierarchy.actor",
                    ),
                ),
                (
                    "channel",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="settlements",
                        to="pricing.channel",
                    ),
                ),
            ],
            options={
                "ordering": ("-id",),
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", Decimal("0"))),
                        name="ck_settlement_amount_positive",
                    ),
                ],
                "indexes": [
                    models.Index(fields=["actor", "status"], name="idx_settlement_actor_status"),
                ],
            },
        ),
    ]
