# Generated manually. Keep in sync with pricing/models.py.

from decimal import Decimal

import django.core.serializers.json
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models

TIER_CHOICES = [
    ("ROOT", "Root Authority"),
    ("WHITE_LABEL", "White Label"),
    ("MASTER_DISTRIBUTOR", "Master Distributor"),
    ("DISTRIBUTOR", "Distributor"),
    ("RETAILER", "Retailer"),
]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("hierarchy", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Channel",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.SlugField(max_length=64, unique=True)),
                ("name", models.CharField(max_length=255)),
                (
                    "direction",
                    models.CharField(
                        choices=[("INBOUND", "Inbound (pay-in)"), ("OUTBOUND", "Outbound (payout)")],
                        db_index=True,
                        max_length=16,
                    ),
                ),
                ("processor", models.CharField(db_index=True, max_length=64)),
                (
                    "cost_basis_rate",
                    models.DecimalField(
                        decimal_places=6,
                        default=Decimal("0"),
                        help_text="Fraction the processor charges; the irreducible floor.",
                        max_digits=9,
                    ),
                ),
                (
                    "response_codes",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Substrings of the processor payment-method string that map to this channel.",
                    ),
                ),
                (
                    "is_default",
                    models.BooleanField(default=False, help_text="Fallback channel for its processor and direction."),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ("processor", "direction", "code"),
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("cost_basis_rate__gte", Decimal("0")), ("cost_basis_rate__lt", Decimal("1"))),
                        name="ck_channel_cost_basis_range",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("is_default", True)),
                        fields=("processor", "direction"),
                        name="uq_channel_default_per_processor",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="TierRate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("tier", models.CharField(choices=TIER_CHOICES, max_length=32)),
                ("rate", models.DecimalField(decimal_places=6, max_digits=9)),
                ("is_enabled", models.BooleanField(default=True)),
                ("version", models.PositiveIntegerField(default=1)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "channel",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="tier_rates",
                        to="pricing.channel",
                    ),
                ),
            ],
            options={
                "ordering": ("tier", "channel_id"),
                "constraints": [
                    models.UniqueConstraint(fields=("tier", "channel"), name="uq_tier_rate_tier_channel"),
                    models.CheckConstraint(
                        condition=models.Q(("rate__gte", Decimal("0")), ("rate__lt", Decimal("1"))),
                        name="ck_tier_rate_range",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="RateAssignment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("rate", models.DecimalField(decimal_places=6, max_digits=9)),
                ("is_enabled", models.BooleanField(default=True)),
                ("version", models.PositiveIntegerField(default=1)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "actor",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="rate_assignments",
                        to="hierarchy.actor",
                    ),
                ),
                (
                    "assigned_by",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="rates_assigned",
                        to="hierarchy.actor",
                    ),
                ),
                (
                    "channel",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="rate_assignments",
                        to="pricing.channel",
                    ),
                ),
            ],
            options={
                "ordering": ("actor_id", "channel_id"),
                "constraints": [
                    models.UniqueConstraint(fields=("actor", "channel"), name="uq_rate_assignment_actor_channel"),
                    models.CheckConstraint(
                        condition=models.Q(("rate__gte", Decimal("0")), ("rate__lt", Decimal("1"))),
                        name="ck_rate_assignment_range",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="SlabSet",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("tier", models.CharField(blank=True, choices=TIER_CHOICES, max_length=32, null=True, unique=True)),
                ("version", models.PositiveIntegerField(default=1)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "actor",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="slab_set",
                        to="hierarchy.actor",
                    ),
                ),
                (
                    "assigned_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="slab_sets_assigned",
                        to="hierarchy.actor",
                    ),
                ),
            ],
            options={
                "ordering": ("id",),
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("actor__isnull", False), ("tier__isnull", True))
                        | models.Q(("actor__isnull", True), ("tier__isnull", False)),
                        name="ck_slab_set_single_owner",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Slab",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("min_amount", models.DecimalField(decimal_places=2, max_digits=14)),
                (
                    "max_amount",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        help_text="Inclusive upper bound; empty means no upper bound.",
                        max_digits=14,
                        null=True,
                    ),
                ),
                ("flat_fee", models.DecimalField(decimal_places=2, max_digits=14)),
                (
                    "slab_set",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="slabs",
                        to="pricing.slabset",
                    ),
                ),
            ],
            options={
                "ordering": ("min_amount", "id"),
                "constraints": [
                    models.UniqueConstraint(fields=("slab_set", "min_amount"), name="uq_slab_set_min_amount"),
                    models.CheckConstraint(
                        condition=models.Q(("min_amount__gte", Decimal("0")), ("flat_fee__gte", Decimal("0"))),
                        name="ck_slab_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("max_amount__isnull", True))
                        | models.Q(("max_amount__gte", models.F("min_amount"))),
                        name="ck_slab_range_order",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PricingChange",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "action",
                    models.CharField(
                        choices=[("CREATE", "Create"), ("UPDATE", "Update"), ("DISABLE", "Disable")],
                        max_length=20,
                    ),
                ),
                ("resource_label", models.CharField(max_length=80)),
                ("resource_pk", models.CharField(blank=True, max_length=64)),
                ("occurred_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("prev_hash", models.CharField(blank=True, default="", max_length=64)),
                ("entry_hash", models.CharField(max_length=64, unique=True)),
                (
                    "data_before",
                    models.JSONField(blank=True, encoder=django.core.serializers.json.DjangoJSONEncoder, null=True),
                ),
                (
                    "data_after",
                    models.JSONField(blank=True, encoder=django.core.serializers.json.DjangoJSONEncoder, null=True),
                ),
                (
                    "actor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="pricing_changes",
                        to="hierarchy.actor",
                    ),
                ),
            ],
            options={
                "verbose_name": "Pricing Change",
                "verbose_name_plural": "Pricing Changes",
                "ordering": ("-occurred_at", "-id"),
                "constraints": [
                    models.UniqueConstraint(fields=("prev_hash",), name="uq_pricing_change_prev_hash"),
                ],
            },
        ),
    ]
