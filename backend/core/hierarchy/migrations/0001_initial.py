# Generated manually. Keep in sync with hierarchy/models.py.

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import hierarchy.models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Actor",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.SlugField(max_length=64, unique=True)),
                ("name", models.CharField(max_length=255)),
                (
                    "tier",
                    models.CharField(
                        choices=[
                            ("ROOT", "Root Authority"),
                            ("WHITE_LABEL", "White Label"),
                            ("MASTER_DISTRIBUTOR", "Master Distributor"),
                            ("DISTRIBUTOR", "Distributor"),
                            ("RETAILER", "Retailer"),
                        ],
                        db_index=True,
                        max_length=32,
                    ),
                ),
                (
                    "capabilities",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Extra capabilities on top of the tier defaults.",
                        validators=[hierarchy.models.validate_capabilities],
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "parent",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="children",
                        to="hierarchy.actor",
                    ),
                ),
                (
                    "user",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="actor",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Actor",
                "verbose_name_plural": "Actors",
                "ordering": ("id",),
            },
        ),
        migrations.AddIndex(
            model_name="actor",
            index=models.Index(fields=["parent", "tier"], name="idx_actor_parent_tier"),
        ),
        migrations.AddConstraint(
            model_name="actor",
            constraint=models.CheckConstraint(
                condition=models.Q(("tier", "ROOT"), ("parent__isnull", True))
                | (~models.Q(("tier", "ROOT")) & models.Q(("parent__isnull", False))),
                name="ck_actor_root_has_no_parent",
            ),
        ),
    ]
