from __future__ import annotations

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models


class Tier(models.TextChoices):
    ROOT = "ROOT", "Root Authority"
    WHITE_LABEL = "WHITE_LABEL", "White Label"
    MASTER_DISTRIBUTOR = "MASTER_DISTRIBUTOR", "Master Distributor"
    DISTRIBUTOR = "DISTRIBUTOR", "Distributor"
    RETAILER = "RETAILER", "Retailer"


# Lower rank sits higher in the hierarchy.
TIER_RANK = {
    Tier.ROOT: 0,
    Tier.WHITE_LABEL: 1,
    Tier.MASTER_DISTRIBUTOR: 2,
    Tier.DISTRIBUTOR: 3,
    Tier.RETAILER: 4,
}


class Capability(models.TextChoices):
    ASSIGN_RATES = "ASSIGN_RATES", "Assign rates to children"
    TRANSFER_FUNDS = "TRANSFER_FUNDS", "Transfer wallet funds downstream"
    ONBOARD_CHILDREN = "ONBOARD_CHILDREN", "Onboard child actors"


_ALL_CAPABILITIES = frozenset(Capability.values)

TIER_DEFAULT_CAPABILITIES = {
    Tier.ROOT: _ALL_CAPABILITIES,
    Tier.WHITE_LABEL: _ALL_CAPABILITIES,
    Tier.MASTER_DISTRIBUTOR: _ALL_CAPABILITIES,
    Tier.DISTRIBUTOR: frozenset((Capability.TRANSFER_FUNDS,)),
    Tier.RETAILER: frozenset(),
}


def validate_capabilities(value) -> None:
    if value in (None, []):
        return
    if not isinstance(value, list):
        raise ValidationError("capabilities must be a JSON list.")
    unknown = sorted({str(item) for item in value} - _ALL_CAPABILITIES)
    if unknown:
        raise ValidationError(
            f"Unknown capabilities {unknown}. Allowed: {sorted(_ALL_CAPABILITIES)}"
        )


class Actor(models.Model):
    """A node of the reseller hierarchy.

    The parent edge is owned by the child and only ever followed by id lookup;
    walks over it are bounded in ``hierarchy.services``.
    """

    code = models.SlugField(max_length=64, unique=True)
    name = models.CharField(max_length=255)
    tier = models.CharField(max_length=32, choices=Tier.choices, db_index=True)
    parent = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        related_name="children",
        null=True,
        blank=True,
    )
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="actor",
        null=True,
        blank=True,
    )
    capabilities = models.JSONField(
        default=list,
        blank=True,
        validators=[validate_capabilities],
        help_text="Extra capabilities on top of the tier defaults.",
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("id",)
        verbose_name = "Actor"
        verbose_name_plural = "Actors"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(tier=Tier.ROOT, parent__isnull=True)
                | (~models.Q(tier=Tier.ROOT) & models.Q(parent__isnull=False)),
                name="ck_actor_root_has_no_parent",
            ),
        ]
        indexes = [
            models.Index(fields=("parent", "tier"), name="idx_actor_parent_tier"),
        ]

    def __str__(self) -> str:  # pragma: no cover - admin/debug helper
        return f"{self.code} ({self.tier})"

    @property
    def is_root(self) -> bool:
        return self.tier == Tier.ROOT

    def effective_capabilities(self) -> frozenset[str]:
        defaults = TIER_DEFAULT_CAPABILITIES.get(self.tier, frozenset())
        return frozenset(defaults) | frozenset(self.capabilities or [])

    def clean(self):
        super().clean()
        validate_capabilities(self.capabilities)
        if self.tier == Tier.ROOT:
            if self.parent_id is not None:
                raise ValidationError("The root authority cannot have a parent.")
            return
        if self.parent_id is None:
            raise ValidationError("Only the root authority may be created without a parent.")
        if self.parent_id == self.pk:
            raise ValidationError("An actor cannot be its own parent.")
        if TIER_RANK[self.parent.tier] >= TIER_RANK[self.tier]:
            raise ValidationError(
                f"A {self.tier} cannot sit below a {self.parent.tier}."
            )

    def delete(self, *args, **kwargs):  # pragma: no cover - enforced behavior
        raise ValidationError("Actors are never deleted; deactivate them instead.")
