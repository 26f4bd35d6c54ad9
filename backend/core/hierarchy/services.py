from __future__ import annotations

import logging
from typing import Iterable, Iterator

from django.core.exceptions import ValidationError
from django.db import transaction

from hierarchy.exceptions import (
    ActorNotFound,
    CapabilityError,
    DataIntegrityError,
    InvalidHierarchy,
)
from hierarchy.models import Actor, Capability, Tier, validate_capabilities
from reseller_backend.config import EngineConfig, get_engine_config

logger = logging.getLogger(__name__)


def get_actor(actor_id) -> Actor:
    if isinstance(actor_id, Actor):
        return actor_id
    try:
        return Actor.objects.get(pk=actor_id)
    except (Actor.DoesNotExist, ValueError, TypeError):
        raise ActorNotFound(f"Actor '{actor_id}' not found.") from None


def root_actor() -> Actor:
    roots = list(Actor.objects.filter(tier=Tier.ROOT).order_by("id")[:2])
    if not roots:
        raise ActorNotFound("No root authority configured.")
    if len(roots) > 1:
        raise DataIntegrityError("More than one root authority configured.")
    return roots[0]


def iter_ancestors(actor: Actor, *, config: EngineConfig | None = None) -> Iterator[Actor]:
    """Yield the parents of ``actor`` from nearest to the root.

    Parents are resolved by id lookup. The walk is bounded by
    ``max_hierarchy_depth`` hops and refuses to revisit an actor.
    """

    config = config or get_engine_config()
    seen = {actor.pk}
    parent_id = actor.parent_id
    hops = 0
    while parent_id is not None:
        hops += 1
        if hops > config.max_hierarchy_depth:
            raise DataIntegrityError(
                f"Hierarchy above actor {actor.pk} exceeds {config.max_hierarchy_depth} hops."
            )
        if parent_id in seen:
            raise DataIntegrityError(
                f"Hierarchy cycle detected above actor {actor.pk} at actor {parent_id}."
            )
        try:
            parent = Actor.objects.get(pk=parent_id)
        except Actor.DoesNotExist:
            raise DataIntegrityError(
                f"Actor {actor.pk} references missing ancestor {parent_id}."
            ) from None
        seen.add(parent.pk)
        yield parent
        parent_id = parent.parent_id


def ancestor_path(actor: Actor, *, config: EngineConfig | None = None) -> list[Actor]:
    return list(iter_ancestors(actor, config=config))


def is_direct_child(parent: Actor, child: Actor) -> bool:
    return child.parent_id is not None and child.parent_id == parent.pk


def is_in_hierarchy(ancestor: Actor, descendant: Actor, *, config: EngineConfig | None = None) -> bool:
    """True when ``ancestor`` sits somewhere above ``descendant``."""

    if ancestor.pk == descendant.pk:
        return False
    return any(node.pk == ancestor.pk for node in iter_ancestors(descendant, config=config))


def has_capability(actor: Actor, capability: str) -> bool:
    return actor.is_active and str(capability) in actor.effective_capabilities()


def require_capability(actor: Actor, capability: str) -> None:
    if not has_capability(actor, capability):
        raise CapabilityError(f"Actor {actor.pk} lacks capability {capability}.")


def _normalize_capabilities(raw: Iterable[str]) -> list[str]:
    values = sorted({str(item).upper() for item in raw or ()})
    try:
        validate_capabilities(values)
    except ValidationError as exc:
        raise CapabilityError("; ".join(exc.messages)) from None
    return values


def onboard_actor(
    *,
    parent: Actor | None,
    code: str,
    name: str,
    tier: str,
    capabilities: Iterable[str] = (),
    user=None,
) -> Actor:
    """Create an actor together with its wallet account."""

    from ledger.services import open_account

    extra_capabilities = _normalize_capabilities(capabilities)

    if tier == Tier.ROOT:
        if parent is not None:
            raise InvalidHierarchy("The root authority cannot have a parent.")
        if Actor.objects.filter(tier=Tier.ROOT).exists():
            raise InvalidHierarchy("A root authority already exists.")
    else:
        if parent is None:
            raise InvalidHierarchy("Only the root authority may be created without a parent.")
        if not parent.is_active:
            raise InvalidHierarchy(f"Parent actor {parent.pk} is inactive.")
        require_capability(parent, Capability.ONBOARD_CHILDREN)

    actor = Actor(
        code=code,
        name=name,
        tier=tier,
        parent=parent,
        capabilities=extra_capabilities,
        user=user,
    )
    try:
        actor.full_clean()
    except ValidationError as exc:
        raise InvalidHierarchy("; ".join(exc.messages)) from None

    with transaction.atomic():
        actor.save(force_insert=True)
        open_account(actor)

    logger.info(
        "hierarchy.actor.onboarded actor_id=%s tier=%s parent_id=%s",
        actor.pk,
        actor.tier,
        actor.parent_id,
    )
    return actor


def grant_capability(actor: Actor, capability: str) -> Actor:
    (normalized,) = _normalize_capabilities([capability])
    if normalized in (actor.capabilities or []):
        return actor
    actor.capabilities = sorted({*(actor.capabilities or []), normalized})
    actor.save(update_fields=["capabilities", "updated_at"])
    return actor


def deactivate_actor(actor: Actor) -> Actor:
    if not actor.is_active:
        return actor
    actor.is_active = False
    actor.save(update_fields=["is_active", "updated_at"])
    logger.info("hierarchy.actor.deactivated actor_id=%s", actor.pk)
    return actor
