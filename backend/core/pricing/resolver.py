from __future__ import annotations

from decimal import Decimal

from hierarchy.models import Actor
from hierarchy.services import get_actor
from pricing import slabs as slab_calculator
from pricing.exceptions import ChannelInactive, NoRateConfigured, RateBelowFloor
from pricing.models import Channel, Direction, RateAssignment, SlabSet, TierRate
from pricing.slabs import SlabRange
from reseller_backend.config import EngineConfig, get_engine_config


def get_channel(channel_id) -> Channel:
    if isinstance(channel_id, Channel):
        return channel_id
    try:
        return Channel.objects.get(pk=channel_id)
    except (Channel.DoesNotExist, ValueError, TypeError):
        raise NoRateConfigured(f"Channel '{channel_id}' not found.") from None


class RateResolver:
    """Resolves the rate or fee an actor pays, following the override chain.

    Inbound (percentage): actor override -> tier default -> NoRateConfigured.
    Outbound (flat fee):  actor slab set -> tier slab set -> NoRateConfigured.
    The root authority's own inbound rate is the channel cost basis.
    """

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config or get_engine_config()

    def _active_channel(self, channel_id) -> Channel:
        channel = get_channel(channel_id)
        if not channel.is_active:
            raise ChannelInactive(f"Channel {channel.code} is inactive.")
        return channel

    def effective_inbound_rate(self, actor_id, channel_id) -> Decimal:
        actor = get_actor(actor_id)
        channel = self._active_channel(channel_id)
        if channel.direction != Direction.INBOUND:
            raise NoRateConfigured(f"Channel {channel.code} is not an inbound channel.")
        if actor.is_root:
            return channel.cost_basis_rate

        rate = self._override_rate(actor, channel)
        if rate is None:
            rate = self._tier_rate(actor, channel)
        if rate is None:
            raise NoRateConfigured(
                f"No rate configured for actor {actor.pk} on channel {channel.code}."
            )
        if rate < channel.cost_basis_rate:
            raise RateBelowFloor(
                rate,
                channel.cost_basis_rate,
                f"Configured rate {rate} for actor {actor.pk} on channel {channel.code} "
                f"is below the cost basis {channel.cost_basis_rate}.",
            )
        return rate

    def _override_rate(self, actor: Actor, channel: Channel) -> Decimal | None:
        assignment = (
            RateAssignment.objects.filter(actor=actor, channel=channel, is_enabled=True)
            .only("rate")
            .first()
        )
        return assignment.rate if assignment is not None else None

    def _tier_rate(self, actor: Actor, channel: Channel) -> Decimal | None:
        default = (
            TierRate.objects.filter(tier=actor.tier, channel=channel, is_enabled=True)
            .only("rate")
            .first()
        )
        return default.rate if default is not None else None

    def effective_slabs(self, actor_id) -> list[SlabRange]:
        actor = get_actor(actor_id)
        for slab_set in (
            SlabSet.objects.filter(actor=actor).first(),
            SlabSet.objects.filter(tier=actor.tier).first(),
        ):
            if slab_set is None:
                continue
            table = slab_calculator.sort_slabs(slab_set.slabs.all())
            if table:
                return table
        raise NoRateConfigured(f"No payout slabs configured for actor {actor.pk}.")

    def effective_outbound_fee(self, actor_id, amount: Decimal, channel_id=None) -> Decimal:
        if channel_id is not None:
            channel = self._active_channel(channel_id)
            if channel.direction != Direction.OUTBOUND:
                raise NoRateConfigured(f"Channel {channel.code} is not an outbound channel.")
        return slab_calculator.resolve(self.effective_slabs(actor_id), amount)
