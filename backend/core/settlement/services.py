from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from uuid import uuid4

from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from commission.engine import CommissionEngine
from hierarchy.exceptions import CapabilityError, HierarchyError
from hierarchy.models import Actor, Capability
from hierarchy.services import get_actor, is_in_hierarchy, require_capability, root_actor
from ledger.exceptions import LedgerError
from ledger.models import LedgerEntry
from ledger.services import Ledger, account_for, to_money
from pricing.exceptions import PricingError
from pricing.models import Direction
from pricing.resolver import RateResolver, get_channel
from reseller_backend.config import EngineConfig, get_engine_config
from settlement.exceptions import SettlementConflict, SettlementError
from settlement.models import Settlement

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChargeQuote:
    rate: Decimal | None
    fee: Decimal
    charge: Decimal
    net_amount: Decimal


def _positive_money(amount: Any, config: EngineConfig) -> Decimal:
    value = to_money(amount, config)
    if value <= 0:
        raise SettlementError(f"Amount must be positive, got {value}.")
    return value


def resolve_charge(
    actor_id,
    channel_id,
    amount: Any,
    direction: str,
    *,
    resolver: RateResolver | None = None,
    config: EngineConfig | None = None,
) -> ChargeQuote:
    """Price one transaction for ``actor`` without touching any balance.

    Inbound: the percentage charge is taken out of the amount.
    Outbound: the slab fee is charged on top of the amount.
    """

    config = config or get_engine_config()
    resolver = resolver or RateResolver(config=config)
    amount = _positive_money(amount, config)

    if direction == Direction.INBOUND:
        rate = resolver.effective_inbound_rate(actor_id, channel_id)
        charge = (amount * rate).quantize(config.minor_unit, rounding=ROUND_HALF_UP)
        return ChargeQuote(
            rate=rate,
            fee=Decimal("0.00"),
            charge=charge,
            net_amount=amount - charge,
        )
    if direction == Direction.OUTBOUND:
        if get_actor(actor_id).is_root:
            # The platform account is not charged a payout fee.
            fee = Decimal("0.00")
        else:
            fee = to_money(resolver.effective_outbound_fee(actor_id, amount, channel_id), config)
        return ChargeQuote(rate=None, fee=fee, charge=fee, net_amount=amount)
    raise SettlementError(f"Unknown direction '{direction}'.")


def _check_replay(
    settlement: Settlement,
    *,
    direction: str,
    actor: Actor,
    amount: Decimal,
    channel=None,
) -> None:
    if (
        settlement.direction != direction
        or settlement.actor_id != actor.pk
        or settlement.amount != amount
        or (channel is not None and settlement.channel_id != channel.pk)
    ):
        raise SettlementConflict(
            f"Reference {settlement.reference} was already used for a different transaction."
        )


def _create_settlement(**fields) -> tuple[Settlement, bool]:
    try:
        with transaction.atomic():
            return Settlement.objects.create(**fields), True
    except IntegrityError:
        existing = Settlement.objects.filter(reference=fields["reference"]).first()
        if existing is None:
            raise
        return existing, False


class SettlementService:
    """Applies settled transactions to the ledger and the commission split."""

    def __init__(
        self,
        *,
        config: EngineConfig | None = None,
        resolver: RateResolver | None = None,
        ledger: Ledger | None = None,
        engine: CommissionEngine | None = None,
    ) -> None:
        self.config = config or get_engine_config()
        self.resolver = resolver or RateResolver(config=self.config)
        self.ledger = ledger or Ledger(config=self.config)
        self.engine = engine or CommissionEngine(
            resolver=self.resolver,
            ledger=self.ledger,
            config=self.config,
        )

    # -- inbound ---------------------------------------------------------

    def settle_inbound(self, actor_id, channel_id, amount: Any, reference: str) -> Settlement:
        actor = get_actor(actor_id)
        channel = get_channel(channel_id)
        amount = _positive_money(amount, self.config)

        existing = Settlement.objects.filter(reference=reference).first()
        if existing is not None:
            _check_replay(
                existing,
                direction=Direction.INBOUND,
                actor=actor,
                amount=amount,
                channel=channel,
            )
            if existing.status == Settlement.Status.SUCCESS:
                self._distribute(existing)
            return existing

        quote = resolve_charge(
            actor,
            channel,
            amount,
            Direction.INBOUND,
            resolver=self.resolver,
            config=self.config,
        )
        with transaction.atomic():
            settlement, created = _create_settlement(
                reference=reference,
                direction=Direction.INBOUND,
                actor=actor,
                channel=channel,
                amount=amount,
                rate=quote.rate,
                fee=quote.fee,
                charge=quote.charge,
                net_amount=quote.net_amount,
            )
            if not created:
                _check_replay(
                    settlement,
                    direction=Direction.INBOUND,
                    actor=actor,
                    amount=amount,
                    channel=channel,
                )
                return settlement
            if quote.net_amount > 0:
                self.ledger.credit(
                    account_for(actor),
                    quote.net_amount,
                    reference,
                    f"Inbound settlement via {channel.code}",
                )
            settlement.status = Settlement.Status.SUCCESS
            settlement.save(update_fields=["status", "updated_at"])

        logger.info(
            "settlement.inbound.settled reference=%s actor_id=%s amount=%s charge=%s",
            reference,
            actor.pk,
            amount,
            quote.charge,
        )
        self._distribute(settlement)
        return settlement

    def _distribute(self, settlement: Settlement) -> None:
        # The settlement stays SUCCESS whatever happens to the commission split.
        # Once the split is recorded a replay only re-applies the stored shares.
        try:
            if settlement.commission_recorded_at is not None:
                self.engine.reapply(settlement.reference)
                return
            self.engine.distribute(
                settlement.actor_id,
                settlement.channel_id,
                settlement.amount,
                settlement.reference,
                leaf_rate=settlement.rate,
            )
        except (HierarchyError, PricingError, LedgerError, DatabaseError):
            logger.exception(
                "settlement.commission.failed reference=%s actor_id=%s",
                settlement.reference,
                settlement.actor_id,
            )
            return
        settlement.commission_recorded_at = timezone.now()
        settlement.save(update_fields=["commission_recorded_at", "updated_at"])

    # -- outbound --------------------------------------------------------

    def settle_payout_hold(self, actor_id, amount: Any, reference: str, channel_id=None) -> Settlement:
        actor = get_actor(actor_id)
        amount = _positive_money(amount, self.config)

        existing = Settlement.objects.filter(reference=reference).first()
        if existing is not None:
            _check_replay(existing, direction=Direction.OUTBOUND, actor=actor, amount=amount)
            return existing

        channel = get_channel(channel_id) if channel_id is not None else None
        quote = resolve_charge(
            actor,
            channel,
            amount,
            Direction.OUTBOUND,
            resolver=self.resolver,
            config=self.config,
        )
        with transaction.atomic():
            settlement, created = _create_settlement(
                reference=reference,
                direction=Direction.OUTBOUND,
                actor=actor,
                channel=channel,
                amount=amount,
                fee=quote.fee,
                charge=quote.charge,
                net_amount=quote.net_amount,
            )
            if not created:
                _check_replay(settlement, direction=Direction.OUTBOUND, actor=actor, amount=amount)
                return settlement
            self.ledger.hold(account_for(actor), amount + quote.fee, reference)

        logger.info(
            "settlement.payout.held reference=%s actor_id=%s amount=%s fee=%s",
            reference,
            actor.pk,
            amount,
            quote.fee,
        )
        return settlement

    def _pending_payout(self, actor: Actor, amount: Decimal, reference: str) -> Settlement:
        settlement = Settlement.objects.select_for_update().filter(reference=reference).first()
        if settlement is None:
            raise SettlementError(f"No payout exists for reference {reference}.")
        _check_replay(settlement, direction=Direction.OUTBOUND, actor=actor, amount=amount)
        return settlement

    def settle_payout_success(self, actor_id, amount: Any, reference: str) -> Settlement:
        actor = get_actor(actor_id)
        amount = _positive_money(amount, self.config)
        payer = account_for(actor)

        with self.ledger.unit(reference):
            settlement = self._pending_payout(actor, amount, reference)
            platform = account_for(root_actor()) if settlement.fee > 0 else None
            self.ledger.lock_in_order(*(a for a in (payer, platform) if a is not None))
            self.ledger.release_on_success(payer, amount + settlement.fee, reference)
            if platform is not None:
                self.ledger.credit(platform, settlement.fee, reference, "Payout fee")
            settlement.status = Settlement.Status.SUCCESS
            settlement.save(update_fields=["status", "updated_at"])

        logger.info(
            "settlement.payout.succeeded reference=%s actor_id=%s amount=%s fee=%s",
            reference,
            actor.pk,
            amount,
            settlement.fee,
        )
        return settlement

    def settle_payout_failure(self, actor_id, amount: Any, reference: str) -> Settlement:
        actor = get_actor(actor_id)
        amount = _positive_money(amount, self.config)
        payer = account_for(actor)

        with self.ledger.unit(reference):
            settlement = self._pending_payout(actor, amount, reference)
            self.ledger.release_on_failure(payer, amount + settlement.fee, reference)
            settlement.status = Settlement.Status.FAILED
            settlement.save(update_fields=["status", "updated_at"])

        logger.info(
            "settlement.payout.failed reference=%s actor_id=%s amount=%s",
            reference,
            actor.pk,
            amount,
        )
        return settlement

    # -- wallet administration -------------------------------------------

    def _require_root(self, actor: Actor) -> None:
        if not (actor.is_root and actor.is_active):
            raise CapabilityError("Only the root authority can adjust balances directly.")

    def fund_account(self, root_id, target_id, amount: Any, reference: str | None = None, description: str = "") -> LedgerEntry:
        root = get_actor(root_id)
        target = get_actor(target_id)
        self._require_root(root)
        reference = reference or f"FUND-{uuid4().hex}"
        return self.ledger.credit(
            account_for(target),
            _positive_money(amount, self.config),
            reference,
            description or "Funded by the root authority",
        )

    def deduct_account(self, root_id, target_id, amount: Any, reference: str | None = None, description: str = "") -> LedgerEntry:
        root = get_actor(root_id)
        target = get_actor(target_id)
        self._require_root(root)
        reference = reference or f"DEDUCT-{uuid4().hex}"
        return self.ledger.debit(
            account_for(target),
            _positive_money(amount, self.config),
            reference,
            description or "Deducted by the root authority",
        )

    def transfer_funds(self, requester_id, recipient_id, amount: Any, reference: str):
        requester = get_actor(requester_id)
        recipient = get_actor(recipient_id)
        amount = _positive_money(amount, self.config)

        require_capability(requester, Capability.TRANSFER_FUNDS)
        if not recipient.is_active:
            raise CapabilityError(f"Recipient actor {recipient.pk} is inactive.")
        if not requester.is_root and not is_in_hierarchy(requester, recipient, config=self.config):
            raise CapabilityError(
                f"Actor {requester.pk} can only transfer to actors below it in the hierarchy."
            )
        if LedgerEntry.objects.filter(reference=reference).exists():
            raise SettlementConflict(f"Reference {reference} has already been used.")

        return self.ledger.transfer(
            account_for(requester),
            account_for(recipient),
            amount,
            reference,
        )


def _default_service() -> SettlementService:
    return SettlementService()


def settle_inbound(actor_id, channel_id, amount, reference: str) -> Settlement:
    return _default_service().settle_inbound(actor_id, channel_id, amount, reference)


def settle_payout_hold(actor_id, amount, reference: str, channel_id=None) -> Settlement:
    return _default_service().settle_payout_hold(actor_id, amount, reference, channel_id)


def settle_payout_success(actor_id, amount, reference: str) -> Settlement:
    return _default_service().settle_payout_success(actor_id, amount, reference)


def settle_payout_failure(actor_id, amount, reference: str) -> Settlement:
    return _default_service().settle_payout_failure(actor_id, amount, reference)


def fund_account(root_id, target_id, amount, reference: str | None = None, description: str = "") -> LedgerEntry:
    return _default_service().fund_account(root_id, target_id, amount, reference, description)


def deduct_account(root_id, target_id, amount, reference: str | None = None, description: str = "") -> LedgerEntry:
    return _default_service().deduct_account(root_id, target_id, amount, reference, description)


def transfer_funds(requester_id, recipient_id, amount, reference: str):
    return _default_service().transfer_funds(requester_id, recipient_id, amount, reference)
