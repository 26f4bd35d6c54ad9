from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from commission.models import CommissionCredit
from hierarchy.exceptions import DataIntegrityError, HierarchyError
from hierarchy.services import get_actor, iter_ancestors
from ledger.exceptions import LedgerError
from ledger.services import Ledger, account_for, to_money
from pricing.models import Direction
from pricing.resolver import RateResolver, get_channel
from reseller_backend.config import EngineConfig, get_engine_config

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")
_MAX_RETRY_DELAY_SECONDS = 60 * 60


@dataclass(frozen=True, slots=True)
class CommissionShare:
    beneficiary_id: int
    level: int
    rate: Decimal
    unrounded: Decimal
    amount: Decimal


@dataclass(frozen=True, slots=True)
class CommissionBreakdown:
    leaf_id: int
    channel_id: int
    amount: Decimal
    leaf_rate: Decimal
    root_cost_basis: Decimal
    shares: tuple[CommissionShare, ...]

    @property
    def total(self) -> Decimal:
        return sum((share.amount for share in self.shares), Decimal("0.00"))


def _compute_next_retry(attempts: int, *, base_seconds: int, now: datetime) -> datetime:
    # Exponential backoff capped at 1 hour.
    attempts = max(int(attempts), 1)
    delay_seconds = min(base_seconds * (2 ** (attempts - 1)), _MAX_RETRY_DELAY_SECONDS)
    return now + timedelta(seconds=delay_seconds)


class CommissionEngine:
    """Splits the margin of an inbound transaction between the leaf's ancestors.

    Each ancestor earns ``amount * (child_rate - own_rate)`` where
    ``child_rate`` is the lowest rate seen so far on the way up. Payout
    channels carry no split.
    """

    def __init__(
        self,
        resolver: RateResolver | None = None,
        ledger: Ledger | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self.config = config or get_engine_config()
        self.resolver = resolver or RateResolver(config=self.config)
        self.ledger = ledger or Ledger(config=self.config)

    def _round(self, value: Decimal) -> Decimal:
        return value.quantize(self.config.minor_unit, rounding=ROUND_HALF_UP)

    def compute(self, leaf_id, channel_id, amount: Any, *, leaf_rate: Any = None) -> CommissionBreakdown:
        """Work out the split. ``leaf_rate`` pins the rate the leaf was charged."""

        leaf = get_actor(leaf_id)
        channel = get_channel(channel_id)
        amount = to_money(amount, self.config)

        if leaf_rate is None:
            leaf_rate = self.resolver.effective_inbound_rate(leaf, channel)
        else:
            leaf_rate = leaf_rate if isinstance(leaf_rate, Decimal) else Decimal(str(leaf_rate))
        child_rate = leaf_rate
        margins: list[tuple[int, int, Decimal]] = []
        reached_root = leaf.is_root
        for level, node in enumerate(iter_ancestors(leaf, config=self.config), start=1):
            own_rate = self.resolver.effective_inbound_rate(node, channel)
            if child_rate > own_rate:
                margins.append((node.pk, level, child_rate - own_rate))
                child_rate = own_rate
            elif child_rate < own_rate:
                logger.warning(
                    "commission.chain.inverted leaf_id=%s actor_id=%s channel=%s",
                    leaf.pk,
                    node.pk,
                    channel.code,
                )
            if node.is_root:
                reached_root = True
                break
        if not reached_root:
            raise DataIntegrityError(f"Hierarchy above actor {leaf.pk} does not end at the root.")

        # Rounding on the running total keeps every share non-negative and makes
        # the shares add up to the rounded total margin.
        shares: list[CommissionShare] = []
        running = _ZERO
        allocated = Decimal("0.00")
        for beneficiary_id, level, margin in margins:
            unrounded = amount * margin
            running += unrounded
            share_amount = self._round(running) - allocated
            allocated += share_amount
            shares.append(
                CommissionShare(
                    beneficiary_id=beneficiary_id,
                    level=level,
                    rate=margin,
                    unrounded=unrounded,
                    amount=share_amount,
                )
            )

        return CommissionBreakdown(
            leaf_id=leaf.pk,
            channel_id=channel.pk,
            amount=amount,
            leaf_rate=leaf_rate,
            root_cost_basis=channel.cost_basis_rate,
            shares=tuple(shares),
        )

    def distribute(
        self,
        leaf_id,
        channel_id,
        amount: Any,
        reference: str,
        *,
        leaf_rate: Any = None,
    ) -> list[CommissionCredit]:
        """Record the split of ``reference`` once, then credit it through the ledger.

        The shares are frozen as CommissionCredit rows the first time; a later
        call for the same reference only re-applies those rows and never
        recomputes. Each credit is its own atomic unit, and a failed credit is
        left FAILED for ``retry_failed_credits``.
        """

        channel = get_channel(channel_id)
        if channel.direction == Direction.OUTBOUND:
            return []

        if not CommissionCredit.objects.filter(reference=reference).exists():
            breakdown = self.compute(leaf_id, channel, amount, leaf_rate=leaf_rate)
            self._record(breakdown, channel, reference)
        return self.reapply(reference)

    def _record(self, breakdown: CommissionBreakdown, channel, reference: str) -> None:
        rows = [
            CommissionCredit(
                reference=reference,
                beneficiary_id=share.beneficiary_id,
                source_id=breakdown.leaf_id,
                channel=channel,
                level=share.level,
                rate=share.rate,
                amount=share.amount,
            )
            for share in breakdown.shares
            if share.amount > 0
        ]
        if not rows:
            return
        try:
            with transaction.atomic():
                CommissionCredit.objects.bulk_create(rows)
        except IntegrityError:
            # Another writer recorded this reference first; its rows stand.
            logger.info("commission.distribution.raced reference=%s", reference)
            return
        logger.info(
            "commission.distribution.recorded reference=%s leaf_id=%s shares=%s total=%s",
            reference,
            breakdown.leaf_id,
            len(rows),
            breakdown.total,
        )

    def reapply(self, reference: str) -> list[CommissionCredit]:
        """Credit the PENDING recorded shares of ``reference``."""

        credits: list[CommissionCredit] = []
        for credit in CommissionCredit.objects.filter(reference=reference).order_by("level", "id"):
            if credit.status == CommissionCredit.Status.PENDING:
                credit = self._apply(credit)
            credits.append(credit)
        return credits

    def _apply(self, credit: CommissionCredit, *, now: datetime | None = None) -> CommissionCredit:
        try:
            with transaction.atomic():
                locked = CommissionCredit.objects.select_for_update().get(pk=credit.pk)
                if locked.status == CommissionCredit.Status.CREDITED:
                    return locked
                beneficiary = get_actor(locked.beneficiary_id)
                entry = self.ledger.credit_commission(
                    account_for(beneficiary),
                    locked.amount,
                    locked.reference,
                    f"Commission level {locked.level}",
                )
                locked.status = CommissionCredit.Status.CREDITED
                locked.attempts += 1
                locked.ledger_entry = entry
                locked.credited_at = timezone.now()
                locked.next_retry_at = None
                locked.last_error = ""
                locked.save(
                    update_fields=[
                        "status",
                        "attempts",
                        "ledger_entry",
                        "credited_at",
                        "next_retry_at",
                        "last_error",
                        "updated_at",
                    ]
                )
                return locked
        except (HierarchyError, LedgerError, DatabaseError) as exc:
            logger.exception(
                "commission.credit.failed reference=%s beneficiary_id=%s amount=%s",
                credit.reference,
                credit.beneficiary_id,
                credit.amount,
            )
            return self._mark_failed(credit, exc, now=now)

    def _mark_failed(self, credit: CommissionCredit, exc: Exception, *, now: datetime | None) -> CommissionCredit:
        now = now or timezone.now()
        credit.refresh_from_db()
        credit.attempts += 1
        credit.status = CommissionCredit.Status.FAILED
        credit.last_error = str(exc)[:2000]
        if credit.attempts >= self.config.commission_retry_max_attempts:
            credit.next_retry_at = None
        else:
            credit.next_retry_at = _compute_next_retry(
                credit.attempts,
                base_seconds=self.config.commission_retry_base_seconds,
                now=now,
            )
        credit.save(update_fields=["attempts", "status", "last_error", "next_retry_at", "updated_at"])
        return credit

    def retry_failed_credits(self, *, now: datetime | None = None, limit: int = 100) -> dict[str, int]:
        now = now or timezone.now()
        due = list(
            CommissionCredit.objects.filter(
                status=CommissionCredit.Status.FAILED,
                next_retry_at__isnull=False,
                next_retry_at__lte=now,
                attempts__lt=self.config.commission_retry_max_attempts,
            ).order_by("next_retry_at", "id")[: max(int(limit), 1)]
        )

        result = {"scanned": len(due), "credited": 0, "failed": 0}
        for credit in due:
            credit = self._apply(credit, now=now)
            if credit.status == CommissionCredit.Status.CREDITED:
                result["credited"] += 1
            else:
                result["failed"] += 1

        logger.info(
            "commission.retry.completed scanned=%s credited=%s failed=%s",
            result["scanned"],
            result["credited"],
            result["failed"],
        )
        return result
