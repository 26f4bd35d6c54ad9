from __future__ import annotations

import logging
from contextlib import contextmanager
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from django.db import OperationalError, connection, transaction
from django.utils import timezone

from hierarchy.exceptions import DataIntegrityError
from ledger.exceptions import (
    InsufficientBalance,
    InvalidLedgerTransition,
    LedgerError,
    LedgerLockTimeout,
)
from ledger.models import Account, LedgerEntry, PayoutHold
from reseller_backend.config import EngineConfig, get_engine_config

logger = logging.getLogger(__name__)


def to_money(value: Any, config: EngineConfig | None = None) -> Decimal:
    """Quantize ``value`` to the minor unit, rounding half up."""

    config = config or get_engine_config()
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise LedgerError(f"Invalid amount '{value}'.") from exc
    if not amount.is_finite():
        raise LedgerError(f"Invalid amount '{value}'.")
    return amount.quantize(config.minor_unit, rounding=ROUND_HALF_UP)


def open_account(actor, *, currency: str | None = None) -> Account:
    config = get_engine_config()
    account, created = Account.objects.get_or_create(
        actor=actor,
        defaults={"currency": (currency or config.currency).upper()},
    )
    if created:
        logger.info("ledger.account.opened account_id=%s actor_id=%s", account.pk, actor.pk)
    return account


def account_for(actor) -> Account:
    try:
        return Account.objects.get(actor=actor)
    except Account.DoesNotExist:
        raise LedgerError(f"Actor {getattr(actor, 'pk', actor)} has no account.") from None


def _account_pk(account) -> int:
    if isinstance(account, Account):
        return account.pk
    try:
        return int(account)
    except (TypeError, ValueError):
        raise LedgerError(f"Invalid account id '{account}'.") from None


class Ledger:
    """Serialized balance mutations per account.

    Every operation is one database transaction holding the account row lock
    (``select_for_update``). ``transfer`` locks both rows in ascending primary
    key order.
    """

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config or get_engine_config()

    # -- plumbing ------------------------------------------------------

    def _positive(self, amount) -> Decimal:
        amount = to_money(amount, self.config)
        if amount <= 0:
            raise LedgerError(f"Amount must be positive, got {amount}.")
        return amount

    def _apply_lock_timeout(self) -> None:
        if connection.vendor != "postgresql":
            return
        with connection.cursor() as cursor:
            cursor.execute(f"SET LOCAL lock_timeout = {int(self.config.ledger_lock_timeout_ms)}")

    @contextmanager
    def unit(self, reference: str):
        try:
            with transaction.atomic():
                self._apply_lock_timeout()
                yield
        except OperationalError as exc:
            if "lock" not in str(exc).lower():
                raise
            logger.warning("ledger.lock.timeout reference=%s error=%s", reference, exc)
            raise LedgerLockTimeout(f"Timed out waiting for an account lock ({reference}).") from exc

    def _lock(self, account) -> Account:
        pk = _account_pk(account)
        try:
            return Account.objects.select_for_update().get(pk=pk)
        except Account.DoesNotExist:
            raise LedgerError(f"Account {pk} not found.") from None

    def lock_in_order(self, *accounts) -> dict[int, Account]:
        """Lock several accounts in ascending primary key order.

        Must be called inside a transaction. Later ``select_for_update`` calls
        on the same rows within that transaction do not wait.
        """

        return {pk: self._lock(pk) for pk in sorted({_account_pk(account) for account in accounts})}

    def _write(
        self,
        account: Account,
        *,
        kind: str,
        delta: Decimal,
        reference: str,
        description: str = "",
    ) -> LedgerEntry:
        account.available = account.available + delta
        if account.available < 0:
            raise InsufficientBalance(account.pk, -delta, account.available - delta)
        account.save(update_fields=["available", "held", "updated_at"])
        return LedgerEntry.objects.create(
            account=account,
            kind=kind,
            delta=delta,
            resulting_balance=account.available,
            reference=reference,
            description=description[:255],
        )

    # -- balance mutations -----------------------------------------------

    def credit(
        self,
        account,
        amount,
        reference: str,
        description: str = "",
        *,
        kind: str = LedgerEntry.Kind.CREDIT,
    ) -> LedgerEntry:
        amount = self._positive(amount)
        with self.unit(reference):
            locked = self._lock(account)
            entry = self._write(
                locked,
                kind=kind,
                delta=amount,
                reference=reference,
                description=description,
            )
        logger.info(
            "ledger.credit.applied account_id=%s kind=%s reference=%s amount=%s balance=%s",
            locked.pk,
            kind,
            reference,
            amount,
            entry.resulting_balance,
        )
        return entry

    def credit_commission(self, account, amount, reference: str, description: str = "") -> LedgerEntry:
        return self.credit(
            account,
            amount,
            reference,
            description,
            kind=LedgerEntry.Kind.COMMISSION,
        )

    def debit(self, account, amount, reference: str, description: str = "") -> LedgerEntry:
        amount = self._positive(amount)
        with self.unit(reference):
            locked = self._lock(account)
            if locked.available < amount:
                raise InsufficientBalance(locked.pk, amount, locked.available)
            entry = self._write(
                locked,
                kind=LedgerEntry.Kind.DEBIT,
                delta=-amount,
                reference=reference,
                description=description,
            )
        logger.info(
            "ledger.debit.applied account_id=%s reference=%s amount=%s balance=%s",
            locked.pk,
            reference,
            amount,
            entry.resulting_balance,
        )
        return entry

    def hold(self, account, amount, reference: str) -> PayoutHold:
        amount = self._positive(amount)
        with self.unit(reference):
            locked = self._lock(account)
            if PayoutHold.objects.filter(reference=reference).exists():
                raise InvalidLedgerTransition(f"A hold already exists for reference {reference}.")
            if locked.available < amount:
                raise InsufficientBalance(locked.pk, amount, locked.available)
            locked.held = locked.held + amount
            self._write(
                locked,
                kind=LedgerEntry.Kind.HOLD,
                delta=-amount,
                reference=reference,
                description="Payout hold",
            )
            payout_hold = PayoutHold.objects.create(
                account=locked,
                reference=reference,
                amount=amount,
            )
        logger.info(
            "ledger.hold.applied account_id=%s reference=%s amount=%s",
            locked.pk,
            reference,
            amount,
        )
        return payout_hold

    def _locked_hold(self, account: Account, amount: Decimal, reference: str) -> PayoutHold:
        payout_hold = PayoutHold.objects.select_for_update().filter(reference=reference).first()
        if payout_hold is None:
            raise InvalidLedgerTransition(f"No hold exists for reference {reference}.")
        if payout_hold.account_id != account.pk:
            raise InvalidLedgerTransition(
                f"Hold {reference} belongs to account {payout_hold.account_id}, not {account.pk}."
            )
        if payout_hold.state != PayoutHold.State.CREATED:
            raise InvalidLedgerTransition(
                f"Hold {reference} is {payout_hold.state}; only CREATED holds can be released."
            )
        if payout_hold.amount != amount:
            raise InvalidLedgerTransition(
                f"Hold {reference} is for {payout_hold.amount}, not {amount}."
            )
        if account.held < amount:
            raise DataIntegrityError(
                f"Account {account.pk} holds {account.held}, less than hold {reference}."
            )
        return payout_hold

    def _resolve_hold(self, payout_hold: PayoutHold, state: str) -> None:
        payout_hold.state = state
        payout_hold.resolved_at = timezone.now()
        payout_hold.save(update_fields=["state", "resolved_at"])

    def release_on_success(self, account, amount, reference: str) -> PayoutHold:
        """Commit the hold: the reserved funds leave the wallet."""

        amount = self._positive(amount)
        with self.unit(reference):
            locked = self._lock(account)
            payout_hold = self._locked_hold(locked, amount, reference)
            locked.held = locked.held - amount
            locked.save(update_fields=["held", "updated_at"])
            self._resolve_hold(payout_hold, PayoutHold.State.SUCCESS)
        logger.info(
            "ledger.hold.committed account_id=%s reference=%s amount=%s",
            locked.pk,
            reference,
            amount,
        )
        return payout_hold

    def release_on_failure(self, account, amount, reference: str) -> PayoutHold:
        """Return the held funds to the available balance."""

        amount = self._positive(amount)
        with self.unit(reference):
            locked = self._lock(account)
            payout_hold = self._locked_hold(locked, amount, reference)
            locked.held = locked.held - amount
            self._write(
                locked,
                kind=LedgerEntry.Kind.REFUND,
                delta=amount,
                reference=reference,
                description="Payout refund",
            )
            self._resolve_hold(payout_hold, PayoutHold.State.FAILED)
        logger.info(
            "ledger.hold.refunded account_id=%s reference=%s amount=%s",
            locked.pk,
            reference,
            amount,
        )
        return payout_hold

    def transfer(self, source, destination, amount, reference: str, description: str = ""):
        amount = self._positive(amount)
        source_pk = _account_pk(source)
        destination_pk = _account_pk(destination)
        if source_pk == destination_pk:
            raise LedgerError("Cannot transfer to the same account.")

        with self.unit(reference):
            locked = self.lock_in_order(source_pk, destination_pk)
            payer = locked[source_pk]
            payee = locked[destination_pk]
            if payer.available < amount:
                raise InsufficientBalance(payer.pk, amount, payer.available)
            debit_entry = self._write(
                payer,
                kind=LedgerEntry.Kind.DEBIT,
                delta=-amount,
                reference=reference,
                description=description or f"Transfer to account {payee.pk}",
            )
            credit_entry = self._write(
                payee,
                kind=LedgerEntry.Kind.CREDIT,
                delta=amount,
                reference=reference,
                description=description or f"Transfer from account {payer.pk}",
            )
        logger.info(
            "ledger.transfer.applied from_account_id=%s to_account_id=%s reference=%s amount=%s",
            payer.pk,
            payee.pk,
            reference,
            amount,
        )
        return debit_entry, credit_entry


def replay_available_balance(account) -> Decimal:
    """Sum of every entry delta of ``account`` in creation order."""

    balance = Decimal("0.00")
    for delta in (
        LedgerEntry.objects.filter(account_id=_account_pk(account))
        .order_by("id")
        .values_list("delta", flat=True)
        .iterator()
    ):
        balance += delta
    return balance


def verify_account(account) -> Account:
    """Check the stored balances against the entry and hold history."""

    pk = _account_pk(account)
    account = Account.objects.get(pk=pk)
    running = Decimal("0.00")
    for entry in LedgerEntry.objects.filter(account_id=pk).order_by("id").iterator():
        running += entry.delta
        if running != entry.resulting_balance:
            raise DataIntegrityError(
                f"Ledger entry {entry.pk} records {entry.resulting_balance}, replay gives {running}."
            )
        if running < 0:
            raise DataIntegrityError(f"Ledger entry {entry.pk} drives account {pk} negative.")
    if running != account.available:
        raise DataIntegrityError(
            f"Account {pk} shows {account.available} available, replay gives {running}."
        )

    open_holds = Decimal("0.00")
    for amount in PayoutHold.objects.filter(
        account_id=pk, state=PayoutHold.State.CREATED
    ).values_list("amount", flat=True):
        open_holds += amount
    if open_holds != account.held:
        raise DataIntegrityError(
            f"Account {pk} shows {account.held} held, open holds total {open_holds}."
        )
    return account
