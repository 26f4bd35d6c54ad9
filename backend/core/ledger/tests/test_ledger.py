from decimal import Decimal
from unittest import mock

from django.core.exceptions import ValidationError
from django.db import OperationalError
from django.test import TestCase

from hierarchy.exceptions import DataIntegrityError
from hierarchy.tests.builders import build_chain
from ledger.exceptions import (
    InsufficientBalance,
    InvalidLedgerTransition,
    LedgerError,
    LedgerLockTimeout,
)
from ledger.models import Account, LedgerEntry, PayoutHold
from ledger.services import Ledger, account_for, replay_available_balance, verify_account


class LedgerTestCase(TestCase):
    def setUp(self):
        self.root, self.white_label, self.master, self.retailer = build_chain()
        self.ledger = Ledger()
        self.account = account_for(self.retailer)

    def balances(self, account=None):
        account = Account.objects.get(pk=(account or self.account).pk)
        return account.available, account.held


class CreditDebitTests(LedgerTestCase):
    def test_credit_and_debit_record_running_balance(self):
        first = self.ledger.credit(self.account, "100.005", "ref-1")
        second = self.ledger.debit(self.account, Decimal("40"), "ref-2")

        self.assertEqual(first.delta, Decimal("100.01"))
        self.assertEqual(second.delta, Decimal("-40.00"))
        self.assertEqual(second.resulting_balance, Decimal("60.01"))
        self.assertEqual(self.balances(), (Decimal("60.01"), Decimal("0.00")))

    def test_debit_beyond_available_is_rejected(self):
        self.ledger.credit(self.account, 10, "ref-1")
        with self.assertRaises(InsufficientBalance):
            self.ledger.debit(self.account, 11, "ref-2")
        self.assertEqual(self.balances(), (Decimal("10.00"), Decimal("0.00")))
        self.assertEqual(LedgerEntry.objects.filter(account=self.account).count(), 1)

    def test_non_positive_amounts_are_rejected(self):
        with self.assertRaises(LedgerError):
            self.ledger.credit(self.account, 0, "ref-1")
        with self.assertRaises(LedgerError):
            self.ledger.debit(self.account, "-5", "ref-2")

    def test_entries_are_immutable(self):
        entry = self.ledger.credit(self.account, 10, "ref-1")
        with self.assertRaises(ValidationError):
            entry.save()


class HoldTests(LedgerTestCase):
    def setUp(self):
        super().setUp()
        self.ledger.credit(self.account, 2000, "seed")

    def test_hold_larger_than_available_leaves_state_unchanged(self):
        other = account_for(self.master)
        self.ledger.credit(other, 500, "seed-2")
        with self.assertRaises(InsufficientBalance):
            self.ledger.hold(other, 1000, "payout-1")
        self.assertEqual(self.balances(other), (Decimal("500.00"), Decimal("0.00")))
        self.assertFalse(PayoutHold.objects.filter(reference="payout-1").exists())

    def test_hold_then_failure_restores_balances(self):
        self.ledger.hold(self.account, 1000, "payout-1")
        self.assertEqual(self.balances(), (Decimal("1000.00"), Decimal("1000.00")))

        self.ledger.release_on_failure(self.account, 1000, "payout-1")
        self.assertEqual(self.balances(), (Decimal("2000.00"), Decimal("0.00")))
        refunds = LedgerEntry.objects.filter(account=self.account, kind=LedgerEntry.Kind.REFUND)
        self.assertEqual(refunds.count(), 1)
        self.assertEqual(PayoutHold.objects.get(reference="payout-1").state, PayoutHold.State.FAILED)

    def test_hold_then_success_commits_without_new_entry(self):
        self.ledger.hold(self.account, 1000, "payout-1")
        entries = LedgerEntry.objects.filter(account=self.account).count()

        self.ledger.release_on_success(self.account, 1000, "payout-1")
        self.assertEqual(self.balances(), (Decimal("1000.00"), Decimal("0.00")))
        self.assertEqual(LedgerEntry.objects.filter(account=self.account).count(), entries)

    def test_release_is_only_allowed_from_created(self):
        self.ledger.hold(self.account, 100, "payout-1")
        self.ledger.release_on_success(self.account, 100, "payout-1")
        with self.assertRaises(InvalidLedgerTransition):
            self.ledger.release_on_failure(self.account, 100, "payout-1")
        with self.assertRaises(InvalidLedgerTransition):
            self.ledger.release_on_success(self.account, 100, "payout-1")

    def test_release_of_unknown_reference_is_rejected(self):
        with self.assertRaises(InvalidLedgerTransition):
            self.ledger.release_on_failure(self.account, 100, "missing")

    def test_release_amount_must_match_hold(self):
        self.ledger.hold(self.account, 100, "payout-1")
        with self.assertRaises(InvalidLedgerTransition):
            self.ledger.release_on_success(self.account, 90, "payout-1")

    def test_duplicate_hold_reference_is_rejected(self):
        self.ledger.hold(self.account, 100, "payout-1")
        with self.assertRaises(InvalidLedgerTransition):
            self.ledger.hold(self.account, 100, "payout-1")


class TransferTests(LedgerTestCase):
    def test_transfer_moves_funds_atomically(self):
        source = account_for(self.master)
        self.ledger.credit(source, 300, "seed")
        debit_entry, credit_entry = self.ledger.transfer(source, self.account, 120, "tx-1")

        self.assertEqual(debit_entry.kind, LedgerEntry.Kind.DEBIT)
        self.assertEqual(credit_entry.kind, LedgerEntry.Kind.CREDIT)
        self.assertEqual(self.balances(source), (Decimal("180.00"), Decimal("0.00")))
        self.assertEqual(self.balances(), (Decimal("120.00"), Decimal("0.00")))

    def test_failed_transfer_mutates_nothing(self):
        source = account_for(self.master)
        self.ledger.credit(source, 50, "seed")
        with self.assertRaises(InsufficientBalance):
            self.ledger.transfer(source, self.account, 120, "tx-1")
        self.assertEqual(self.balances(source), (Decimal("50.00"), Decimal("0.00")))
        self.assertEqual(self.balances(), (Decimal("0.00"), Decimal("0.00")))
        self.assertFalse(LedgerEntry.objects.filter(reference="tx-1").exists())

    def test_transfer_to_same_account_is_rejected(self):
        with self.assertRaises(LedgerError):
            self.ledger.transfer(self.account, self.account, 1, "tx-1")


class ReplayTests(LedgerTestCase):
    def test_replay_matches_stored_balances(self):
        self.ledger.credit(self.account, 500, "a")
        self.ledger.hold(self.account, 200, "b")
        self.ledger.credit_commission(self.account, "12.34", "c")
        self.ledger.release_on_failure(self.account, 200, "b")
        self.ledger.hold(self.account, 100, "d")
        self.ledger.debit(self.account, 50, "e")

        self.assertEqual(replay_available_balance(self.account), Decimal("362.34"))
        account = verify_account(self.account)
        self.assertEqual(account.available + account.held, Decimal("462.34"))

    def test_drift_is_detected(self):
        self.ledger.credit(self.account, 500, "a")
        Account.objects.filter(pk=self.account.pk).update(available=Decimal("501.00"))
        with self.assertRaises(DataIntegrityError):
            verify_account(self.account)


class LockTimeoutTests(LedgerTestCase):
    def test_lock_timeout_surfaces_as_domain_error(self):
        error = OperationalError("canceling statement due to lock timeout")
        with mock.patch.object(Ledger, "_lock", side_effect=error):
            with self.assertRaises(LedgerLockTimeout):
                self.ledger.credit(self.account, 10, "ref-1")
        self.assertEqual(self.balances(), (Decimal("0.00"), Decimal("0.00")))

    def test_other_operational_errors_propagate(self):
        error = OperationalError("server closed the connection unexpectedly")
        with mock.patch.object(Ledger, "_lock", side_effect=error):
            with self.assertRaises(OperationalError):
                self.ledger.credit(self.account, 10, "ref-1")
