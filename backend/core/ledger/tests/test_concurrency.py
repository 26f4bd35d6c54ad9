import threading
from decimal import Decimal
from unittest import mock

from django.db import connection
from django.test import TestCase, TransactionTestCase, skipUnlessDBFeature

from hierarchy.tests.builders import build_chain
from ledger.exceptions import InsufficientBalance
from ledger.models import Account
from ledger.services import Ledger, account_for, verify_account


def run_concurrently(count, work):
    """Start ``count`` threads together and collect what each one raised."""

    barrier = threading.Barrier(count)
    outcomes = []
    outcomes_lock = threading.Lock()

    def worker(index):
        outcome = "ok"
        try:
            barrier.wait()
            work(index)
        except InsufficientBalance:
            outcome = "insufficient"
        except Exception as exc:
            outcome = repr(exc)
        finally:
            connection.close()
        with outcomes_lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=worker, args=(index,)) for index in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return outcomes


class TransferLockOrderTests(TestCase):
    def setUp(self):
        self.root, self.white_label, self.master, self.retailer = build_chain()
        self.ledger = Ledger()
        self.low = account_for(self.master)
        self.high = account_for(self.retailer)
        self.ledger.credit(self.high, 100, "seed")

    def test_rows_are_locked_in_ascending_order_either_way(self):
        original = Ledger._lock
        with mock.patch.object(Ledger, "_lock", autospec=True, side_effect=original) as locked:
            self.ledger.transfer(self.high, self.low, 10, "tr-1")
            self.ledger.transfer(self.low, self.high, 5, "tr-2")

        order = [call.args[1] for call in locked.call_args_list]
        self.assertLess(self.low.pk, self.high.pk)
        self.assertEqual(order, [self.low.pk, self.high.pk, self.low.pk, self.high.pk])


@skipUnlessDBFeature("has_select_for_update")
class ConcurrentLedgerTests(TransactionTestCase):
    def setUp(self):
        self.root, self.white_label, self.master, self.retailer = build_chain()
        self.ledger = Ledger()
        self.account = account_for(self.retailer)
        self.ledger.credit(self.account, 100, "seed")

    def test_concurrent_debits_never_overdraw(self):
        outcomes = run_concurrently(
            10,
            lambda index: self.ledger.debit(self.account.pk, 30, f"debit-{index}"),
        )

        self.assertEqual(outcomes.count("ok"), 3)
        self.assertEqual(outcomes.count("insufficient"), 7)
        account = verify_account(self.account)
        self.assertEqual(account.available, Decimal("10.00"))

    def test_concurrent_holds_reserve_only_what_is_available(self):
        outcomes = run_concurrently(
            10,
            lambda index: self.ledger.hold(self.account.pk, 25, f"hold-{index}"),
        )

        self.assertEqual(outcomes.count("ok"), 4)
        self.assertEqual(outcomes.count("insufficient"), 6)
        account = verify_account(self.account)
        self.assertEqual(account.available, Decimal("0.00"))
        self.assertEqual(account.held, Decimal("100.00"))

    def test_crossed_transfers_complete_without_deadlock(self):
        other = account_for(self.master)
        self.ledger.credit(other, 100, "seed-other")

        def work(index):
            if index % 2:
                self.ledger.transfer(self.account.pk, other.pk, 1, f"tr-{index}")
            else:
                self.ledger.transfer(other.pk, self.account.pk, 1, f"tr-{index}")

        outcomes = run_concurrently(20, work)

        self.assertEqual(outcomes, ["ok"] * 20)
        first = verify_account(self.account)
        second = verify_account(other)
        self.assertEqual(first.available + second.available, Decimal("200.00"))
        self.assertEqual(Account.objects.get(pk=self.account.pk).available, Decimal("100.00"))
