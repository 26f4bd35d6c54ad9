from decimal import Decimal
from unittest import mock

from django.db import DatabaseError
from django.db.models import Sum
from django.test import TestCase

from commission.engine import CommissionEngine
from commission.models import CommissionCredit
from hierarchy.exceptions import CapabilityError
from hierarchy.models import Tier
from hierarchy.tests.builders import PAYOUT_SLABS, build_chain, build_inbound_channel
from ledger.exceptions import InsufficientBalance, InvalidLedgerTransition
from ledger.models import LedgerEntry, PayoutHold
from ledger.services import account_for, verify_account
from pricing.exceptions import NoRateConfigured
from pricing.models import Direction
from pricing.validators import RateAssignmentValidator
from settlement.exceptions import SettlementConflict
from settlement.models import Settlement
from settlement.services import (
    deduct_account,
    fund_account,
    resolve_charge,
    settle_inbound,
    settle_payout_failure,
    settle_payout_hold,
    settle_payout_success,
    transfer_funds,
)


def commission_paid(reference):
    total = LedgerEntry.objects.filter(
        reference=reference,
        kind=LedgerEntry.Kind.COMMISSION,
    ).aggregate(total=Sum("delta"))["total"]
    return total or Decimal("0.00")


class SettlementTestCase(TestCase):
    def setUp(self):
        self.root, self.white_label, self.master, self.retailer = build_chain()
        self.channel = build_inbound_channel(cost_basis=Decimal("0.008"))
        validator = RateAssignmentValidator()
        validator.assign_rate(self.root, self.white_label, self.channel, "0.01")
        validator.assign_rate(self.white_label, self.master, self.channel, "0.015")
        validator.assign_rate(self.master, self.retailer, self.channel, "0.018")
        validator.assign_tier_slabs(self.root, Tier.RETAILER, PAYOUT_SLABS)

    def available(self, actor):
        return account_for(actor).available

    def held(self, actor):
        return account_for(actor).held


class ResolveChargeTests(SettlementTestCase):
    def test_inbound_quote(self):
        quote = resolve_charge(self.retailer, self.channel, Decimal("10000"), Direction.INBOUND)
        self.assertEqual(quote.rate, Decimal("0.018"))
        self.assertEqual(quote.charge, Decimal("180.00"))
        self.assertEqual(quote.net_amount, Decimal("9820.00"))

    def test_outbound_quote_uses_slab_fee(self):
        quote = resolve_charge(self.retailer, None, Decimal("75000"), Direction.OUTBOUND)
        self.assertIsNone(quote.rate)
        self.assertEqual(quote.fee, Decimal("18.00"))
        self.assertEqual(quote.charge, Decimal("18.00"))
        self.assertEqual(quote.net_amount, Decimal("75000.00"))


class InboundSettlementTests(SettlementTestCase):
    def test_inbound_settlement_credits_net_and_commissions(self):
        settlement = settle_inbound(self.retailer, self.channel, Decimal("10000"), "txn-1")

        self.assertEqual(settlement.status, Settlement.Status.SUCCESS)
        self.assertEqual(settlement.charge, Decimal("180.00"))
        self.assertEqual(self.available(self.retailer), Decimal("9820.00"))
        self.assertEqual(self.available(self.master), Decimal("30.00"))
        self.assertEqual(self.available(self.white_label), Decimal("50.00"))
        self.assertEqual(self.available(self.root), Decimal("20.00"))
        for actor in (self.root, self.white_label, self.master, self.retailer):
            verify_account(account_for(actor))

    def test_replayed_reference_is_idempotent(self):
        first = settle_inbound(self.retailer, self.channel, Decimal("10000"), "txn-1")
        again = settle_inbound(self.retailer, self.channel, Decimal("10000"), "txn-1")

        self.assertEqual(first.pk, again.pk)
        self.assertEqual(self.available(self.retailer), Decimal("9820.00"))
        self.assertEqual(self.available(self.white_label), Decimal("50.00"))

    def test_reused_reference_with_other_amount_conflicts(self):
        settle_inbound(self.retailer, self.channel, Decimal("10000"), "txn-1")
        with self.assertRaises(SettlementConflict):
            settle_inbound(self.retailer, self.channel, Decimal("500"), "txn-1")

    def test_commission_failure_does_not_undo_settlement(self):
        with mock.patch.object(
            CommissionEngine,
            "compute",
            side_effect=NoRateConfigured("missing ancestor rate"),
        ):
            settlement = settle_inbound(self.retailer, self.channel, Decimal("10000"), "txn-1")

        self.assertEqual(settlement.status, Settlement.Status.SUCCESS)
        self.assertEqual(self.available(self.retailer), Decimal("9820.00"))
        self.assertFalse(CommissionCredit.objects.exists())

    def test_reused_reference_on_other_channel_conflicts(self):
        settle_inbound(self.retailer, self.channel, Decimal("10000"), "txn-1")
        other = build_inbound_channel(code="card")
        with self.assertRaises(SettlementConflict):
            settle_inbound(self.retailer, other, Decimal("10000"), "txn-1")

    def test_replay_after_rate_change_pays_recorded_split_only(self):
        validator = RateAssignmentValidator()
        validator.assign_rate(self.white_label, self.master, self.channel, "0.01")
        settle_inbound(self.retailer, self.channel, Decimal("10000"), "txn-1")
        self.assertEqual(commission_paid("txn-1"), Decimal("100.00"))
        self.assertEqual(self.available(self.white_label), Decimal("0.00"))

        validator.assign_rate(self.white_label, self.master, self.channel, "0.015")
        settle_inbound(self.retailer, self.channel, Decimal("10000"), "txn-1")

        self.assertEqual(commission_paid("txn-1"), Decimal("100.00"))
        self.assertEqual(self.available(self.white_label), Decimal("0.00"))
        self.assertEqual(self.available(self.master), Decimal("80.00"))
        self.assertEqual(CommissionCredit.objects.filter(reference="txn-1").count(), 2)

    def test_split_retried_on_replay_uses_charged_rate(self):
        with mock.patch.object(
            CommissionEngine,
            "compute",
            side_effect=NoRateConfigured("missing ancestor rate"),
        ):
            settlement = settle_inbound(self.retailer, self.channel, Decimal("10000"), "txn-1")
        self.assertIsNone(settlement.commission_recorded_at)

        RateAssignmentValidator().assign_rate(self.master, self.retailer, self.channel, "0.02")
        settlement = settle_inbound(self.retailer, self.channel, Decimal("10000"), "txn-1")

        self.assertEqual(settlement.rate, Decimal("0.018"))
        self.assertIsNotNone(settlement.commission_recorded_at)
        self.assertEqual(commission_paid("txn-1"), Decimal("100.00"))
        self.assertEqual(self.available(self.master), Decimal("30.00"))

    def test_database_error_while_recording_split_keeps_settlement(self):
        with mock.patch.object(
            CommissionCredit.objects,
            "bulk_create",
            side_effect=DatabaseError("could not serialize access"),
        ):
            settlement = settle_inbound(self.retailer, self.channel, Decimal("10000"), "txn-1")

        settlement.refresh_from_db()
        self.assertEqual(settlement.status, Settlement.Status.SUCCESS)
        self.assertIsNone(settlement.commission_recorded_at)
        self.assertEqual(self.available(self.retailer), Decimal("9820.00"))
        self.assertFalse(CommissionCredit.objects.exists())

        settle_inbound(self.retailer, self.channel, Decimal("10000"), "txn-1")
        self.assertEqual(commission_paid("txn-1"), Decimal("100.00"))

    def test_missing_rate_settles_nothing(self):
        other = build_inbound_channel(code="card")
        with self.assertRaises(NoRateConfigured):
            settle_inbound(self.retailer, other, Decimal("100"), "txn-2")
        self.assertFalse(Settlement.objects.filter(reference="txn-2").exists())


class PayoutSettlementTests(SettlementTestCase):
    def setUp(self):
        super().setUp()
        fund_account(self.root, self.retailer, Decimal("100000"), reference="seed")

    def test_hold_reserves_amount_plus_fee(self):
        settlement = settle_payout_hold(self.retailer, Decimal("75000"), "p-1")

        self.assertEqual(settlement.status, Settlement.Status.CREATED)
        self.assertEqual(settlement.fee, Decimal("18.00"))
        self.assertEqual(self.available(self.retailer), Decimal("24982.00"))
        self.assertEqual(self.held(self.retailer), Decimal("75018.00"))

    def test_success_commits_hold_and_pays_fee_to_platform(self):
        settle_payout_hold(self.retailer, Decimal("75000"), "p-1")
        settlement = settle_payout_success(self.retailer, Decimal("75000"), "p-1")

        self.assertEqual(settlement.status, Settlement.Status.SUCCESS)
        self.assertEqual(self.available(self.retailer), Decimal("24982.00"))
        self.assertEqual(self.held(self.retailer), Decimal("0.00"))
        self.assertEqual(self.available(self.root), Decimal("18.00"))
        self.assertEqual(self.available(self.master), Decimal("0.00"))
        self.assertFalse(CommissionCredit.objects.exists())

    def test_failure_refunds_everything(self):
        settle_payout_hold(self.retailer, Decimal("75000"), "p-1")
        settlement = settle_payout_failure(self.retailer, Decimal("75000"), "p-1")

        self.assertEqual(settlement.status, Settlement.Status.FAILED)
        self.assertEqual(self.available(self.retailer), Decimal("100000.00"))
        self.assertEqual(self.held(self.retailer), Decimal("0.00"))
        self.assertEqual(
            LedgerEntry.objects.filter(reference="p-1", kind=LedgerEntry.Kind.REFUND).count(),
            1,
        )

    def test_second_resolution_is_rejected(self):
        settle_payout_hold(self.retailer, Decimal("75000"), "p-1")
        settle_payout_failure(self.retailer, Decimal("75000"), "p-1")
        with self.assertRaises(InvalidLedgerTransition):
            settle_payout_success(self.retailer, Decimal("75000"), "p-1")
        self.assertEqual(Settlement.objects.get(reference="p-1").status, Settlement.Status.FAILED)

    def test_insufficient_balance_creates_no_settlement(self):
        with self.assertRaises(InsufficientBalance):
            settle_payout_hold(self.retailer, Decimal("99990"), "p-1")
        self.assertFalse(Settlement.objects.filter(reference="p-1").exists())
        self.assertFalse(PayoutHold.objects.filter(reference="p-1").exists())
        self.assertEqual(self.available(self.retailer), Decimal("100000.00"))

    def test_platform_payout_carries_no_fee(self):
        fund_account(self.root, self.root, Decimal("1000"), reference="root-seed")
        settlement = settle_payout_hold(self.root, Decimal("500"), "p-root")

        self.assertEqual(settlement.fee, Decimal("0.00"))
        self.assertEqual(PayoutHold.objects.get(reference="p-root").amount, Decimal("500.00"))

        settle_payout_success(self.root, Decimal("500"), "p-root")
        account = verify_account(account_for(self.root))
        self.assertEqual(account.available, Decimal("500.00"))
        self.assertEqual(account.held, Decimal("0.00"))

    def test_ledger_invariant_holds_across_lifecycle(self):
        settle_payout_hold(self.retailer, Decimal("5000"), "p-1")
        settle_payout_hold(self.retailer, Decimal("20000"), "p-2")
        settle_payout_success(self.retailer, Decimal("5000"), "p-1")

        account = verify_account(account_for(self.retailer))
        committed = Decimal("5010.00")
        self.assertEqual(account.available + account.held, Decimal("100000.00") - committed)


class WalletAdministrationTests(SettlementTestCase):
    def test_only_root_funds_and_deducts(self):
        with self.assertRaises(CapabilityError):
            fund_account(self.white_label, self.retailer, Decimal("10"))
        fund_account(self.root, self.retailer, Decimal("10"))
        deduct_account(self.root, self.retailer, Decimal("4"))
        self.assertEqual(self.available(self.retailer), Decimal("6.00"))

    def test_transfer_goes_down_the_hierarchy_only(self):
        fund_account(self.root, self.white_label, Decimal("1000"))
        transfer_funds(self.white_label, self.retailer, Decimal("250"), "tr-1")
        self.assertEqual(self.available(self.white_label), Decimal("750.00"))
        self.assertEqual(self.available(self.retailer), Decimal("250.00"))

        with self.assertRaises(CapabilityError):
            transfer_funds(self.white_label, self.root, Decimal("1"), "tr-2")
        with self.assertRaises(CapabilityError):
            transfer_funds(self.retailer, self.master, Decimal("1"), "tr-3")

    def test_transfer_reference_cannot_be_reused(self):
        fund_account(self.root, self.white_label, Decimal("1000"))
        transfer_funds(self.white_label, self.master, Decimal("10"), "tr-1")
        with self.assertRaises(SettlementConflict):
            transfer_funds(self.white_label, self.master, Decimal("10"), "tr-1")
