from decimal import Decimal

from django.test import TestCase

from hierarchy.models import Tier
from hierarchy.tests.builders import PAYOUT_SLABS, build_chain, build_inbound_channel, build_outbound_channel
from pricing.audit import verify_pricing_chain
from pricing.exceptions import (
    AssignmentNotPermitted,
    NoRateConfigured,
    OverlappingSlabs,
    PricingError,
    RateBelowFloor,
)
from pricing.models import PricingChange, RateAssignment, Slab, SlabSet
from pricing.validators import RateAssignmentValidator


class AssignRateTests(TestCase):
    def setUp(self):
        self.root, self.white_label, self.master, self.retailer = build_chain()
        self.channel = build_inbound_channel()
        self.validator = RateAssignmentValidator()
        self.validator.assign_rate(self.root, self.white_label, self.channel, "0.01")

    def test_rate_below_cost_basis_is_rejected(self):
        with self.assertRaises(RateBelowFloor) as ctx:
            self.validator.assign_rate(self.root, self.white_label, self.channel, "0.007")
        self.assertEqual(ctx.exception.floor, Decimal("0.008"))

    def test_rate_below_assigner_rate_is_rejected(self):
        with self.assertRaises(RateBelowFloor) as ctx:
            self.validator.assign_rate(self.white_label, self.master, self.channel, "0.009")
        self.assertEqual(ctx.exception.actual, Decimal("0.009"))
        self.assertEqual(ctx.exception.floor, Decimal("0.01"))
        self.assertFalse(RateAssignment.objects.filter(actor=self.master).exists())

    def test_rate_equal_to_assigner_rate_is_allowed(self):
        assignment = self.validator.assign_rate(self.white_label, self.master, self.channel, "0.01")
        self.assertEqual(assignment.rate, Decimal("0.01"))

    def test_only_direct_children_unless_root(self):
        with self.assertRaises(AssignmentNotPermitted):
            self.validator.assign_rate(self.white_label, self.retailer, self.channel, "0.02")
        self.validator.assign_rate(self.white_label, self.master, self.channel, "0.015")
        assignment = self.validator.assign_rate(self.root, self.retailer, self.channel, "0.02")
        self.assertEqual(assignment.assigned_by, self.root)

    def test_retailer_cannot_assign(self):
        with self.assertRaises(AssignmentNotPermitted):
            self.validator.assign_rate(self.retailer, self.master, self.channel, "0.05")

    def test_root_rate_cannot_be_assigned(self):
        with self.assertRaises(AssignmentNotPermitted):
            self.validator.assign_rate(self.root, self.root, self.channel, "0.05")

    def test_rate_outside_unit_interval_is_rejected(self):
        with self.assertRaises(PricingError):
            self.validator.assign_rate(self.root, self.white_label, self.channel, "1.5")
        with self.assertRaises(PricingError):
            self.validator.assign_rate(self.root, self.white_label, self.channel, "0.0100001")

    def test_assigner_without_own_rate_cannot_delegate(self):
        with self.assertRaises(NoRateConfigured):
            self.validator.assign_rate(self.master, self.retailer, self.channel, "0.05")

    def test_payout_channel_takes_no_percentage(self):
        outbound = build_outbound_channel()
        with self.assertRaises(NoRateConfigured):
            self.validator.assign_rate(self.root, self.white_label, outbound, "0.01")

    def test_upsert_versions_only_on_change(self):
        first = RateAssignment.objects.get(actor=self.white_label, channel=self.channel)
        self.assertEqual(first.version, 1)
        changes = PricingChange.objects.count()

        same = self.validator.assign_rate(self.root, self.white_label, self.channel, "0.010000")
        self.assertEqual(same.version, 1)
        self.assertEqual(PricingChange.objects.count(), changes)

        updated = self.validator.assign_rate(self.root, self.white_label, self.channel, "0.011")
        self.assertEqual(updated.version, 2)
        self.assertEqual(PricingChange.objects.count(), changes + 1)
        self.assertEqual(RateAssignment.objects.filter(actor=self.white_label).count(), 1)

    def test_audit_chain_records_before_and_after(self):
        self.validator.assign_rate(self.root, self.white_label, self.channel, "0.011")
        self.validator.remove_rate(self.root, self.white_label, self.channel)

        latest = PricingChange.objects.order_by("-id").first()
        self.assertEqual(latest.action, PricingChange.ACTION_DISABLE)
        self.assertEqual(latest.data_before["rate"], "0.011000")
        self.assertFalse(latest.data_after["is_enabled"])
        self.assertEqual(verify_pricing_chain(), PricingChange.objects.count())

    def test_tier_rates_are_root_only(self):
        with self.assertRaises(AssignmentNotPermitted):
            self.validator.assign_tier_rate(self.white_label, Tier.RETAILER, self.channel, "0.02")
        with self.assertRaises(RateBelowFloor):
            self.validator.assign_tier_rate(self.root, Tier.RETAILER, self.channel, "0.005")


class AssignSlabsTests(TestCase):
    def setUp(self):
        self.root, self.white_label, self.master, self.retailer = build_chain()
        self.validator = RateAssignmentValidator()
        self.validator.assign_slabs(self.root, self.white_label, PAYOUT_SLABS)

    def test_root_without_table_has_no_floor(self):
        slab_set = SlabSet.objects.get(actor=self.white_label)
        self.assertEqual(slab_set.slabs.count(), 4)
        self.assertEqual(slab_set.version, 1)

    def test_fee_below_overlapping_assigner_fee_is_rejected(self):
        with self.assertRaises(RateBelowFloor) as ctx:
            self.validator.assign_slabs(
                self.white_label,
                self.master,
                [
                    {"min_amount": "0", "max_amount": "60000", "flat_fee": "15"},
                    {"min_amount": "60001", "max_amount": None, "flat_fee": "30"},
                ],
            )
        self.assertEqual(ctx.exception.floor, Decimal("18"))
        self.assertFalse(SlabSet.objects.filter(actor=self.master).exists())

    def test_marked_up_table_is_accepted(self):
        slab_set = self.validator.assign_slabs(
            self.white_label,
            self.master,
            [
                {"min_amount": "0", "max_amount": "10000", "flat_fee": "11"},
                {"min_amount": "10000.01", "max_amount": "200000", "flat_fee": "20"},
                {"min_amount": "200000.01", "max_amount": None, "flat_fee": "25"},
            ],
        )
        self.assertEqual(slab_set.slabs.count(), 3)

    def test_overlapping_table_is_rejected_before_any_write(self):
        with self.assertRaises(OverlappingSlabs):
            self.validator.assign_slabs(
                self.root,
                self.white_label,
                [
                    {"min_amount": "0", "max_amount": "100", "flat_fee": "1"},
                    {"min_amount": "50", "max_amount": None, "flat_fee": "2"},
                ],
            )
        self.assertEqual(SlabSet.objects.get(actor=self.white_label).slabs.count(), 4)

    def test_replacing_table_bumps_version_and_keeps_history(self):
        slab_set = self.validator.assign_slabs(
            self.root,
            self.white_label,
            [{"min_amount": "0", "max_amount": None, "flat_fee": "9"}],
        )
        self.assertEqual(slab_set.version, 2)
        self.assertEqual(Slab.objects.filter(slab_set=slab_set).count(), 1)

        change = PricingChange.objects.filter(resource_label="SlabSet").order_by("-id").first()
        self.assertEqual(change.action, PricingChange.ACTION_UPDATE)
        self.assertEqual(len(change.data_before["slabs"]), 4)
        self.assertEqual(len(change.data_after["slabs"]), 1)
