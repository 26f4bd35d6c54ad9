from decimal import Decimal

from django.test import TestCase

from hierarchy.tests.builders import build_inbound_channel
from pricing.detection import detect_channel
from pricing.exceptions import NoRateConfigured
from pricing.models import Direction


class DetectChannelTests(TestCase):
    def setUp(self):
        self.default = build_inbound_channel(
            code="pg-default",
            processor="razorpay",
            is_default=True,
        )
        self.upi = build_inbound_channel(
            code="pg-upi",
            processor="razorpay",
            response_codes=["upi"],
        )
        self.card = build_inbound_channel(
            code="pg-credit-card",
            cost_basis=Decimal("0.018"),
            processor="razorpay",
            response_codes=["credit_card", "creditcard"],
        )

    def test_response_code_is_matched_case_insensitively(self):
        self.assertEqual(detect_channel("razorpay", "UPI/Collect", Direction.INBOUND), self.upi)
        self.assertEqual(detect_channel("razorpay", "VISA CreditCard", Direction.INBOUND), self.card)

    def test_unknown_method_falls_back_to_default(self):
        self.assertEqual(detect_channel("razorpay", "wallet", Direction.INBOUND), self.default)
        self.assertEqual(detect_channel("razorpay", None, Direction.INBOUND), self.default)

    def test_inactive_channels_are_skipped(self):
        self.upi.is_active = False
        self.upi.save(update_fields=["is_active"])
        self.assertEqual(detect_channel("razorpay", "upi", Direction.INBOUND), self.default)

    def test_no_default_raises(self):
        with self.assertRaises(NoRateConfigured):
            detect_channel("cashfree", "upi", Direction.INBOUND)
