from decimal import Decimal

from django.test import TestCase
from rest_framework.test import APIClient

from hierarchy.tests.builders import build_chain, build_inbound_channel, link_user
from ledger.services import account_for
from pricing.validators import RateAssignmentValidator
from settlement.services import fund_account, settle_inbound


class SettlementAPITests(TestCase):
    def setUp(self):
        self.root, self.white_label, self.master, self.retailer = build_chain()
        fund_account(self.root, self.master, Decimal("500"))

        self.client = APIClient()
        token = link_user(self.master, "md-user")
        self.client.credentials(HTTP_AUTHORIZATION=f"Token {token.key}")

    def test_transfer_to_child(self):
        response = self.client.post(
            "/api/settlements/transfers/",
            {"recipient": self.retailer.pk, "amount": "120.00", "reference": "tr-1"},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(Decimal(response.data["debit"]["delta"]), Decimal("-120.00"))
        self.assertEqual(account_for(self.retailer).available, Decimal("120.00"))

    def test_transfer_beyond_balance_conflicts(self):
        response = self.client.post(
            "/api/settlements/transfers/",
            {"recipient": self.retailer.pk, "amount": "900.00", "reference": "tr-1"},
            format="json",
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "InsufficientBalance")

    def test_transfer_upwards_is_forbidden(self):
        response = self.client.post(
            "/api/settlements/transfers/",
            {"recipient": self.white_label.pk, "amount": "1.00", "reference": "tr-1"},
            format="json",
        )
        self.assertEqual(response.status_code, 403)

    def test_settlement_detail_is_scoped_to_owner(self):
        channel = build_inbound_channel()
        validator = RateAssignmentValidator()
        validator.assign_rate(self.root, self.white_label, channel, "0.01")
        validator.assign_rate(self.white_label, self.master, channel, "0.012")
        settle_inbound(self.master, channel, Decimal("1000"), "txn-1")

        response = self.client.get("/api/settlements/txn-1/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "SUCCESS")
        self.assertEqual(Decimal(response.data["charge"]), Decimal("12.00"))

        response = self.client.get("/api/settlements/unknown/")
        self.assertEqual(response.status_code, 404)
