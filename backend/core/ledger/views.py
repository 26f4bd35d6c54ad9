from rest_framework.response import Response
from rest_framework.views import APIView

from hierarchy.permissions import IsActiveActor
from ledger.models import Account, LedgerEntry
from ledger.serializers import AccountSerializer, LedgerEntrySerializer
from ledger.services import account_for
from reseller_backend.errors import DOMAIN_ERRORS, domain_error_response


class AccountLedgerEntryListAPIView(APIView):
    permission_classes = [IsActiveActor]

    def get(self, request):
        try:
            limit = int(request.query_params.get("limit", "200"))
        except ValueError:
            limit = 200
        limit = max(1, min(limit, 1000))

        entries = LedgerEntry.objects.filter(account__actor=request.actor).order_by("-id")
        kind = (request.query_params.get("kind") or "").strip().upper()
        if kind:
            entries = entries.filter(kind=kind)
        reference = (request.query_params.get("reference") or "").strip()
        if reference:
            entries = entries.filter(reference=reference)
        return Response(LedgerEntrySerializer(entries[:limit], many=True).data)


class AccountBalanceAPIView(APIView):
    permission_classes = [IsActiveActor]

    def get(self, request):
        try:
            account = account_for(request.actor)
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc)
        account = Account.objects.select_related("actor").get(pk=account.pk)
        return Response(AccountSerializer(account).data)
