from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from hierarchy.permissions import IsActiveActor
from ledger.serializers import LedgerEntrySerializer
from reseller_backend.errors import DOMAIN_ERRORS, domain_error_response
from settlement.models import Settlement
from settlement.serializers import SettlementSerializer, TransferInputSerializer
from settlement.services import transfer_funds


class SettlementDetailAPIView(APIView):
    permission_classes = [IsActiveActor]

    def get(self, request, reference: str):
        settlement = Settlement.objects.filter(reference=reference, actor=request.actor).first()
        if settlement is None:
            return Response({"detail": "Settlement not found."}, status=status.HTTP_404_NOT_FOUND)
        return Response(SettlementSerializer(settlement).data)


class TransferAPIView(APIView):
    permission_classes = [IsActiveActor]

    def post(self, request):
        serializer = TransferInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            debit_entry, credit_entry = transfer_funds(
                request.actor,
                data["recipient"],
                data["amount"],
                data["reference"],
            )
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc)
        return Response(
            {
                "reference": data["reference"],
                "debit": LedgerEntrySerializer(debit_entry).data,
                "credit": LedgerEntrySerializer(credit_entry).data,
            },
            status=status.HTTP_201_CREATED,
        )
