from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from hierarchy.permissions import IsActiveActor
from pricing.serializers import (
    QuoteInputSerializer,
    RateAssignmentInputSerializer,
    RateAssignmentSerializer,
    SlabSetSerializer,
    SlabTableInputSerializer,
)
from pricing.validators import RateAssignmentValidator
from reseller_backend.errors import DOMAIN_ERRORS, domain_error_response
from settlement.services import resolve_charge


class RateAssignmentAPIView(APIView):
    permission_classes = [IsActiveActor]

    def post(self, request):
        serializer = RateAssignmentInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            assignment = RateAssignmentValidator().assign_rate(
                request.actor,
                data["target"],
                data["channel"],
                data["rate"],
            )
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc)
        return Response(RateAssignmentSerializer(assignment).data, status=status.HTTP_200_OK)


class RateAssignmentDetailAPIView(APIView):
    permission_classes = [IsActiveActor]

    def delete(self, request, target: int, channel: int):
        try:
            assignment = RateAssignmentValidator().remove_rate(request.actor, target, channel)
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc)
        if assignment is None:
            return Response({"detail": "No active rate override."}, status=status.HTTP_404_NOT_FOUND)
        return Response(status=status.HTTP_204_NO_CONTENT)


class SlabTableAPIView(APIView):
    permission_classes = [IsActiveActor]

    def post(self, request):
        serializer = SlabTableInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            slab_set = RateAssignmentValidator().assign_slabs(
                request.actor,
                data["target"],
                data["slabs"],
            )
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc)
        return Response(SlabSetSerializer(slab_set).data, status=status.HTTP_200_OK)


class ChargeQuoteAPIView(APIView):
    permission_classes = [IsActiveActor]

    def post(self, request):
        serializer = QuoteInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            quote = resolve_charge(
                request.actor,
                data.get("channel"),
                data["amount"],
                data["direction"],
            )
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc)
        return Response(
            {
                "direction": data["direction"],
                "amount": str(data["amount"]),
                "rate": None if quote.rate is None else str(quote.rate),
                "fee": str(quote.fee),
                "charge": str(quote.charge),
                "net_amount": str(quote.net_amount),
            },
            status=status.HTTP_200_OK,
        )
