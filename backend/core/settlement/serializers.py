from rest_framework import serializers

from settlement.models import Settlement


class SettlementSerializer(serializers.ModelSerializer):
    class Meta:
        model = Settlement
        fields = (
            "id",
            "reference",
            "direction",
            "actor_id",
            "channel_id",
            "amount",
            "rate",
            "fee",
            "charge",
            "net_amount",
            "status",
            "commission_recorded_at",
            "created_at",
            "updated_at",
        )


class TransferInputSerializer(serializers.Serializer):
    recipient = serializers.IntegerField(min_value=1)
    amount = serializers.DecimalField(max_digits=16, decimal_places=2, min_value=0)
    reference = serializers.CharField(max_length=128)
