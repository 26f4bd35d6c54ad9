from rest_framework import serializers

from pricing.models import Direction, RateAssignment, Slab, SlabSet


class RateAssignmentInputSerializer(serializers.Serializer):
    target = serializers.IntegerField(min_value=1)
    channel = serializers.IntegerField(min_value=1)
    rate = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=0)


class RateAssignmentSerializer(serializers.ModelSerializer):
    class Meta:
        model = RateAssignment
        fields = (
            "id",
            "actor_id",
            "channel_id",
            "rate",
            "assigned_by_id",
            "is_enabled",
            "version",
            "updated_at",
        )


class SlabInputSerializer(serializers.Serializer):
    min_amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0)
    max_amount = serializers.DecimalField(
        max_digits=14,
        decimal_places=2,
        min_value=0,
        required=False,
        allow_null=True,
    )
    flat_fee = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0)


class SlabTableInputSerializer(serializers.Serializer):
    target = serializers.IntegerField(min_value=1)
    slabs = SlabInputSerializer(many=True, allow_empty=False)


class SlabSerializer(serializers.ModelSerializer):
    class Meta:
        model = Slab
        fields = ("min_amount", "max_amount", "flat_fee")


class SlabSetSerializer(serializers.ModelSerializer):
    slabs = SlabSerializer(many=True, read_only=True)

    class Meta:
        model = SlabSet
        fields = ("id", "actor_id", "tier", "assigned_by_id", "version", "slabs", "updated_at")


class QuoteInputSerializer(serializers.Serializer):
    direction = serializers.ChoiceField(choices=Direction.choices)
    channel = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0)

    def validate(self, attrs):
        if attrs["direction"] == Direction.INBOUND and not attrs.get("channel"):
            raise serializers.ValidationError({"channel": "Inbound quotes need a channel."})
        return attrs
