from rest_framework import serializers

from ledger.models import Account, LedgerEntry, PayoutHold


class LedgerEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = LedgerEntry
        fields = (
            "id",
            "account_id",
            "kind",
            "delta",
            "resulting_balance",
            "reference",
            "description",
            "created_at",
        )


class AccountSerializer(serializers.ModelSerializer):
    actor_id = serializers.IntegerField(read_only=True)
    open_holds = serializers.SerializerMethodField()

    class Meta:
        model = Account
        fields = (
            "id",
            "actor_id",
            "available",
            "held",
            "currency",
            "open_holds",
            "updated_at",
        )

    def get_open_holds(self, obj) -> int:
        return obj.holds.filter(state=PayoutHold.State.CREATED).count()
