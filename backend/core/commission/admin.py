from django.contrib import admin

from commission.models import CommissionCredit


@admin.register(CommissionCredit)
class CommissionCreditAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "reference",
        "beneficiary",
        "level",
        "rate",
        "amount",
        "status",
        "attempts",
        "next_retry_at",
    )
    list_filter = ("status",)
    search_fields = ("reference",)
    raw_id_fields = ("beneficiary", "source", "ledger_entry")
    readonly_fields = [field.name for field in CommissionCredit._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
