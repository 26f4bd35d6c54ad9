from django.contrib import admin

from settlement.models import Settlement


@admin.register(Settlement)
class SettlementAdmin(admin.ModelAdmin):
    list_display = ("id", "reference", "direction", "actor", "amount", "charge", "net_amount", "status", "created_at")
    list_filter = ("direction", "status")
    search_fields = ("reference",)
    raw_id_fields = ("actor",)
    readonly_fields = [field.name for field in Settlement._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
