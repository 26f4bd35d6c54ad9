from django.contrib import admin

from ledger.models import Account, LedgerEntry, PayoutHold


class ReadOnlyAdmin(admin.ModelAdmin):
    # Balances only move through ledger.services.Ledger.
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Account)
class AccountAdmin(ReadOnlyAdmin):
    list_display = ("id", "actor", "available", "held", "currency", "updated_at")
    search_fields = ("actor__code", "actor__name")
    raw_id_fields = ("actor",)


@admin.register(LedgerEntry)
class LedgerEntryAdmin(ReadOnlyAdmin):
    list_display = ("id", "account", "kind", "delta", "resulting_balance", "reference", "created_at")
    list_filter = ("kind",)
    search_fields = ("reference", "description")
    ordering = ("-id",)
    readonly_fields = [field.name for field in LedgerEntry._meta.fields]


@admin.register(PayoutHold)
class PayoutHoldAdmin(ReadOnlyAdmin):
    list_display = ("id", "account", "reference", "amount", "state", "created_at", "resolved_at")
    list_filter = ("state",)
    search_fields = ("reference",)
