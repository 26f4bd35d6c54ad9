from django.contrib import admin

from pricing.models import Channel, PricingChange, RateAssignment, Slab, SlabSet, TierRate


@admin.register(Channel)
class ChannelAdmin(admin.ModelAdmin):
    list_display = ("id", "code", "processor", "direction", "cost_basis_rate", "is_default", "is_active")
    list_filter = ("processor", "direction", "is_active")
    search_fields = ("code", "name", "processor")


@admin.register(TierRate)
class TierRateAdmin(admin.ModelAdmin):
    list_display = ("id", "tier", "channel", "rate", "is_enabled", "version", "updated_at")
    list_filter = ("tier", "is_enabled")
    readonly_fields = ("version",)


@admin.register(RateAssignment)
class RateAssignmentAdmin(admin.ModelAdmin):
    list_display = ("id", "actor", "channel", "rate", "assigned_by", "is_enabled", "version")
    list_filter = ("is_enabled",)
    raw_id_fields = ("actor", "assigned_by")
    readonly_fields = ("version",)

    # Writes go through pricing.validators so the floors are enforced.
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


class SlabInline(admin.TabularInline):
    model = Slab
    extra = 0
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(SlabSet)
class SlabSetAdmin(admin.ModelAdmin):
    list_display = ("id", "actor", "tier", "assigned_by", "version", "updated_at")
    list_filter = ("tier",)
    raw_id_fields = ("actor", "assigned_by")
    inlines = [SlabInline]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(PricingChange)
class PricingChangeAdmin(admin.ModelAdmin):
    list_display = ("id", "action", "resource_label", "resource_pk", "actor", "occurred_at")
    list_filter = ("action", "resource_label")
    search_fields = ("resource_label", "resource_pk")
    ordering = ("-occurred_at", "-id")
    readonly_fields = [field.name for field in PricingChange._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
