from django.contrib import admin

from hierarchy.models import Actor


@admin.register(Actor)
class ActorAdmin(admin.ModelAdmin):
    list_display = ("id", "code", "name", "tier", "parent", "is_active", "created_at")
    list_filter = ("tier", "is_active")
    search_fields = ("code", "name")
    raw_id_fields = ("parent", "user")
    ordering = ("id",)

    def has_delete_permission(self, request, obj=None):
        return False
