from rest_framework.permissions import BasePermission

from hierarchy.models import Actor


class IsActiveActor(BasePermission):
    message = "User is not linked to an active reseller account."

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False

        actor = Actor.objects.filter(user=user, is_active=True).first()
        request.actor = actor
        return actor is not None
