from rest_framework.permissions import BasePermission

from .models import STAFF_ROLES, UserRole


def _role(user):
    return getattr(user, "role", None)


class IsAdminUserRole(BasePermission):
    """Allow only admin role or superuser."""

    def has_permission(self, request, view):
        user = request.user
        return bool(
            user
            and user.is_authenticated
            and (user.is_superuser or _role(user) == UserRole.ADMIN)
        )


class IsStaffRole(BasePermission):
    """Allow admin, supervisor or operator (including superuser)."""

    def has_permission(self, request, view):
        user = request.user
        return bool(
            user
            and user.is_authenticated
            and (user.is_superuser or _role(user) in STAFF_ROLES)
        )


class IsAdminOrOperatorRole(BasePermission):
    def has_permission(self, request, view):
        user = request.user
        return bool(
            user
            and user.is_authenticated
            and (user.is_superuser or _role(user) in (UserRole.ADMIN, UserRole.OPERATOR))
        )


class IsSelfOrAdmin(BasePermission):
    def has_object_permission(self, request, view, obj):
        user = request.user
        return bool(
            user.is_superuser
            or _role(user) == UserRole.ADMIN
            or obj.pk == user.pk
        )
