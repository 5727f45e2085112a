# core/permissions.py

from rest_framework.permissions import BasePermission


class IsAuthenticatedAndActive(BasePermission):
    def has_permission(self, request, view):
        return bool(
            request.user
            and request.user.is_authenticated
            and request.user.is_active
        )


class IsStaffMember(BasePermission):
    """Destructive actions (visit/patient deletion) are limited to staff users"""
    def has_permission(self, request, view):
        return bool(request.user and request.user.is_staff)
