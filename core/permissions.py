"""
Role-based permission classes for the tuition marketplace API.
"""

from rest_framework import permissions


class _RolePermission(permissions.BasePermission):
    """Allow authenticated users whose role check passes."""

    role_check = None

    def has_permission(self, request, view):
        # User must be authenticated
        if not request.user or not request.user.is_authenticated:
            return False

        check = getattr(request.user, self.role_check, None)
        return bool(check and check())


class IsAdmin(_RolePermission):
    """
    Allows only admins (role 'admin' or is_staff).

    Usage:
        class MyView(APIView):
            permission_classes = [IsAuthenticated, IsAdmin]
    """

    message = 'You do not have permission to perform this action. Admin privileges required.'
    role_check = 'is_admin'


class IsTutor(_RolePermission):
    message = 'Only tutors can perform this action.'
    role_check = 'is_tutor'
