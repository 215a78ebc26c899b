from rest_framework import permissions


class IsExamStaff(permissions.BasePermission):
    """
    Allows access to teachers, inspectors and school administration.
    Strictly blocks students.
    """
    def has_permission(self, request, view):
        # 1. User must be logged in
        if not request.user or not request.user.is_authenticated:
            return False

        # 2. Check Role
        # Allow if Superuser/Staff OR Role is in allowed list
        return (
            request.user.is_staff or
            getattr(request.user, 'is_exam_staff', False)
        )


class IsExamOwnerOrInspector(permissions.BasePermission):
    """Object-level: only the exam creator (or an inspector) may modify it."""
    def has_object_permission(self, request, view, obj):
        if request.method in permissions.SAFE_METHODS:
            return True
        return obj.created_by_id == request.user.id or getattr(request.user, 'is_inspector', False)
