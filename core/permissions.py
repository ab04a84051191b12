"""
Custom permission classes for the local services marketplace.
"""

from rest_framework import permissions


class IsStaffUser(permissions.BasePermission):
    """
    Permission class that allows only staff users to access the endpoint.

    Usage:
        class MyView(APIView):
            permission_classes = [IsAuthenticated, IsStaffUser]
    """

    message = 'You do not have permission to perform this action. Staff privileges required.'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        return request.user.is_staff


class IsBuyer(permissions.BasePermission):
    """
    Allows users whose user_type lets them post needs ('buyer' or 'both').

    Only enforced for unsafe methods, so read access on the same view stays
    governed by the other permission classes.
    """

    message = 'Only buyer accounts can post needs.'

    def has_permission(self, request, view):
        if request.method in permissions.SAFE_METHODS:
            return True
        if not request.user or not request.user.is_authenticated:
            return False
        return request.user.is_buyer()


class IsProvider(permissions.BasePermission):
    """
    Allows users whose user_type lets them submit offers ('provider' or 'both').

    Only enforced for unsafe methods.
    """

    message = 'Only provider accounts can submit offers.'

    def has_permission(self, request, view):
        if request.method in permissions.SAFE_METHODS:
            return True
        if not request.user or not request.user.is_authenticated:
            return False
        return request.user.is_provider()
