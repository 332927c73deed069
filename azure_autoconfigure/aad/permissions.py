"""
Permission classes based on Azure AD group roles.
"""

from rest_framework.permissions import BasePermission


class HasAADRole(BasePermission):
    """
    Allows access to callers holding one of the view's ``required_aad_roles``.

    Roles are ``ROLE_<group>`` names derived from the caller's allowed
    Azure AD groups.
    """

    def has_permission(self, request, view):
        required = getattr(view, 'required_aad_roles', None) or []
        roles = getattr(getattr(request, '_request', request), 'aad_roles', None)

        if roles is None:
            return False
        if not required:
            return True
        return any(role in roles for role in required)


def aad_role_required(*roles):
    """Return a permission class allowing only callers with one of ``roles``."""

    class AADRoleRequired(BasePermission):
        def has_permission(self, request, view):
            granted = getattr(getattr(request, '_request', request), 'aad_roles', None) or []
            return any(role in granted for role in roles)

    AADRoleRequired.__name__ = f"AADRoleRequired({', '.join(roles)})"
    return AADRoleRequired
