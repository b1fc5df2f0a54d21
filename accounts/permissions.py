from rest_framework.permissions import BasePermission


class HasRole(BasePermission):
    """Allow access only to users whose role is listed on the view (or superusers)."""
    allowed_roles = ()

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        if request.user.is_superuser:
            return True
        roles = getattr(view, 'allowed_roles', None) or self.allowed_roles
        if not roles:
            return True
        return request.user.role in roles


def role_required(*roles):
    """Build a HasRole subclass bound to the given roles, for use in @permission_classes."""
    return type('HasRole_' + '_'.join(roles), (HasRole,), {'allowed_roles': tuple(roles)})
