"""
Permission decorators for Flask views.

The authenticated actor is expected on g.actor (set by the host's
authentication layer). Denials raise PermissionDenied, which the app's error
handler turns into a 403 JSON response.
"""

from functools import wraps
from flask import g

from salesorder.exceptions import PermissionDenied
from salesorder.services.permission_service import actor_can, authorize_any


def require_permission(permission, owner_getter=None):
    """
    Decorator to check for a specific permission.

    Usage:
        @require_permission(Permission.ORDER_APPROVE)
        @require_permission(Permission.ORDER_READ_OWN, owner_getter=lambda order_id: ...)

    Args:
        permission: Required permission
        owner_getter: Called with the view kwargs, returns the resource owner id
            (needed for ownership-scoped permissions)

    Returns:
        Decorator function
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = g.get('actor')
            owner_id = owner_getter(**kwargs) if owner_getter else None

            if not actor_can(actor, permission, owner_id):
                raise PermissionDenied()

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_any_permission(*permissions, owner_getter=None):
    """
    Decorator passing when the actor holds at least one of the permissions.

    Usage:
        @require_any_permission(Permission.ORDER_READ_ALL, Permission.ORDER_READ_OWN,
                                owner_getter=order_owner)
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = g.get('actor')
            owner_id = owner_getter(**kwargs) if owner_getter else None

            if actor is None or not authorize_any(actor.role, permissions, actor.is_active, actor.id, owner_id):
                raise PermissionDenied()

            return f(*args, **kwargs)

        return decorated_function
    return decorator
