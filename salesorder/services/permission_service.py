"""
Permission evaluator: role / activity / ownership checks.

Every check here is side-effect free and returns a bool. Callers decide how a
denial is surfaced (see require_permission below and the Flask decorator).
"""
import enum
import logging
from typing import FrozenSet, Iterable, Optional, Union

from salesorder.exceptions import PermissionDenied
from salesorder.models.enums import OrderStatus, StoreType, UserRole
from salesorder.models.records import Actor

logger = logging.getLogger(__name__)


class PermissionScope(enum.Enum):
    """Unconditional permissions only need the role; ownership ones also need the owner."""
    UNCONDITIONAL = 'unconditional'
    OWNERSHIP = 'ownership'


class Permission(str, enum.Enum):
    """Capability tokens. Ownership-scoped members carry their scope."""

    def __new__(cls, code, scope=PermissionScope.UNCONDITIONAL):
        obj = str.__new__(cls, code)
        obj._value_ = code
        obj.scope = scope
        return obj

    # Store
    STORE_CREATE = 'store:create'
    STORE_READ = 'store:read'
    STORE_READ_ALL = 'store:read-all'
    STORE_UPDATE = 'store:update'
    STORE_DELETE = 'store:delete'

    # Product
    PRODUCT_CREATE = 'product:create'
    PRODUCT_READ = 'product:read'
    PRODUCT_UPDATE = 'product:update'
    PRODUCT_DELETE = 'product:delete'
    PRODUCT_MANAGE_PRICES = 'product:manage-prices'

    # Order
    ORDER_CREATE = 'order:create'
    ORDER_READ = 'order:read'
    ORDER_READ_OWN = ('order:read-own', PermissionScope.OWNERSHIP)
    ORDER_READ_ALL = 'order:read-all'
    ORDER_UPDATE = 'order:update'
    ORDER_DELETE = 'order:delete'
    ORDER_APPROVE = 'order:approve'
    ORDER_REJECT = 'order:reject'
    ORDER_GENERATE_PO = 'order:generate-po'

    # Visit
    VISIT_CREATE = 'visit:create'
    VISIT_READ = 'visit:read'
    VISIT_READ_OWN = ('visit:read-own', PermissionScope.OWNERSHIP)
    VISIT_READ_ALL = 'visit:read-all'
    VISIT_UPDATE = 'visit:update'
    VISIT_DELETE = 'visit:delete'
    VISIT_DELETE_ALL = 'visit:delete-all'

    # User
    USER_READ = 'user:read'
    USER_UPDATE = 'user:update'
    USER_MANAGE_ROLES = 'user:manage-roles'
    USER_DELETE = 'user:delete'

    # Report
    REPORT_VIEW = 'report:view'

    # Dashboard, granted even to inactive accounts
    BASIC = 'basic'

    @property
    def is_ownership_scoped(self) -> bool:
        return self.scope is PermissionScope.OWNERSHIP


BASELINE_PERMISSION = Permission.BASIC

# Flat, explicit table. Sets are NOT derived from each other.
ROLE_PERMISSIONS = {
    UserRole.ADMIN: frozenset({
        Permission.STORE_CREATE,
        Permission.STORE_READ,
        Permission.STORE_READ_ALL,
        Permission.STORE_UPDATE,
        Permission.STORE_DELETE,

        Permission.PRODUCT_CREATE,
        Permission.PRODUCT_READ,
        Permission.PRODUCT_UPDATE,
        Permission.PRODUCT_DELETE,
        Permission.PRODUCT_MANAGE_PRICES,

        Permission.ORDER_CREATE,
        Permission.ORDER_READ,
        Permission.ORDER_READ_ALL,
        Permission.ORDER_UPDATE,
        Permission.ORDER_DELETE,
        Permission.ORDER_APPROVE,
        Permission.ORDER_REJECT,
        Permission.ORDER_GENERATE_PO,

        Permission.VISIT_CREATE,
        Permission.VISIT_READ,
        Permission.VISIT_READ_ALL,
        Permission.VISIT_UPDATE,
        Permission.VISIT_DELETE,
        Permission.VISIT_DELETE_ALL,

        Permission.USER_READ,
        Permission.USER_UPDATE,
        Permission.USER_MANAGE_ROLES,
        Permission.USER_DELETE,

        Permission.REPORT_VIEW,

        Permission.BASIC,
    }),
    UserRole.SALES: frozenset({
        Permission.STORE_READ,
        Permission.STORE_CREATE,

        Permission.PRODUCT_READ,

        Permission.ORDER_CREATE,
        Permission.ORDER_READ,
        Permission.ORDER_READ_OWN,
        Permission.ORDER_UPDATE,

        Permission.VISIT_CREATE,
        Permission.VISIT_READ,
        Permission.VISIT_READ_OWN,
        Permission.VISIT_UPDATE,

        Permission.BASIC,
    }),
    UserRole.MANAGER: frozenset({
        Permission.STORE_READ,
        Permission.STORE_READ_ALL,

        Permission.PRODUCT_READ,

        Permission.ORDER_READ,
        Permission.ORDER_READ_ALL,

        Permission.VISIT_READ,
        Permission.VISIT_READ_ALL,

        Permission.USER_READ,

        Permission.REPORT_VIEW,

        Permission.BASIC,
    }),
    UserRole.BASIC: frozenset({Permission.BASIC}),
}

ROLE_HIERARCHY = {
    UserRole.ADMIN: 4,
    UserRole.MANAGER: 3,
    UserRole.SALES: 2,
    UserRole.BASIC: 1,
}

PERMISSION_ERRORS = {
    'UNAUTHORIZED': 'Anda tidak memiliki izin untuk mengakses resource ini',
    'INSUFFICIENT_ROLE': 'Role Anda tidak memiliki izin untuk operasi ini',
    'RESOURCE_OWNERSHIP': 'Anda hanya bisa mengakses resource milik Anda sendiri',
    'ADMIN_REQUIRED': 'Operasi ini hanya bisa dilakukan oleh Admin',
    'DRAFT_ONLY_EDIT': 'Order hanya bisa diedit saat status DRAFT',
    'VISIT_REQUIRED': 'Kunjungan wajib dibuat sebelum membuat order',
}

RoleLike = Union[UserRole, str, None]
PermissionLike = Union[Permission, str]


def validate_user_role(role: RoleLike) -> UserRole:
    """Map a role value to UserRole; anything unknown becomes BASIC."""
    if isinstance(role, UserRole):
        return role
    try:
        return UserRole(role)
    except ValueError:
        return UserRole.BASIC


def _as_permission(permission: PermissionLike) -> Optional[Permission]:
    if isinstance(permission, Permission):
        return permission
    try:
        return Permission(permission)
    except ValueError:
        return None


def get_role_permissions(role: RoleLike) -> FrozenSet[Permission]:
    return ROLE_PERMISSIONS.get(validate_user_role(role), frozenset())


def authorize(
    role: RoleLike,
    permission: PermissionLike,
    is_active: bool = True,
    acting_user_id: Optional[str] = None,
    resource_owner_id: Optional[str] = None
) -> bool:
    """
    Check whether a role may perform an action.

    Args:
        role: The actor's role
        permission: Permission token requested
        is_active: Activity flag of the account; inactive accounts only keep
            the baseline permission
        acting_user_id: Required for ownership-scoped permissions
        resource_owner_id: Owner of the target resource, same condition

    Returns:
        True if authorized, False otherwise. Never raises.
    """
    perm = _as_permission(permission)
    if perm is None:
        return False

    if not is_active and perm is not BASELINE_PERMISSION:
        return False

    if perm not in get_role_permissions(role):
        return False

    if perm.is_ownership_scoped:
        if not acting_user_id or not resource_owner_id:
            return False
        return acting_user_id == resource_owner_id

    return True


def authorize_any(
    role: RoleLike,
    permissions: Iterable[PermissionLike],
    is_active: bool = True,
    acting_user_id: Optional[str] = None,
    resource_owner_id: Optional[str] = None
) -> bool:
    """True if at least one of the permissions passes."""
    return any(
        authorize(role, p, is_active, acting_user_id, resource_owner_id)
        for p in permissions
    )


def authorize_all(
    role: RoleLike,
    permissions: Iterable[PermissionLike],
    is_active: bool = True,
    acting_user_id: Optional[str] = None,
    resource_owner_id: Optional[str] = None
) -> bool:
    """True only if every permission passes."""
    return all(
        authorize(role, p, is_active, acting_user_id, resource_owner_id)
        for p in permissions
    )


def actor_can(actor: Optional[Actor], permission: PermissionLike, resource_owner_id: Optional[str] = None) -> bool:
    if actor is None:
        return False
    return authorize(actor.role, permission, actor.is_active, actor.id, resource_owner_id)


def require_permission(actor: Optional[Actor], permission: PermissionLike,
                       resource_owner_id: Optional[str] = None) -> None:
    """Raise PermissionDenied unless the actor holds the permission."""
    if not actor_can(actor, permission, resource_owner_id):
        logger.warning(
            f"Permission denied: {getattr(permission, 'value', permission)} "
            f"for user {getattr(actor, 'id', None)}"
        )
        raise PermissionDenied()


def require_any_permission(actor: Optional[Actor], permissions: Iterable[PermissionLike],
                           resource_owner_id: Optional[str] = None) -> None:
    permissions = list(permissions)
    if actor is None or not authorize_any(actor.role, permissions, actor.is_active, actor.id, resource_owner_id):
        logger.warning(f"Permission denied for user {getattr(actor, 'id', None)}")
        raise PermissionDenied()


# =====================================================
# ROLE HELPERS
# =====================================================

def is_admin(role: RoleLike, is_active: bool = True) -> bool:
    return is_active and validate_user_role(role) == UserRole.ADMIN


def is_manager_or_admin(role: RoleLike, is_active: bool = True) -> bool:
    return is_active and validate_user_role(role) in (UserRole.ADMIN, UserRole.MANAGER)


def is_sales_or_above(role: RoleLike, is_active: bool = True) -> bool:
    return is_active and validate_user_role(role) in (UserRole.ADMIN, UserRole.MANAGER, UserRole.SALES)


def is_role_higher_or_equal(role: RoleLike, compare_role: RoleLike) -> bool:
    return ROLE_HIERARCHY[validate_user_role(role)] >= ROLE_HIERARCHY[validate_user_role(compare_role)]


# =====================================================
# BUSINESS RULES
# =====================================================

def is_visit_required_for_order(role: RoleLike) -> bool:
    """SALES must link a visit; ADMIN may create orders without one."""
    return validate_user_role(role) == UserRole.SALES


def default_store_status(role: RoleLike) -> StoreType:
    return StoreType.TERVERIFIKASI if validate_user_role(role) == UserRole.ADMIN else StoreType.BARU


def can_edit_order(role: RoleLike, order_status, is_owner: bool, is_active: bool = True) -> bool:
    """ADMIN edits any order; SALES only its own DRAFT orders."""
    if not authorize(role, Permission.ORDER_UPDATE, is_active):
        return False
    if validate_user_role(role) == UserRole.ADMIN:
        return True
    return is_owner and OrderStatus(order_status) == OrderStatus.DRAFT
