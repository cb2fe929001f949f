"""
RBAC dependencies for FastAPI routes
Role capability sets checked after authentication
"""
from fastapi import HTTPException, status, Request
from typing import Any, Dict, Optional
import logging

from utils.errors import PermissionDeniedError

logger = logging.getLogger(__name__)

ROLES = ("vendor", "supplier", "admin")

RESOURCES_FOR_ROLES = {
    'admin': {
        'admin': ['read', 'write'],
        'users/me': ['read', 'write'],
        'groups': ['read', 'write', 'join', 'manage'],
        'orders': ['read', 'write', 'submit', 'quote', 'confirm', 'fulfil', 'cancel', 'return', 'view_all'],
        'surplus': ['read', 'write', 'reserve', 'manage'],
        'notifications': ['read', 'write'],
        'analytics': ['read', 'view_all'],
    },
    'supplier': {
        'users/me': ['read', 'write'],
        'groups': ['read'],
        'orders': ['read', 'quote', 'fulfil', 'cancel'],  # quoting and fulfilment only
        'surplus': ['read', 'reserve'],
        'notifications': ['read', 'write'],
        'analytics': ['read'],
    },
    'vendor': {
        'users/me': ['read', 'write'],
        'groups': ['read', 'write', 'join'],
        'orders': ['read', 'write', 'submit', 'confirm', 'cancel', 'return'],
        'surplus': ['read', 'write', 'reserve'],
        'notifications': ['read', 'write'],
        'analytics': ['read'],
    },
}

# order status -> capability needed to move an order into it
ORDER_STATUS_PERMISSIONS = {
    'pending': 'submit',
    'quoted': 'quote',
    'confirmed': 'confirm',
    'processing': 'fulfil',
    'packed': 'fulfil',
    'shipped': 'fulfil',
    'in_transit': 'fulfil',
    'delivered': 'fulfil',
    'cancelled': 'cancel',
    'returned': 'return',
}


def has_permission(user_role: Optional[str], resource_name: str, required_permission: str) -> bool:
    """Check if user role has permission for the resource and action"""
    if user_role not in RESOURCES_FOR_ROLES:
        return False

    user_permissions = RESOURCES_FOR_ROLES[user_role]

    if resource_name in user_permissions:
        return required_permission in user_permissions[resource_name]

    parent_resource = resource_name.split('/')[0] if '/' in resource_name else resource_name
    if parent_resource in user_permissions:
        return required_permission in user_permissions[parent_resource]

    return False


def ensure_permission(current_user: Dict[str, Any], resource: str, permission: str) -> None:
    """Raise PermissionDeniedError unless the caller's role grants the capability"""
    user_role = current_user.get("role")
    if not has_permission(user_role, resource, permission):
        logger.warning(f"Access denied - User: {current_user.get('user_id')}, Role: {user_role}, Resource: {resource}, Permission: {permission}")
        role_label = user_role.title() if user_role else "Unknown"
        raise PermissionDeniedError(
            f"Access denied. {role_label} role does not have {permission} permission for {resource}"
        )


def order_status_permission(new_status: str) -> str:
    return ORDER_STATUS_PERMISSIONS.get(new_status, 'manage')


def require_permission(resource: str, permission: str):
    """
    Create an RBAC dependency that checks permissions

    Args:
        resource: Resource name from RESOURCES_FOR_ROLES
        permission: Capability required on that resource
    """
    def check_rbac(request: Request):
        """RBAC dependency function"""
        current_user = getattr(request.state, 'current_user', None)
        if not current_user:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication required"
            )

        try:
            ensure_permission(current_user, resource, permission)
        except PermissionDeniedError as e:
            raise e.to_http_exception()

        logger.info(f"Access granted - Role: {current_user.get('role')}, Resource: {resource}, Permission: {permission}")
        return True

    return check_rbac

# Admin permissions
require_admin = require_permission("admin", "read")
require_admin_write = require_permission("admin", "write")

# Profile permissions
require_profile_read = require_permission("users/me", "read")
require_profile_write = require_permission("users/me", "write")

# Group permissions
require_group_read = require_permission("groups", "read")
require_group_write = require_permission("groups", "write")
require_group_join = require_permission("groups", "join")
require_group_manage = require_permission("groups", "manage")

# Order permissions
require_order_read = require_permission("orders", "read")
require_order_write = require_permission("orders", "write")

# Surplus permissions
require_surplus_read = require_permission("surplus", "read")
require_surplus_write = require_permission("surplus", "write")
require_surplus_reserve = require_permission("surplus", "reserve")

# Notifications and analytics
require_notification_read = require_permission("notifications", "read")
require_notification_write = require_permission("notifications", "write")
require_analytics = require_permission("analytics", "read")
