from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from fastapi import Depends, HTTPException, Request, status

from retail_pos.models import Permission, User, UserRole


class Module(str, Enum):
    POS = 'pos'
    INVENTORY = 'inventory'
    CUSTOMERS = 'customers'
    STAFF = 'staff'
    ANALYTICS = 'analytics'
    TRANSACTIONS = 'transactions'
    REPORTS = 'reports'
    BRANCHES = 'branches'
    SECURITY = 'security'
    SETTINGS = 'settings'


MODULE_PERMISSIONS: dict[Module, Permission] = {
    Module.POS: Permission.POS_OPERATE,
    Module.INVENTORY: Permission.INVENTORY_VIEW,
    Module.CUSTOMERS: Permission.CUSTOMER_VIEW,
    Module.STAFF: Permission.STAFF_VIEW,
    Module.ANALYTICS: Permission.REPORTS_VIEW,
    Module.TRANSACTIONS: Permission.REPORTS_VIEW,
    Module.REPORTS: Permission.REPORTS_VIEW,
    Module.BRANCHES: Permission.MANAGER_APPROVAL,
    Module.SECURITY: Permission.MANAGER_APPROVAL,
    Module.SETTINGS: Permission.SETTINGS_VIEW,
}


@dataclass(frozen=True)
class Principal:
    id: str
    username: str
    display_name: str
    role: UserRole
    permissions: frozenset[Permission]
    active: bool

    @classmethod
    def from_user(cls, user: User) -> Principal:
        return cls(
            id=user.id,
            username=user.username,
            display_name=user.full_name,
            role=user.role,
            permissions=frozenset(user.permissions),
            active=user.is_active,
        )


def has_permission(principal: Principal | None, capability: Permission) -> bool:
    # Permissions are held per user; role never grants anything by itself.
    if principal is None:
        return False
    return capability in principal.permissions


def can_access(principal: Principal | None, module: Module) -> bool:
    return has_permission(principal, MODULE_PERMISSIONS[module])


def accessible_modules(principal: Principal | None) -> list[Module]:
    return [module for module in Module if can_access(principal, module)]


def get_current_principal(request: Request) -> Principal:
    principal = getattr(request.state, 'principal', None)
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    if not principal.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return principal


def require_permission(*required: Permission):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not all(has_permission(principal, capability) for capability in required):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
        return principal

    return _dep
