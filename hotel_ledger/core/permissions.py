"""Actor context and the role permission table."""
from __future__ import annotations

import enum
from dataclasses import dataclass

from hotel_ledger.core.errors import AuthorizationError


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    STAFF = "STAFF"
    CONCIERGE = "CONCIERGE"
    GUEST = "GUEST"


class Permission(str, enum.Enum):
    CREATE_ROOMS = "create_rooms"
    EDIT_ROOMS = "edit_rooms"
    DELETE_ROOMS = "delete_rooms"
    CREATE_BOOKINGS = "create_bookings"
    EDIT_BOOKINGS = "edit_bookings"
    DELETE_BOOKINGS = "delete_bookings"
    VIEW_ALL_BOOKINGS = "view_all_bookings"
    PROCESS_PAYMENTS = "process_payments"
    PROCESS_REFUNDS = "process_refunds"
    VIEW_ANALYTICS = "view_analytics"
    MANAGE_SETTINGS = "manage_settings"


P = Permission
ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.ADMIN: frozenset(Permission),
    Role.MANAGER: frozenset({
        P.CREATE_ROOMS, P.EDIT_ROOMS, P.CREATE_BOOKINGS, P.EDIT_BOOKINGS, P.VIEW_ALL_BOOKINGS,
        P.PROCESS_PAYMENTS, P.PROCESS_REFUNDS, P.VIEW_ANALYTICS,
    }),
    Role.STAFF: frozenset({P.CREATE_BOOKINGS, P.EDIT_BOOKINGS, P.VIEW_ALL_BOOKINGS, P.PROCESS_PAYMENTS}),
    Role.CONCIERGE: frozenset({P.CREATE_BOOKINGS, P.EDIT_BOOKINGS, P.VIEW_ALL_BOOKINGS}),
    Role.GUEST: frozenset({P.CREATE_BOOKINGS}),
}


@dataclass(frozen=True)
class ActorContext:
    """Verified caller identity handed to every ledger operation."""
    user_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def can(self, permission: Permission) -> bool:
        return permission in ROLE_PERMISSIONS.get(self.role, frozenset())


# Identity recorded for changes made by background jobs and gateway callbacks.
SYSTEM_ACTOR = ActorContext(user_id="system", role=Role.ADMIN)


def require_permission(actor: ActorContext, permission: Permission) -> None:
    if not actor.can(permission):
        raise AuthorizationError(f"Role {actor.role.value} lacks permission {permission.value}")


def require_owner_or_admin(actor: ActorContext, owner_id: str, action: str) -> None:
    if actor.user_id != owner_id and not actor.is_admin:
        raise AuthorizationError(f"Unauthorized to {action} this booking")


def require_owner_or(actor: ActorContext, owner_id: str, permission: Permission, action: str) -> None:
    if actor.user_id != owner_id and not actor.can(permission):
        raise AuthorizationError(f"Unauthorized to {action} this booking")
