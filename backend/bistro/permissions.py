# Overview: Roles, capabilities and the single capability check at the service boundary.

"""
Capability model

WHY: Every core operation declares the minimal set of roles allowed to run it.
The check happens once, at the service boundary, through @requires(...), so
routes, CLI commands and tests all go through the same gate.

ADMIN is a superuser: it holds every capability.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import wraps

from .errors import PermissionDenied


ROLE_ADMIN = "ADMIN"
ROLE_MANAGER = "MANAGER"
ROLE_CASHIER = "CASHIER"
ROLE_WAITER = "WAITER"

VALID_ROLES = [ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER, ROLE_WAITER]


# capability code -> roles allowed (ADMIN implied)
CAPABILITIES: dict[str, frozenset[str]] = {
    # Shifts
    "OPEN_SHIFT": frozenset({ROLE_MANAGER}),
    "CLOSE_SHIFT": frozenset({ROLE_MANAGER}),
    "MANAGE_ROSTER": frozenset({ROLE_MANAGER}),
    "MANAGE_STOP_LIST": frozenset({ROLE_MANAGER, ROLE_CASHIER}),
    "VIEW_SHIFTS": frozenset({ROLE_MANAGER, ROLE_CASHIER, ROLE_WAITER}),
    # Stock ledger
    "RECORD_DELIVERY": frozenset({ROLE_MANAGER}),
    "RECORD_WRITE_OFF": frozenset({ROLE_MANAGER, ROLE_CASHIER}),
    "VIEW_INVENTORY": frozenset({ROLE_MANAGER, ROLE_CASHIER, ROLE_WAITER}),
    # Orders
    "CREATE_ORDER": frozenset({ROLE_WAITER, ROLE_CASHIER, ROLE_MANAGER}),
    "CANCEL_ORDER": frozenset({ROLE_CASHIER, ROLE_MANAGER}),
    "RECORD_PAYMENT": frozenset({ROLE_CASHIER, ROLE_MANAGER}),
    "VIEW_ORDERS": frozenset({ROLE_WAITER, ROLE_CASHIER, ROLE_MANAGER}),
    # Back office
    "VIEW_REPORTS": frozenset({ROLE_MANAGER}),
    "VIEW_STAFF": frozenset({ROLE_MANAGER}),
    "MANAGE_STAFF": frozenset(),
    "MANAGE_CATALOG": frozenset({ROLE_MANAGER}),
}


@dataclass(frozen=True)
class Actor:
    """
    Caller identity handed to the core.

    Authentication (token validity, expiry) happens before the core is reached;
    the core only trusts user_id and role from here.
    """
    user_id: int
    role: str


def has_capability(role: str | None, capability: str) -> bool:
    if capability not in CAPABILITIES:
        raise KeyError(f"Unknown capability: {capability}")
    if role == ROLE_ADMIN:
        return True
    return role in CAPABILITIES[capability]


def check_capability(actor: Actor | None, capability: str) -> None:
    """Raise PermissionDenied unless the actor's role holds the capability."""
    if actor is None:
        raise PermissionDenied("Authentication required", details={"capability": capability})
    if not has_capability(actor.role, capability):
        raise PermissionDenied(
            f"Role {actor.role} lacks capability {capability}",
            details={"capability": capability, "role": actor.role},
        )


def capabilities_for(role: str) -> list[str]:
    return sorted(code for code in CAPABILITIES if has_capability(role, code))


def requires(capability: str):
    """
    Declare the capability a service function needs.

    The wrapped function must take the actor as its first positional argument
    (or as the `actor` keyword). The check runs before any database access.
    """
    if capability not in CAPABILITIES:
        raise KeyError(f"Unknown capability: {capability}")

    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            actor = kwargs.get("actor", args[0] if args else None)
            check_capability(actor, capability)
            return f(*args, **kwargs)

        wrapper.required_capability = capability
        return wrapper

    return decorator
