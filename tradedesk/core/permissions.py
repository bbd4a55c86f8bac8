# tradedesk/core/permissions.py

"""
Capability-based authorization for admin actions.

Every admin-facing route asks one question, ``is_allowed(role, action)``,
instead of comparing role strings inline.
"""

from enum import Enum
from typing import Dict, FrozenSet

from tradedesk.core.exceptions import Forbidden


class AdminRole(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    EMPLOYEE = "EMPLOYEE"


class Action(str, Enum):
    MANAGE_USERS = "users:manage"
    MANAGE_DEPOSITS = "deposits:manage"
    MANAGE_WITHDRAWALS = "withdrawals:manage"
    MANAGE_TRADES = "trades:manage"
    TRADE_MANUAL_CONTROL = "trade:manual_control"
    MANAGE_TRADE_SETTINGS = "trade_settings:manage"
    MANAGE_ADMINS = "admins:manage"
    VIEW_ALL_USERS = "users:view_all"


POLICY: Dict[AdminRole, FrozenSet[Action]] = {
    AdminRole.SUPER_ADMIN: frozenset(Action),
    AdminRole.ADMIN: frozenset({
        Action.MANAGE_USERS,
        Action.MANAGE_DEPOSITS,
        Action.MANAGE_WITHDRAWALS,
        Action.MANAGE_TRADES,
        Action.MANAGE_TRADE_SETTINGS,
        Action.VIEW_ALL_USERS,
    }),
    # Employees only see users assigned to them
    AdminRole.EMPLOYEE: frozenset({
        Action.MANAGE_USERS,
        Action.MANAGE_DEPOSITS,
        Action.MANAGE_WITHDRAWALS,
    }),
}


def is_allowed(role: str | AdminRole, action: Action) -> bool:
    try:
        role = AdminRole(role)
    except ValueError:
        return False
    return action in POLICY.get(role, frozenset())


def ensure_allowed(role: str | AdminRole, action: Action) -> None:
    """Raises Forbidden when the role lacks the capability."""
    if not is_allowed(role, action):
        raise Forbidden(f"Role {role} is not allowed to perform {action.value}.")
