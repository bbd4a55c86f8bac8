import pytest

from tradedesk.api.v1.endpoints.realtime import admin_feed_filter
from tradedesk.core.events import encode_event
from tradedesk.core.exceptions import Forbidden
from tradedesk.core.permissions import Action, AdminRole, ensure_allowed, is_allowed
from tradedesk.database.models import Admin


def test_super_admin_holds_every_action():
    assert all(is_allowed(AdminRole.SUPER_ADMIN, action) for action in Action)


def test_only_super_admin_has_manual_control():
    assert is_allowed("SUPER_ADMIN", Action.TRADE_MANUAL_CONTROL)
    assert not is_allowed("ADMIN", Action.TRADE_MANUAL_CONTROL)
    assert not is_allowed("EMPLOYEE", Action.TRADE_MANUAL_CONTROL)


def test_employee_is_scoped():
    assert is_allowed("EMPLOYEE", Action.MANAGE_WITHDRAWALS)
    assert not is_allowed("EMPLOYEE", Action.VIEW_ALL_USERS)
    assert not is_allowed("EMPLOYEE", Action.MANAGE_TRADE_SETTINGS)


def test_unknown_role_has_nothing():
    assert not is_allowed("INTERN", Action.MANAGE_USERS)
    with pytest.raises(Forbidden):
        ensure_allowed("INTERN", Action.MANAGE_USERS)


def _event(wallet_address):
    return encode_event("balance:updated", {"walletAddress": wallet_address}, wallet_address)


def test_admin_feed_is_unfiltered_for_admins():
    assert admin_feed_filter(Admin(username="ops", role="ADMIN"), []) is None


def test_employee_feed_only_carries_assigned_wallets():
    employee = Admin(username="emp", role="EMPLOYEE")
    accept = admin_feed_filter(employee, ["0xAAA"])

    assert accept(_event("0xaaa"))
    assert not accept(_event("0xbbb"))
    assert not accept(encode_event("trade:settled", {"tradeId": 1}))
    assert not accept("not json")


def test_employee_without_users_sees_nothing():
    accept = admin_feed_filter(Admin(username="emp", role="EMPLOYEE"), [])
    assert not accept(_event("0xaaa"))
