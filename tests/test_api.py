from decimal import Decimal

from tradedesk.crud import trade as crud_trade

WALLET = "0xabc0000000000000000000000000000000000001"
API = "/api/v1"


# --- Auth ---

async def test_wallet_login_creates_user_once(client):
    first = await client.post(f"{API}/auth/wallet-login", json={"walletAddress": WALLET.upper().replace("0X", "0x")})
    assert first.status_code == 200
    body = first.json()
    assert body["wallet_address"] == WALLET
    assert body["uid"] == "100001"
    assert body["access_token"]

    second = await client.post(f"{API}/auth/wallet-login", json={"walletAddress": WALLET})
    assert second.json()["uid"] == "100001"

    other = await client.post(f"{API}/auth/wallet-login", json={"walletAddress": "0xdef"})
    assert other.json()["uid"] == "100002"


async def test_admin_login(client, make_admin):
    await make_admin(username="root", password="correct-horse")

    bad = await client.post(f"{API}/admin/auth/login", json={"username": "root", "password": "wrong"})
    assert bad.status_code == 401

    good = await client.post(f"{API}/admin/auth/login", json={"username": "root", "password": "correct-horse"})
    assert good.status_code == 200
    assert good.json()["role"] == "SUPER_ADMIN"


async def test_user_routes_require_token(client):
    response = await client.get(f"{API}/wallet/balances")
    assert response.status_code == 401


async def test_user_token_is_not_an_admin_token(client, make_user, user_headers):
    await make_user()
    response = await client.get(f"{API}/admin/trades", headers=user_headers())
    assert response.status_code == 403


async def test_suspended_user_is_refused(client, session_factory, make_user, user_headers):
    from tradedesk.crud import user as crud_user

    user = await make_user()
    async with session_factory() as db:
        stored = await crud_user.get_user_by_wallet(db, user.wallet_address)
        await crud_user.update_user_controls(db, stored, is_suspended=True)
        await db.commit()

    response = await client.get(f"{API}/wallet/balances", headers=user_headers())
    assert response.status_code == 403


# --- Trades ---

async def test_open_and_list_trades(client, make_user, fund, trading_setup, user_headers, publisher):
    await make_user()
    await fund(amount="1000")
    await trading_setup()

    opened = await client.post(
        f"{API}/trades",
        json={"asset": "BTC", "side": "buy", "amountUsd": "100", "duration": "30s", "profitLevel": "80"},
        headers=user_headers(),
    )
    assert opened.status_code == 200
    assert opened.json()["status"] == "active"
    assert Decimal(opened.json()["entry_price"]) == Decimal("50000")

    listed = await client.get(f"{API}/trades", headers=user_headers())
    assert [t["id"] for t in listed.json()] == [opened.json()["id"]]

    balances = await client.get(f"{API}/wallet/balances", headers=user_headers())
    assert Decimal(balances.json()[0]["available"]) == Decimal("900")
    assert "trade:created" in publisher.names()


async def test_open_trade_validation(client, make_user, fund, trading_setup, user_headers):
    await make_user()
    await fund(amount="1000")
    await trading_setup()

    below_minimum = await client.post(
        f"{API}/trades",
        json={"asset": "BTC", "side": "buy", "amountUsd": "5", "duration": "30s", "profitLevel": "80"},
        headers=user_headers(),
    )
    assert below_minimum.status_code == 400

    no_tier = await client.post(
        f"{API}/trades",
        json={"asset": "BTC", "side": "buy", "amountUsd": "50", "duration": "60s", "profitLevel": "80"},
        headers=user_headers(),
    )
    assert no_tier.status_code == 400

    too_much = await client.post(
        f"{API}/trades",
        json={"asset": "BTC", "side": "buy", "amountUsd": "5000", "duration": "30s", "profitLevel": "80"},
        headers=user_headers(),
    )
    assert too_much.status_code == 400


async def test_open_trade_when_price_unavailable(client, make_user, fund, trading_setup, user_headers, price_oracle):
    await make_user()
    await fund(amount="1000")
    await trading_setup()
    price_oracle.fail()

    response = await client.post(
        f"{API}/trades",
        json={"asset": "BTC", "side": "buy", "amountUsd": "100", "duration": "30s", "profitLevel": "80"},
        headers=user_headers(),
    )
    assert response.status_code == 503


async def test_listing_settles_expired_trades(client, make_user, fund, make_trade, user_headers, price_oracle):
    await make_user()
    await fund(amount="1000")
    trade = await make_trade()
    price_oracle.set_price("BTC", "50500")

    listed = await client.get(f"{API}/trades", headers=user_headers())

    assert listed.status_code == 200
    [row] = listed.json()
    assert row["id"] == trade.id
    assert row["status"] == "finished"
    assert row["result"] == "win"


async def test_get_other_users_trade_is_404(client, make_user, fund, make_trade, user_headers):
    other = "0xabc0000000000000000000000000000000000002"
    await make_user()
    await make_user(other)
    await fund(other)
    trade = await make_trade(other)

    response = await client.get(f"{API}/trades/{trade.id}", headers=user_headers())
    assert response.status_code == 404


# --- Admin trade control ---

async def test_manual_control_permissions_and_errors(client, make_user, make_admin, fund, make_trade, admin_headers):
    await make_user()
    await fund()
    root = await make_admin(username="root", role="SUPER_ADMIN")
    ops = await make_admin(username="ops", role="ADMIN")
    active = await make_trade(expires_in=120)
    expired = await make_trade(expires_in=-5)

    forbidden = await client.post(f"{API}/admin/trades/manual-control",
                                  json={"tradeId": active.id, "outcome": "WIN"}, headers=admin_headers(ops))
    assert forbidden.status_code == 403

    missing = await client.post(f"{API}/admin/trades/manual-control",
                                json={"tradeId": 9999, "outcome": "WIN"}, headers=admin_headers(root))
    assert missing.status_code == 404

    too_late = await client.post(f"{API}/admin/trades/manual-control",
                                 json={"tradeId": expired.id, "outcome": "WIN"}, headers=admin_headers(root))
    assert too_late.status_code == 400

    ok = await client.post(f"{API}/admin/trades/manual-control",
                           json={"tradeId": active.id, "outcome": "LOSS"}, headers=admin_headers(root))
    assert ok.status_code == 200
    assert ok.json()["manual_outcome_preset"] == "LOSS"


async def test_set_result_settles_immediately(client, session_factory, make_user, make_admin, fund, make_trade, admin_headers):
    await make_user()
    await fund(amount="1000")
    ops = await make_admin(username="ops", role="ADMIN")
    trade = await make_trade(expires_in=120)

    response = await client.post(f"{API}/admin/trades/{trade.id}/set-result", json={"result": "win"},
                                 headers=admin_headers(ops))
    assert response.status_code == 200
    assert Decimal(response.json()["payout"]) == Decimal("180")

    again = await client.post(f"{API}/admin/trades/{trade.id}/set-result", json={"result": "loss"},
                              headers=admin_headers(ops))
    assert again.status_code == 400

    async with session_factory() as db:
        stored = await crud_trade.get_trade_by_id(db, trade.id)
    assert stored.result == "win"


# --- Global trade settings ---

async def test_global_trade_settings_validation(client, make_admin, admin_headers):
    ops = await make_admin(username="ops", role="ADMIN")
    headers = admin_headers(ops)

    invalid = await client.post(f"{API}/admin/global-trade-settings", headers=headers, json={
        "globalMode": "custom", "globalWinPercentage": "0", "globalLossPercentage": "0.002",
    })
    assert invalid.status_code == 400

    missing = await client.post(f"{API}/admin/global-trade-settings", headers=headers, json={"globalMode": "custom"})
    assert missing.status_code == 400

    saved = await client.post(f"{API}/admin/global-trade-settings", headers=headers, json={
        "globalMode": "custom", "globalWinPercentage": "12.5", "globalLossPercentage": "0.5",
    })
    assert saved.status_code == 200

    current = await client.get(f"{API}/admin/global-trade-settings", headers=headers)
    assert current.json()["globalMode"] == "custom"
    assert Decimal(current.json()["globalWinPercentage"]) == Decimal("12.5")


async def test_employee_cannot_change_trade_settings(client, make_admin, admin_headers):
    employee = await make_admin(username="emp", role="EMPLOYEE")
    response = await client.post(f"{API}/admin/global-trade-settings", headers=admin_headers(employee),
                                 json={"globalMode": "loss"})
    assert response.status_code == 403


async def test_settings_change_reaches_next_settlement(
    client, make_user, make_admin, fund, make_trade, admin_headers, settlement_engine, price_oracle
):
    await make_user()
    await fund(amount="1000")
    ops = await make_admin(username="ops", role="ADMIN")
    trade = await make_trade()
    price_oracle.set_price("BTC", "60000")

    await client.post(f"{API}/admin/global-trade-settings", headers=admin_headers(ops), json={"globalMode": "loss"})
    result = await settlement_engine.settle_trade(trade.id)
    assert result.result == "loss"


async def test_payout_tier_crud(client, make_admin, admin_headers):
    headers = admin_headers(await make_admin())

    created = await client.post(f"{API}/admin/global-asset-settings", headers=headers,
                                json={"deliveryTime": "60s", "profitLevel": "85", "minUsdt": "50"})
    assert created.status_code == 201

    duplicate = await client.post(f"{API}/admin/global-asset-settings", headers=headers,
                                  json={"deliveryTime": "60s", "profitLevel": "85", "minUsdt": "20"})
    assert duplicate.status_code == 400

    tier_id = created.json()["id"]
    assert (await client.delete(f"{API}/admin/global-asset-settings/{tier_id}", headers=headers)).status_code == 200
    assert (await client.delete(f"{API}/admin/global-asset-settings/{tier_id}", headers=headers)).status_code == 404


# --- Withdrawals through the API ---

async def test_withdrawal_approve_twice(client, make_user, make_admin, fund, user_headers, admin_headers):
    await make_user()
    await fund(amount="500")
    ops = await make_admin(username="ops", role="ADMIN")

    requested = await client.post(f"{API}/withdrawals", headers=user_headers(), json={
        "currency": "USDT", "usdtAmount": "100", "destinationAddress": "0xdest",
    })
    assert requested.status_code == 200
    withdrawal_id = requested.json()["id"]

    approved = await client.post(f"{API}/admin/withdrawals/approve", headers=admin_headers(ops),
                                 json={"withdrawalId": withdrawal_id, "txHash": "0xpaid"})
    assert approved.status_code == 200
    assert Decimal(approved.json()["balance"]["frozen"]) == Decimal("0")

    again = await client.post(f"{API}/admin/withdrawals/approve", headers=admin_headers(ops),
                              json={"withdrawalId": withdrawal_id, "txHash": "0xpaid"})
    assert again.status_code == 400


async def test_employee_sees_only_assigned_withdrawals(client, make_user, make_admin, fund, user_headers, admin_headers):
    await make_user()
    await fund(amount="500")
    root = await make_admin()
    employee = await make_admin(username="emp", role="EMPLOYEE")
    await client.post(f"{API}/withdrawals", headers=user_headers(), json={
        "usdtAmount": "50", "destinationAddress": "0xdest",
    })

    assert (await client.get(f"{API}/admin/withdrawals", headers=admin_headers(employee))).json() == []

    assigned = await client.post(f"{API}/admin/users/assign-employee", headers=admin_headers(root),
                                 json={"walletAddress": WALLET, "employeeId": employee.id})
    assert assigned.status_code == 200

    listed = await client.get(f"{API}/admin/withdrawals", headers=admin_headers(employee))
    assert len(listed.json()) == 1


async def test_withdrawal_is_priced_by_the_market(client, make_user, fund, user_headers, get_balance):
    await make_user()
    await fund(amount="1", currency="BTC")

    inflated = await client.post(f"{API}/withdrawals", headers=user_headers(), json={
        "currency": "BTC", "usdtAmount": "1000000", "destinationAddress": "0xdest", "conversionRate": "1000000",
    })
    assert inflated.status_code == 400

    requested = await client.post(f"{API}/withdrawals", headers=user_headers(), json={
        "currency": "BTC", "usdtAmount": "100", "destinationAddress": "0xdest", "conversionRate": "1",
    })
    assert requested.status_code == 200
    body = requested.json()
    assert Decimal(body["conversion_rate"]) == Decimal("50000")
    assert Decimal(body["crypto_amount"]) == Decimal("0.002")
    assert (await get_balance(currency="BTC")).frozen == Decimal("0.002")


# --- Conversions ---

async def test_conversion_uses_market_rate(client, make_user, fund, user_headers, get_balance):
    await make_user()
    await fund(amount="10")

    response = await client.post(f"{API}/conversions", headers=user_headers(), json={
        "fromCurrency": "USDT", "toCurrency": "BTC", "amount": "10", "rate": "1000",
    })

    assert response.status_code == 200
    assert Decimal(response.json()["target"]["available"]) == Decimal("0.0002")
    assert (await get_balance()).available == Decimal("0")
    assert (await get_balance(currency="BTC")).real_balance == Decimal("0.0002")


async def test_conversion_without_price_is_unavailable(client, price_oracle, make_user, fund, user_headers, get_balance):
    await make_user()
    await fund(amount="10")
    price_oracle.fail()

    response = await client.post(f"{API}/conversions", headers=user_headers(), json={
        "fromCurrency": "USDT", "toCurrency": "BTC", "amount": "10",
    })

    assert response.status_code == 503
    assert (await get_balance()).available == Decimal("10")


# --- Admin user management ---

async def test_admin_balance_adjustment(client, make_user, make_admin, admin_headers):
    await make_user()
    ops = await make_admin(username="ops", role="ADMIN")

    credit = await client.post(f"{API}/admin/users/{WALLET}/balance", headers=admin_headers(ops),
                               json={"currency": "USDT", "amount": "75"})
    assert credit.status_code == 200
    assert Decimal(credit.json()["available"]) == Decimal("75")

    overdraw = await client.post(f"{API}/admin/users/{WALLET}/balance", headers=admin_headers(ops),
                                 json={"currency": "USDT", "amount": "-100"})
    assert overdraw.status_code == 400


async def test_trade_status_update(client, make_user, make_admin, admin_headers):
    await make_user()
    ops = await make_admin(username="ops", role="ADMIN")

    response = await client.post(f"{API}/admin/users/{WALLET}/trade-status", headers=admin_headers(ops),
                                 json={"tradeStatus": "win"})
    assert response.status_code == 200
    assert response.json()["trade_status"] == "win"

    unknown = await client.post(f"{API}/admin/users/0xnobody/trade-status", headers=admin_headers(ops),
                                json={"tradeStatus": "win"})
    assert unknown.status_code == 404


async def test_only_super_admin_creates_admins(client, make_admin, admin_headers):
    ops = await make_admin(username="ops", role="ADMIN")
    root = await make_admin(username="root", role="SUPER_ADMIN")
    payload = {"username": "newbie", "password": "long-enough-pw", "role": "EMPLOYEE"}

    assert (await client.post(f"{API}/admin/admins", headers=admin_headers(ops), json=payload)).status_code == 403
    created = await client.post(f"{API}/admin/admins", headers=admin_headers(root), json=payload)
    assert created.status_code == 201
    assert created.json()["role"] == "EMPLOYEE"
