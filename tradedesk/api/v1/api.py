# tradedesk/api/v1/api.py

from fastapi import APIRouter

# Import individual routers from endpoints
from tradedesk.api.v1.endpoints import auth, trades, wallet, money_requests
from tradedesk.api.v1.endpoints import admin_trades, admin_money_requests, admin_settings, admin_users
# WebSocket relay of balance/trade/request events
from tradedesk.api.v1.endpoints import realtime

# Create the main API router for version 1
api_router = APIRouter()

# User-facing routes
api_router.include_router(auth.router)
api_router.include_router(trades.router)
api_router.include_router(wallet.router)
api_router.include_router(money_requests.router)

# Admin routes
api_router.include_router(admin_trades.router)
api_router.include_router(admin_money_requests.router)
api_router.include_router(admin_settings.router)
api_router.include_router(admin_users.router)

api_router.include_router(realtime.router)
