# tradedesk/database/models.py

import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func
)
from sqlalchemy.types import DECIMAL as SQLDecimal
from sqlalchemy.orm import relationship

from .base import Base

# Precision used for every monetary/price column
MONEY = SQLDecimal(28, 8)


def utcnow() -> datetime.datetime:
    """Naive UTC timestamp, the format stored in every DateTime column."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class TradeStatus:
    ACTIVE = "active"
    FINISHED = "finished"


class TradeResult:
    WIN = "win"
    LOSS = "loss"


class RequestStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class User(Base):
    """
    A platform user, identified by the wallet address used to log in.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    wallet_address = Column(String(128), unique=True, index=True, nullable=False)
    uid = Column(String(20), unique=True, index=True, nullable=True)

    # Per-user outcome control used by the "custom" global trade mode: automatic | win | loss
    trade_status = Column(String(20), default="automatic", nullable=False)
    # Remaining trades allowed; NULL means unlimited
    trade_limit = Column(Integer, nullable=True)
    is_suspended = Column(Boolean, default=False, nullable=False)

    assigned_employee_id = Column(Integer, ForeignKey("admins.id"), nullable=True, index=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    assigned_employee = relationship("Admin", back_populates="assigned_users")


class Admin(Base):
    """
    Back office account. ``role`` is one of SUPER_ADMIN, ADMIN, EMPLOYEE.
    """
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(20), default="ADMIN", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    assigned_users = relationship("User", back_populates="assigned_employee")


class Balance(Base):
    """
    Per-user, per-currency balance.

    ``available`` is tradable, ``frozen`` is reserved for pending
    withdrawals. ``real_balance`` and ``real_winnings`` split the
    available funds into deposited principal and trading profit.
    """
    __tablename__ = "balances"

    id = Column(Integer, primary_key=True, index=True)
    wallet_address = Column(String(128), index=True, nullable=False)
    currency = Column(String(20), nullable=False)

    available = Column(MONEY, default=Decimal("0"), nullable=False)
    frozen = Column(MONEY, default=Decimal("0"), nullable=False)
    real_balance = Column(MONEY, default=Decimal("0"), nullable=False)
    real_winnings = Column(MONEY, default=Decimal("0"), nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('wallet_address', 'currency', name='_balance_wallet_currency_uc'),
    )


class LedgerEntry(Base):
    """
    Append-only audit row written in the same transaction as every
    balance mutation.
    """
    __tablename__ = "ledger_entries"

    id = Column(Integer, primary_key=True, index=True)
    wallet_address = Column(String(128), index=True, nullable=False)
    currency = Column(String(20), nullable=False)
    # e.g. 'trade_open', 'trade_win', 'withdrawal_request', 'deposit_approved'
    entry_type = Column(String(50), nullable=False)

    available_delta = Column(MONEY, default=Decimal("0"), nullable=False)
    frozen_delta = Column(MONEY, default=Decimal("0"), nullable=False)
    real_balance_delta = Column(MONEY, default=Decimal("0"), nullable=False)
    real_winnings_delta = Column(MONEY, default=Decimal("0"), nullable=False)

    reference_id = Column(String(64), index=True, nullable=True)
    description = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)


class Trade(Base):
    __tablename__ = "trades"

    id = Column(Integer, primary_key=True, index=True)
    wallet_address = Column(String(128), index=True, nullable=False)
    asset = Column(String(20), nullable=False)
    side = Column(String(4), nullable=False)  # buy | sell

    entry_price = Column(MONEY, nullable=False)
    amount_usd = Column(MONEY, nullable=False)
    duration = Column(String(10), nullable=False)  # e.g. '30s', '5m', '1h'
    profit_multiplier = Column(SQLDecimal(10, 4), nullable=False)  # payout ratio, 1.8 == 80% profit
    fee = Column(MONEY, default=Decimal("0"), nullable=False)

    status = Column(String(10), default=TradeStatus.ACTIVE, nullable=False)
    result = Column(String(10), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    closed_at = Column(DateTime, nullable=True)
    exit_price = Column(MONEY, nullable=True)
    pnl = Column(MONEY, nullable=True)

    manual_outcome_preset = Column(String(4), nullable=True)  # WIN | LOSS
    manual_preset_by = Column(String(100), nullable=True)
    manual_preset_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index('ix_trades_status_expires_at', 'status', 'expires_at'),
    )


class Withdrawal(Base):
    __tablename__ = "withdrawals"

    id = Column(Integer, primary_key=True, index=True)
    wallet_address = Column(String(128), index=True, nullable=False)
    currency = Column(String(20), nullable=False)

    crypto_amount = Column(MONEY, nullable=False)
    usdt_amount = Column(MONEY, nullable=False)
    conversion_rate = Column(MONEY, default=Decimal("1"), nullable=False)
    fee = Column(MONEY, default=Decimal("0"), nullable=False)

    status = Column(String(10), default=RequestStatus.PENDING, index=True, nullable=False)
    destination_address = Column(String(255), nullable=False)
    tx_hash = Column(String(255), nullable=True)
    admin_notes = Column(Text, nullable=True)
    processed_by = Column(String(100), nullable=True)
    processed_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    @property
    def frozen_amount(self) -> Decimal:
        """Amount reserved in ``currency`` when the request was created."""
        return Decimal(self.crypto_amount) + Decimal(self.fee)


class Deposit(Base):
    __tablename__ = "deposits"

    id = Column(Integer, primary_key=True, index=True)
    wallet_address = Column(String(128), index=True, nullable=False)
    currency = Column(String(20), nullable=False)

    crypto_amount = Column(MONEY, nullable=False)
    usdt_amount = Column(MONEY, nullable=False)
    conversion_rate = Column(MONEY, default=Decimal("1"), nullable=False)
    tx_hash = Column(String(255), unique=True, nullable=False)

    status = Column(String(10), default=RequestStatus.PENDING, index=True, nullable=False)
    admin_notes = Column(Text, nullable=True)
    processed_by = Column(String(100), nullable=True)
    processed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)


class GlobalAssetSettings(Base):
    """
    Payout tiers: for a delivery time (trade duration) the profit level
    in percent and the minimum stake in USDT.
    """
    __tablename__ = "global_asset_settings"

    id = Column(Integer, primary_key=True, index=True)
    delivery_time = Column(String(10), index=True, nullable=False)
    profit_level = Column(SQLDecimal(10, 4), nullable=False)
    min_usdt = Column(MONEY, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('delivery_time', 'profit_level', name='_delivery_time_profit_level_uc'),
    )


class AssetTradingSettings(Base):
    __tablename__ = "asset_trading_settings"

    id = Column(Integer, primary_key=True, index=True)
    asset_symbol = Column(String(20), unique=True, index=True, nullable=False)
    is_enabled = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)


class AdminSettings(Base):
    """Key/value admin configuration, e.g. global_trade_mode."""
    __tablename__ = "admin_settings"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), unique=True, index=True, nullable=False)
    value = Column(String(500), nullable=False)
    description = Column(String(500), nullable=True)

    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
