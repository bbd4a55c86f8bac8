"""initial trade desk schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 09:12:40.118203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.DECIMAL(28, 8)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'admins',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=100), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(op.f('ix_admins_id'), 'admins', ['id'], unique=False)
    op.create_index(op.f('ix_admins_username'), 'admins', ['username'], unique=True)

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('wallet_address', sa.String(length=128), nullable=False),
        sa.Column('uid', sa.String(length=20), nullable=True),
        sa.Column('trade_status', sa.String(length=20), nullable=False),
        sa.Column('trade_limit', sa.Integer(), nullable=True),
        sa.Column('is_suspended', sa.Boolean(), nullable=False),
        sa.Column('assigned_employee_id', sa.Integer(), sa.ForeignKey('admins.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_wallet_address'), 'users', ['wallet_address'], unique=True)
    op.create_index(op.f('ix_users_uid'), 'users', ['uid'], unique=True)
    op.create_index(op.f('ix_users_assigned_employee_id'), 'users', ['assigned_employee_id'], unique=False)

    op.create_table(
        'balances',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('wallet_address', sa.String(length=128), nullable=False),
        sa.Column('currency', sa.String(length=20), nullable=False),
        sa.Column('available', MONEY, nullable=False),
        sa.Column('frozen', MONEY, nullable=False),
        sa.Column('real_balance', MONEY, nullable=False),
        sa.Column('real_winnings', MONEY, nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('wallet_address', 'currency', name='_balance_wallet_currency_uc'),
    )
    op.create_index(op.f('ix_balances_id'), 'balances', ['id'], unique=False)
    op.create_index(op.f('ix_balances_wallet_address'), 'balances', ['wallet_address'], unique=False)

    op.create_table(
        'ledger_entries',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('wallet_address', sa.String(length=128), nullable=False),
        sa.Column('currency', sa.String(length=20), nullable=False),
        sa.Column('entry_type', sa.String(length=50), nullable=False),
        sa.Column('available_delta', MONEY, nullable=False),
        sa.Column('frozen_delta', MONEY, nullable=False),
        sa.Column('real_balance_delta', MONEY, nullable=False),
        sa.Column('real_winnings_delta', MONEY, nullable=False),
        sa.Column('reference_id', sa.String(length=64), nullable=True),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index(op.f('ix_ledger_entries_id'), 'ledger_entries', ['id'], unique=False)
    op.create_index(op.f('ix_ledger_entries_wallet_address'), 'ledger_entries', ['wallet_address'], unique=False)
    op.create_index(op.f('ix_ledger_entries_reference_id'), 'ledger_entries', ['reference_id'], unique=False)

    op.create_table(
        'trades',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('wallet_address', sa.String(length=128), nullable=False),
        sa.Column('asset', sa.String(length=20), nullable=False),
        sa.Column('side', sa.String(length=4), nullable=False),
        sa.Column('entry_price', MONEY, nullable=False),
        sa.Column('amount_usd', MONEY, nullable=False),
        sa.Column('duration', sa.String(length=10), nullable=False),
        sa.Column('profit_multiplier', sa.DECIMAL(10, 4), nullable=False),
        sa.Column('fee', MONEY, nullable=False),
        sa.Column('status', sa.String(length=10), nullable=False),
        sa.Column('result', sa.String(length=10), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('closed_at', sa.DateTime(), nullable=True),
        sa.Column('exit_price', MONEY, nullable=True),
        sa.Column('pnl', MONEY, nullable=True),
        sa.Column('manual_outcome_preset', sa.String(length=4), nullable=True),
        sa.Column('manual_preset_by', sa.String(length=100), nullable=True),
        sa.Column('manual_preset_at', sa.DateTime(), nullable=True),
    )
    op.create_index(op.f('ix_trades_id'), 'trades', ['id'], unique=False)
    op.create_index(op.f('ix_trades_wallet_address'), 'trades', ['wallet_address'], unique=False)
    op.create_index('ix_trades_status_expires_at', 'trades', ['status', 'expires_at'], unique=False)

    op.create_table(
        'withdrawals',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('wallet_address', sa.String(length=128), nullable=False),
        sa.Column('currency', sa.String(length=20), nullable=False),
        sa.Column('crypto_amount', MONEY, nullable=False),
        sa.Column('usdt_amount', MONEY, nullable=False),
        sa.Column('conversion_rate', MONEY, nullable=False),
        sa.Column('fee', MONEY, nullable=False),
        sa.Column('status', sa.String(length=10), nullable=False),
        sa.Column('destination_address', sa.String(length=255), nullable=False),
        sa.Column('tx_hash', sa.String(length=255), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('processed_by', sa.String(length=100), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('rejected_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index(op.f('ix_withdrawals_id'), 'withdrawals', ['id'], unique=False)
    op.create_index(op.f('ix_withdrawals_wallet_address'), 'withdrawals', ['wallet_address'], unique=False)
    op.create_index(op.f('ix_withdrawals_status'), 'withdrawals', ['status'], unique=False)

    op.create_table(
        'deposits',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('wallet_address', sa.String(length=128), nullable=False),
        sa.Column('currency', sa.String(length=20), nullable=False),
        sa.Column('crypto_amount', MONEY, nullable=False),
        sa.Column('usdt_amount', MONEY, nullable=False),
        sa.Column('conversion_rate', MONEY, nullable=False),
        sa.Column('tx_hash', sa.String(length=255), nullable=False, unique=True),
        sa.Column('status', sa.String(length=10), nullable=False),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('processed_by', sa.String(length=100), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index(op.f('ix_deposits_id'), 'deposits', ['id'], unique=False)
    op.create_index(op.f('ix_deposits_wallet_address'), 'deposits', ['wallet_address'], unique=False)
    op.create_index(op.f('ix_deposits_status'), 'deposits', ['status'], unique=False)

    op.create_table(
        'global_asset_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('delivery_time', sa.String(length=10), nullable=False),
        sa.Column('profit_level', sa.DECIMAL(10, 4), nullable=False),
        sa.Column('min_usdt', MONEY, nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('delivery_time', 'profit_level', name='_delivery_time_profit_level_uc'),
    )
    op.create_index(op.f('ix_global_asset_settings_id'), 'global_asset_settings', ['id'], unique=False)
    op.create_index(op.f('ix_global_asset_settings_delivery_time'), 'global_asset_settings', ['delivery_time'], unique=False)

    op.create_table(
        'asset_trading_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('asset_symbol', sa.String(length=20), nullable=False),
        sa.Column('is_enabled', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index(op.f('ix_asset_trading_settings_id'), 'asset_trading_settings', ['id'], unique=False)
    op.create_index(op.f('ix_asset_trading_settings_asset_symbol'), 'asset_trading_settings', ['asset_symbol'], unique=True)

    op.create_table(
        'admin_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('key', sa.String(length=100), nullable=False),
        sa.Column('value', sa.String(length=500), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index(op.f('ix_admin_settings_id'), 'admin_settings', ['id'], unique=False)
    op.create_index(op.f('ix_admin_settings_key'), 'admin_settings', ['key'], unique=True)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('admin_settings')
    op.drop_table('asset_trading_settings')
    op.drop_table('global_asset_settings')
    op.drop_table('deposits')
    op.drop_table('withdrawals')
    op.drop_table('trades')
    op.drop_table('ledger_entries')
    op.drop_table('balances')
    op.drop_table('users')
    op.drop_table('admins')
