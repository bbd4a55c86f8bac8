# tradedesk/services/settlement.py

"""
Trade settlement engine.

A trade moves ``active -> finished`` exactly once. Each settlement runs in
three phases:

1. read a snapshot of the trade and the global trade settings
2. fetch the live price when the outcome depends on the market
   (outside of any transaction, so no lock is held across the network call)
3. one transaction: re-check the trade, guarded status transition,
   ledger credit, recorded result

Events are published only after phase 3 commits.
"""

import asyncio
import datetime
import random
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import sessionmaker

from tradedesk.core.events import EventPublisher
from tradedesk.core.exceptions import (
    AlreadyProcessed,
    InsufficientFunds,
    NotFound,
    PriceUnavailable,
    TradeNotExpired,
    ValidationFailed,
)
from tradedesk.core.logging_config import error_logger, settlement_logger
from tradedesk.core.permissions import Action, ensure_allowed
from tradedesk.core.settings_cache import GLOBAL_TRADE_SETTINGS_KEY, SettingsCache
from tradedesk.crud import balance as ledger
from tradedesk.crud import trade as crud_trade
from tradedesk.crud import user as crud_user
from tradedesk.crud.admin_settings import load_global_trade_settings
from tradedesk.crud.state_guard import compare_and_transition
from tradedesk.database.models import Admin, Trade, TradeResult, TradeStatus, utcnow
from tradedesk.schemas.settings import GlobalTradeSettings, TradeMode
from tradedesk.services.outcome import Outcome, needs_live_price, resolve_outcome, synthetic_exit_price
from tradedesk.services.price_oracle import PriceOracle

SETTLEMENT_CURRENCY = "USDT"
MONEY_QUANT = Decimal("0.00000001")


@dataclass
class SettlementResult:
    trade_id: int
    wallet_address: str
    result: str
    pnl: Decimal
    exit_price: Decimal
    payout: Decimal
    source: str


@dataclass
class SweepReport:
    found: int = 0
    settled: int = 0
    already_processed: int = 0
    price_unavailable: int = 0
    failed: int = 0
    results: List[SettlementResult] = field(default_factory=list)


def settlement_amounts(amount_usd: Decimal, multiplier: Decimal, result: str):
    """(payout, pnl) for a stake: a win pays stake * multiplier, a loss forfeits the stake."""
    amount_usd = Decimal(amount_usd)
    payout = (amount_usd * Decimal(multiplier)).quantize(MONEY_QUANT)
    if result == TradeResult.WIN:
        return payout, payout - amount_usd
    return Decimal("0"), -amount_usd


class SettlementEngine:

    def __init__(
        self,
        session_factory: sessionmaker,
        price_oracle: PriceOracle,
        publisher: EventPublisher,
        settings_cache: SettingsCache,
        batch_size: int = 10,
        clock: Callable[[], datetime.datetime] = utcnow,
        rng: Optional[random.Random] = None,
    ):
        self.session_factory = session_factory
        self.price_oracle = price_oracle
        self.publisher = publisher
        self.settings_cache = settings_cache
        self.batch_size = max(1, batch_size)
        self.clock = clock
        self.rng = rng

    async def global_trade_settings(self) -> GlobalTradeSettings:
        async def loader():
            async with self.session_factory() as db:
                return await load_global_trade_settings(db)

        return await self.settings_cache.get(GLOBAL_TRADE_SETTINGS_KEY, loader)

    async def _snapshot(self, trade_id: int) -> Trade:
        async with self.session_factory() as db:
            trade = await crud_trade.get_trade_by_id(db, trade_id)
            if trade is None:
                raise NotFound(f"Trade {trade_id} not found.")
            return trade

    async def _user_trade_status(self, wallet_address: str) -> Optional[str]:
        async with self.session_factory() as db:
            user = await crud_user.get_user_by_wallet(db, wallet_address)
            return user.trade_status if user else None

    async def settle_trade(self, trade_id: int) -> SettlementResult:
        """
        Settles one expired active trade.

        Raises NotFound, AlreadyProcessed, TradeNotExpired or
        PriceUnavailable; in every error case the trade is left untouched.
        """
        trade = await self._snapshot(trade_id)
        if trade.status != TradeStatus.ACTIVE:
            raise AlreadyProcessed(f"Trade {trade_id} is already settled.")
        if trade.expires_at > self.clock():
            raise TradeNotExpired(f"Trade {trade_id} expires at {trade.expires_at.isoformat()}.")

        settings = await self.global_trade_settings()

        live_price = None
        user_trade_status = None
        if needs_live_price(trade.manual_outcome_preset, settings):
            live_price = await self.price_oracle.get_price(trade.asset)
        elif not trade.manual_outcome_preset and settings.mode == TradeMode.CUSTOM:
            user_trade_status = await self._user_trade_status(trade.wallet_address)

        outcome = resolve_outcome(
            trade.entry_price,
            trade.side,
            settings,
            manual_preset=trade.manual_outcome_preset,
            user_trade_status=user_trade_status,
            live_price=live_price,
            rng=self.rng,
        )
        return await self._commit(trade, outcome, require_expired=True)

    async def force_settle(self, trade_id: int, result: str, admin: Admin) -> SettlementResult:
        """
        Admin "set result": settles an active trade now, expired or not,
        with the given result and a synthetic exit price.
        """
        result = result.lower()
        if result not in (TradeResult.WIN, TradeResult.LOSS):
            raise ValidationFailed("Result must be 'win' or 'loss'.")

        trade = await self._snapshot(trade_id)
        if trade.status != TradeStatus.ACTIVE:
            raise AlreadyProcessed(f"Trade {trade_id} is already settled.")

        settings = await self.global_trade_settings()
        move = settings.win_percentage if result == TradeResult.WIN else settings.loss_percentage
        outcome = Outcome(result, synthetic_exit_price(trade.entry_price, trade.side, result, move), "admin")
        settlement_logger.info(f"Admin {admin.username} forcing trade {trade_id} to {result}")
        return await self._commit(
            trade,
            outcome,
            require_expired=False,
            manual_outcome_preset=result.upper(),
            manual_preset_by=admin.username,
            manual_preset_at=self.clock(),
        )

    async def _commit(self, snapshot: Trade, outcome: Outcome, require_expired: bool, **extra_values) -> SettlementResult:
        trade_id = snapshot.id
        payout, pnl = settlement_amounts(snapshot.amount_usd, snapshot.profit_multiplier, outcome.result)
        now = self.clock()

        async with self.session_factory() as db:
            async with db.begin():
                won = await compare_and_transition(
                    db, Trade, trade_id, TradeStatus.ACTIVE, TradeStatus.FINISHED,
                    result=outcome.result,
                    exit_price=outcome.exit_price,
                    pnl=pnl,
                    closed_at=now,
                    **extra_values,
                )
                if not won:
                    raise AlreadyProcessed(f"Trade {trade_id} is already settled.")

                trade = await crud_trade.get_trade_by_id(db, trade_id)
                if require_expired and trade.expires_at > now:
                    # Raising rolls the transition back
                    raise TradeNotExpired(f"Trade {trade_id} expires at {trade.expires_at.isoformat()}.")

                if outcome.result == TradeResult.WIN:
                    stake = Decimal(trade.amount_usd)
                    await ledger.adjust(
                        db,
                        trade.wallet_address,
                        SETTLEMENT_CURRENCY,
                        available=payout,
                        real_balance=stake,
                        real_winnings=pnl,
                        entry_type="trade_win",
                        reference_id=str(trade_id),
                        description=f"Trade {trade_id} won: stake {stake} + profit {pnl}",
                    )

        settlement_logger.info(
            f"Trade {trade_id} settled: {outcome.result} ({outcome.source}) "
            f"entry={snapshot.entry_price} exit={outcome.exit_price} pnl={pnl}"
        )
        await self.publisher.trade_settled(snapshot.wallet_address, trade_id, outcome.result, pnl, outcome.exit_price)
        await self.publisher.balance_updated(snapshot.wallet_address)

        return SettlementResult(
            trade_id=trade_id,
            wallet_address=snapshot.wallet_address,
            result=outcome.result,
            pnl=pnl,
            exit_price=outcome.exit_price,
            payout=payout,
            source=outcome.source,
        )

    async def _settle_into_report(self, trade_id: int, report: SweepReport) -> None:
        try:
            report.results.append(await self.settle_trade(trade_id))
            report.settled += 1
        except AlreadyProcessed:
            report.already_processed += 1
        except PriceUnavailable as e:
            settlement_logger.warning(f"Trade {trade_id} deferred, price unavailable: {e.detail}")
            report.price_unavailable += 1
        except InsufficientFunds as e:
            error_logger.error(f"Ledger rejected settlement of trade {trade_id}: {e.detail}")
            report.failed += 1
        except Exception as e:
            settlement_logger.error(f"Failed to settle trade {trade_id}: {e}", exc_info=True)
            error_logger.error(f"Failed to settle trade {trade_id}: {e}", exc_info=True)
            report.failed += 1

    async def _sweep(self, trade_ids: List[int]) -> SweepReport:
        report = SweepReport(found=len(trade_ids))
        for start in range(0, len(trade_ids), self.batch_size):
            batch = trade_ids[start:start + self.batch_size]
            await asyncio.gather(*(self._settle_into_report(trade_id, report) for trade_id in batch))
        if report.found:
            settlement_logger.info(
                f"Sweep finished. Found: {report.found}, Settled: {report.settled}, "
                f"Already processed: {report.already_processed}, "
                f"Price unavailable: {report.price_unavailable}, Failed: {report.failed}"
            )
        return report

    async def settle_expired(self, limit: Optional[int] = None) -> SweepReport:
        """
        Settles every expired active trade. Safe to run concurrently and
        repeatedly; per-trade failures are counted, never raised.
        """
        async with self.session_factory() as db:
            trade_ids = await crud_trade.get_expired_active_trade_ids(db, now=self.clock(), limit=limit)
        return await self._sweep(trade_ids)

    async def settle_expired_for_wallet(self, wallet_address: str) -> SweepReport:
        """Settle-on-read for one user's expired trades."""
        async with self.session_factory() as db:
            trade_ids = await crud_trade.get_expired_active_trade_ids(
                db, now=self.clock(), wallet_address=wallet_address
            )
        return await self._sweep(trade_ids)

    async def set_manual_preset(self, trade_id: int, outcome: str, admin: Admin) -> Trade:
        """
        Pins the result of an active, not yet expired trade. Only roles
        holding trade:manual_control may do this.
        """
        ensure_allowed(admin.role, Action.TRADE_MANUAL_CONTROL)
        outcome = outcome.upper()
        if outcome not in ("WIN", "LOSS"):
            raise ValidationFailed("Outcome must be WIN or LOSS.")

        now = self.clock()
        trade = await self._snapshot(trade_id)
        if trade.status != TradeStatus.ACTIVE:
            raise ValidationFailed("Trade is not active.")
        if trade.expires_at <= now:
            raise ValidationFailed("Trade has already expired.")

        async with self.session_factory() as db:
            async with db.begin():
                result = await db.execute(
                    update(Trade)
                    .where(Trade.id == trade_id, Trade.status == TradeStatus.ACTIVE, Trade.expires_at > now)
                    .values(manual_outcome_preset=outcome, manual_preset_by=admin.username, manual_preset_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    raise ValidationFailed("Trade is no longer active.")

            trade = await crud_trade.get_trade_by_id(db, trade_id)

        settlement_logger.info(f"Admin {admin.username} preset trade {trade_id} to {outcome}")
        return trade
