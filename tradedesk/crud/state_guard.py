# tradedesk/crud/state_guard.py

import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from tradedesk.core.exceptions import AlreadyProcessed

logger = logging.getLogger(__name__)


async def compare_and_transition(
    db: AsyncSession,
    model,
    record_id: int,
    from_state: str,
    to_state: str,
    **values,
) -> bool:
    """
    Moves a record from ``from_state`` to ``to_state`` with a single
    conditional UPDATE:

        UPDATE <table> SET status = :to, ... WHERE id = :id AND status = :from

    Returns True when this caller performed the transition. Exactly one of
    any number of concurrent callers gets True; the others get False and
    must not apply any side effect.
    """
    stmt = (
        update(model)
        .where(model.id == record_id, model.status == from_state)
        .values(status=to_state, **values)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    won = result.rowcount == 1
    if not won:
        logger.info(f"{model.__name__} {record_id}: transition {from_state} -> {to_state} lost (already processed)")
    return won


async def transition_or_raise(
    db: AsyncSession,
    model,
    record_id: int,
    from_state: str,
    to_state: str,
    **values,
) -> None:
    """Same as compare_and_transition but raises AlreadyProcessed on a lost race."""
    if not await compare_and_transition(db, model, record_id, from_state, to_state, **values):
        raise AlreadyProcessed(f"{model.__name__} {record_id} is no longer {from_state}.")
