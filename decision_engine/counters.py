"""
Confidence Fusion - Account Signal Counters.

Counters are a derived projection of the decision records, updated
after a decision is persisted. A failed update never touches the
record; the engine logs it and moves on.

Each increment is a single UPDATE ... SET col = col + 1, so
concurrent evaluations for the same account cannot lose counts.
"""

from typing import Dict, Optional, Protocol

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.clock import ClockProtocol, SystemClock
from decision_engine.models import AccountSignalCounterModel
from storage.repositories.base import BaseRepository
from storage.repositories.exceptions import DuplicateRecordError


COUNTER_COLUMNS = ("signals_received", "signals_executed", "signals_rejected")


class SignalCounterSink(Protocol):
    async def signal_received(self, account_id: str) -> None:
        ...

    async def signal_executed(self, account_id: str) -> None:
        ...

    async def signal_rejected(self, account_id: str) -> None:
        ...


class SignalCounterRepository(BaseRepository):
    """SignalCounterSink backed by account_signal_counters."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Optional[ClockProtocol] = None,
    ):
        super().__init__(session_factory, "SignalCounterRepository")
        self._clock = clock or SystemClock()

    async def signal_received(self, account_id: str) -> None:
        await self._increment(account_id, "signals_received")

    async def signal_executed(self, account_id: str) -> None:
        await self._increment(account_id, "signals_executed")

    async def signal_rejected(self, account_id: str) -> None:
        await self._increment(account_id, "signals_rejected")

    async def get_counters(self, account_id: str) -> Dict[str, int]:
        async with self._session_scope("get_counters", {"account_id": account_id}) as session:
            row = await session.get(AccountSignalCounterModel, account_id)
            if row is None:
                return {name: 0 for name in COUNTER_COLUMNS}
            return {name: getattr(row, name) for name in COUNTER_COLUMNS}

    async def _increment(self, account_id: str, column: str) -> None:
        if await self._try_update(account_id, column):
            return

        # First signal for this account: create the row. A concurrent
        # insert wins the race, then the update applies to its row.
        try:
            async with self._session_scope(
                "create_counters", {"field": "account_id", "value": account_id}
            ) as session:
                values = {name: 0 for name in COUNTER_COLUMNS}
                values[column] = 1
                session.add(AccountSignalCounterModel(
                    account_id=account_id,
                    last_signal_at=self._clock.now(),
                    **values,
                ))
                await session.flush()
            return
        except DuplicateRecordError:
            self._logger.debug(f"Counter row for {account_id} created concurrently")

        await self._try_update(account_id, column)

    async def _try_update(self, account_id: str, column: str) -> bool:
        target = getattr(AccountSignalCounterModel, column)
        async with self._session_scope(f"increment_{column}", {"account_id": account_id}) as session:
            result = await session.execute(
                update(AccountSignalCounterModel)
                .where(AccountSignalCounterModel.account_id == account_id)
                .values(**{column: target + 1, "last_signal_at": self._clock.now()})
            )
            return result.rowcount > 0
