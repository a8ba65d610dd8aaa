"""
Confidence Fusion - Decision Repository.

============================================================
PURPOSE
============================================================
Append-only audit store of decisions and their realized
outcomes.

============================================================
IDEMPOTENCY
============================================================
decision_records.signal_id is unique. A second save for the
same signal fails with DuplicateRecordError; the engine turns
that into a replay of the stored record.

Outcomes are a separate table, also unique per signal, so
attaching a result never rewrites a decision.

============================================================
"""

from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.clock import ensure_utc
from decision_engine.models import DecisionOutcomeModel, DecisionRecordModel
from decision_engine.types import (
    ConfidenceBreakdown,
    DecisionOutcome,
    DecisionRecord,
    ReasoningStep,
    TradeDirection,
    TradeOutcome,
)
from learning.types import ExitType, TradeResult
from storage.repositories.base import BaseRepository
from storage.repositories.exceptions import RecordNotFoundError


class DecisionRepository(BaseRepository):
    """Repository for decision_records and decision_outcomes."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        super().__init__(session_factory, "DecisionRepository")

    async def save(self, record: DecisionRecord) -> DecisionRecord:
        """
        Persist a decision.

        Raises:
            DuplicateRecordError: A decision for this signal exists
        """
        context = {"field": "signal_id", "value": record.signal_id}
        async with self._session_scope("save", context) as session:
            session.add(self._to_model(record))
            await session.flush()

        self._logger.debug(f"Saved decision for signal {record.signal_id}")
        return record

    async def get_by_signal_id(self, signal_id: str) -> Optional[DecisionRecord]:
        stmt = (
            select(DecisionRecordModel, DecisionOutcomeModel)
            .outerjoin(
                DecisionOutcomeModel,
                DecisionOutcomeModel.signal_id == DecisionRecordModel.signal_id,
            )
            .where(DecisionRecordModel.signal_id == signal_id)
        )
        async with self._session_scope("get_by_signal_id", {"signal_id": signal_id}) as session:
            row = (await session.execute(stmt)).first()
            if row is None:
                return None
            model, outcome = row
            return self._to_domain(model, outcome)

    async def count_for_signal(self, signal_id: str) -> int:
        stmt = select(func.count()).select_from(DecisionRecordModel).where(
            DecisionRecordModel.signal_id == signal_id
        )
        async with self._session_scope("count_for_signal") as session:
            return int((await session.execute(stmt)).scalar_one())

    async def get_recent_outcomes(self, account_id: str, limit: int) -> List[TradeOutcome]:
        """Outcomes of the account's most recent decided trades, newest first."""
        stmt = (
            select(DecisionOutcomeModel)
            .join(
                DecisionRecordModel,
                DecisionRecordModel.signal_id == DecisionOutcomeModel.signal_id,
            )
            .where(DecisionRecordModel.account_id == account_id)
            .order_by(DecisionRecordModel.decided_at.desc(), DecisionOutcomeModel.closed_at.desc())
            .limit(limit)
        )
        async with self._session_scope("get_recent_outcomes", {"account_id": account_id}) as session:
            result = await session.execute(stmt)
            return [self._outcome_to_domain(m) for m in result.scalars().all()]

    async def record_outcome(self, signal_id: str, outcome: TradeOutcome) -> None:
        """
        Attach the realized result of a decision.

        Raises:
            RecordNotFoundError: No decision for this signal
            DuplicateRecordError: An outcome was already recorded
        """
        context = {"field": "signal_id", "value": signal_id}
        async with self._session_scope("record_outcome", context) as session:
            decision = (await session.execute(
                select(DecisionRecordModel).where(DecisionRecordModel.signal_id == signal_id)
            )).scalar_one_or_none()
            if decision is None:
                raise RecordNotFoundError(
                    self._repository_name, signal_id, id_field="signal_id", operation="record_outcome"
                )

            session.add(DecisionOutcomeModel(
                signal_id=signal_id,
                account_id=decision.account_id,
                result=outcome.result.value,
                profit=outcome.profit,
                exit_price=outcome.exit_price,
                exit_type=outcome.exit_type.value,
                closed_at=ensure_utc(outcome.closed_at),
            ))
            await session.flush()

        self._logger.info(f"Outcome {outcome.result.value} ({outcome.profit:+.2f}) recorded for {signal_id}")

    # =========================================================
    # MAPPING
    # =========================================================

    @staticmethod
    def _to_model(record: DecisionRecord) -> DecisionRecordModel:
        breakdown = record.breakdown
        return DecisionRecordModel(
            id=record.decision_id,
            signal_id=record.signal_id,
            account_id=record.account_id,
            symbol=record.symbol,
            direction=record.direction.value,
            technical_confidence=breakdown.technical,
            news_adjustment=breakdown.news,
            backtest_adjustment=breakdown.backtest,
            learning_adjustment=breakdown.learning,
            final_confidence=breakdown.total,
            threshold=record.threshold,
            decision=record.decision.value,
            reason=record.reason,
            eligibility_blocked=record.eligibility_blocked,
            reasoning=[step.to_dict() for step in record.reasoning],
            signal_snapshot=record.signal_snapshot,
            news_context=record.news_context,
            backtest_context=record.backtest_context,
            learning_context=record.learning_context,
            balance_snapshot=record.balance_snapshot,
            reasoner_status=record.reasoner_status,
            reasoner_cost=record.reasoner_cost,
            reasoner_provider=record.reasoner_provider,
            reasoner_model=record.reasoner_model,
            decided_at=ensure_utc(record.decided_at),
        )

    @staticmethod
    def _outcome_to_domain(model: DecisionOutcomeModel) -> TradeOutcome:
        return TradeOutcome(
            result=TradeResult(model.result),
            profit=model.profit,
            exit_price=model.exit_price,
            exit_type=ExitType(model.exit_type),
            closed_at=ensure_utc(model.closed_at),
        )

    @classmethod
    def _to_domain(
        cls,
        model: DecisionRecordModel,
        outcome: Optional[DecisionOutcomeModel] = None,
    ) -> DecisionRecord:
        return DecisionRecord(
            decision_id=model.id,
            signal_id=model.signal_id,
            account_id=model.account_id,
            symbol=model.symbol,
            direction=TradeDirection(model.direction),
            breakdown=ConfidenceBreakdown(
                technical=model.technical_confidence,
                news=model.news_adjustment,
                backtest=model.backtest_adjustment,
                learning=model.learning_adjustment,
                total=model.final_confidence,
            ),
            threshold=model.threshold,
            decision=DecisionOutcome(model.decision),
            reason=model.reason,
            reasoning=tuple(ReasoningStep.from_dict(s) for s in model.reasoning or []),
            eligibility_blocked=model.eligibility_blocked,
            signal_snapshot=dict(model.signal_snapshot or {}),
            news_context=dict(model.news_context or {}),
            backtest_context=dict(model.backtest_context or {}),
            learning_context=dict(model.learning_context or {}),
            reasoner_status=model.reasoner_status,
            reasoner_cost=model.reasoner_cost,
            reasoner_provider=model.reasoner_provider,
            reasoner_model=model.reasoner_model,
            balance_snapshot=dict(model.balance_snapshot or {}),
            decided_at=ensure_utc(model.decided_at),
            outcome=cls._outcome_to_domain(outcome) if outcome is not None else None,
        )
