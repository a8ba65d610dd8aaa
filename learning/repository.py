"""
Pattern Learning - Repository.

============================================================
PURPOSE
============================================================
Persistence of patterns and of their match counters.

============================================================
CONCURRENCY
============================================================
Match counters are the only state shared by concurrent
evaluations. Each (signal, pattern) pair is recorded in its own
transaction:

    INSERT pattern_matches (signal_id, pattern_id)   -- unique
    UPDATE learning_patterns SET times_matched = times_matched + 1

A duplicate pair fails the insert and rolls back the update, so
a retried evaluation never double-counts.

============================================================
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.clock import ensure_utc
from learning.models import LearningPatternRecord, PatternMatchRecord
from learning.synthesizer import PatternSynthesizer
from learning.types import (
    Pattern,
    PatternClass,
    PatternConditions,
    PatternMatch,
    PatternSyncReport,
    PatternType,
    TradeResult,
)
from storage.repositories.base import BaseRepository
from storage.repositories.exceptions import DuplicateRecordError, RecordNotFoundError


class PatternRepository(BaseRepository):
    """Repository for learning_patterns and pattern_matches."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        super().__init__(session_factory, "PatternRepository")

    # =========================================================
    # SYNC
    # =========================================================

    async def sync_patterns(
        self,
        account_id: str,
        patterns: Iterable[Pattern],
        overwrite: bool = False,
        synthesizer: Optional[PatternSynthesizer] = None,
    ) -> PatternSyncReport:
        """
        Store synthesized patterns.

        Existing patterns (same account and description) are
        skipped, or merged when overwrite is set. Merging is
        PatternSynthesizer.merge: counts and totals are summed, the
        rates, averages, confidence and strength recomputed.
        """
        synthesizer = synthesizer or PatternSynthesizer()
        created = updated = skipped = 0

        async with self._session_scope("sync_patterns", {"account_id": account_id}) as session:
            for pattern in patterns:
                result = await session.execute(
                    select(LearningPatternRecord).where(
                        LearningPatternRecord.account_id == account_id,
                        LearningPatternRecord.description == pattern.description,
                    )
                )
                existing = result.scalar_one_or_none()

                if existing is None:
                    record = LearningPatternRecord(id=pattern.pattern_id, account_id=account_id)
                    self._apply(record, pattern)
                    session.add(record)
                    created += 1
                    continue

                if not overwrite:
                    skipped += 1
                    continue

                merged = synthesizer.merge(self._to_domain(existing), pattern)
                self._apply(existing, merged)
                updated += 1

        report = PatternSyncReport(created=created, updated=updated, skipped=skipped)
        self._logger.info(f"Pattern sync for {account_id}: {report.to_dict()}")
        return report

    # =========================================================
    # READS
    # =========================================================

    async def get_active_patterns(
        self,
        account_id: str,
        symbol: Optional[str] = None,
        min_confidence: float = 0.0,
    ) -> List[Pattern]:
        """Active patterns for the account, symbol-specific or symbol-agnostic."""
        stmt = select(LearningPatternRecord).where(
            LearningPatternRecord.account_id == account_id,
            LearningPatternRecord.is_active.is_(True),
            LearningPatternRecord.confidence >= min_confidence,
        )
        if symbol:
            stmt = stmt.where(
                or_(
                    LearningPatternRecord.symbol.is_(None),
                    LearningPatternRecord.symbol == symbol.upper(),
                )
            )
        stmt = stmt.order_by(LearningPatternRecord.confidence.desc())

        async with self._session_scope("get_active_patterns", {"account_id": account_id}) as session:
            result = await session.execute(stmt)
            return [self._to_domain(r) for r in result.scalars().all()]

    async def get_pattern(self, pattern_id: UUID) -> Pattern:
        async with self._session_scope("get_pattern", {"id": str(pattern_id)}) as session:
            record = await session.get(LearningPatternRecord, pattern_id)
            if record is None:
                raise RecordNotFoundError(self._repository_name, pattern_id)
            return self._to_domain(record)

    async def get_top_patterns(
        self,
        account_id: str,
        pattern_type: PatternType,
        limit: int = 5,
    ) -> List[Pattern]:
        """Strongest active patterns of one type."""
        stmt = (
            select(LearningPatternRecord)
            .where(
                LearningPatternRecord.account_id == account_id,
                LearningPatternRecord.pattern_type == pattern_type.value,
                LearningPatternRecord.is_active.is_(True),
            )
            .order_by(LearningPatternRecord.strength.desc(), LearningPatternRecord.confidence.desc())
            .limit(limit)
        )
        async with self._session_scope("get_top_patterns") as session:
            result = await session.execute(stmt)
            return [self._to_domain(r) for r in result.scalars().all()]

    async def get_stats(self, account_id: str) -> Dict[str, Any]:
        stmt = select(
            LearningPatternRecord.pattern_type,
            LearningPatternRecord.is_active,
            func.count(),
            func.coalesce(func.sum(LearningPatternRecord.total_profit), 0.0),
            func.coalesce(func.sum(LearningPatternRecord.total_loss), 0.0),
            func.coalesce(func.sum(LearningPatternRecord.times_matched), 0),
            func.coalesce(func.sum(LearningPatternRecord.times_avoided), 0),
        ).where(
            LearningPatternRecord.account_id == account_id
        ).group_by(
            LearningPatternRecord.pattern_type, LearningPatternRecord.is_active
        )

        stats: Dict[str, Any] = {
            "total_patterns": 0,
            "active_patterns": 0,
            "win_patterns": 0,
            "loss_patterns": 0,
            "total_profit": 0.0,
            "total_loss": 0.0,
            "times_matched": 0,
            "times_avoided": 0,
        }

        async with self._session_scope("get_stats", {"account_id": account_id}) as session:
            result = await session.execute(stmt)
            for pattern_type, is_active, count, profit, loss, matched, avoided in result.all():
                stats["total_patterns"] += count
                if is_active:
                    stats["active_patterns"] += count
                stats[f"{pattern_type}_patterns"] += count
                stats["total_profit"] += float(profit)
                stats["total_loss"] += float(loss)
                stats["times_matched"] += int(matched)
                stats["times_avoided"] += int(avoided)

        stats["net_profit_loss"] = stats["total_profit"] + stats["total_loss"]
        return stats

    # =========================================================
    # WRITES
    # =========================================================

    async def record_matches(
        self,
        signal_id: str,
        matches: Iterable[PatternMatch],
        matched_at: Optional[datetime] = None,
    ) -> int:
        """
        Count each pattern's influence on a decision exactly once.

        Returns:
            Number of pairs newly recorded
        """
        matched_at = ensure_utc(matched_at or datetime.now(timezone.utc))
        recorded = 0

        for match in matches:
            try:
                async with self._session_scope(
                    "record_match",
                    {"field": "signal_id,pattern_id", "value": f"{signal_id},{match.pattern_id}"},
                ) as session:
                    session.add(PatternMatchRecord(
                        pattern_id=match.pattern_id,
                        signal_id=signal_id,
                        avoided=match.avoided,
                        contribution=match.contribution,
                        matched_at=matched_at,
                    ))
                    await session.flush()

                    await session.execute(
                        update(LearningPatternRecord)
                        .where(LearningPatternRecord.id == match.pattern_id)
                        .values(
                            times_matched=LearningPatternRecord.times_matched + 1,
                            times_avoided=LearningPatternRecord.times_avoided + (1 if match.avoided else 0),
                        )
                    )
                recorded += 1
            except DuplicateRecordError:
                self._logger.debug(f"Match {signal_id}/{match.pattern_id} already recorded")

        return recorded

    async def record_occurrence(
        self,
        pattern_id: UUID,
        result: TradeResult,
        profit: float,
        synthesizer: Optional[PatternSynthesizer] = None,
    ) -> Pattern:
        """Apply one realized trade to a pattern's statistics."""
        synthesizer = synthesizer or PatternSynthesizer()

        async with self._session_scope("record_occurrence", {"id": str(pattern_id)}) as session:
            stmt = select(LearningPatternRecord).where(
                LearningPatternRecord.id == pattern_id
            ).with_for_update()
            record = (await session.execute(stmt)).scalar_one_or_none()
            if record is None:
                raise RecordNotFoundError(self._repository_name, pattern_id, operation="record_occurrence")

            updated = synthesizer.apply_occurrence(self._to_domain(record), result, profit)
            self._apply(record, updated)
            return updated

    async def deactivate(self, pattern_id: UUID) -> None:
        async with self._session_scope("deactivate", {"id": str(pattern_id)}) as session:
            result = await session.execute(
                update(LearningPatternRecord)
                .where(LearningPatternRecord.id == pattern_id)
                .values(is_active=False)
            )
            if result.rowcount == 0:
                raise RecordNotFoundError(self._repository_name, pattern_id, operation="deactivate")
        self._logger.info(f"Deactivated pattern {pattern_id}")

    # =========================================================
    # MAPPING
    # =========================================================

    @staticmethod
    def _apply(record: LearningPatternRecord, pattern: Pattern) -> None:
        """Copy statistics onto a record. Match counters are left untouched."""
        record.pattern_type = pattern.pattern_type.value
        record.pattern_class = pattern.pattern_class.value
        record.description = pattern.description
        record.symbol = pattern.conditions.symbol.upper() if pattern.conditions.symbol else None
        record.conditions = pattern.conditions.to_dict()
        record.occurrences = pattern.occurrences
        record.success_count = pattern.success_count
        record.failure_count = pattern.failure_count
        record.success_rate = pattern.success_rate
        record.failure_rate = pattern.failure_rate
        record.total_profit = pattern.total_profit
        record.total_loss = pattern.total_loss
        record.avg_profit = pattern.avg_profit
        record.avg_loss = pattern.avg_loss
        record.confidence = pattern.confidence
        record.strength = pattern.strength
        record.is_active = pattern.is_active
        record.provenance = pattern.provenance
        record.reasoning = pattern.reasoning or None
        record.first_seen = ensure_utc(pattern.first_seen)
        record.last_seen = ensure_utc(pattern.last_seen)

    @staticmethod
    def _to_domain(record: LearningPatternRecord) -> Pattern:
        return Pattern(
            pattern_id=record.id,
            account_id=record.account_id,
            pattern_type=PatternType(record.pattern_type),
            pattern_class=PatternClass(record.pattern_class),
            description=record.description,
            conditions=PatternConditions.from_dict(record.conditions),
            occurrences=record.occurrences,
            success_count=record.success_count,
            failure_count=record.failure_count,
            success_rate=record.success_rate,
            failure_rate=record.failure_rate,
            total_profit=record.total_profit,
            total_loss=record.total_loss,
            avg_profit=record.avg_profit,
            avg_loss=record.avg_loss,
            confidence=record.confidence,
            strength=record.strength,
            times_matched=record.times_matched or 0,
            times_avoided=record.times_avoided or 0,
            is_active=record.is_active,
            provenance=record.provenance,
            reasoning=record.reasoning or "",
            first_seen=ensure_utc(record.first_seen),
            last_seen=ensure_utc(record.last_seen),
        )
