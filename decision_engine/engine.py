"""
Confidence Fusion Engine - Main Orchestrator.

============================================================
PURPOSE
============================================================
Turns a technical signal into an EXECUTE or SKIP decision by
fusing bounded adjustments from three context sources:

    final = clamp(technical + news + backtest + learning, 0, 1)
    EXECUTE iff final >= threshold

It orchestrates:
1. Idempotent replay of already-decided signals
2. The external eligibility pre-check
3. Bounded, parallel context gathering
4. Rule-based adjustments, each capped by its account weight
5. Optional reasoner refinement
6. Fusion, threshold and reasoning trail
7. Persistence, then best-effort counters and match recording

============================================================
FAILURE ISOLATION
============================================================
- Context source fails or times out -> its adjustment is 0
- Reasoner unavailable or malformed -> rule-based values stand
- Record cannot be written          -> PersistenceFailure
- Counters or match recording fail  -> logged, record kept

Nothing is shared between evaluations except the stores, so one
engine instance serves concurrent evaluate() calls.

============================================================
USAGE
============================================================
    engine = ConfidenceFusionEngine(
        decision_store=DecisionRepository(session_factory),
        sentiment_provider=SentimentContextProvider(NewsRepository(session_factory)),
        performance_tracker=PerformanceTracker(decision_store),
        pattern_store=PatternRepository(session_factory),
        counters=SignalCounterRepository(session_factory),
    )

    result = await engine.evaluate(account, signal)
    print(result.record.reasoning_text)

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from core.clock import ClockProtocol, SystemClock
from core.exceptions import ContextUnavailableError, ErrorClassification, PersistenceFailure
from decision_engine.config import CONFIDENCE_PRECISION, FusionEngineConfig, get_default_config
from decision_engine.counters import SignalCounterSink
from decision_engine.eligibility import check_eligibility
from decision_engine.performance_tracker import PerformanceTracker
from decision_engine.reasoning import ReasoningTrail
from decision_engine.types import (
    AccountContext,
    ConfidenceBreakdown,
    DecisionOutcome,
    DecisionRecord,
    EligibilityResult,
    EvaluationResult,
    EvaluationStage,
    PerformanceContext,
    Signal,
)
from learning.matcher import PatternMatcher, clamp
from learning.types import PatternMatchResult
from reasoner.base import NullReasoner, Reasoner
from reasoner.types import (
    Malformed,
    ReasonerAdjustments,
    ReasonerRequest,
    ReasonerResult,
    ReasonerStatus,
    Refined,
    Unavailable,
)
from sentiment.provider import SentimentContextProvider
from sentiment.types import SentimentSummary
from storage.repositories.exceptions import DuplicateRecordError, RepositoryException


logger = logging.getLogger(__name__)


SOURCE_SENTIMENT = "sentiment"
SOURCE_PERFORMANCE = "performance"
SOURCE_PATTERNS = "patterns"


@dataclass
class _Context:
    """Context gathered for one evaluation."""
    sentiment: Optional[SentimentSummary] = None
    performance: Optional[PerformanceContext] = None
    patterns: PatternMatchResult = field(default_factory=PatternMatchResult.empty)
    degraded: Dict[str, str] = field(default_factory=dict)


@dataclass
class _Adjustments:
    news: float = 0.0
    backtest: float = 0.0
    learning: float = 0.0
    overridden: Tuple[str, ...] = ()


def fuse(technical: float, news: float, backtest: float, learning: float) -> float:
    """Sum and clamp to [0, 1]."""
    total = technical + news + backtest + learning
    return round(max(0.0, min(1.0, total)), CONFIDENCE_PRECISION)


class ConfidenceFusionEngine:
    """
    Main orchestrator for confidence fusion.

    ============================================================
    COLLABORATORS
    ============================================================
    decision_store      : save / get_by_signal_id
    sentiment_provider  : get_summary(symbol)
    performance_tracker : get_context(account_id)
    pattern_store       : get_active_patterns / record_matches
    matcher             : PatternMatcher
    reasoner            : Reasoner, NullReasoner by default
    counters            : SignalCounterSink

    Any context collaborator may be None; its adjustment is
    then 0 without a degraded note.

    ============================================================
    """

    def __init__(
        self,
        decision_store: Any,
        sentiment_provider: Optional[SentimentContextProvider] = None,
        performance_tracker: Optional[PerformanceTracker] = None,
        pattern_store: Optional[Any] = None,
        matcher: Optional[PatternMatcher] = None,
        reasoner: Optional[Reasoner] = None,
        counters: Optional[SignalCounterSink] = None,
        config: Optional[FusionEngineConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._store = decision_store
        self._sentiment = sentiment_provider
        self._performance = performance_tracker
        self._patterns = pattern_store
        self._matcher = matcher or PatternMatcher()
        self._reasoner = reasoner or NullReasoner()
        self._counters = counters
        self._config = config or get_default_config()
        self._clock = clock or SystemClock()

    @property
    def config(self) -> FusionEngineConfig:
        return self._config

    # =========================================================
    # ENTRY POINT
    # =========================================================

    async def evaluate(self, account: AccountContext, signal: Signal) -> EvaluationResult:
        """
        Decide one signal for one account.

        Returns:
            EvaluationResult with the persisted record

        Raises:
            PersistenceFailure: The record could not be written
        """
        stages: List[EvaluationStage] = []
        self._advance(stages, EvaluationStage.RECEIVED, signal)

        existing = await self._find_existing(signal.signal_id)
        if existing is not None:
            logger.info(f"Signal {signal.signal_id} already decided: {existing.decision.value} (replay)")
            return EvaluationResult(record=existing, stages=tuple(stages), replayed=True)

        eligibility = await check_eligibility(account.eligibility)
        self._advance(stages, EvaluationStage.ELIGIBILITY_CHECKED, signal)

        if not eligibility.allowed:
            record = self._blocked_record(account, signal, eligibility)
            self._advance(stages, EvaluationStage.DECIDED, signal)
            return await self._finish(account, signal, record, stages, PatternMatchResult.empty())

        context = await self._gather_context(account, signal)
        self._advance(stages, EvaluationStage.CONTEXT_GATHERED, signal)

        adjustments = self._rule_based(account, context)

        reasoner_result: Optional[ReasonerResult] = None
        if self._config.consult_reasoner:
            reasoner_result = await self._consult_reasoner(account, signal, context, adjustments)
            adjustments = self._apply_reasoner(account, adjustments, reasoner_result)
            self._advance(stages, EvaluationStage.REASONER_CONSULTED, signal)

        total = fuse(signal.technical_confidence, adjustments.news, adjustments.backtest, adjustments.learning)
        breakdown = ConfidenceBreakdown(
            technical=signal.technical_confidence,
            news=adjustments.news,
            backtest=adjustments.backtest,
            learning=adjustments.learning,
            total=total,
        )
        self._advance(stages, EvaluationStage.FUSED, signal)

        threshold = account.config.confidence_threshold
        decision = DecisionOutcome.EXECUTE if total >= threshold else DecisionOutcome.SKIP

        record = self._decided_record(
            account, signal, breakdown, decision, context, adjustments, reasoner_result
        )
        self._advance(stages, EvaluationStage.DECIDED, signal)

        return await self._finish(account, signal, record, stages, context.patterns)

    # =========================================================
    # STAGES
    # =========================================================

    async def _find_existing(self, signal_id: str) -> Optional[DecisionRecord]:
        try:
            return await self._store.get_by_signal_id(signal_id)
        except Exception as e:
            # The unique save below still guards against a duplicate record
            logger.warning(f"Replay lookup failed for {signal_id}: {e}")
            return None

    async def _gather_context(self, account: AccountContext, signal: Signal) -> _Context:
        fetchers: List[Tuple[str, Callable[[], Awaitable[Any]]]] = []
        if self._sentiment is not None:
            fetchers.append((SOURCE_SENTIMENT, lambda: self._sentiment.get_summary(signal.symbol)))
        if self._performance is not None:
            fetchers.append((SOURCE_PERFORMANCE, lambda: self._performance.get_context(account.account_id)))
        if self._patterns is not None:
            fetchers.append((SOURCE_PATTERNS, lambda: self._match_patterns(account, signal)))

        if self._config.parallel_context:
            results = await asyncio.gather(*(self._fetch(name, make) for name, make in fetchers))
        else:
            results = [await self._fetch(name, make) for name, make in fetchers]

        context = _Context()
        for (name, _), (value, error) in zip(fetchers, results):
            if error is not None:
                context.degraded[name] = error.reason
                continue
            if name == SOURCE_SENTIMENT:
                context.sentiment = value
            elif name == SOURCE_PERFORMANCE:
                context.performance = value
            elif value is not None:
                context.patterns = value
        return context

    async def _fetch(
        self,
        source: str,
        make: Callable[[], Awaitable[Any]],
    ) -> Tuple[Any, Optional[ContextUnavailableError]]:
        """Run one context source under its timeout. Never raises."""
        timeout = self._config.context_timeout_seconds
        try:
            return await asyncio.wait_for(make(), timeout=timeout), None
        except asyncio.TimeoutError:
            error = ContextUnavailableError(source, f"timed out after {timeout}s")
        except Exception as e:
            error = ContextUnavailableError(source, str(e) or type(e).__name__, cause=e)

        logger.warning(f"Context source {source} unavailable: {error.reason}")
        return None, error

    async def _match_patterns(self, account: AccountContext, signal: Signal) -> PatternMatchResult:
        patterns = await self._patterns.get_active_patterns(
            account.account_id,
            symbol=signal.symbol,
            min_confidence=self._matcher.config.min_pattern_confidence,
        )
        return self._matcher.match(
            signal.market_conditions(), patterns, cap=account.config.learning_weight
        )

    @staticmethod
    def _rule_based(account: AccountContext, context: _Context) -> _Adjustments:
        config = account.config
        news = 0.0
        if context.sentiment is not None:
            news = clamp(context.sentiment.overall_sentiment * config.news_weight, config.news_weight)
        backtest = 0.0
        if context.performance is not None:
            backtest = clamp(
                context.performance.performance_score * config.backtest_weight, config.backtest_weight
            )
        learning = clamp(context.patterns.adjustment, config.learning_weight)
        return _Adjustments(news=news, backtest=backtest, learning=learning)

    async def _consult_reasoner(
        self,
        account: AccountContext,
        signal: Signal,
        context: _Context,
        adjustments: _Adjustments,
    ) -> ReasonerResult:
        request = self._build_request(account, signal, context, adjustments)
        timeout = self._config.reasoner_timeout_seconds
        provider = self._reasoner.name

        try:
            result = await asyncio.wait_for(self._reasoner.evaluate(request), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Reasoner {provider} timed out after {timeout}s for {signal.signal_id}")
            return Unavailable(provider=provider, reason=f"Timed out after {timeout}s")
        except Exception as e:
            logger.error(f"Reasoner {provider} failed for {signal.signal_id}: {e}", exc_info=True)
            return Unavailable(provider=provider, reason=str(e) or type(e).__name__)

        if not isinstance(result, ReasonerResult):
            return Malformed(provider=provider, reason=f"Unexpected result type {type(result).__name__}")

        if not result.is_refined:
            logger.info(f"Reasoner {result.status.value} for {signal.signal_id}; keeping rule-based adjustments")
        return result

    @staticmethod
    def _build_request(
        account: AccountContext,
        signal: Signal,
        context: _Context,
        adjustments: _Adjustments,
    ) -> ReasonerRequest:
        config = account.config
        sentiment = context.sentiment
        return ReasonerRequest(
            signal_id=signal.signal_id,
            symbol=signal.symbol,
            direction=signal.direction.value,
            technical_confidence=signal.technical_confidence,
            entry_price=signal.entry_price,
            stop_loss=signal.stop_loss,
            take_profit=signal.take_profit,
            indicators=dict(signal.indicators),
            sentiment=sentiment.overall_sentiment if sentiment else None,
            sentiment_label=sentiment.label.value if sentiment else None,
            headlines=list(sentiment.headlines) if sentiment else [],
            recent_win_rate=context.performance.win_rate if context.performance else None,
            loss_pattern_descriptions=context.patterns.loss_descriptions,
            rule_based=ReasonerAdjustments(
                news=adjustments.news,
                backtest=adjustments.backtest,
                learning=adjustments.learning,
            ),
            news_cap=config.news_weight,
            backtest_cap=config.backtest_weight,
            learning_cap=config.learning_weight,
            threshold=config.confidence_threshold,
        )

    @staticmethod
    def _apply_reasoner(
        account: AccountContext,
        adjustments: _Adjustments,
        result: ReasonerResult,
    ) -> _Adjustments:
        """Overrides from a Refined result, each clamped to its cap."""
        if not isinstance(result, Refined):
            return adjustments

        config = account.config
        proposed = result.adjustments
        news, backtest, learning = adjustments.news, adjustments.backtest, adjustments.learning
        overridden: List[str] = []

        if proposed.news is not None:
            news = clamp(proposed.news, config.news_weight)
            overridden.append("news")
        if proposed.backtest is not None:
            backtest = clamp(proposed.backtest, config.backtest_weight)
            overridden.append("backtest")
        if proposed.learning is not None:
            learning = clamp(proposed.learning, config.learning_weight)
            overridden.append("learning")

        return _Adjustments(news=news, backtest=backtest, learning=learning, overridden=tuple(overridden))

    # =========================================================
    # RECORDS
    # =========================================================

    def _blocked_record(
        self,
        account: AccountContext,
        signal: Signal,
        eligibility: EligibilityResult,
    ) -> DecisionRecord:
        technical = signal.technical_confidence
        trail = ReasoningTrail().technical(technical).blocked(eligibility.reason)
        return DecisionRecord(
            signal_id=signal.signal_id,
            account_id=account.account_id,
            symbol=signal.symbol,
            direction=signal.direction,
            breakdown=ConfidenceBreakdown(technical=technical, total=fuse(technical, 0.0, 0.0, 0.0)),
            threshold=account.config.confidence_threshold,
            decision=DecisionOutcome.SKIP,
            reason=eligibility.reason,
            reasoning=trail.steps,
            eligibility_blocked=True,
            signal_snapshot=signal.to_dict(),
            reasoner_status=ReasonerStatus.NOT_CONSULTED.value,
            reasoner_cost=0.0,
            balance_snapshot=account.balance_snapshot.to_dict(),
            decided_at=self._clock.now(),
        )

    def _decided_record(
        self,
        account: AccountContext,
        signal: Signal,
        breakdown: ConfidenceBreakdown,
        decision: DecisionOutcome,
        context: _Context,
        adjustments: _Adjustments,
        reasoner_result: Optional[ReasonerResult],
    ) -> DecisionRecord:
        threshold = account.config.confidence_threshold
        overridden = set(adjustments.overridden)

        trail = ReasoningTrail().technical(breakdown.technical)
        trail.adjustment("news", "News sentiment", breakdown.news, "news" in overridden)
        trail.adjustment("backtest", "Recent performance", breakdown.backtest, "backtest" in overridden)
        trail.adjustment("learning", "Pattern learning", breakdown.learning, "learning" in overridden)
        for source, message in context.degraded.items():
            trail.note(source, f"{source.capitalize()} context unavailable: {message}")
        trail.final(breakdown).verdict(decision, threshold)
        # The verdict line doubles as the reason
        reason = trail.steps[-1].text
        if isinstance(reasoner_result, Refined):
            trail.reasoner(reasoner_result.reasoning)

        if reasoner_result is None:
            status, cost, provider, model = ReasonerStatus.NOT_CONSULTED.value, 0.0, None, None
        else:
            status = reasoner_result.status.value
            cost = reasoner_result.cost
            provider = reasoner_result.provider or self._reasoner.name
            model = reasoner_result.model or None

        return DecisionRecord(
            signal_id=signal.signal_id,
            account_id=account.account_id,
            symbol=signal.symbol,
            direction=signal.direction,
            breakdown=breakdown,
            threshold=threshold,
            decision=decision,
            reason=reason,
            reasoning=trail.steps,
            signal_snapshot=signal.to_dict(),
            news_context=context.sentiment.to_dict() if context.sentiment else {},
            backtest_context=context.performance.to_dict() if context.performance else {},
            learning_context=context.patterns.to_dict(),
            reasoner_status=status,
            reasoner_cost=cost,
            reasoner_provider=provider,
            reasoner_model=model,
            balance_snapshot=account.balance_snapshot.to_dict(),
            decided_at=self._clock.now(),
        )

    # =========================================================
    # SIDE EFFECTS
    # =========================================================

    async def _finish(
        self,
        account: AccountContext,
        signal: Signal,
        record: DecisionRecord,
        stages: List[EvaluationStage],
        patterns: PatternMatchResult,
    ) -> EvaluationResult:
        try:
            await self._store.save(record)
        except DuplicateRecordError:
            # Lost a race with a concurrent evaluation of the same signal
            existing = await self._reread(signal.signal_id)
            logger.info(f"Signal {signal.signal_id} decided concurrently; returning stored record")
            return EvaluationResult(record=existing, stages=tuple(stages), replayed=True)
        except RepositoryException as e:
            logger.error(f"Failed to persist decision for {signal.signal_id}: {e}")
            raise PersistenceFailure(
                signal.signal_id,
                str(e),
                classification=(
                    ErrorClassification.TRANSIENT if e.retryable else ErrorClassification.RECOVERABLE
                ),
                context={"repository": e.to_dict()},
                cause=e,
            ) from e
        self._advance(stages, EvaluationStage.PERSISTED, signal)

        logger.info(
            f"{record.decision.value} {signal.symbol} {signal.direction.value} for {account.account_id}: "
            f"{record.final_confidence:.2%} vs {record.threshold:.2%} | {record.reason}"
        )

        counters_updated = await self._update_counters(account.account_id, record.decision)
        if counters_updated:
            self._advance(stages, EvaluationStage.COUNTERS_UPDATED, signal)

        recorded = await self._record_matches(signal.signal_id, record, patterns)

        return EvaluationResult(
            record=record,
            stages=tuple(stages),
            counters_updated=counters_updated,
            patterns_recorded=recorded,
        )

    async def _reread(self, signal_id: str) -> DecisionRecord:
        try:
            existing = await self._store.get_by_signal_id(signal_id)
        except RepositoryException as e:
            raise PersistenceFailure(signal_id, str(e), cause=e) from e
        if existing is None:
            raise PersistenceFailure(signal_id, "Duplicate reported but no stored record found")
        return existing

    async def _update_counters(self, account_id: str, decision: DecisionOutcome) -> bool:
        if self._counters is None:
            return False
        try:
            await self._counters.signal_received(account_id)
            if decision == DecisionOutcome.EXECUTE:
                await self._counters.signal_executed(account_id)
            else:
                await self._counters.signal_rejected(account_id)
            return True
        except Exception as e:
            logger.error(f"Counter update failed for {account_id}: {e}", exc_info=True)
            return False

    async def _record_matches(
        self,
        signal_id: str,
        record: DecisionRecord,
        patterns: PatternMatchResult,
    ) -> int:
        if self._patterns is None or not patterns.matches:
            return 0
        try:
            return await self._patterns.record_matches(
                signal_id, patterns.matches, matched_at=record.decided_at
            )
        except Exception as e:
            logger.error(f"Recording pattern matches failed for {signal_id}: {e}", exc_info=True)
            return 0

    @staticmethod
    def _advance(stages: List[EvaluationStage], stage: EvaluationStage, signal: Signal) -> None:
        stages.append(stage)
        logger.debug(f"Signal {signal.signal_id}: {stage.value}")
