"""
Tests for the Confidence Fusion Engine.

============================================================
PURPOSE
============================================================
Covers:
1. The 82% threshold scenario
2. Eligibility short-circuit
3. Reasoner refinement, fallback and timeouts
4. Context degradation
5. Clamping and threshold properties
6. Idempotent persistence and failure isolation
7. End-to-end over the sqlite stores

============================================================
"""

import asyncio
from datetime import timedelta
from typing import Dict, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.exceptions import ErrorClassification, PersistenceFailure
from decision_engine import (
    AccountConfig,
    AccountContext,
    BalanceSnapshot,
    ConfidenceBreakdown,
    ConfidenceFusionEngine,
    DecisionOutcome,
    DecisionRecord,
    DecisionRepository,
    EligibilityResult,
    EvaluationStage,
    FusionEngineConfig,
    PerformanceContext,
    PerformanceTracker,
    Signal,
    SignalCounterRepository,
    TradeDirection,
    TradeOutcome,
)
from learning import (
    LearningConfig,
    Pattern,
    PatternClass,
    PatternConditions,
    PatternMatcher,
    PatternRepository,
    PatternType,
    TradeResult,
)
from reasoner import Reasoner, ReasonerAdjustments, Refined, parse_reasoner_response
from sentiment import (
    ImpactLevel,
    NewsItem,
    NewsRepository,
    SentimentContextProvider,
    SentimentLabel,
    SentimentSummary,
)
from storage.repositories.exceptions import ConnectionError as RepoConnectionError
from storage.repositories.exceptions import DuplicateRecordError, QueryError


# ============================================================
# FAKES
# ============================================================

class InMemoryDecisionStore:
    """Decision store with the repository's uniqueness semantics."""

    def __init__(self):
        self.records: Dict[str, DecisionRecord] = {}
        self.save_calls = 0

    async def save(self, record):
        self.save_calls += 1
        if record.signal_id in self.records:
            raise DuplicateRecordError("InMemoryDecisionStore", "signal_id", record.signal_id)
        self.records[record.signal_id] = record
        return record

    async def get_by_signal_id(self, signal_id) -> Optional[DecisionRecord]:
        return self.records.get(signal_id)


class StaticEligibility:
    def __init__(self, result: EligibilityResult):
        self.result = result

    def can_trade(self):
        return self.result


class ExplodingEligibility:
    def can_trade(self):
        raise RuntimeError("exchange balance endpoint down")


class ScriptedReasoner(Reasoner):
    name = "scripted"

    def __init__(self, result=None, delay: float = 0.0, error: Optional[Exception] = None):
        self.result = result
        self.delay = delay
        self.error = error
        self.requests = []

    async def evaluate(self, request):
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.result


def sentiment_summary(value: float) -> SentimentSummary:
    return SentimentSummary(
        overall_sentiment=value,
        label=SentimentLabel.NEUTRAL,
        confidence=0.6,
        total_count=4,
        headlines=["ETF inflows hit a record"],
        symbol="BTCUSDT",
    )


def performance(score: float) -> PerformanceContext:
    win_rate = score / 2 + 0.5
    return PerformanceContext(
        win_rate=win_rate,
        performance_score=score,
        avg_profit=20.0,
        avg_loss=-10.0,
        recent_trades=20,
        wins=round(win_rate * 20),
    )


def win_pattern(**conditions) -> Pattern:
    return Pattern(
        account_id="acct-1",
        pattern_type=PatternType.WIN,
        pattern_class=PatternClass.PREFERRED_DIRECTION,
        description="BTCUSDT: LONG trades with TAKE_PROFIT exit - proven winner",
        conditions=PatternConditions(**conditions),
        occurrences=20,
        success_count=20,
        confidence=1.0,
        strength=100,
    )


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def signal(now):
    return Signal(
        signal_id="sig-001",
        symbol="BTCUSDT",
        direction=TradeDirection.LONG,
        technical_confidence=0.78,
        entry_price=50000.0,
        stop_loss=49000.0,
        take_profit=52000.0,
        indicators={"rsi": 55.0, "macd": 12.5},
        timestamp=now,
    )


@pytest.fixture
def account():
    return AccountContext(
        account_id="acct-1",
        config=AccountConfig(),
        eligibility=StaticEligibility(EligibilityResult.allow()),
        balance_snapshot=BalanceSnapshot(exchange_balance=1000.0, gas_fee_balance=5.0),
    )


@pytest.fixture
def store():
    return InMemoryDecisionStore()


@pytest.fixture
def sentiment_provider():
    provider = MagicMock()
    # 0.2 * news weight 0.10 = +0.02
    provider.get_summary = AsyncMock(return_value=sentiment_summary(0.2))
    return provider


@pytest.fixture
def performance_tracker():
    tracker = MagicMock()
    # 0.2 * backtest weight 0.05 = +0.01
    tracker.get_context = AsyncMock(return_value=performance(0.2))
    return tracker


@pytest.fixture
def pattern_store():
    patterns = MagicMock()
    patterns.get_active_patterns = AsyncMock(return_value=[win_pattern(trend="up", symbol="BTCUSDT")])
    patterns.record_matches = AsyncMock(return_value=1)
    return patterns


@pytest.fixture
def matcher():
    # One full-strength win pattern contributes +0.01
    return PatternMatcher(LearningConfig(win_coefficient=0.01))


@pytest.fixture
def counters():
    sink = MagicMock()
    sink.signal_received = AsyncMock()
    sink.signal_executed = AsyncMock()
    sink.signal_rejected = AsyncMock()
    return sink


@pytest.fixture
def make_engine(store, sentiment_provider, performance_tracker, pattern_store, matcher, counters, clock):
    def _make(**overrides):
        kwargs = dict(
            decision_store=store,
            sentiment_provider=sentiment_provider,
            performance_tracker=performance_tracker,
            pattern_store=pattern_store,
            matcher=matcher,
            counters=counters,
            clock=clock,
        )
        kwargs.update(overrides)
        return ConfidenceFusionEngine(**kwargs)
    return _make


# ============================================================
# THRESHOLD SCENARIO TESTS
# ============================================================

class TestThresholdScenario:
    """technical 0.78 + news 0.02 + backtest 0.01 + learning 0.01 = 0.82."""

    @pytest.mark.asyncio
    async def test_executes_at_threshold(self, make_engine, account, signal, store, counters, pattern_store):
        result = await make_engine().evaluate(account, signal)
        record = result.record

        assert record.decision == DecisionOutcome.EXECUTE
        assert record.final_confidence == 0.82
        assert record.breakdown.news == pytest.approx(0.02)
        assert record.breakdown.backtest == pytest.approx(0.01)
        assert record.breakdown.learning == pytest.approx(0.01)
        assert record.reasoner_cost == 0.0
        assert not record.eligibility_blocked
        assert store.records["sig-001"] is record
        counters.signal_received.assert_awaited_once_with("acct-1")
        counters.signal_executed.assert_awaited_once_with("acct-1")
        counters.signal_rejected.assert_not_awaited()
        pattern_store.record_matches.assert_awaited_once()
        assert result.counters_updated is True
        assert result.patterns_recorded == 1

    @pytest.mark.asyncio
    async def test_walks_every_stage(self, make_engine, account, signal):
        result = await make_engine().evaluate(account, signal)

        assert result.stages == (
            EvaluationStage.RECEIVED,
            EvaluationStage.ELIGIBILITY_CHECKED,
            EvaluationStage.CONTEXT_GATHERED,
            EvaluationStage.REASONER_CONSULTED,
            EvaluationStage.FUSED,
            EvaluationStage.DECIDED,
            EvaluationStage.PERSISTED,
            EvaluationStage.COUNTERS_UPDATED,
        )

    @pytest.mark.asyncio
    async def test_reasoning_trail(self, make_engine, account, signal):
        record = (await make_engine().evaluate(account, signal)).record

        assert record.reasoning_text == (
            "Technical analysis: 78.0% | News sentiment: +2.0% | Recent performance: +1.0% | "
            "Pattern learning: +1.0% | Final confidence: 82.0% | "
            "EXECUTE - confidence at or above threshold (82%)"
        )
        assert record.reason == "EXECUTE - confidence at or above threshold (82%)"

    @pytest.mark.asyncio
    async def test_contexts_snapshotted(self, make_engine, account, signal):
        record = (await make_engine().evaluate(account, signal)).record

        assert record.news_context["overall_sentiment"] == 0.2
        assert record.backtest_context["performance_score"] == 0.2
        assert record.learning_context["matched_patterns"] == 1
        assert record.signal_snapshot["signal_id"] == "sig-001"
        assert record.balance_snapshot["gas_fee_balance"] == 5.0

    @pytest.mark.asyncio
    async def test_just_below_threshold_skips(self, make_engine, account, signal, sentiment_provider, counters):
        sentiment_provider.get_summary.return_value = sentiment_summary(0.1)

        record = (await make_engine().evaluate(account, signal)).record

        assert record.final_confidence == pytest.approx(0.81)
        assert record.decision == DecisionOutcome.SKIP
        assert record.reason == "SKIP - confidence below threshold (82%)"
        counters.signal_rejected.assert_awaited_once_with("acct-1")


# ============================================================
# ELIGIBILITY TESTS
# ============================================================

class TestEligibility:
    """A denial is a deterministic SKIP, not an error."""

    @pytest.mark.asyncio
    async def test_denied_skips_with_reason_and_no_cost(
        self, make_engine, account, signal, store, sentiment_provider, counters
    ):
        reasoner = ScriptedReasoner(Refined(cost=0.5))
        denied = AccountContext(
            account_id=account.account_id,
            config=account.config,
            eligibility=StaticEligibility(EligibilityResult.deny("insufficient collateral")),
        )

        result = await make_engine(reasoner=reasoner).evaluate(denied, signal)
        record = result.record

        assert record.decision == DecisionOutcome.SKIP
        assert record.reason == "insufficient collateral"
        assert record.reasoner_cost == 0.0
        assert record.eligibility_blocked is True
        assert record.final_confidence == 0.78
        assert "Trading blocked: insufficient collateral" in record.reasoning_text
        assert store.records["sig-001"] is record
        assert reasoner.requests == []
        sentiment_provider.get_summary.assert_not_awaited()
        counters.signal_rejected.assert_awaited_once_with("acct-1")
        assert EvaluationStage.CONTEXT_GATHERED not in result.stages

    @pytest.mark.asyncio
    async def test_checker_exception_is_denial(self, make_engine, account, signal):
        broken = AccountContext("acct-1", account.config, eligibility=ExplodingEligibility())

        record = (await make_engine().evaluate(broken, signal)).record

        assert record.decision == DecisionOutcome.SKIP
        assert record.reason.startswith("Eligibility check failed")

    @pytest.mark.asyncio
    async def test_async_checker(self, make_engine, account, signal):
        checker = MagicMock()
        checker.can_trade = AsyncMock(return_value=EligibilityResult.allow())
        context = AccountContext("acct-1", account.config, eligibility=checker)

        record = (await make_engine().evaluate(context, signal)).record

        assert record.decision == DecisionOutcome.EXECUTE

    @pytest.mark.asyncio
    async def test_denial_without_reason(self, make_engine, account, signal):
        context = AccountContext("acct-1", account.config, eligibility=StaticEligibility(EligibilityResult(False)))

        record = (await make_engine().evaluate(context, signal)).record

        assert record.reason == "Trading not allowed"


# ============================================================
# REASONER TESTS
# ============================================================

class TestReasoner:
    """Refinement, and fallback to rule-based values."""

    @pytest.mark.asyncio
    async def test_unparsable_output_keeps_rule_based_decision(self, make_engine, account, signal):
        rule_based = (await make_engine(config=FusionEngineConfig(consult_reasoner=False)).evaluate(
            account, signal
        )).record

        malformed = parse_reasoner_response("I think you should buy!!!", provider="scripted", cost=0.0003)
        refined_engine = make_engine(decision_store=InMemoryDecisionStore(), reasoner=ScriptedReasoner(malformed))
        record = (await refined_engine.evaluate(account, signal)).record

        assert record.decision == rule_based.decision
        assert record.breakdown == rule_based.breakdown
        assert record.reasoner_status == "malformed"
        assert record.reasoner_cost == 0.0003
        assert rule_based.reasoner_status == "not_consulted"

    @pytest.mark.asyncio
    async def test_refined_overrides_are_clamped(self, make_engine, account, signal):
        refined = Refined(
            provider="scripted",
            model="m1",
            cost=0.001,
            adjustments=ReasonerAdjustments(news=0.5, backtest=-0.01),
            reasoning="Strong ETF inflows",
        )

        record = (await make_engine(reasoner=ScriptedReasoner(refined)).evaluate(account, signal)).record

        assert record.breakdown.news == 0.10
        assert record.breakdown.backtest == -0.01
        assert record.breakdown.learning == pytest.approx(0.01)
        assert record.final_confidence == pytest.approx(0.88)
        assert record.reasoner_status == "refined"
        assert record.reasoner_model == "m1"
        assert "News sentiment: +10.0% (reasoner)" in record.reasoning_text
        assert record.reasoning[-1].text == "Reasoner: Strong ETF inflows"
        assert record.reason.startswith("EXECUTE")

    @pytest.mark.asyncio
    async def test_request_carries_context(self, make_engine, account, signal):
        reasoner = ScriptedReasoner(Refined(reasoning="ok"))

        await make_engine(reasoner=reasoner).evaluate(account, signal)

        request = reasoner.requests[0]
        assert request.sentiment == 0.2
        assert request.recent_win_rate == pytest.approx(0.6)
        assert request.rule_based.news == pytest.approx(0.02)
        assert request.learning_cap == 0.03
        assert request.headlines == ["ETF inflows hit a record"]

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self, make_engine, account, signal):
        reasoner = ScriptedReasoner(Refined(adjustments=ReasonerAdjustments(news=-0.1)), delay=1.0)
        engine = make_engine(reasoner=reasoner, config=FusionEngineConfig(reasoner_timeout_seconds=0.05))

        record = (await engine.evaluate(account, signal)).record

        assert record.reasoner_status == "unavailable"
        assert record.decision == DecisionOutcome.EXECUTE
        assert record.breakdown.news == pytest.approx(0.02)

    @pytest.mark.asyncio
    async def test_exception_falls_back(self, make_engine, account, signal):
        reasoner = ScriptedReasoner(error=RuntimeError("boom"))

        record = (await make_engine(reasoner=reasoner).evaluate(account, signal)).record

        assert record.reasoner_status == "unavailable"
        assert record.decision == DecisionOutcome.EXECUTE


# ============================================================
# CONTEXT DEGRADATION TESTS
# ============================================================

class TestContextDegradation:
    """A failed source contributes zero; the rest still count."""

    @pytest.mark.asyncio
    async def test_slow_sentiment_degrades_to_zero(self, make_engine, account, signal, sentiment_provider):
        async def slow(symbol):
            await asyncio.sleep(1.0)
            return sentiment_summary(1.0)

        sentiment_provider.get_summary = AsyncMock(side_effect=slow)
        engine = make_engine(config=FusionEngineConfig(context_timeout_seconds=0.05))

        record = (await engine.evaluate(account, signal)).record

        assert record.breakdown.news == 0.0
        assert record.breakdown.backtest == pytest.approx(0.01)
        assert record.final_confidence == pytest.approx(0.80)
        assert record.decision == DecisionOutcome.SKIP
        assert "Sentiment context unavailable: timed out" in record.reasoning_text
        assert record.news_context == {}

    @pytest.mark.asyncio
    async def test_failing_sources_degrade(self, make_engine, account, signal, performance_tracker, pattern_store):
        performance_tracker.get_context = AsyncMock(side_effect=RuntimeError("db gone"))
        pattern_store.get_active_patterns = AsyncMock(side_effect=ConnectionResetError())

        result = await make_engine().evaluate(account, signal)
        record = result.record

        assert record.breakdown.backtest == 0.0
        assert record.breakdown.learning == 0.0
        assert "Performance context unavailable: db gone" in record.reasoning_text
        assert "Patterns context unavailable: ConnectionResetError" in record.reasoning_text
        assert result.patterns_recorded == 0

    @pytest.mark.asyncio
    async def test_no_history_is_neutral(self, make_engine, account, signal, performance_tracker, sentiment_provider):
        performance_tracker.get_context = AsyncMock(return_value=None)
        sentiment_provider.get_summary = AsyncMock(return_value=SentimentSummary.neutral("BTCUSDT"))

        record = (await make_engine().evaluate(account, signal)).record

        assert record.breakdown.news == 0.0
        assert record.breakdown.backtest == 0.0
        assert "News sentiment" not in record.reasoning_text
        assert "unavailable" not in record.reasoning_text

    @pytest.mark.asyncio
    async def test_sequential_gathering(self, make_engine, account, signal):
        engine = make_engine(config=FusionEngineConfig(parallel_context=False))

        record = (await engine.evaluate(account, signal)).record

        assert record.final_confidence == 0.82

    @pytest.mark.asyncio
    async def test_missing_collaborators(self, store, account, signal):
        engine = ConfidenceFusionEngine(decision_store=store)

        result = await engine.evaluate(account, signal)

        assert result.record.final_confidence == 0.78
        assert result.counters_updated is False


# ============================================================
# FUSION PROPERTY TESTS
# ============================================================

class TestFusionProperties:
    """Bounds and the threshold rule."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("technical,sentiment,score", [
        (0.99, 1.0, 1.0),
        (0.02, -1.0, -1.0),
        (0.50, 0.3, -0.4),
        (0.80, 0.0, 0.6),
        (0.84, -0.5, 0.0),
    ])
    async def test_confidence_bounded_and_threshold_consistent(
        self, make_engine, sentiment_provider, performance_tracker, now, technical, sentiment, score
    ):
        sentiment_provider.get_summary.return_value = sentiment_summary(sentiment)
        performance_tracker.get_context.return_value = performance(score)
        account = AccountContext(
            "acct-1",
            AccountConfig(news_weight=0.5, backtest_weight=0.5),
            eligibility=StaticEligibility(EligibilityResult.allow()),
        )
        signal = Signal("sig-prop", "BTCUSDT", TradeDirection.SHORT, technical, 1.0, 0.9, 1.1, timestamp=now)

        record = (await make_engine().evaluate(account, signal)).record

        assert 0.0 <= record.final_confidence <= 1.0
        assert (record.decision == DecisionOutcome.EXECUTE) == (record.final_confidence >= record.threshold)

    @pytest.mark.asyncio
    async def test_learning_term_never_exceeds_its_weight(self, make_engine, account, signal, pattern_store):
        pattern_store.get_active_patterns.return_value = [win_pattern() for _ in range(50)]

        record = (await make_engine(matcher=PatternMatcher()).evaluate(account, signal)).record

        assert record.breakdown.learning == pytest.approx(0.03)


# ============================================================
# PERSISTENCE TESTS
# ============================================================

class TestPersistence:
    """Idempotence and failure isolation."""

    @pytest.mark.asyncio
    async def test_same_signal_twice_yields_one_record(self, make_engine, account, signal, store, counters):
        engine = make_engine()

        first = await engine.evaluate(account, signal)
        second = await engine.evaluate(account, signal)

        assert len(store.records) == 1
        assert store.save_calls == 1
        assert second.replayed is True
        assert second.record is first.record
        counters.signal_received.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_replays_stored_record(self, make_engine, account, signal, store):
        earlier = (await make_engine(decision_store=InMemoryDecisionStore()).evaluate(account, signal)).record
        racing = InMemoryDecisionStore()
        racing.get_by_signal_id = AsyncMock(side_effect=[None, earlier])
        racing.records["sig-001"] = earlier

        result = await make_engine(decision_store=racing).evaluate(account, signal)

        assert result.replayed is True
        assert result.record is earlier
        assert result.counters_updated is False

    @pytest.mark.asyncio
    async def test_store_failure_raises_persistence_failure(self, make_engine, account, signal, counters):
        failing = InMemoryDecisionStore()
        failing.save = AsyncMock(side_effect=QueryError("DecisionRepository", "save", "disk full"))

        with pytest.raises(PersistenceFailure) as exc_info:
            await make_engine(decision_store=failing).evaluate(account, signal)

        assert exc_info.value.signal_id == "sig-001"
        assert exc_info.value.classification == ErrorClassification.RECOVERABLE
        assert exc_info.value.context["repository"]["operation"] == "save"
        counters.signal_received.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unreachable_store_is_transient(self, make_engine, account, signal):
        failing = InMemoryDecisionStore()
        failing.save = AsyncMock(side_effect=RepoConnectionError("DecisionRepository", "save", "refused"))

        with pytest.raises(PersistenceFailure) as exc_info:
            await make_engine(decision_store=failing).evaluate(account, signal)

        assert exc_info.value.classification == ErrorClassification.TRANSIENT
        assert exc_info.value.is_recoverable

    @pytest.mark.asyncio
    async def test_counter_failure_keeps_record(self, make_engine, account, signal, store, counters):
        counters.signal_received = AsyncMock(side_effect=RuntimeError("counter table locked"))

        result = await make_engine().evaluate(account, signal)

        assert result.counters_updated is False
        assert store.records["sig-001"] is result.record
        assert EvaluationStage.COUNTERS_UPDATED not in result.stages

    @pytest.mark.asyncio
    async def test_match_recording_failure_keeps_record(self, make_engine, account, signal, store, pattern_store):
        pattern_store.record_matches = AsyncMock(side_effect=RuntimeError("deadlock"))

        result = await make_engine().evaluate(account, signal)

        assert result.patterns_recorded == 0
        assert store.records["sig-001"] is result.record

    @pytest.mark.asyncio
    async def test_failure_isolated_per_signal(self, make_engine, account, signal, now):
        class FlakyStore(InMemoryDecisionStore):
            async def save(self, record):
                if record.signal_id == "sig-bad":
                    raise QueryError("DecisionRepository", "save", "constraint")
                return await super().save(record)

        store = FlakyStore()
        engine = make_engine(decision_store=store)
        bad = Signal("sig-bad", "BTCUSDT", TradeDirection.LONG, 0.78, 1.0, 0.9, 1.1, timestamp=now)

        results = await asyncio.gather(
            engine.evaluate(account, signal),
            engine.evaluate(account, bad),
            return_exceptions=True,
        )

        assert results[0].record.decision == DecisionOutcome.EXECUTE
        assert isinstance(results[1], PersistenceFailure)
        assert set(store.records) == {"sig-001"}


# ============================================================
# END-TO-END TESTS
# ============================================================

class TestEndToEnd:
    """The engine over the real sqlite stores."""

    @pytest.mark.asyncio
    async def test_full_pipeline(self, session_factory, clock, now):
        decisions = DecisionRepository(session_factory)
        news = NewsRepository(session_factory)
        patterns = PatternRepository(session_factory)
        counters = SignalCounterRepository(session_factory, clock=clock)

        await news.save_items([
            NewsItem("n1", now - timedelta(hours=1), 0.2, ImpactLevel.MEDIUM, symbols=("BTCUSDT",)),
        ])
        await patterns.sync_patterns("acct-1", [win_pattern(trend="up", symbol="BTCUSDT")])

        # 14 of 20 earlier trades won: score 0.4, backtest +0.02
        for i in range(20):
            earlier = Signal(f"hist-{i}", "BTCUSDT", TradeDirection.LONG, 0.9, 1.0, 0.9, 1.1, timestamp=now)
            record = DecisionRecord(
                signal_id=earlier.signal_id,
                account_id="acct-1",
                symbol="BTCUSDT",
                direction=TradeDirection.LONG,
                breakdown=ConfidenceBreakdown(technical=0.9, total=0.9),
                threshold=0.82,
                decision=DecisionOutcome.EXECUTE,
                reason="historic",
                decided_at=now - timedelta(days=1, minutes=i),
            )
            await decisions.save(record)
            await decisions.record_outcome(earlier.signal_id, TradeOutcome(
                result=TradeResult.WIN if i < 14 else TradeResult.LOSS,
                profit=10.0 if i < 14 else -5.0,
                closed_at=now - timedelta(hours=20),
            ))

        engine = ConfidenceFusionEngine(
            decision_store=decisions,
            sentiment_provider=SentimentContextProvider(news, clock=clock),
            performance_tracker=PerformanceTracker(decisions, sample_size=20),
            pattern_store=patterns,
            matcher=PatternMatcher(LearningConfig(win_coefficient=0.01)),
            counters=counters,
            clock=clock,
        )
        account = AccountContext("acct-1", AccountConfig(), StaticEligibility(EligibilityResult.allow()))
        signal = Signal("sig-e2e", "BTCUSDT", TradeDirection.LONG, 0.76, 50000.0, 49000.0, 52000.0, timestamp=now)

        result = await engine.evaluate(account, signal)
        replay = await engine.evaluate(account, signal)

        # 0.76 + 0.02 (news) + 0.02 (performance) + 0.01 (learning)
        assert result.record.final_confidence == pytest.approx(0.81)
        assert result.record.decision == DecisionOutcome.SKIP
        assert replay.replayed is True
        assert await decisions.count_for_signal("sig-e2e") == 1
        assert await counters.get_counters("acct-1") == {
            "signals_received": 1,
            "signals_executed": 0,
            "signals_rejected": 1,
        }
        stored = await decisions.get_by_signal_id("sig-e2e")
        assert stored.reasoning_text == result.record.reasoning_text
        synced = await patterns.get_active_patterns("acct-1")
        assert synced[0].times_matched == 1
