"""
Scripts - Evaluate Signal.

============================================================
RESPONSIBILITY
============================================================
Runs one signal through the confidence fusion engine against
the configured database and prints the decision record as JSON.

The chat reasoner is used when REASONER_API_KEY is set;
otherwise decisions are rule-based only.

============================================================
USAGE
============================================================
python -m scripts.evaluate_signal --account acct-1 --signal signal.json
python -m scripts.evaluate_signal --account acct-1 --signal signal.json --threshold 0.75
python -m scripts.evaluate_signal --account acct-1 --signal signal.json --deny "insufficient collateral"

============================================================
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from core.exceptions import TradingException
from core.log_setup import setup_logging
from decision_engine import (
    AccountConfig,
    AccountContext,
    ConfidenceFusionEngine,
    DecisionRepository,
    EligibilityResult,
    FusionEngineConfig,
    PerformanceTracker,
    Signal,
    SignalCounterRepository,
)
from learning import PatternMatcher, PatternRepository
from reasoner import ChatCompletionReasoner, NullReasoner, ReasonerConfig
from sentiment import NewsRepository, SentimentContextProvider
from storage.database import (
    DatabaseConfig,
    create_all_tables,
    create_engine_from_config,
    create_session_factory,
    get_database_url,
)


logger = logging.getLogger(__name__)


class StaticEligibility:
    """Eligibility answer fixed on the command line."""

    def __init__(self, deny_reason: Optional[str] = None):
        self._deny_reason = deny_reason

    def can_trade(self) -> EligibilityResult:
        if self._deny_reason:
            return EligibilityResult.deny(self._deny_reason)
        return EligibilityResult.allow()


def create_parser() -> argparse.ArgumentParser:
    defaults = AccountConfig()
    parser = argparse.ArgumentParser(
        prog="evaluate-signal",
        description="Evaluate one signal with the confidence fusion engine",
    )
    parser.add_argument("--account", required=True, help="Account id")
    parser.add_argument("--signal", required=True, metavar="PATH", help="Signal JSON file")

    account_group = parser.add_argument_group("Account Options")
    account_group.add_argument("--threshold", type=float, default=defaults.confidence_threshold)
    account_group.add_argument("--news-weight", type=float, default=defaults.news_weight)
    account_group.add_argument("--backtest-weight", type=float, default=defaults.backtest_weight)
    account_group.add_argument("--learning-weight", type=float, default=defaults.learning_weight)
    account_group.add_argument("--deny", metavar="REASON", help="Simulate an eligibility denial")

    system_group = parser.add_argument_group("System Options")
    system_group.add_argument("--database-url", help="Database URL (default: DATABASE_URL)")
    system_group.add_argument(
        "--no-reasoner",
        action="store_true",
        help="Skip the reasoner even when REASONER_API_KEY is set",
    )
    system_group.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
    )
    system_group.add_argument("--log-format", choices=["json", "text"], default="text")
    return parser


async def async_main(args: argparse.Namespace) -> int:
    try:
        signal = Signal.from_dict(json.loads(Path(args.signal).read_text()))
    except (OSError, ValueError, KeyError) as e:
        logger.error(f"Cannot load signal from {args.signal}: {e}")
        return 1

    account = AccountContext(
        account_id=args.account,
        config=AccountConfig(
            confidence_threshold=args.threshold,
            news_weight=args.news_weight,
            backtest_weight=args.backtest_weight,
            learning_weight=args.learning_weight,
        ),
        eligibility=StaticEligibility(args.deny),
    )

    reasoner_config = ReasonerConfig.from_env()
    if args.no_reasoner or not reasoner_config.is_configured:
        reasoner = NullReasoner()
    else:
        reasoner = ChatCompletionReasoner(reasoner_config)

    db_engine = create_engine_from_config(DatabaseConfig(url=args.database_url or get_database_url()))
    try:
        await create_all_tables(db_engine)
        session_factory = create_session_factory(db_engine)
        decisions = DecisionRepository(session_factory)
        config = FusionEngineConfig.from_env()

        engine = ConfidenceFusionEngine(
            decision_store=decisions,
            sentiment_provider=SentimentContextProvider(NewsRepository(session_factory)),
            performance_tracker=PerformanceTracker(decisions, config.performance_sample_size),
            pattern_store=PatternRepository(session_factory),
            matcher=PatternMatcher(),
            reasoner=reasoner,
            counters=SignalCounterRepository(session_factory),
            config=config,
        )
        result = await engine.evaluate(account, signal)
    finally:
        await reasoner.aclose()
        await db_engine.dispose()

    output = result.record.to_dict()
    output["replayed"] = result.replayed
    output["stages"] = [s.value for s in result.stages]
    print(json.dumps(output, indent=2))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = create_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_format)

    try:
        return asyncio.run(async_main(args))
    except KeyboardInterrupt:
        return 130
    except TradingException as e:
        logger.error(f"Evaluation failed: {e.to_dict()}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
