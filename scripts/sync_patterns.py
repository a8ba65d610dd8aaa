"""
Scripts - Sync Learning Patterns.

============================================================
RESPONSIBILITY
============================================================
Imports a backtest-learning export, synthesizes win and loss
patterns from it and stores them for an account.

============================================================
USAGE
============================================================
python -m scripts.sync_patterns --account acct-1 --input backtest.json
python -m scripts.sync_patterns --account acct-1 --input backtest.json --symbol ETHUSDT --overwrite

============================================================
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from core.log_setup import setup_logging
from learning import BacktestAggregate, PatternRepository, PatternSynthesizer
from storage.database import (
    DatabaseConfig,
    create_all_tables,
    create_engine_from_config,
    create_session_factory,
    get_database_url,
)


logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sync-patterns",
        description="Synthesize learning patterns from a backtest export",
    )
    parser.add_argument("--account", required=True, help="Account id the patterns belong to")
    parser.add_argument("--input", required=True, metavar="PATH", help="Backtest-learning JSON export")
    parser.add_argument("--symbol", help="Symbol override (default: from export, else BTCUSDT)")
    parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Merge into existing patterns instead of skipping them",
    )
    parser.add_argument("--database-url", help="Database URL (default: DATABASE_URL)")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
    )
    parser.add_argument("--log-format", choices=["json", "text"], default="text")
    return parser


async def async_main(args: argparse.Namespace) -> int:
    try:
        data = json.loads(Path(args.input).read_text())
    except (OSError, ValueError) as e:
        logger.error(f"Cannot read {args.input}: {e}")
        return 1

    aggregate = BacktestAggregate.from_dict(data, symbol=args.symbol)
    synthesizer = PatternSynthesizer()
    patterns = synthesizer.synthesize(aggregate, args.account)

    engine = create_engine_from_config(DatabaseConfig(url=args.database_url or get_database_url()))
    try:
        await create_all_tables(engine)
        repository = PatternRepository(create_session_factory(engine))
        report = await repository.sync_patterns(args.account, patterns, overwrite=args.overwrite)
    finally:
        await engine.dispose()

    print(json.dumps(report.to_dict()))
    for insight in synthesizer.sync_insights(patterns, aggregate):
        print(f"  - {insight}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = create_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_format)

    try:
        return asyncio.run(async_main(args))
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        logger.error(f"Pattern sync failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
