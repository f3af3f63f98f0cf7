"""
Kora Rent Reclaim CLI
=====================
    kora-reclaim --mode monitor
    kora-reclaim --mode reclaim --dry-run
    kora-reclaim --mode report
    kora-reclaim --mode daemon [--once]
"""

import argparse
import asyncio
import sqlite3
import sys
from typing import List, Optional

from kora_reclaim.bot import MODES, ReclaimBot
from kora_reclaim.shared.config.settings import load_config
from kora_reclaim.shared.errors import ConfigurationError, KeypairError
from kora_reclaim.shared.system.logging import Logger

BANNER = """
╔═══════════════════════════════════════════╗
║        KORA RENT RECLAIM BOT              ║
║   Recover rent from sponsored accounts    ║
╚═══════════════════════════════════════════╝
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kora-reclaim",
        description="Track Kora-sponsored accounts and reclaim their rent once closed",
    )
    parser.add_argument(
        "--mode",
        choices=MODES,
        default="monitor",
        help="monitor: discover + reconcile | reclaim: recover rent | report: statistics | daemon: scheduled",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Simulate reclaims without submitting transactions (overrides DRY_RUN)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Daemon mode: run each due job once and exit",
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Path to a .env file (default: ./.env)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entrypoint."""
    args = build_parser().parse_args(argv)
    print(BANNER)

    try:
        config = load_config(dotenv_path=args.env_file)
        bot = ReclaimBot.create(config)
    except (ConfigurationError, KeypairError) as e:
        Logger.critical(f"[CONFIG] {e}")
        return 1
    except (sqlite3.Error, OSError) as e:
        Logger.critical(f"[DB] Cannot open ledger store: {e}")
        return 1

    if args.dry_run:
        Logger.warning("[RECLAIM] DRY RUN: no transactions will be submitted")

    try:
        return asyncio.run(bot.run(args.mode, dry_run=args.dry_run, once=args.once))
    except KeyboardInterrupt:
        Logger.info("[SYSTEM] Interrupted, shutting down")
        return 130


if __name__ == "__main__":
    sys.exit(main())
