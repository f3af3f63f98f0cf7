"""
Kora Rent Reclaim Bot
=====================
Cycle orchestrator: wires configuration, store, gateway, signer and alerting
together, runs one mode, reports the outcome and always closes the store.

Modes:
- monitor  discovery + reconciliation (read-only)
- reclaim  reclaim engine (honours --dry-run)
- report   statistics from the store only
- daemon   monitor (and reclaim, with AUTO_RECLAIM) on fixed intervals
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional

from rich import box
from rich.console import Console
from rich.table import Table
from solders.keypair import Keypair

from kora_reclaim.modules.monitor.core import AccountMonitor
from kora_reclaim.modules.reclaim.core import ReclaimEngine
from kora_reclaim.shared.config.settings import ReclaimConfig, print_config
from kora_reclaim.shared.errors import RpcError
from kora_reclaim.shared.infrastructure.gateway import LedgerGateway
from kora_reclaim.shared.infrastructure.signer import load_keypair
from kora_reclaim.shared.models import BotStatistics, MonitoringResult, ReclaimBatchSummary
from kora_reclaim.shared.notification.telegram_manager import TelegramManager
from kora_reclaim.shared.system.database.store import LedgerStore
from kora_reclaim.shared.system.events import (
    AuditSink,
    AuditTrail,
    BotEvent,
    BotEventType,
    EventRecorder,
    LoggerEventRecorder,
)
from kora_reclaim.shared.system.logging import Logger
from kora_reclaim.utils.helpers import format_sol, format_timestamp, lamports_to_sol, truncate_middle

MODES = ("monitor", "reclaim", "report", "daemon")


class ReclaimBot:
    """
    Usage:
        bot = ReclaimBot.create(load_config())
        exit_code = await bot.run("monitor")
    """

    def __init__(
        self,
        config: ReclaimConfig,
        store: LedgerStore,
        gateway,
        signer: Keypair,
        telegram: TelegramManager,
        events: EventRecorder,
        audit: AuditSink,
        console: Optional[Console] = None,
        monotonic: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.store = store
        self.gateway = gateway
        self.signer = signer
        self.telegram = telegram
        self.events = events
        self.audit = audit
        self.console = console or Console()
        self._monotonic = monotonic
        self._sleep = sleep

        self.monitor = AccountMonitor(gateway, store, config.fee_payer, events)
        self.reclaimer = ReclaimEngine.from_config(config, gateway, store, signer, events, audit)

    @classmethod
    def create(cls, config: ReclaimConfig) -> "ReclaimBot":
        """
        Build a production bot.

        Raises:
            KeypairError: unparseable operator credential (before the store is opened)
        """
        Logger.configure(config.log_level, config.log_file_path)
        signer = load_keypair(config.operator_credential)
        Logger.info(f"[SYSTEM] Operator: {signer.pubkey()}")

        store = LedgerStore(config.database_path)
        gateway = LedgerGateway.create(
            config.rpc_url,
            calls_per_second=config.rpc_rate_limit,
            retry=config.retry,
            confirm_timeout=config.confirm_timeout_seconds,
        )
        telegram = (
            TelegramManager(config.telegram.bot_token, config.telegram.chat_id)
            if config.telegram else TelegramManager()
        )
        return cls(
            config,
            store,
            gateway,
            signer,
            telegram,
            events=LoggerEventRecorder(),
            audit=AuditTrail(config.audit_log_path),
        )

    # =========================================================================
    # ENTRY POINT
    # =========================================================================

    async def run(self, mode: str, dry_run: bool = False, once: bool = False) -> int:
        """Run one mode. Returns the process exit code."""
        if mode not in MODES:
            Logger.error(f"[SYSTEM] Unknown mode: {mode}")
            await self.close()
            return 1

        try:
            print_config(self.config)
            if mode != "report":
                await self._log_connection()

            if mode == "monitor":
                await self.run_monitor()
            elif mode == "reclaim":
                await self.run_reclaim(dry_run)
            elif mode == "report":
                self.run_report()
            else:
                await self.run_daemon(dry_run, once)
            return 0

        except Exception as e:
            Logger.critical(f"[SYSTEM] {mode} failed: {e}")
            self.events.record(BotEvent(
                type=BotEventType.ERROR,
                message=f"{mode} cycle failed: {e}",
                data={"mode": mode, "error": str(e)},
            ))
            await self.telegram.send_error_alert(mode.capitalize(), str(e))
            return 1

        finally:
            await self.close()

    async def close(self) -> None:
        self.store.close()
        await self.gateway.close()
        await self.telegram.close()

    async def _log_connection(self) -> None:
        try:
            slot = await self.gateway.get_current_slot()
            balance = await self.gateway.get_identity_balance(str(self.signer.pubkey()))
        except RpcError as e:
            Logger.warning(f"[RPC] Could not reach {self.config.cluster}: {e}")
            return
        Logger.info(f"[RPC] {self.config.cluster} at slot {slot}")
        Logger.info(f"[SYSTEM] Operator balance: {format_sol(balance)}")

    # =========================================================================
    # MODES
    # =========================================================================

    async def run_monitor(self) -> MonitoringResult:
        Logger.section("MONITORING CYCLE")
        result = await self.monitor.run_monitoring_cycle()
        stats = self.store.get_statistics()
        self._print_monitoring_summary(result, stats)

        await self.telegram.send_monitoring_summary(result, stats)
        await self._check_threshold(stats)
        return result

    async def run_reclaim(self, dry_run: bool = False) -> ReclaimBatchSummary:
        summary_dry_run = True if dry_run else None
        Logger.section(f"RENT RECLAIM CYCLE{' (DRY RUN)' if dry_run or self.config.dry_run else ''}")
        Logger.info(f"[RECLAIM] Destination: {self.reclaimer.destination}")
        summary = await self.reclaimer.run_reclaim_cycle(dry_run=summary_dry_run)
        self._print_reclaim_summary(summary)

        await self.telegram.send_reclaim_summary(summary)
        return summary

    def run_report(self) -> BotStatistics:
        Logger.section("REPORT")
        stats = self.store.get_statistics()
        ages = self.store.get_age_breakdown()

        table = Table(title="Sponsored Accounts", box=box.SIMPLE)
        table.add_column("Metric")
        table.add_column("Value", justify="right", style="green")
        table.add_row("Total accounts", str(stats.total_accounts))
        table.add_row("Active", str(stats.active_accounts))
        table.add_row("Closed (awaiting reclaim)", str(stats.closed_accounts))
        table.add_row("Reclaimed", str(stats.reclaimed_accounts))
        table.add_row("Protected", str(stats.protected_accounts))
        table.add_row("Errors", str(stats.error_accounts))
        table.add_row("Locked in active accounts", format_sol(stats.total_locked_lamports))
        table.add_row("Reclaimable", format_sol(stats.total_reclaimable_lamports))
        table.add_row("Reclaimed to date", format_sol(stats.total_reclaimed_lamports))
        table.add_row("Last scan", format_timestamp(stats.last_scan_at))
        table.add_row("Last reclaim", format_timestamp(stats.last_reclaim_at))
        self.console.print(table)

        age_table = Table(title="Account Age (not reclaimed)", box=box.SIMPLE)
        age_table.add_column("Age")
        age_table.add_column("Accounts", justify="right")
        age_table.add_row("< 1 day", str(ages.less_than_1_day))
        age_table.add_row("1-7 days", str(ages.one_to_seven_days))
        age_table.add_row("7-30 days", str(ages.seven_to_thirty_days))
        age_table.add_row("> 30 days", str(ages.more_than_30_days))
        self.console.print(age_table)

        attempts = self.store.list_recent_attempts(10)
        if attempts:
            history = Table(title="Recent Reclaim Attempts", box=box.SIMPLE)
            history.add_column("Time")
            history.add_column("Account", style="cyan")
            history.add_column("Amount", justify="right")
            history.add_column("Result")
            for attempt in attempts:
                outcome = "[green]ok[/]" if attempt.success else f"[red]{attempt.error_message or 'failed'}[/]"
                if attempt.dry_run:
                    outcome += " [dim](dry run)[/]"
                history.add_row(
                    format_timestamp(attempt.created_at),
                    truncate_middle(attempt.account_pubkey),
                    format_sol(attempt.amount),
                    outcome,
                )
            self.console.print(history)

        return stats

    async def run_daemon(self, dry_run: bool = False, once: bool = False) -> None:
        """
        Monitor every MONITOR_INTERVAL_MINUTES; reclaim every
        RECLAIM_INTERVAL_MINUTES when AUTO_RECLAIM is on. A failing cycle
        stops the daemon.
        """
        monitor_every = self.config.monitor_interval_minutes * 60
        reclaim_every = self.config.reclaim_interval_minutes * 60
        Logger.info(
            f"[DAEMON] Monitor every {self.config.monitor_interval_minutes} min"
            + (f", reclaim every {self.config.reclaim_interval_minutes} min" if self.config.auto_reclaim else "")
        )

        next_monitor = next_reclaim = self._monotonic()
        while True:
            now = self._monotonic()
            if now >= next_monitor:
                await self.run_monitor()
                next_monitor = now + monitor_every
            if self.config.auto_reclaim and now >= next_reclaim:
                await self.run_reclaim(dry_run)
                next_reclaim = now + reclaim_every
            if once:
                return

            wake_at = min(next_monitor, next_reclaim) if self.config.auto_reclaim else next_monitor
            await self._sleep(max(0.0, wake_at - self._monotonic()))

    # =========================================================================
    # REPORTING
    # =========================================================================

    async def _check_threshold(self, stats: BotStatistics) -> None:
        reclaimable_sol = lamports_to_sol(stats.total_reclaimable_lamports)
        threshold = self.config.alert_threshold_sol
        if stats.total_reclaimable_lamports and reclaimable_sol >= threshold:
            self.events.record(BotEvent(
                type=BotEventType.ALERT_THRESHOLD_EXCEEDED,
                message=f"Reclaimable rent {reclaimable_sol} SOL exceeds threshold {threshold} SOL",
                source="MONITOR",
                data={"reclaimable_sol": reclaimable_sol, "threshold_sol": threshold},
            ))
            await self.telegram.send_threshold_alert(reclaimable_sol, threshold)

    def _print_monitoring_summary(self, result: MonitoringResult, stats: BotStatistics) -> None:
        table = Table(title="📊 Monitoring Summary", box=box.SIMPLE)
        table.add_column("Metric")
        table.add_column("Value", justify="right", style="green")
        table.add_row("New accounts discovered", str(result.new_accounts))
        table.add_row("Accounts found closed", str(result.closed_accounts))
        table.add_row("Errors during check", str(result.error_accounts))
        table.add_row("Total accounts tracked", str(stats.total_accounts))
        table.add_row("Active accounts", str(stats.active_accounts))
        table.add_row("Closed (awaiting reclaim)", str(stats.closed_accounts))
        table.add_row("Already reclaimed", str(stats.reclaimed_accounts))
        table.add_row("Total locked", format_sol(stats.total_locked_lamports))
        table.add_row("Total reclaimable", format_sol(stats.total_reclaimable_lamports))
        table.add_row("Total reclaimed", format_sol(stats.total_reclaimed_lamports))
        self.console.print(table)

    def _print_reclaim_summary(self, summary: ReclaimBatchSummary) -> None:
        title = "💰 Reclaim Summary" + (" (dry run)" if summary.dry_run else "")
        table = Table(title=title, box=box.SIMPLE)
        table.add_column("Metric")
        table.add_column("Value", justify="right", style="green")
        table.add_row("Accounts processed", str(summary.total_processed))
        table.add_row("Successful reclaims", str(summary.success_count))
        table.add_row("Failed reclaims", str(summary.failed_count))
        table.add_row("Skipped by safety checks", str(summary.skipped_count))
        table.add_row("Total reclaimed", format_sol(summary.total_reclaimed))
        table.add_row("Total reclaimable", format_sol(summary.total_reclaimable))
        table.add_row("Duration", f"{summary.duration_ms / 1000:.1f}s")
        self.console.print(table)
