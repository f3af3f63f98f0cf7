"""
Telegram Alerts
===============
Outbound-only notifications: cycle summaries, threshold alerts and error
alerts. Delivery failures are logged and swallowed so alerting can never fail
a monitoring or reclaim cycle.
"""

from datetime import datetime
from html import escape
from typing import Optional

from telegram import Bot
from telegram.error import TelegramError

from kora_reclaim.shared.models import BotStatistics, MonitoringResult, ReclaimBatchSummary
from kora_reclaim.shared.system.logging import Logger
from kora_reclaim.utils.helpers import format_timestamp, lamports_to_sol, truncate_middle


class TelegramManager:
    """
    Usage:
        telegram = TelegramManager(token, chat_id)
        await telegram.send_reclaim_summary(summary)
        await telegram.close()
    """

    def __init__(self, token: Optional[str] = None, chat_id: Optional[str] = None, bot: Optional[Bot] = None):
        self.chat_id = chat_id
        self.enabled = bool((token or bot) and chat_id)
        self._bot = bot or (Bot(token) if self.enabled else None)
        self._initialized = False

        if not self.enabled:
            Logger.debug("[TG] Telegram notifications disabled (not configured)")

    async def _ensure_bot(self) -> Bot:
        if not self._initialized:
            await self._bot.initialize()
            self._initialized = True
        return self._bot

    async def send_message(self, message: str) -> bool:
        if not self.enabled:
            return False
        try:
            bot = await self._ensure_bot()
            await bot.send_message(chat_id=self.chat_id, text=message, parse_mode="HTML")
            return True
        except TelegramError as e:
            Logger.warning(f"[TG] Send Error: {e}")
            return False

    async def send_monitoring_summary(self, result: MonitoringResult, stats: BotStatistics) -> bool:
        lines = [
            "🔍 <b>Monitoring Cycle Complete</b>",
            "",
            f"New accounts: <b>{result.new_accounts}</b>",
            f"Newly closed: <b>{result.closed_accounts}</b>",
            f"Errors: <b>{result.error_accounts}</b>",
            f"Checked: {result.total_checked}",
            "",
            f"Tracked: {stats.total_accounts} (active {stats.active_accounts}, closed {stats.closed_accounts})",
            f"Reclaimable: <b>{lamports_to_sol(stats.total_reclaimable_lamports)} SOL</b>",
            f"Reclaimed to date: {lamports_to_sol(stats.total_reclaimed_lamports)} SOL",
        ]
        return await self.send_message("\n".join(lines))

    async def send_reclaim_summary(self, summary: ReclaimBatchSummary) -> bool:
        mode = "🧪 DRY RUN" if summary.dry_run else "💰 LIVE"
        lines = [
            f"{mode} <b>Reclaim Cycle Complete</b>",
            "",
            f"Processed: {summary.total_processed}",
            f"Succeeded: <b>{summary.success_count}</b>",
            f"Failed: {summary.failed_count} (skipped {summary.skipped_count})",
            f"Reclaimed: <b>{lamports_to_sol(summary.total_reclaimed)} SOL</b>",
            f"Reclaimable: {lamports_to_sol(summary.total_reclaimable)} SOL",
            f"Duration: {summary.duration_ms / 1000:.1f}s",
        ]
        failures = [r for r in summary.results if not r.success][:5]
        if failures:
            lines.append("")
            lines.extend(
                f"• <code>{truncate_middle(r.account)}</code>: {escape(r.error or 'unknown')}" for r in failures
            )
        return await self.send_message("\n".join(lines))

    async def send_threshold_alert(self, reclaimable_sol: float, threshold_sol: float) -> bool:
        return await self.send_message(
            "⚠️ <b>Reclaimable Rent Threshold Exceeded</b>\n\n"
            f"Reclaimable: <b>{reclaimable_sol} SOL</b>\n"
            f"Threshold: {threshold_sol} SOL\n\n"
            "Run <code>--mode reclaim</code> to recover it."
        )

    async def send_error_alert(self, operation: str, error: str, at: Optional[datetime] = None) -> bool:
        when = f"\nAt: {format_timestamp(at)}" if at else ""
        return await self.send_message(
            f"🛑 <b>{escape(operation)} failed</b>\n\n<code>{escape(error)}</code>{when}"
        )

    async def close(self) -> None:
        if self._initialized:
            try:
                await self._bot.shutdown()
            except TelegramError as e:
                Logger.debug(f"[TG] Shutdown Error: {e}")
            self._initialized = False
