"""
TelegramManager Unit Tests
==========================
The Bot is replaced with an AsyncMock; nothing reaches Telegram.
"""

from unittest.mock import AsyncMock

import pytest
from telegram.error import TelegramError

from kora_reclaim.shared.models import BotStatistics, MonitoringResult, ReclaimBatchSummary, ReclaimResult
from kora_reclaim.shared.notification.telegram_manager import TelegramManager


@pytest.fixture
def bot():
    return AsyncMock()


@pytest.fixture
def telegram(bot):
    return TelegramManager(chat_id="42", bot=bot)


class TestTelegramManager:

    async def test_disabled_without_configuration(self):
        manager = TelegramManager()

        assert not manager.enabled
        assert await manager.send_message("hello") is False

    async def test_sends_html(self, telegram, bot):
        assert await telegram.send_message("<b>hi</b>") is True

        bot.initialize.assert_awaited_once()
        bot.send_message.assert_awaited_once_with(chat_id="42", text="<b>hi</b>", parse_mode="HTML")

    async def test_delivery_failure_is_swallowed(self, telegram, bot):
        bot.send_message.side_effect = TelegramError("Forbidden: bot was blocked by the user")

        assert await telegram.send_message("hi") is False

    async def test_reclaim_summary_lists_failures_escaped(self, telegram, bot, now):
        summary = ReclaimBatchSummary(
            total_reclaimable=0,
            started_at=now,
            completed_at=now,
            dry_run=True,
            results=[ReclaimResult(success=False, account="acct", amount=0, dry_run=True, error="a < b")],
        )

        await telegram.send_reclaim_summary(summary)

        text = bot.send_message.await_args.kwargs["text"]
        assert "DRY RUN" in text
        assert "a &lt; b" in text

    async def test_monitoring_summary(self, telegram, bot):
        await telegram.send_monitoring_summary(
            MonitoringResult(new_accounts=3, closed_accounts=1),
            BotStatistics(total_accounts=10, total_reclaimable_lamports=2_000_000_000),
        )

        text = bot.send_message.await_args.kwargs["text"]
        assert "New accounts: <b>3</b>" in text
        assert "Reclaimable: <b>2.0 SOL</b>" in text

    async def test_close_shuts_down_initialized_bot(self, telegram, bot):
        await telegram.send_message("hi")
        await telegram.close()

        bot.shutdown.assert_awaited_once()
