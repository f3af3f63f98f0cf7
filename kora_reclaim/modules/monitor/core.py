"""
Account Monitor
===============
One monitoring cycle = discovery, then reconciliation, then a scan-history
row. Read-only with respect to the ledger: nothing is submitted.
"""

from datetime import datetime
from typing import Callable

from kora_reclaim.modules.monitor.discovery import AccountDiscovery, RentExemptCache
from kora_reclaim.modules.monitor.reconciler import AccountReconciler
from kora_reclaim.shared.models import MonitoringResult, utc_now
from kora_reclaim.shared.system.events import BotEvent, BotEventType, EventRecorder


class AccountMonitor:
    """
    Usage:
        monitor = AccountMonitor(gateway, store, fee_payer, events)
        result = await monitor.run_monitoring_cycle()
    """

    def __init__(
        self,
        gateway,
        store,
        fee_payer: str,
        events: EventRecorder,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.events = events
        self.clock = clock
        rent = RentExemptCache(gateway)
        self.discovery = AccountDiscovery(gateway, store, fee_payer, events, rent_cache=rent, clock=clock)
        self.reconciler = AccountReconciler(gateway, store, events, rent_cache=rent, clock=clock)

    async def run_monitoring_cycle(self) -> MonitoringResult:
        self.events.record(BotEvent(
            type=BotEventType.SCAN_STARTED,
            message="Monitoring cycle started",
            source="MONITOR",
        ))

        # Phase 1: new sponsored accounts
        discovered = await self.discovery.discover_new_accounts()

        # Phase 2: status of tracked accounts
        reconciled = await self.reconciler.reconcile()

        result = MonitoringResult(
            new_accounts=discovered.new_accounts,
            closed_accounts=reconciled.closed,
            error_accounts=discovered.error_accounts + reconciled.errors,
            total_checked=reconciled.checked,
        )
        self.store.record_scan(result, scanned_at=self.clock())

        self.events.record(BotEvent(
            type=BotEventType.SCAN_COMPLETED,
            message=(
                f"Monitoring cycle completed: {result.new_accounts} new, {result.closed_accounts} closed, "
                f"{result.error_accounts} errors, {result.total_checked} checked"
            ),
            source="MONITOR",
            data={
                "new_accounts": result.new_accounts,
                "closed_accounts": result.closed_accounts,
                "error_accounts": result.error_accounts,
                "total_scanned": result.total_scanned,
                "operations_scanned": discovered.operations_scanned,
                "recovered_accounts": reconciled.recovered,
            },
        ))
        return result
