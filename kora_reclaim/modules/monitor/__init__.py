"""
Account Monitor
===============
Discovers accounts created by the fee payer and reconciles their on-chain
state against the ledger store.

Components:
- discovery.py: operation-history scan with resumable cursors
- reconciler.py: bulk re-check of active and errored accounts
- core.py: one monitoring cycle (discovery, then reconciliation)
"""

from kora_reclaim.modules.monitor.core import AccountMonitor

__all__ = [
    'AccountMonitor',
]
