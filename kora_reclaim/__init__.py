"""
Kora Rent Reclaim
=================
Tracks accounts sponsored by a Kora fee payer and recovers their rent-exempt
deposits once they are closed on-chain.
"""

__version__ = "1.0.0"
