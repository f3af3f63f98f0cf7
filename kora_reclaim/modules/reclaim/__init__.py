"""
Rent Reclaim
============
Safety pipeline, instruction builder and the batch engine that recovers
rent from closed accounts.
"""

from kora_reclaim.modules.reclaim.core import ReclaimEngine
from kora_reclaim.modules.reclaim.safety import ProgramPolicy, SafetyPipeline

__all__ = [
    'ProgramPolicy',
    'ReclaimEngine',
    'SafetyPipeline',
]
