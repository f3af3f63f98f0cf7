from kora_reclaim.shared.models.accounts import (
    AccountKind,
    AccountStatus,
    Active,
    AgeBreakdown,
    BotStatistics,
    Closed,
    Empty,
    Errored,
    HOLDER_KINDS,
    Lifecycle,
    MonitoringResult,
    Protected,
    Reclaimed,
    ReclaimAttempt,
    ReclaimBatchSummary,
    ReclaimResult,
    RejectionReason,
    SponsoredAccount,
    classify_account,
    observed_metadata,
    utc_now,
)
from kora_reclaim.shared.models.remote import (
    OperationDetail,
    OperationRef,
    ResourceState,
    TokenHolderState,
)

__all__ = [
    'AccountKind',
    'AccountStatus',
    'Active',
    'AgeBreakdown',
    'BotStatistics',
    'Closed',
    'Empty',
    'Errored',
    'HOLDER_KINDS',
    'Lifecycle',
    'MonitoringResult',
    'OperationDetail',
    'OperationRef',
    'Protected',
    'Reclaimed',
    'ReclaimAttempt',
    'ReclaimBatchSummary',
    'ReclaimResult',
    'RejectionReason',
    'ResourceState',
    'SponsoredAccount',
    'TokenHolderState',
    'classify_account',
    'observed_metadata',
    'utc_now',
]
