"""
Error Taxonomy
==============
Raised errors are reserved for configuration, credential, validation and
transport faults. Safety rejections are returned as values (see
modules/reclaim/safety.py).
"""


class ReclaimBotError(Exception):
    """Base class for every error raised by the bot."""


class ConfigurationError(ReclaimBotError):
    """Missing or invalid configuration. Fatal before any cycle starts."""

    def __init__(self, message: str):
        super().__init__(f"Configuration Error: {message}")


class KeypairError(ReclaimBotError):
    """Signing credential could not be parsed."""


class ValidationError(ReclaimBotError, ValueError):
    """Malformed handle, signature or identity string. Never retried."""


class RpcError(ReclaimBotError):
    """
    Transport, JSON-RPC or confirmation failure.

    The message carries the HTTP status / node error text verbatim so the
    retry classifier can match it against the retryable set.
    """

    def __init__(self, message: str, status_code: int = None, code: int = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class TransactionFailedError(RpcError):
    """The ledger executed a submitted transaction and reported an error."""
