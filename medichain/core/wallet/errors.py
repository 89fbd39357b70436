"""
Wallet session errors.

Every failure the session core can meet is converted into one of these at the
await site. None of them escape a controller command; they end up as state
(``error``, ``warning`` or ``validation_error``) or as a log line.
"""

from typing import Any, Dict, Optional


class WalletError(Exception):
    """Base exception for wallet session errors."""

    code = "WALLET_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(WalletError):
    """User input (a manually entered address) is malformed."""

    code = "INVALID_ADDRESS"


class ProviderError(WalletError):
    """A wallet provider failed to connect, sign or disconnect."""

    code = "PROVIDER_ERROR"

    def __init__(
        self,
        message: str,
        provider_name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.provider_name = provider_name


class InconsistentStateError(WalletError):
    """A persisted session violates the session invariant."""

    code = "INCONSISTENT_STATE"


class TransientFetchError(WalletError):
    """A balance refresh failed; the cached balance stays as it was."""

    code = "BALANCE_FETCH_FAILED"


class TransactionRejectedError(ProviderError):
    """The connected wallet refused or failed to sign a transaction."""

    code = "TRANSACTION_REJECTED"
