from .base import LedgerProvider, Provider
from .sui import SuiLedgerProvider, SuiRPCError, format_sui, mist_to_sui

__all__ = [
    "Provider",
    "LedgerProvider",
    "SuiLedgerProvider",
    "SuiRPCError",
    "format_sui",
    "mist_to_sui",
]
