"""Service layer helpers"""

from .address import format_address, is_valid_sui_address, normalize_network

__all__ = ["format_address", "is_valid_sui_address", "normalize_network"]
