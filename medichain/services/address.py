"""Helpers for validating Sui addresses and normalising network identifiers."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Optional

from ..config import NETWORKS, settings

_SUI_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{64}$")

_NETWORK_ALIASES = {
    "test": "testnet",
    "testnet": "testnet",
    "sui:testnet": "testnet",
    "dev": "devnet",
    "devnet": "devnet",
    "sui:devnet": "devnet",
    "main": "mainnet",
    "mainnet": "mainnet",
    "sui:mainnet": "mainnet",
    "local": "local",
    "localnet": "local",
    "sui:local": "local",
}


@lru_cache(maxsize=256)
def is_valid_sui_address(address: Optional[str]) -> bool:
    """Full-length Sui account address: ``0x`` followed by 64 hex characters."""

    if not address or not isinstance(address, str):
        return False
    return bool(_SUI_ADDRESS_RE.match(address))


def format_address(address: Optional[str], length: int = 6) -> str:
    if not address or not isinstance(address, str):
        return "Not connected"
    if len(address) <= length * 2:
        return address
    return f"{address[:length]}...{address[-length:]}"


def normalize_network(network: Optional[str]) -> str:
    """Collapse user-provided network identifiers into canonical slugs."""

    if not network:
        return settings.sui_network.lower()
    key = network.strip().lower()
    canonical = _NETWORK_ALIASES.get(key)
    if canonical:
        return canonical
    if is_supported_network(key):
        return key
    return settings.sui_network.lower()


def is_supported_network(network: str) -> bool:
    return network in NETWORKS
