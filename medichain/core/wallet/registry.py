"""Discovery of wallet providers injected into the host environment."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any, List, Optional, Sequence, Tuple

from .models import CapabilityTag, ProviderHandle, lookup_member

logger = logging.getLogger(__name__)

# (global name, display name) checked after the discovery interface
LEGACY_GLOBALS: Sequence[Tuple[str, str]] = (
    ("suiWallet", "Sui Wallet"),
    ("slushWallet", "Slush Wallet"),
    ("slush", "Slush (new API)"),
    ("ethosWallet", "Ethos Wallet"),
    ("martian", "Martian Wallet"),
)

# Providers that ship under several names; matched by substring
KNOWN_ALIASES: Sequence[str] = ("slush",)

_PAREN_RE = re.compile(r"\(.*?\)")


def normalize_provider_name(name: str) -> str:
    cleaned = _PAREN_RE.sub(" ", name.lower())
    cleaned = cleaned.replace("wallet", " ")
    return " ".join(cleaned.split())


def same_provider(a: str, b: str) -> bool:
    left, right = normalize_provider_name(a), normalize_provider_name(b)
    if left and left == right:
        return True
    return any(alias in left and alias in right for alias in KNOWN_ALIASES)


class WalletRegistry:
    """
    Lists the wallet providers visible in a host environment.

    The host is a mapping of global names to objects, the same shape a browser
    ``window`` has. Wallets registered through the discovery interface
    (``host["sui"].get_wallets()``) come first; legacy globals are appended
    only when they do not duplicate one of those.
    """

    def __init__(self, host: Optional[Mapping] = None):
        self.host: Mapping = host if host is not None else {}

    def detect(self) -> List[ProviderHandle]:
        handles: List[ProviderHandle] = []

        for wallet in self._standard_wallets():
            name = lookup_member(wallet, "name")
            if not isinstance(name, str) or not name:
                continue
            if any(h.name == name for h in handles):
                continue
            handles.append(ProviderHandle(name=name, capability_tag=CapabilityTag.STANDARD, adapter=wallet))

        for global_name, display_name in LEGACY_GLOBALS:
            adapter = self.host.get(global_name)
            if adapter is None:
                continue
            if any(h.adapter is adapter for h in handles):
                continue
            if any(
                h.capability_tag == CapabilityTag.STANDARD and same_provider(h.name, display_name)
                for h in handles
            ):
                logger.debug("Skipping %s; already discovered via wallet standard", display_name)
                continue
            logger.debug("Found %s via global object", display_name)
            handles.append(ProviderHandle(name=display_name, capability_tag=CapabilityTag.LEGACY, adapter=adapter))

        logger.info("Detected %d wallet provider(s)", len(handles))
        return handles

    def _standard_wallets(self) -> List[Any]:
        discovery = self.host.get("sui")
        getter = lookup_member(discovery, "get_wallets") or lookup_member(discovery, "getWallets")
        if not callable(getter):
            return []
        try:
            wallets = getter()
            return list(wallets or [])
        except Exception as exc:  # noqa: BLE001
            logger.warning("Wallet standard discovery failed: %s", exc, exc_info=True)
            return []
