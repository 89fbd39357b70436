"""
Wallet session models.

A ``SessionRecord`` is the one persisted fact about the current connection.
``ConnectionState`` is the in-memory snapshot handed to the UI boundary.
``ProviderHandle`` wraps whatever object a wallet extension injected and
answers capability probes for it.
"""

import inspect
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

MANUAL_PROVIDER_NAME = "Manual Entry"
DEMO_PROVIDER_NAME = "Demo"


class CapabilityTag(str, Enum):
    """How a provider was discovered."""
    STANDARD = "standard"  # multi-provider discovery (wallet standard)
    LEGACY = "legacy"      # provider-specific global reference


class Capability(str, Enum):
    """Operations a provider may or may not implement."""
    CONNECT = "connect"
    GET_ACCOUNTS = "get_accounts"
    SIGN_AND_EXECUTE = "sign_and_execute"
    DISCONNECT = "disconnect"
    ON = "on"


class ConnectionStatus(str, Enum):
    """Status of the wallet connection."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DEMO_CONNECTED = "demo_connected"
    ERROR = "error"


# Attribute names tried on the adapter, in order
_CAPABILITY_ATTRIBUTES: Dict[Capability, tuple] = {
    Capability.CONNECT: ("connect",),
    Capability.GET_ACCOUNTS: ("get_accounts", "getAccounts"),
    Capability.SIGN_AND_EXECUTE: (
        "sign_and_execute",
        "signAndExecute",
        "signAndExecuteTransactionBlock",
        "signAndExecuteTransaction",
    ),
    Capability.DISCONNECT: ("disconnect",),
    Capability.ON: ("on",),
}

# Wallet-standard feature namespaces and the method each one carries
_STANDARD_FEATURES: Dict[Capability, tuple] = {
    Capability.CONNECT: (("standard:connect", "connect"),),
    Capability.DISCONNECT: (("standard:disconnect", "disconnect"),),
    Capability.ON: (("standard:events", "on"),),
    Capability.SIGN_AND_EXECUTE: (
        ("sui:signAndExecuteTransactionBlock", "signAndExecuteTransactionBlock"),
        ("sui:signAndExecuteTransaction", "signAndExecuteTransaction"),
    ),
}


def lookup_member(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(key)
    return getattr(obj, key, None)


async def maybe_await(value: Any) -> Any:
    """Resolve ``value`` if a sync-or-async collaborator handed back an awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass
class ProviderHandle:
    """One wallet provider found during a detection pass."""
    name: str
    capability_tag: CapabilityTag
    adapter: Any = field(repr=False, compare=False)

    def capability(self, op: Capability) -> Optional[Callable[..., Any]]:
        """Return the callable implementing ``op``, or None when the provider lacks it."""
        for attr in _CAPABILITY_ATTRIBUTES.get(op, ()):
            candidate = lookup_member(self.adapter, attr)
            if callable(candidate):
                return candidate

        features = lookup_member(self.adapter, "features")
        for feature_key, method in _STANDARD_FEATURES.get(op, ()):
            candidate = lookup_member(lookup_member(features, feature_key), method)
            if callable(candidate):
                return candidate

        if op == Capability.GET_ACCOUNTS:
            # Wallet-standard wallets expose accounts as a plain attribute
            accounts = lookup_member(self.adapter, "accounts")
            if accounts is not None and not callable(accounts):
                return lambda: list(accounts)
        return None

    def has(self, op: Capability) -> bool:
        return self.capability(op) is not None

    @property
    def capabilities(self) -> List[str]:
        return [op.value for op in Capability if self.has(op)]

    def to_dict(self, index: Optional[int] = None) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "capabilityTag": self.capability_tag.value,
            "capabilities": self.capabilities,
        }
        if index is not None:
            data["index"] = index
        return data


def account_address(account: Any) -> str:
    """Accounts come back as plain strings or as objects/dicts carrying ``address``."""
    if isinstance(account, str):
        return account.strip()
    address = lookup_member(account, "address")
    return address.strip() if isinstance(address, str) else ""


@dataclass
class SessionRecord:
    """
    The persisted connection choice. At most one exists at a time.

    A non-demo record must carry a well-formed address; the controller treats
    anything else as an inconsistent state and clears it.
    """
    address: str = ""
    provider_name: Optional[str] = None
    is_demo_mode: bool = False
    network: str = "testnet"
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            "address": self.address,
            "providerName": self.provider_name,
            "isDemoMode": self.is_demo_mode,
            "network": self.network,
            "connectedAt": self.connected_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionRecord":
        """Create from dictionary (from storage)."""
        connected_at = datetime.fromisoformat(data["connectedAt"])
        if connected_at.tzinfo is None:
            connected_at = connected_at.replace(tzinfo=timezone.utc)
        address = data.get("address") or ""
        if not isinstance(address, str):
            raise ValueError("address must be a string")
        return cls(
            address=address,
            provider_name=data.get("providerName"),
            is_demo_mode=bool(data.get("isDemoMode", False)),
            network=data.get("network") or "testnet",
            connected_at=connected_at,
        )


@dataclass
class ConnectionState:
    """Snapshot of the connection as seen by the UI boundary."""
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    address: str = ""
    provider_name: Optional[str] = None
    network: str = "testnet"
    is_demo_mode: bool = False
    cached_balance: Optional[Decimal] = None
    connected_at: Optional[datetime] = None

    error: Optional[str] = None             # reason, set only in ERROR
    warning: Optional[str] = None           # non-fatal notice (e.g. recovered state)
    validation_error: Optional[str] = None  # inline manual-address error

    @property
    def is_connected(self) -> bool:
        return self.status in (ConnectionStatus.CONNECTED, ConnectionStatus.DEMO_CONNECTED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "address": self.address,
            "providerName": self.provider_name,
            "network": self.network,
            "isDemoMode": self.is_demo_mode,
            "cachedBalance": str(self.cached_balance) if self.cached_balance is not None else None,
            "connectedAt": self.connected_at.isoformat() if self.connected_at else None,
            "error": self.error,
            "warning": self.warning,
            "validationError": self.validation_error,
        }


@dataclass
class ExecutionOutcome:
    """Result of passing a transaction to the connected wallet."""
    success: bool
    result: Any = None
    error: Optional[str] = None
