"""
Wallet Session Module

Client-side wallet connection lifecycle:
- WalletRegistry: Detect wallet providers in the host environment
- SessionStore: Persist the single active session (memory, file or redis)
- ConnectionController: Connect, demo mode, disconnect, account changes
- BalancePoller: Keep the connected address's balance fresh

Usage:
    from medichain.core.wallet import create_controller

    controller = create_controller(host={"sui": discovery})
    await controller.start()

    controller.on_state_change(lambda state: print(state.status))

    await controller.request_connect(0)
    outcome = await controller.sign_and_execute(tx_payload)
    await controller.disconnect()
"""

from .controller import ConnectionController, create_controller
from .errors import (
    InconsistentStateError,
    ProviderError,
    TransactionRejectedError,
    TransientFetchError,
    ValidationError,
    WalletError,
)
from .models import (
    DEMO_PROVIDER_NAME,
    MANUAL_PROVIDER_NAME,
    Capability,
    CapabilityTag,
    ConnectionState,
    ConnectionStatus,
    ExecutionOutcome,
    ProviderHandle,
    SessionRecord,
)
from .poller import BalancePoller
from .registry import WalletRegistry
from .storage import (
    JsonFileBackend,
    MemoryBackend,
    RedisBackend,
    SessionStore,
    create_backend,
)

__all__ = [
    # Controller
    "ConnectionController",
    "create_controller",
    # Collaborators
    "WalletRegistry",
    "SessionStore",
    "BalancePoller",
    "MemoryBackend",
    "JsonFileBackend",
    "RedisBackend",
    "create_backend",
    # Models
    "Capability",
    "CapabilityTag",
    "ConnectionState",
    "ConnectionStatus",
    "ExecutionOutcome",
    "ProviderHandle",
    "SessionRecord",
    "DEMO_PROVIDER_NAME",
    "MANUAL_PROVIDER_NAME",
    # Errors
    "WalletError",
    "ValidationError",
    "ProviderError",
    "InconsistentStateError",
    "TransactionRejectedError",
    "TransientFetchError",
]
