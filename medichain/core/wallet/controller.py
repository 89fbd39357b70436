"""
Wallet Connection Controller

The state machine behind "is a wallet connected, and which one". It owns the
in-memory ``ConnectionState``, writes the ``SessionRecord`` through the
``SessionStore`` and drives the ``BalancePoller``.

Commands never raise. Provider and storage failures are converted at the
await site into an ``error`` state, a ``warning`` or a log line.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from ...config import Settings, settings
from ...providers.base import LedgerProvider
from ...providers.sui import SuiLedgerProvider
from ...services.address import format_address, is_valid_sui_address, normalize_network
from .errors import (
    InconsistentStateError,
    ProviderError,
    ValidationError,
    WalletError,
)
from .models import (
    DEMO_PROVIDER_NAME,
    MANUAL_PROVIDER_NAME,
    Capability,
    ConnectionState,
    ConnectionStatus,
    ExecutionOutcome,
    ProviderHandle,
    SessionRecord,
    account_address,
    lookup_member,
    maybe_await,
)
from .poller import BalancePoller
from .registry import WalletRegistry
from .storage import SessionStore, create_backend


StateListener = Callable[[ConnectionState], Any]

_ALL_STATES = set(ConnectionStatus)


class ConnectionController:
    """
    Manages the wallet connection lifecycle.

    Features:
    - Rehydrates the persisted session on ``start()`` and recovers from
      inconsistent records
    - Connects through detected providers, a manually entered address, or demo mode
    - Follows provider ``accountsChanged`` / ``disconnect`` events
    - Persists every address or demo-flag change before notifying listeners
    - Drops results of provider calls that finish after the state moved on
    """

    # States each command may be issued from
    COMMAND_SOURCES: Dict[str, Set[ConnectionStatus]] = {
        "request_connect": {
            ConnectionStatus.DISCONNECTED,
            ConnectionStatus.ERROR,
        },
        "request_manual_connect": {
            ConnectionStatus.DISCONNECTED,
            ConnectionStatus.ERROR,
        },
        "enter_demo_mode": _ALL_STATES,
        "disconnect": {
            ConnectionStatus.CONNECTED,
            ConnectionStatus.DEMO_CONNECTED,
            ConnectionStatus.ERROR,
        },
        "account_changed": {
            ConnectionStatus.CONNECTED,
        },
    }

    def __init__(
        self,
        registry: WalletRegistry,
        store: SessionStore,
        ledger: LedgerProvider,
        *,
        network: Optional[str] = None,
        poll_interval_seconds: Optional[float] = None,
        connection_timeout_seconds: Optional[float] = None,
        session_ttl_seconds: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.registry = registry
        self.store = store
        self.ledger = ledger
        self.network = normalize_network(network)
        self.connection_timeout = connection_timeout_seconds or settings.wallet_connection_timeout_seconds
        self.session_ttl = (
            session_ttl_seconds if session_ttl_seconds is not None else settings.wallet_session_ttl_seconds
        )
        self.logger = logger or logging.getLogger(__name__)

        self.poller = BalancePoller(
            ledger,
            interval_seconds=poll_interval_seconds,
            on_balance=self._apply_balance,
            is_active=self._polling_allowed,
            logger=self.logger,
        )

        self._state = ConnectionState(network=self.network)
        self._providers: List[ProviderHandle] = []
        self._active_handle: Optional[ProviderHandle] = None
        self._subscriptions: List[Callable[[], Any]] = []
        self._event_tasks: Set[asyncio.Task] = set()
        self._listeners: List[StateListener] = []
        self._generation = 0
        self._last_connect_index: Optional[int] = None

    # ---------------------------
    # Introspection
    # ---------------------------
    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def providers(self) -> List[ProviderHandle]:
        return list(self._providers)

    @property
    def active_provider(self) -> Optional[ProviderHandle]:
        return self._active_handle

    def can_handle(self, command: str) -> bool:
        return self._state.status in self.COMMAND_SOURCES.get(command, set())

    def on_state_change(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ---------------------------
    # Lifecycle
    # ---------------------------
    async def start(self) -> ConnectionState:
        """Rebuild the connection state from the persisted session."""
        self._generation += 1
        generation = self._generation
        self.refresh_providers()

        try:
            record = await self.store.load()
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("Could not load wallet session: %s", exc, exc_info=True)
            record = None

        if record is None:
            self.logger.info("No wallet session found")
            return await self._set_state(ConnectionState(network=self.network))

        if self._is_expired(record):
            self.logger.info("Wallet session from %s expired", record.connected_at.isoformat())
            await self._safe_clear()
            return await self._set_state(
                ConnectionState(network=self.network, warning="Wallet session expired. Please reconnect.")
            )

        if record.is_demo_mode:
            if record.address:
                # Demo flag and a real address side by side (e.g. two tabs racing): demo wins
                self.logger.warning("Session carries both demo flag and an address; keeping demo mode")
                record = replace(record, address="", provider_name=DEMO_PROVIDER_NAME)
                await self._safe_save(record)
            return await self._set_state(self._demo_state(record))

        if not is_valid_sui_address(record.address):
            error = InconsistentStateError(
                "Saved wallet connection was invalid and has been cleared. Please reconnect.",
                details={"address": record.address, "provider": record.provider_name},
            )
            self.logger.warning("%s (%s)", error.message, error.code)
            await self._safe_clear()
            return await self._set_state(ConnectionState(network=self.network, warning=error.message))

        # Optimistic: the balance fetch runs later and never reverts this
        self._active_handle = self._find_provider(record.provider_name)
        if self._active_handle is not None:
            await self._subscribe(self._active_handle)
        await self._set_state(self._connected_state(record))
        self.logger.info(
            "Restored wallet session %s via %s",
            format_address(record.address),
            record.provider_name,
        )
        self._start_polling(generation, record.address)
        return self._state

    async def close(self) -> None:
        """Stop background work without touching the persisted session."""
        self._generation += 1
        await self.poller.stop()
        await self._drop_subscriptions()
        for task in list(self._event_tasks):
            task.cancel()
        self._event_tasks.clear()

    def refresh_providers(self) -> List[ProviderHandle]:
        """Re-run provider detection (e.g. after a wallet extension finished loading)."""
        self._providers = self.registry.detect()
        return self.providers

    # ---------------------------
    # Commands
    # ---------------------------
    async def request_connect(self, provider_index: int) -> ConnectionState:
        if self._state.status == ConnectionStatus.CONNECTING:
            self.logger.debug("Connect already in progress; ignoring request")
            return self._state
        if not self._check("request_connect"):
            return self._state

        self._last_connect_index = provider_index
        if not 0 <= provider_index < len(self._providers):
            return await self._fail_connect(ProviderError("Selected wallet is not available"))

        handle = self._providers[provider_index]
        self._generation += 1
        generation = self._generation
        await self._set_state(
            ConnectionState(status=ConnectionStatus.CONNECTING, provider_name=handle.name, network=self.network)
        )
        self.logger.info("Connecting to %s", handle.name)

        error: Optional[WalletError] = None
        accounts: List[Any] = []
        try:
            accounts = await asyncio.wait_for(self._request_accounts(handle), timeout=self.connection_timeout)
        except asyncio.TimeoutError:
            error = ProviderError(
                f"{handle.name} did not respond within {self.connection_timeout:g}s",
                provider_name=handle.name,
            )
        except ProviderError as exc:
            error = exc
        except Exception as exc:  # noqa: BLE001
            error = ProviderError(str(exc) or f"Could not connect to {handle.name}", provider_name=handle.name)

        if generation != self._generation:
            self.logger.debug("Dropping stale connect result from %s", handle.name)
            return self._state
        if error is not None:
            return await self._fail_connect(error)
        if not accounts:
            return await self._fail_connect(
                ProviderError(f"{handle.name} returned no accounts", provider_name=handle.name)
            )

        address = account_address(accounts[0])
        if not is_valid_sui_address(address):
            return await self._fail_connect(
                ProviderError(f"{handle.name} returned a malformed address", provider_name=handle.name)
            )

        record = SessionRecord(address=address, provider_name=handle.name, network=self.network)
        try:
            await self.store.save(record)
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("Could not persist wallet session: %s", exc, exc_info=True)
            return await self._fail_connect(WalletError("Could not save the wallet session"))

        if generation != self._generation:
            self.logger.debug("State moved on while saving session for %s", handle.name)
            return self._state

        self._active_handle = handle
        await self._subscribe(handle)
        await self._set_state(self._connected_state(record))
        self.logger.info("Connected %s via %s", format_address(address), handle.name)
        self._start_polling(generation, address)
        return self._state

    async def request_manual_connect(self, address: str) -> ConnectionState:
        """Connect to an address typed in by the user; no provider handle is involved."""
        if not self._check("request_manual_connect"):
            return self._state

        candidate = (address or "").strip()
        if not is_valid_sui_address(candidate):
            error = ValidationError(
                "Invalid Sui address: expected 0x followed by 64 hex characters",
                details={"address": candidate},
            )
            self.logger.info("Rejected manual address %r", candidate)
            return await self._set_state(replace(self._state, validation_error=error.message))

        self._generation += 1
        generation = self._generation
        record = SessionRecord(address=candidate, provider_name=MANUAL_PROVIDER_NAME, network=self.network)
        try:
            await self.store.save(record)
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("Could not persist wallet session: %s", exc, exc_info=True)
            return await self._fail_connect(WalletError("Could not save the wallet session"))

        if generation != self._generation:
            return self._state

        self._active_handle = None
        await self._set_state(self._connected_state(record))
        self.logger.info("Connected %s by manual entry", format_address(candidate))
        self._start_polling(generation, candidate)
        return self._state

    async def enter_demo_mode(self) -> ConnectionState:
        self._generation += 1
        await self.poller.stop()
        await self._drop_subscriptions()
        self._active_handle = None

        record = SessionRecord(
            address="",
            provider_name=DEMO_PROVIDER_NAME,
            is_demo_mode=True,
            network=self.network,
        )
        warning = None
        try:
            await self.store.clear()
            await self.store.save(record)
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("Could not persist demo session: %s", exc, exc_info=True)
            warning = "Demo mode will not survive a reload"

        self.logger.info("Entered demo mode")
        return await self._set_state(replace(self._demo_state(record), warning=warning))

    async def disconnect(self) -> ConnectionState:
        if not self._check("disconnect"):
            return self._state

        self._generation += 1
        await self.poller.stop()
        handle = self._active_handle
        self._active_handle = None
        await self._drop_subscriptions()
        if handle is not None:
            await self._disconnect_provider(handle)

        await self._safe_clear()
        self.logger.info("Wallet disconnected")
        return await self._set_state(ConnectionState(network=self.network))

    async def account_changed(self, accounts: Sequence[Any] | str | None) -> ConnectionState:
        """Provider-driven account switch; an empty list means the wallet went away."""
        if not self._check("account_changed"):
            return self._state

        if isinstance(accounts, str):
            accounts = [accounts] if accounts else []
        accounts = list(accounts or [])
        if not accounts:
            return await self.disconnect()

        address = account_address(accounts[0])
        if address == self._state.address:
            return self._state
        if not is_valid_sui_address(address):
            self.logger.warning("Ignoring account change to malformed address %r", address)
            return await self._set_state(
                replace(self._state, warning="Wallet reported an invalid account; keeping the current one")
            )

        self._generation += 1
        generation = self._generation
        record = SessionRecord(
            address=address,
            provider_name=self._state.provider_name,
            network=self._state.network,
        )
        try:
            await self.store.save(record)
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("Could not persist account change: %s", exc, exc_info=True)
            return await self._set_state(
                replace(self._state, warning="Account change could not be saved")
            )

        if generation != self._generation:
            return self._state

        # Provider-driven: updates in place, never passes through CONNECTING
        await self._set_state(self._connected_state(record))
        self.logger.info("Account changed to %s", format_address(address))
        self._start_polling(generation, address)
        return self._state

    async def retry(self) -> ConnectionState:
        """Repeat the last provider connect after a failure."""
        if self._state.status != ConnectionStatus.ERROR or self._last_connect_index is None:
            return self._state
        return await self.request_connect(self._last_connect_index)

    async def refresh_balance(self) -> Optional[Decimal]:
        if self._state.status == ConnectionStatus.DEMO_CONNECTED:
            return Decimal(0)
        if self._state.status != ConnectionStatus.CONNECTED:
            return None
        return await self.poller.refresh(self._state.address)

    async def sign_and_execute(self, payload: Any) -> ExecutionOutcome:
        """Hand a transaction to the connected wallet for signing and submission."""
        if self._state.status == ConnectionStatus.DEMO_CONNECTED:
            return ExecutionOutcome(success=False, error="Transactions are disabled in demo mode")
        if self._state.status != ConnectionStatus.CONNECTED:
            return ExecutionOutcome(success=False, error="No wallet connected")

        handle = self._active_handle
        sign = handle.capability(Capability.SIGN_AND_EXECUTE) if handle else None
        if handle is None or sign is None:
            error = ProviderError("The connected wallet cannot sign transactions", provider_name=self._state.provider_name)
            return ExecutionOutcome(success=False, error=error.message)

        try:
            result = await maybe_await(sign(payload))
        except Exception as exc:  # noqa: BLE001
            error = ProviderError(f"Transaction failed: {exc}", provider_name=handle.name)
            self.logger.warning("%s", error.message, exc_info=True)
            return ExecutionOutcome(success=False, error=error.message)
        return ExecutionOutcome(success=True, result=result)

    # ---------------------------
    # Provider plumbing
    # ---------------------------
    async def _request_accounts(self, handle: ProviderHandle) -> List[Any]:
        connected = None
        connect = handle.capability(Capability.CONNECT)
        if connect is not None:
            connected = await maybe_await(connect())

        get_accounts = handle.capability(Capability.GET_ACCOUNTS)
        if get_accounts is not None:
            accounts = await maybe_await(get_accounts())
            return list(accounts or [])

        # Wallet-standard connect() answers with {"accounts": [...]}
        from_connect = lookup_member(connected, "accounts")
        if from_connect is not None and not callable(from_connect):
            return list(from_connect)
        raise ProviderError(f"{handle.name} does not expose its accounts", provider_name=handle.name)

    async def _disconnect_provider(self, handle: ProviderHandle) -> None:
        disconnect = handle.capability(Capability.DISCONNECT)
        if disconnect is None:
            return
        try:
            await maybe_await(disconnect())
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("%s disconnect failed: %s", handle.name, exc, exc_info=True)

    async def _subscribe(self, handle: ProviderHandle) -> None:
        on = handle.capability(Capability.ON)
        if on is None:
            return
        for event, callback in (
            ("accountsChanged", self._handle_accounts_event),
            ("disconnect", self._handle_disconnect_event),
        ):
            try:
                unsubscribe = await maybe_await(on(event, callback))
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("Could not subscribe to %s %s events: %s", handle.name, event, exc)
                continue
            if callable(unsubscribe):
                self._subscriptions.append(unsubscribe)

    async def _drop_subscriptions(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, []
        for unsubscribe in subscriptions:
            try:
                await maybe_await(unsubscribe())
            except Exception as exc:  # noqa: BLE001
                self.logger.debug("Unsubscribe failed: %s", exc)

    def _handle_accounts_event(self, accounts: Any = None) -> asyncio.Task:
        return self._spawn(self.account_changed(accounts))

    def _handle_disconnect_event(self, *_: Any) -> asyncio.Task:
        return self._spawn(self.disconnect())

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._event_tasks.add(task)
        task.add_done_callback(self._event_tasks.discard)
        return task

    def _find_provider(self, name: Optional[str]) -> Optional[ProviderHandle]:
        if not name:
            return None
        for handle in self._providers:
            if handle.name == name:
                return handle
        return None

    # ---------------------------
    # State helpers
    # ---------------------------
    def _check(self, command: str) -> bool:
        if self.can_handle(command):
            return True
        self.logger.debug("Ignoring %s while %s", command, self._state.status.value)
        return False

    def _polling_allowed(self) -> bool:
        return self._state.status == ConnectionStatus.CONNECTED

    def _start_polling(self, generation: int, address: str) -> None:
        # Listeners run before this; one of them may already have disconnected
        if generation != self._generation:
            self.logger.debug("Session moved on during notification; not polling %s", format_address(address))
            return
        self.poller.start(address)

    def _is_expired(self, record: SessionRecord) -> bool:
        if not self.session_ttl:
            return False
        age = datetime.now(timezone.utc) - record.connected_at
        return age.total_seconds() > self.session_ttl

    def _connected_state(self, record: SessionRecord) -> ConnectionState:
        return ConnectionState(
            status=ConnectionStatus.CONNECTED,
            address=record.address,
            provider_name=record.provider_name,
            network=record.network,
            connected_at=record.connected_at,
        )

    def _demo_state(self, record: SessionRecord) -> ConnectionState:
        return ConnectionState(
            status=ConnectionStatus.DEMO_CONNECTED,
            provider_name=DEMO_PROVIDER_NAME,
            network=record.network,
            is_demo_mode=True,
            cached_balance=Decimal(0),
            connected_at=record.connected_at,
        )

    async def _apply_balance(self, address: str, balance: Decimal) -> None:
        if self._state.status != ConnectionStatus.CONNECTED or self._state.address != address:
            self.logger.debug("Dropping balance for %s; session moved on", format_address(address))
            return
        if self._state.cached_balance == balance:
            return
        await self._set_state(replace(self._state, cached_balance=balance))

    async def _fail_connect(self, error: WalletError) -> ConnectionState:
        self.logger.warning("Wallet connection failed: %s", error.message)
        return await self._set_state(
            ConnectionState(status=ConnectionStatus.ERROR, network=self.network, error=error.message)
        )

    async def _safe_save(self, record: SessionRecord) -> None:
        try:
            await self.store.save(record)
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("Could not persist wallet session: %s", exc, exc_info=True)

    async def _safe_clear(self) -> None:
        try:
            await self.store.clear()
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("Could not clear wallet session: %s", exc, exc_info=True)

    async def _set_state(self, state: ConnectionState) -> ConnectionState:
        previous = self._state.status
        self._state = state
        if previous != state.status:
            self.logger.debug("Wallet state %s -> %s", previous.value, state.status.value)
        for listener in list(self._listeners):
            try:
                await maybe_await(listener(state))
            except Exception as exc:  # noqa: BLE001
                self.logger.error("State listener error: %s", exc)
        return state


def create_controller(
    host: Optional[Any] = None,
    *,
    config: Optional[Settings] = None,
    ledger: Optional[LedgerProvider] = None,
    store: Optional[SessionStore] = None,
) -> ConnectionController:
    """Wire a controller from settings; the application root owns the result."""
    config = config or settings
    return ConnectionController(
        WalletRegistry(host),
        store or SessionStore(create_backend(config), default_network=config.sui_network),
        ledger or SuiLedgerProvider(rpc_url=config.rpc_url, coin_type=config.sui_coin_type),
        network=config.sui_network,
        poll_interval_seconds=config.balance_poll_interval_seconds,
        connection_timeout_seconds=config.wallet_connection_timeout_seconds,
        session_ttl_seconds=config.wallet_session_ttl_seconds,
    )
