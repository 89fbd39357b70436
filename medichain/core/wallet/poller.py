"""Periodic balance refresh for the active wallet address."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Any, Callable, Optional

from ...config import settings
from ...providers.base import LedgerProvider
from ...providers.sui import mist_to_sui
from ...services.address import format_address
from .errors import TransientFetchError
from .models import maybe_await

BalanceCallback = Callable[[str, Decimal], Any]


class BalancePoller:
    """
    Fetches the balance of one address now and then every ``interval_seconds``.

    Only one polling task exists at a time: ``start()`` on a running poller
    replaces the old task. Failed fetches are logged and skipped, so the last
    known balance survives a flaky node. ``is_active`` lets the owner keep the
    poller inert while there is no real session.
    """

    def __init__(
        self,
        ledger: LedgerProvider,
        *,
        interval_seconds: Optional[float] = None,
        on_balance: Optional[BalanceCallback] = None,
        is_active: Optional[Callable[[], bool]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.ledger = ledger
        self.interval_seconds = interval_seconds or settings.balance_poll_interval_seconds
        self.logger = logger or logging.getLogger(__name__)
        self._on_balance = on_balance
        self._is_active = is_active
        self._task: Optional[asyncio.Task] = None
        self._address: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def address(self) -> Optional[str]:
        return self._address if self.is_running else None

    def start(self, address: str) -> None:
        self._cancel()
        self._address = address
        self._task = asyncio.create_task(self._run(address), name="balance-poller")
        self.logger.debug("Balance polling started for %s every %ss", format_address(address), self.interval_seconds)

    async def stop(self) -> None:
        task = self._task
        self._cancel()
        if task is not None and task is not asyncio.current_task():
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._address = None

    async def refresh(self, address: str) -> Optional[Decimal]:
        """Fetch once. Returns the balance in display units, or None on failure."""
        try:
            base_units = await self.ledger.get_balance(address)
        except Exception as exc:  # noqa: BLE001
            error = TransientFetchError(
                f"Balance fetch failed for {format_address(address)}",
                details={"reason": str(exc)},
            )
            self.logger.warning("%s: %s", error.message, exc)
            return None

        balance = mist_to_sui(base_units)
        if self._on_balance is not None:
            try:
                await maybe_await(self._on_balance(address, balance))
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("Balance callback failed: %s", exc, exc_info=True)
        return balance

    def _cancel(self) -> None:
        task, self._task = self._task, None
        # Called from inside the poll task (via a balance listener): detach only,
        # _run returns once the current fetch unwinds
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _run(self, address: str) -> None:
        current = asyncio.current_task()
        while self._task is current:
            if self._is_active is None or self._is_active():
                await self.refresh(address)
                if self._task is not current:
                    return
            await asyncio.sleep(self.interval_seconds)
