"""JSON-RPC backed Sui ledger provider."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from itertools import count
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from .base import LedgerProvider

MIST_PER_SUI = Decimal(1_000_000_000)


def mist_to_sui(amount: int) -> Decimal:
    """Convert base units (MIST) into display units (SUI)."""
    return Decimal(int(amount)) / MIST_PER_SUI


def format_sui(amount: Optional[Decimal], places: int = 4) -> str:
    if amount is None:
        return "0." + "0" * places
    quantum = Decimal(1).scaleb(-places)
    return f"{amount.quantize(quantum):.{places}f}"


class SuiRPCError(RuntimeError):
    """The full node answered with a JSON-RPC error object."""

    def __init__(self, method: str, error: Dict[str, Any]):
        self.method = method
        self.code = error.get("code")
        self.rpc_message = error.get("message") or "unknown error"
        super().__init__(f"{method} failed ({self.code}): {self.rpc_message}")


class SuiLedgerProvider(LedgerProvider):
    """Balance lookups against a Sui full node."""

    name = "sui"
    timeout_s = 20

    def __init__(
        self,
        *,
        rpc_url: Optional[str] = None,
        coin_type: Optional[str] = None,
        timeout_s: Optional[int] = None,
    ) -> None:
        self.rpc_url = (rpc_url or settings.rpc_url).rstrip("/")
        self.coin_type = coin_type or settings.sui_coin_type
        if timeout_s is not None:
            self.timeout_s = timeout_s
        else:
            self.timeout_s = settings.rpc_timeout_seconds
        self._ids = count(1)

    async def ready(self) -> bool:
        return bool(self.rpc_url)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "unavailable", "reason": "RPC URL not configured"}
        try:
            chain_id = await self._call("sui_getChainIdentifier", [])
        except (httpx.HTTPError, SuiRPCError, ValueError) as exc:
            return {"status": "error", "reason": str(exc)}
        return {"status": "healthy", "chain_identifier": chain_id}

    async def _call(self, method: str, params: List[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        headers = {"accept": "application/json", "content-type": "application/json"}

        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            response = await client.post(self.rpc_url, json=payload, headers=headers)
            response.raise_for_status()
            body = response.json()

        if not isinstance(body, dict):
            raise ValueError(f"Unexpected response to {method}")
        if body.get("error"):
            raise SuiRPCError(method, body["error"])
        return body.get("result")

    async def get_balance(self, address: str) -> int:
        result = await self._call("suix_getBalance", [address, self.coin_type])
        if not isinstance(result, dict) or "totalBalance" not in result:
            raise ValueError("suix_getBalance returned no totalBalance")
        try:
            return int(Decimal(str(result["totalBalance"])))
        except (InvalidOperation, ValueError, TypeError) as exc:
            raise ValueError(f"Invalid totalBalance: {result['totalBalance']!r}") from exc
