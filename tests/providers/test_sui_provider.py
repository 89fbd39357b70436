from decimal import Decimal

import httpx
import pytest

from medichain.providers import sui
from medichain.providers.sui import SuiLedgerProvider, SuiRPCError, format_sui, mist_to_sui

ADDRESS = "0x" + "ab" * 32


class _DummyResponse:
    def __init__(self, payload):
        self._payload = payload

    def raise_for_status(self):
        return None

    def json(self):
        return self._payload


def _client_returning(payload):
    class _DummyClient:
        requests = []

        def __init__(self, *_, **kwargs):
            self.timeout = kwargs.get("timeout")

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb):
            return False

        async def post(self, url, json, headers=None):
            _DummyClient.requests.append({"url": url, "json": json, "timeout": self.timeout})
            if isinstance(payload, Exception):
                raise payload
            return _DummyResponse(payload)

    return _DummyClient


def test_mist_conversion():
    assert mist_to_sui(1_500_000_000) == Decimal("1.5")
    assert mist_to_sui(0) == Decimal(0)
    assert mist_to_sui(1) == Decimal("0.000000001")


def test_format_sui():
    assert format_sui(Decimal("1.5")) == "1.5000"
    assert format_sui(Decimal("0.123456")) == "0.1235"
    assert format_sui(None) == "0.0000"
    assert format_sui(Decimal(2), places=2) == "2.00"


@pytest.mark.asyncio
async def test_get_balance_queries_suix_get_balance(monkeypatch):
    client = _client_returning({"jsonrpc": "2.0", "id": 1, "result": {"totalBalance": "2500000000"}})
    monkeypatch.setattr(sui.httpx, "AsyncClient", client)

    provider = SuiLedgerProvider(rpc_url="https://rpc.example/", timeout_s=5)
    balance = await provider.get_balance(ADDRESS)

    assert balance == 2_500_000_000
    request = client.requests[-1]
    assert request["url"] == "https://rpc.example"
    assert request["timeout"] == 5
    assert request["json"]["method"] == "suix_getBalance"
    assert request["json"]["params"] == [ADDRESS, "0x2::sui::SUI"]


@pytest.mark.asyncio
async def test_get_balance_uses_configured_coin_type(monkeypatch):
    client = _client_returning({"result": {"totalBalance": 7}})
    monkeypatch.setattr(sui.httpx, "AsyncClient", client)

    provider = SuiLedgerProvider(rpc_url="https://rpc.example", coin_type="0xdead::coin::COIN")
    assert await provider.get_balance(ADDRESS) == 7
    assert client.requests[-1]["json"]["params"][1] == "0xdead::coin::COIN"


@pytest.mark.asyncio
async def test_get_balance_rpc_error(monkeypatch):
    client = _client_returning({"error": {"code": -32602, "message": "Invalid params"}})
    monkeypatch.setattr(sui.httpx, "AsyncClient", client)

    provider = SuiLedgerProvider(rpc_url="https://rpc.example")
    with pytest.raises(SuiRPCError) as excinfo:
        await provider.get_balance(ADDRESS)

    assert excinfo.value.code == -32602
    assert "Invalid params" in str(excinfo.value)


@pytest.mark.asyncio
async def test_get_balance_missing_total(monkeypatch):
    monkeypatch.setattr(sui.httpx, "AsyncClient", _client_returning({"result": {}}))

    provider = SuiLedgerProvider(rpc_url="https://rpc.example")
    with pytest.raises(ValueError):
        await provider.get_balance(ADDRESS)


@pytest.mark.asyncio
async def test_get_balance_garbage_total(monkeypatch):
    monkeypatch.setattr(sui.httpx, "AsyncClient", _client_returning({"result": {"totalBalance": "lots"}}))

    provider = SuiLedgerProvider(rpc_url="https://rpc.example")
    with pytest.raises(ValueError):
        await provider.get_balance(ADDRESS)


@pytest.mark.asyncio
async def test_health_check_healthy(monkeypatch):
    client = _client_returning({"result": "4c78adac"})
    monkeypatch.setattr(sui.httpx, "AsyncClient", client)

    provider = SuiLedgerProvider(rpc_url="https://rpc.example")
    health = await provider.health_check()

    assert health == {"status": "healthy", "chain_identifier": "4c78adac"}
    assert client.requests[-1]["json"]["method"] == "sui_getChainIdentifier"


@pytest.mark.asyncio
async def test_health_check_network_failure(monkeypatch):
    monkeypatch.setattr(sui.httpx, "AsyncClient", _client_returning(httpx.ConnectError("connection refused")))

    provider = SuiLedgerProvider(rpc_url="https://rpc.example")
    health = await provider.health_check()

    assert health["status"] == "error"
    assert "connection refused" in health["reason"]
