#!/usr/bin/env python3
"""Simple CLI for driving the MediChain wallet session locally"""

import argparse
import asyncio
import sys
from typing import Optional

from medichain.config import settings
from medichain.core.wallet import ConnectionController, ConnectionState, ConnectionStatus, create_controller
from medichain.logging_config import setup_logging
from medichain.providers.sui import SuiLedgerProvider, format_sui, mist_to_sui
from medichain.services.address import format_address, is_valid_sui_address


STATUS_ICONS = {
    ConnectionStatus.DISCONNECTED: "⚪",
    ConnectionStatus.CONNECTING: "🟡",
    ConnectionStatus.CONNECTED: "🟢",
    ConnectionStatus.DEMO_CONNECTED: "🎮",
    ConnectionStatus.ERROR: "🔴",
}


def print_state(state: ConnectionState) -> None:
    """Pretty print the wallet session"""
    icon = STATUS_ICONS.get(state.status, "•")

    print(f"\n{icon} Wallet Session")
    print("=" * 50)
    print(f"Status:   {state.status.value}")
    print(f"Network:  {settings.network_config['name']} ({state.network})")
    if state.address:
        print(f"Address:  {format_address(state.address)}")
    if state.provider_name:
        print(f"Provider: {state.provider_name}")
    if state.is_connected:
        print(f"Balance:  {format_sui(state.cached_balance)} SUI")
    if state.connected_at:
        print(f"Since:    {state.connected_at.isoformat()}")

    if state.error:
        print(f"\n❌ {state.error}")
    if state.warning:
        print(f"\n⚠️  {state.warning}")
    if state.validation_error:
        print(f"\n❌ {state.validation_error}")


async def _run(controller: ConnectionController, action) -> ConnectionState:
    await controller.start()
    try:
        return await action(controller)
    finally:
        await controller.close()


async def cli_status(controller: ConnectionController) -> None:
    async def action(c: ConnectionController) -> ConnectionState:
        await c.refresh_balance()
        return c.state

    print_state(await _run(controller, action))


async def cli_demo(controller: ConnectionController) -> None:
    print("🎮 Entering demo mode...")
    print_state(await _run(controller, lambda c: c.enter_demo_mode()))


async def cli_connect_manual(controller: ConnectionController, address: str) -> None:
    print(f"🔗 Connecting {format_address(address)}...")

    async def action(c: ConnectionController) -> ConnectionState:
        state = await c.request_manual_connect(address)
        if state.status == ConnectionStatus.CONNECTED:
            await c.refresh_balance()
        return c.state

    print_state(await _run(controller, action))


async def cli_disconnect(controller: ConnectionController) -> None:
    print_state(await _run(controller, lambda c: c.disconnect()))


async def cli_balance(address: Optional[str]) -> None:
    if address is None:
        controller = create_controller()
        state = await _run(controller, lambda c: asyncio.sleep(0, result=c.state))
        if not state.address:
            print("❌ No wallet connected; pass an address")
            return
        address = state.address

    if not is_valid_sui_address(address):
        print("❌ Invalid Sui address")
        return

    ledger = SuiLedgerProvider()
    try:
        balance = mist_to_sui(await ledger.get_balance(address))
    except Exception as e:
        print(f"❌ Error: {e}")
        return
    print(f"💰 {format_address(address)}: {format_sui(balance)} SUI")


def cli_network() -> None:
    network = settings.network_config
    print(f"\n🌐 {network['name']}")
    print("=" * 50)
    print(f"RPC:      {settings.rpc_url}")
    print(f"Explorer: {settings.explorer_url}")
    if network.get("faucet_url"):
        print(f"Faucet:   {network['faucet_url']}")
    print(f"Chain ID: {network['chain_id']}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="MediChain wallet CLI")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("status", help="Show the persisted wallet session")
    subparsers.add_parser("demo", help="Switch to demo mode")

    manual_parser = subparsers.add_parser("connect-manual", help="Connect a wallet address without an extension")
    manual_parser.add_argument("address", help="Sui address (0x + 64 hex characters)")

    subparsers.add_parser("disconnect", help="Forget the current wallet session")

    balance_parser = subparsers.add_parser("balance", help="Query the SUI balance of an address")
    balance_parser.add_argument("address", nargs="?", help="Address (default: connected wallet)")

    subparsers.add_parser("network", help="Show the active network configuration")

    return parser


async def main():
    parser = build_parser()
    args = parser.parse_args()
    setup_logging(args.log_level, stream=sys.stderr)

    if not args.command:
        parser.print_help()
        return

    command = args.command.lower()

    if command == "status":
        await cli_status(create_controller())

    elif command == "demo":
        await cli_demo(create_controller())

    elif command == "connect-manual":
        await cli_connect_manual(create_controller(), args.address)

    elif command == "disconnect":
        await cli_disconnect(create_controller())

    elif command == "balance":
        await cli_balance(args.address)

    elif command == "network":
        cli_network()

    else:
        print(f"❌ Unknown command: {command}")
        parser.print_help()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
