import os

from pathlib import Path
from typing import Any, Dict, List

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


NETWORKS: Dict[str, Dict[str, Any]] = {
    "testnet": {
        "name": "Sui Testnet",
        "rpc_url": "https://fullnode.testnet.sui.io:443",
        "ws_url": "wss://fullnode.testnet.sui.io:443",
        "faucet_url": "https://faucet.testnet.sui.io/gas",
        "explorer_url": "https://suiexplorer.com/?network=testnet",
        "chain_id": "sui:testnet",
    },
    "devnet": {
        "name": "Sui Devnet",
        "rpc_url": "https://fullnode.devnet.sui.io:443",
        "ws_url": "wss://fullnode.devnet.sui.io:443",
        "faucet_url": "https://faucet.devnet.sui.io/gas",
        "explorer_url": "https://suiexplorer.com/?network=devnet",
        "chain_id": "sui:devnet",
    },
    "mainnet": {
        "name": "Sui Mainnet",
        "rpc_url": "https://fullnode.mainnet.sui.io:443",
        "ws_url": "wss://fullnode.mainnet.sui.io:443",
        "faucet_url": None,
        "explorer_url": "https://suiexplorer.com/?network=mainnet",
        "chain_id": "sui:mainnet",
    },
    "local": {
        "name": "Local Network",
        "rpc_url": "http://127.0.0.1:9000",
        "ws_url": "ws://127.0.0.1:9000",
        "faucet_url": None,
        "explorer_url": "http://localhost:3000",
        "chain_id": "sui:local",
    },
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Ensure we pick up legacy environment variable aliases."""

        super().model_post_init(__context)

        if not self.sui_rpc_url:
            fallback = os.getenv("SUI_RPC_URL")
            if fallback:
                object.__setattr__(self, "sui_rpc_url", fallback)

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")
    allowed_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "https://medichain.io"],
        description="Origins allowed to call the wallet API",
    )

    # Ledger
    sui_network: str = Field(
        default="testnet",
        description="Active Sui network (testnet, devnet, mainnet, local)",
        validation_alias=AliasChoices("sui_network", "SUI_NETWORK", "MEDICHAIN_NETWORK"),
    )
    sui_rpc_url: str = Field(default="", description="Override the network's JSON-RPC URL")
    sui_coin_type: str = Field(default="0x2::sui::SUI", description="Coin type used for balance queries")
    rpc_timeout_seconds: int = Field(default=20, ge=1, description="Ledger RPC timeout")

    # Wallet session
    balance_poll_interval_seconds: float = Field(
        default=30.0,
        gt=0,
        description="How often the active wallet balance is refreshed",
    )
    wallet_connection_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Max seconds to wait for a wallet to connect and return accounts",
    )
    wallet_session_ttl_seconds: int = Field(
        default=0,
        ge=0,
        description="Expire persisted sessions older than this (0 keeps them forever)",
    )

    # Session storage
    session_backend: str = Field(
        default="file",
        description="Where the wallet session is persisted (memory, file, redis)",
    )
    session_file_path: Path = Field(
        default=BASE_DIR / ".medichain" / "session.json",
        description="JSON file used by the file session backend",
    )
    redis_url: str = Field(
        default="",
        description="Redis connection string used by the redis session backend",
    )
    session_key_prefix: str = Field(
        default="",
        description="Prefix applied to session keys in shared backends",
    )

    @property
    def network_config(self) -> Dict[str, Any]:
        return NETWORKS.get(self.sui_network.lower(), NETWORKS["testnet"])

    @property
    def rpc_url(self) -> str:
        """Resolved JSON-RPC endpoint for the active network."""
        return self.sui_rpc_url or self.network_config["rpc_url"]

    @property
    def explorer_url(self) -> str:
        return self.network_config["explorer_url"]


# Global settings instance
settings = Settings()
