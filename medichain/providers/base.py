from abc import ABC, abstractmethod
from typing import Any, Dict


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: int = 10

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is ready to serve requests"""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        pass


class LedgerProvider(Provider):
    """Read-only ledger queries (balances) for a single network"""

    @abstractmethod
    async def get_balance(self, address: str) -> int:
        """Get the native coin balance of an address in base units"""
        pass
