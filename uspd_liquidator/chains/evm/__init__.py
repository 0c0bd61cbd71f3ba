"""EVM chain support."""
from .client import EvmLedgerClient

__all__ = ["EvmLedgerClient"]
