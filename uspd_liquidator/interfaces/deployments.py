"""Deployment source protocol — per-chain contract address lookup."""
from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from ..deployments import ContractAddresses


class DeploymentSource(Protocol):
    async def contract_addresses(self, chain_id: int) -> ContractAddresses: ...
