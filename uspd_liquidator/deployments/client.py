"""USPD deployment registry client — startup-time contract address lookup."""
from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass
from typing import Any

import aiohttp
import certifi

from ..config import DeploymentsConfig
from ..exceptions import DeploymentUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContractAddresses:
    """Live contract addresses for one chain."""

    stabilizer_nft: str
    uspd_token: str
    rate_contract: str


# (field, key under deployment.contracts)
_REQUIRED = (
    ("stabilizer_nft", "stabilizer"),
    ("uspd_token", "uspdToken"),
    ("rate_contract", "rateContract"),
)


def parse_contract_addresses(deployment: dict[str, Any]) -> ContractAddresses:
    """Extract the addresses the ledger client needs from one deployment.

    Raises:
        DeploymentUnavailable: if a required address is missing.
    """
    contracts = deployment.get("deployment", {}).get("contracts", {}) or {}

    values: dict[str, str] = {}
    for attr, key in _REQUIRED:
        address = contracts.get(key)
        if not address:
            raise DeploymentUnavailable(
                f"Deployment for chain {deployment.get('chainId')} is missing '{key}'"
            )
        values[attr] = address

    return ContractAddresses(**values)


class DeploymentRegistry:
    """Fetch deployments from the USPD API and resolve them per chain."""

    def __init__(self, config: DeploymentsConfig) -> None:
        self.url = config.url
        self.timeout = config.timeout
        self._deployments: list[dict[str, Any]] = []

    async def fetch_deployments(self) -> list[dict[str, Any]]:
        """Fetch all deployments.

        Raises:
            DeploymentUnavailable: on HTTP errors, timeouts or a non-list body.
        """
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(
                    self.url, timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as response:
                    if response.status != 200:
                        raise DeploymentUnavailable(
                            f"Deployments API request failed: HTTP {response.status}"
                        )
                    data = await response.json()
        except DeploymentUnavailable:
            raise
        except Exception as e:
            raise DeploymentUnavailable(f"Error fetching deployments: {e}") from e

        if not isinstance(data, list):
            raise DeploymentUnavailable("Deployments payload is not a list")

        self._deployments = data
        logger.info("Fetched %d deployments from %s", len(data), self.url)
        return data

    def deployment_for_chain(self, chain_id: int) -> dict[str, Any] | None:
        for deployment in self._deployments:
            if deployment.get("chainId") == chain_id:
                return deployment
        return None

    async def contract_addresses(self, chain_id: int) -> ContractAddresses:
        """Resolve contract addresses for ``chain_id``, fetching if needed."""
        if not self._deployments:
            await self.fetch_deployments()

        deployment = self.deployment_for_chain(chain_id)
        if deployment is None:
            raise DeploymentUnavailable(f"No deployment found for chain ID {chain_id}")

        addresses = parse_contract_addresses(deployment)
        logger.info(
            "Chain %d: StabilizerNFT=%s USPD=%s",
            chain_id,
            addresses.stabilizer_nft,
            addresses.uspd_token,
        )
        return addresses
