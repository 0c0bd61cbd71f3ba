"""Deployment registry lookups."""
from .client import ContractAddresses, DeploymentRegistry, parse_contract_addresses

__all__ = ["ContractAddresses", "DeploymentRegistry", "parse_contract_addresses"]
