"""EVM ledger client for the USPD contracts, with RPC endpoint fallback."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

import aiohttp
from eth_account import Account
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError

from ...config import ChainConfig
from ...deployments import ContractAddresses
from ...exceptions import ExecutionFailure, LedgerError
from ...models import PositionCreated, PriceQuote
from .abi import (
    ERC20_ABI,
    POSITION_ESCROW_ABI,
    RATE_CONTRACT_ABI,
    STABILIZER_NFT_ABI,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
FACTOR_PRECISION = 10**18
GAS_LIMIT_MULTIPLIER = 1.2


class EvmLedgerClient:
    """USPD contract reads and liquidation submission over JSON-RPC.

    Reads rotate through the configured endpoints on transport failures and
    remember the last healthy one. Contract reverts are raised immediately.
    """

    def __init__(
        self,
        config: ChainConfig,
        contracts: ContractAddresses,
        *,
        private_key: str = "",
        address: str = "",
        asset_pair: str = "ETH/USD",
        receipt_timeout: int = 120,
    ) -> None:
        self.endpoints = list(config.rpc_endpoints)
        self.timeout = config.rpc_timeout
        self.chain_id = config.chain_id
        self.current_rpc_index = 0
        self.contracts = contracts
        self.receipt_timeout = receipt_timeout
        self._asset_pair_hash = AsyncWeb3.keccak(text=asset_pair)
        self._clients = [
            AsyncWeb3(
                AsyncWeb3.AsyncHTTPProvider(
                    url,
                    request_kwargs={"timeout": aiohttp.ClientTimeout(total=self.timeout)},
                )
            )
            for url in self.endpoints
        ]
        self._account = Account.from_key(private_key) if private_key else None
        if self._account is not None:
            self._address = self._account.address
        else:
            self._address = AsyncWeb3.to_checksum_address(address) if address else ""
        self._nonce_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @property
    def liquidator_address(self) -> str:
        return self._address

    async def _call(self, label: str, fn: Callable[[AsyncWeb3], Awaitable[T]]) -> T:
        """Run ``fn`` against each endpoint in turn until one succeeds."""
        last_error: Exception | None = None
        for attempt in range(len(self._clients)):
            rpc_index = (self.current_rpc_index + attempt) % len(self._clients)
            rpc_url = self.endpoints[rpc_index]

            try:
                result = await fn(self._clients[rpc_index])
            except ContractLogicError as e:
                raise LedgerError(f"{label} reverted: {e}") from e
            except Exception as e:
                last_error = e
                logger.warning("RPC endpoint %s failed for %s: %s", rpc_url, label, e)
                if attempt < len(self._clients) - 1:
                    logger.info("Trying next endpoint...")
                continue

            if rpc_index != self.current_rpc_index:
                logger.info("Switched to RPC endpoint: %s", rpc_url)
                self.current_rpc_index = rpc_index
            return result

        raise LedgerError(f"All RPC endpoints failed for {label}. Last error: {last_error}")

    @staticmethod
    def _contract(w3: AsyncWeb3, address: str, abi: list[dict[str, Any]]) -> Any:
        return w3.eth.contract(address=AsyncWeb3.to_checksum_address(address), abi=abi)

    def _stabilizer(self, w3: AsyncWeb3) -> Any:
        return self._contract(w3, self.contracts.stabilizer_nft, STABILIZER_NFT_ABI)

    def price_query(self, quote: PriceQuote) -> tuple[int, int, int, bytes, bytes]:
        """Encode a quote as the on-chain ``PriceAttestationQuery`` tuple."""
        return (
            int(quote.price),
            int(quote.decimals),
            int(quote.data_timestamp) // 1000,
            bytes(self._asset_pair_hash),
            bytes(AsyncWeb3.to_bytes(hexstr=quote.signature)),
        )

    # ------------------------------------------------------------------
    # PositionReader
    # ------------------------------------------------------------------

    async def total_positions(self) -> int:
        return await self._call(
            "totalSupply",
            lambda w3: self._stabilizer(w3).functions.totalSupply().call(),
        )

    async def position_escrow(self, position_id: int) -> str:
        """Escrow address of a position, or ``""`` when it has none."""
        address = await self._call(
            f"positionEscrows({position_id})",
            lambda w3: self._stabilizer(w3).functions.positionEscrows(position_id).call(),
        )
        if not address or int(address, 16) == 0:
            return ""
        return address

    async def owner_of(self, position_id: int) -> str:
        return await self._call(
            f"ownerOf({position_id})",
            lambda w3: self._stabilizer(w3).functions.ownerOf(position_id).call(),
        )

    async def collateral_amount(self, escrow_address: str) -> int:
        return await self._call(
            f"getCurrentStEthBalance({escrow_address})",
            lambda w3: self._contract(w3, escrow_address, POSITION_ESCROW_ABI)
            .functions.getCurrentStEthBalance()
            .call(),
        )

    async def backed_shares(self, escrow_address: str) -> int:
        return await self._call(
            f"backedPoolShares({escrow_address})",
            lambda w3: self._contract(w3, escrow_address, POSITION_ESCROW_ABI)
            .functions.backedPoolShares()
            .call(),
        )

    async def debt_for_shares(self, shares: int) -> int:
        """USPD debt backed by ``shares`` pool shares at the current yield factor."""
        if shares == 0:
            return 0
        factor = await self._call(
            "getYieldFactor",
            lambda w3: self._contract(w3, self.contracts.rate_contract, RATE_CONTRACT_ABI)
            .functions.getYieldFactor()
            .call(),
        )
        return shares * factor // FACTOR_PRECISION

    # ------------------------------------------------------------------
    # RatioReader / BalanceReader
    # ------------------------------------------------------------------

    async def collateralization_ratio(self, escrow_address: str, quote: PriceQuote) -> int:
        query = self.price_query(quote)
        return await self._call(
            f"getCollateralizationRatio({escrow_address})",
            lambda w3: self._contract(w3, escrow_address, POSITION_ESCROW_ABI)
            .functions.getCollateralizationRatio(query)
            .call(),
        )

    async def balance_of(self, token_address: str, holder: str) -> int:
        checksum_holder = AsyncWeb3.to_checksum_address(holder)
        return await self._call(
            f"balanceOf({holder})",
            lambda w3: self._contract(w3, token_address, ERC20_ABI)
            .functions.balanceOf(checksum_holder)
            .call(),
        )

    # ------------------------------------------------------------------
    # PositionEventSource
    # ------------------------------------------------------------------

    async def latest_block(self) -> int:
        return await self._call("blockNumber", lambda w3: w3.eth.block_number)

    async def position_created_events(
        self, from_block: int, to_block: int
    ) -> list[PositionCreated]:
        logs = await self._call(
            f"StabilizerPositionCreated[{from_block}..{to_block}]",
            lambda w3: self._stabilizer(w3)
            .events.StabilizerPositionCreated()
            .get_logs(from_block=from_block, to_block=to_block),
        )
        return [
            PositionCreated(
                position_id=int(log["args"]["tokenId"]),
                owner=log["args"]["owner"],
                block_number=int(log.get("blockNumber", 0) or 0),
            )
            for log in logs
        ]

    # ------------------------------------------------------------------
    # LiquidationSubmitter
    # ------------------------------------------------------------------

    async def submit_liquidation(
        self, liquidator_tier_id: int, position_id: int, quote: PriceQuote
    ) -> str:
        """Sign and send ``liquidatePosition`` and wait for its receipt.

        Sent through the current endpoint only, so a transaction is never
        broadcast twice.

        Raises:
            ExecutionFailure: on missing signer, estimation revert, send
                error, receipt timeout or a reverted receipt.
        """
        if self._account is None:
            raise ExecutionFailure("No private key configured; cannot sign transactions")

        w3 = self._clients[self.current_rpc_index]
        fn = self._stabilizer(w3).functions.liquidatePosition(
            liquidator_tier_id, position_id, self.price_query(quote)
        )

        try:
            gas_estimate = await fn.estimate_gas({"from": self._address})
        except Exception as e:
            raise ExecutionFailure(f"Gas estimation failed (likely revert): {e}") from e

        try:
            async with self._nonce_lock:
                nonce = await w3.eth.get_transaction_count(self._address, "pending")
                tx = await fn.build_transaction(
                    {
                        "from": self._address,
                        "nonce": nonce,
                        "gas": int(gas_estimate * GAS_LIMIT_MULTIPLIER),
                        "chainId": self.chain_id,
                    }
                )
                signed = self._account.sign_transaction(tx)
                tx_hash = await w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as e:
            raise ExecutionFailure(f"Transaction build/send failed: {e}") from e

        tx_hex = AsyncWeb3.to_hex(tx_hash)
        logger.info("Liquidation tx sent for position %d: %s", position_id, tx_hex)

        try:
            receipt = await w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout
            )
        except Exception as e:
            raise ExecutionFailure(f"No receipt for {tx_hex}: {e}") from e

        if receipt["status"] != 1:
            raise ExecutionFailure(f"Transaction {tx_hex} reverted")
        return tx_hex
