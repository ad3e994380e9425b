"""
Read-only Story chain client.

Only ever queries: gas price, balances, gas estimates, eth_call reads, block
number and chain id. Connection-level failures rotate through the configured
RPC URLs; anything the node actually answered (e.g. an estimation revert) is
raised to the caller unchanged.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiohttp
from eth_utils import to_checksum_address
from web3 import AsyncHTTPProvider, AsyncWeb3

from utils.errors import ChainRPCError

logger = logging.getLogger(__name__)

CONNECTION_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)


def default_web3_factory(rpc_url: str, timeout: float) -> AsyncWeb3:
    provider = AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": aiohttp.ClientTimeout(total=timeout)})
    return AsyncWeb3(provider)


class ChainClient:
    """
    Failover wrapper around AsyncWeb3.

    Args:
        rpc_urls: primary first, then fallbacks
        timeout: per-request timeout in seconds
        web3_factory: builds an AsyncWeb3-like object for a URL (tests pass fakes)
    """

    def __init__(self, rpc_urls: List[str], timeout: float = 10.0,
                 web3_factory: Optional[Callable[[str, float], Any]] = None):
        if not rpc_urls:
            raise ValueError("At least one RPC URL is required")
        self.rpc_urls = list(rpc_urls)
        self.timeout = timeout
        self._factory = web3_factory or default_web3_factory
        self._clients: Dict[str, Any] = {}
        self._active = 0

    @classmethod
    def from_network(cls, network, timeout: float = 10.0) -> "ChainClient":
        return cls(network.rpc_urls, timeout=timeout)

    @property
    def active_rpc_url(self) -> str:
        return self.rpc_urls[self._active]

    def _web3(self, url: str):
        if url not in self._clients:
            self._clients[url] = self._factory(url, self.timeout)
        return self._clients[url]

    async def _call(self, label: str, fn: Callable[[Any], Awaitable[Any]]) -> Any:
        count = len(self.rpc_urls)
        errors = []
        for offset in range(count):
            index = (self._active + offset) % count
            url = self.rpc_urls[index]
            try:
                result = await asyncio.wait_for(fn(self._web3(url)), timeout=self.timeout)
            except CONNECTION_ERRORS as e:
                logger.warning(f"⚠️  RPC {url} failed during {label}: {type(e).__name__}: {e}")
                errors.append(f"{url}: {type(e).__name__}")
                continue
            if index != self._active:
                logger.info(f"🔁 Switched active RPC to {url}")
                self._active = index
            return result

        logger.error(f"❌ All {count} RPC endpoint(s) failed during {label}")
        raise ChainRPCError(f"All RPC endpoints failed during {label}", {"attempts": errors})

    async def get_gas_price(self) -> int:
        async def _q(w3):
            return await w3.eth.gas_price
        return int(await self._call("gas_price", _q))

    async def get_balance(self, address: str) -> int:
        checksummed = to_checksum_address(address)

        async def _q(w3):
            return await w3.eth.get_balance(checksummed)
        return int(await self._call("get_balance", _q))

    async def estimate_gas(self, to: str, data: str, sender: str, value: int = 0) -> int:
        tx = {
            "from": to_checksum_address(sender),
            "to": to_checksum_address(to),
            "data": data,
            "value": value,
        }

        async def _q(w3):
            return await w3.eth.estimate_gas(tx)
        return int(await self._call("estimate_gas", _q))

    async def call(self, to: str, data: str) -> bytes:
        """eth_call against the latest block; reverts surface as web3's ContractLogicError"""
        tx = {"to": to_checksum_address(to), "data": data}

        async def _q(w3):
            return await w3.eth.call(tx)
        return bytes(await self._call("call", _q))

    async def get_block_number(self) -> int:
        async def _q(w3):
            return await w3.eth.block_number
        return int(await self._call("block_number", _q))

    async def get_chain_id(self) -> int:
        async def _q(w3):
            return await w3.eth.chain_id
        return int(await self._call("chain_id", _q))
