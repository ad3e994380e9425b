"""
Read-only lookups of what an address owns.

Nothing here is indexed: ownership is read straight from ERC-721 contracts
with eth_call. Results are limited to the collections asked about (the
network's default SPG collection when none are given) and to the first
MAX_TOKEN_SCAN token ids of each; responses flag when that ceiling was hit.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx
from eth_abi.exceptions import DecodingError
from web3.exceptions import ContractLogicError

from config import NetworkConfig
from integrations import story_abi
from schemas.api import AssetQuery
from utils.errors import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

MAX_TOKEN_SCAN = 1000
SCAN_BATCH = 25

# reverts and empty return data (no contract at the address)
READ_FAILURES = (ContractLogicError, DecodingError)


async def _gather_reads(*reads):
    """Run reads together; every read finishes before the first failure is raised"""
    results = await asyncio.gather(*reads, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return list(results)


@dataclass
class OwnedToken:
    contract: str
    token_id: int
    token_uri: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class OwnedPage:
    tokens: List[OwnedToken]
    total: int
    truncated: bool


class AssetReader:
    """
    ERC-721 ownership and IP registry reads for one network.

    Args:
        chain_client: anything with `async call(to, data) -> bytes`
        network: contracts and chain id
        gateway_url: where ipfs:// token URIs are fetched from
        timeout: metadata fetch timeout in seconds
        transport: optional httpx transport (tests)
    """

    def __init__(self, chain_client, network: NetworkConfig, gateway_url: str = "https://gateway.pinata.cloud/ipfs",
                 timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.chain = chain_client
        self.network = network
        self.gateway_url = gateway_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def _read(self, contract: str, fn_abi: Dict[str, Any], *args) -> Any:
        data = await self.chain.call(contract, story_abi.encode_call(fn_abi, args))
        return story_abi.decode_result(fn_abi, data)

    async def balance_of(self, contract: str, owner: str) -> int:
        try:
            return int(await self._read(contract, story_abi.ERC721_BALANCE_OF, owner.lower()))
        except READ_FAILURES:
            raise ValidationError(
                f"{contract} did not answer balanceOf; is it an ERC-721 contract?",
                {"contract": contract},
            )

    async def _owner_of(self, contract: str, token_id: int) -> Optional[str]:
        try:
            return await self._read(contract, story_abi.ERC721_OWNER_OF, token_id)
        except READ_FAILURES:
            # never minted or burned
            return None

    async def _scan_ceiling(self, contract: str) -> Tuple[int, bool]:
        """Highest token id worth asking about, and whether the scan ceiling cut it short"""
        try:
            supply = int(await self._read(contract, story_abi.ERC721_TOTAL_SUPPLY))
        except READ_FAILURES:
            return MAX_TOKEN_SCAN, True
        return min(supply, MAX_TOKEN_SCAN), supply > MAX_TOKEN_SCAN

    async def owned_tokens(self, contract: str, owner: str, want: int) -> OwnedPage:
        """
        Up to `want` token ids of `contract` held by `owner`, lowest id first.

        SPG collections number tokens from 1, plain ERC-721s often from 0, so
        the scan starts at 0 and skips ids whose ownerOf reverts.
        """
        balance = await self.balance_of(contract, owner)
        if balance == 0 or want == 0:
            return OwnedPage(tokens=[], total=balance, truncated=False)

        ceiling, capped = await self._scan_ceiling(contract)
        needed = min(balance, want)
        found: List[OwnedToken] = []
        token_id = 0
        while token_id <= ceiling and len(found) < needed:
            batch = range(token_id, min(token_id + SCAN_BATCH, ceiling + 1))
            owners = await _gather_reads(*(self._owner_of(contract, t) for t in batch))
            for t, holder in zip(batch, owners):
                if holder is not None and holder.lower() == owner.lower():
                    found.append(OwnedToken(contract=contract, token_id=t))
            token_id = batch.stop

        truncated = capped and len(found) < needed
        if truncated:
            logger.warning(f"⚠️  Token scan of {contract} stopped at id {ceiling} with {len(found)}/{needed} found")
        return OwnedPage(tokens=found[:want], total=balance, truncated=truncated)

    def _http_url(self, uri: str) -> Optional[str]:
        if uri.startswith("ipfs://"):
            return f"{self.gateway_url}/{uri[len('ipfs://'):].lstrip('/')}"
        if uri.startswith(("http://", "https://")):
            return uri
        return None

    async def _fetch_json(self, uri: str) -> Optional[Dict[str, Any]]:
        url = self._http_url(uri)
        if url is None:
            return None
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url)
            response.raise_for_status()
            document = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"⚠️  Could not fetch metadata from {url}: {type(e).__name__}")
            return None
        return document if isinstance(document, dict) else None

    async def attach_metadata(self, token: OwnedToken) -> OwnedToken:
        """tokenURI and the JSON behind it; a missing document leaves the token listed without it"""
        try:
            token.token_uri = await self._read(token.contract, story_abi.ERC721_TOKEN_URI, token.token_id)
        except READ_FAILURES:
            return token
        if token.token_uri:
            token.metadata = await self._fetch_json(token.token_uri)
        return token

    async def ip_id(self, contract: str, token_id: int) -> Tuple[str, bool]:
        registry = self.network.ip_asset_registry
        if not registry:
            raise ConfigurationError(
                "No IP asset registry configured: set IP_ASSET_REGISTRY_ADDRESS",
                {"setting": "IP_ASSET_REGISTRY_ADDRESS"},
            )
        ip_id = await self._read(registry, story_abi.IP_ASSET_ID, self.network.chain_id, contract.lower(), token_id)
        registered = bool(await self._read(registry, story_abi.IS_REGISTERED, ip_id))
        return ip_id, registered

    def _contracts(self, query: AssetQuery) -> List[str]:
        if query.contracts:
            return list(dict.fromkeys(query.contracts))
        if not self.network.default_spg_nft_contract:
            raise ConfigurationError(
                "No default collection configured: pass contracts or set SPG_NFT_CONTRACT_ADDRESS",
                {"setting": "SPG_NFT_CONTRACT_ADDRESS"},
            )
        return [self.network.default_spg_nft_contract]

    async def page(self, query: AssetQuery) -> Tuple[List[str], List[OwnedToken], int, bool]:
        """The tokens in [offset, offset + limit) across the requested contracts, in order"""
        contracts = self._contracts(query)
        wanted = query.offset + query.limit
        collected: List[OwnedToken] = []
        total = 0
        truncated = False
        for contract in contracts:
            result = await self.owned_tokens(contract, query.address, max(wanted - len(collected), 0))
            collected.extend(result.tokens)
            total += result.total
            truncated = truncated or result.truncated

        tokens = collected[query.offset:wanted]
        if query.include_metadata:
            tokens = await _gather_reads(*(self.attach_metadata(t) for t in tokens))
        return contracts, tokens, total, truncated

    def _envelope(self, query: AssetQuery, contracts: List[str], key: str, items: List[Dict[str, Any]],
                  total: int, truncated: bool) -> Dict[str, Any]:
        return {
            "success": True,
            "address": query.address,
            key: items,
            "contractsChecked": contracts,
            "pagination": {
                "limit": query.limit,
                "offset": query.offset,
                "total": total,
                "hasMore": query.offset + len(items) < total,
            },
            "truncated": truncated,
            "metadata": {
                "includeMetadata": query.include_metadata,
                "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            },
        }

    async def get_nfts(self, query: AssetQuery) -> Dict[str, Any]:
        contracts, tokens, total, truncated = await self.page(query)
        spg = (self.network.default_spg_nft_contract or "").lower()
        items = []
        for token in tokens:
            item = {
                "contractAddress": token.contract,
                "tokenId": str(token.token_id),
                "isStoryCollection": token.contract.lower() == spg,
            }
            if token.token_uri is not None:
                item["tokenURI"] = token.token_uri
            if token.metadata is not None:
                item["metadata"] = token.metadata
            items.append(item)
        logger.info(f"🔎 {len(items)} NFT(s) for {query.address} across {len(contracts)} contract(s)")
        return self._envelope(query, contracts, "nfts", items, total, truncated)

    async def get_assets(self, query: AssetQuery) -> Dict[str, Any]:
        """Owned NFTs with the IP id each maps to and whether it has been registered"""
        contracts, tokens, total, truncated = await self.page(query)
        ids = await _gather_reads(*(self.ip_id(t.contract, t.token_id) for t in tokens))
        items = []
        for token, (ip_id, registered) in zip(tokens, ids):
            item = {
                "ipId": ip_id,
                "registered": registered,
                "owner": query.address,
                "nftContract": token.contract,
                "tokenId": str(token.token_id),
            }
            if token.metadata is not None:
                item["name"] = token.metadata.get("name") or token.metadata.get("title")
                item["description"] = token.metadata.get("description")
                item["image"] = token.metadata.get("image")
            if token.token_uri is not None:
                item["metadataURI"] = token.token_uri
            items.append(item)
        logger.info(f"🔎 {len(items)} IP asset(s) for {query.address}")
        return self._envelope(query, contracts, "assets", items, total, truncated)
