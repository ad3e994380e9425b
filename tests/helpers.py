"""
Shared fixtures for the test suite: a scripted chain client and request builders
"""

import base64
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from eth_abi import decode, encode
from eth_utils import keccak, to_checksum_address
from web3.exceptions import ContractLogicError

from config import get_network_config
from integrations import story_abi
from integrations.ipfs import MockContentStore
from services.pipeline import PreparationPipeline
from utils.errors import ChainRPCError

USER = "0x1234567890123456789012345678901234567890"
OTHER = "0xabcdefabcdefabcdefabcdefabcdefabcdefabcd"
PARENT_IP = "0x" + "b" * 40
TOKEN = "0x" + "c" * 40

# 1x1 RGBA PNG, a real image so libmagic identifies it
PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)
PNG_B64 = base64.b64encode(PNG_BYTES).decode()


READ_SELECTORS = {
    story_abi.selector(fn): fn
    for fn in (
        story_abi.ERC721_BALANCE_OF,
        story_abi.ERC721_OWNER_OF,
        story_abi.ERC721_TOKEN_URI,
        story_abi.ERC721_TOTAL_SUPPLY,
        story_abi.IP_ASSET_ID,
        story_abi.IS_REGISTERED,
    )
}


def decode_args(fn_abi, raw):
    return decode([story_abi.abi_type(p) for p in fn_abi["inputs"]], raw)


def _answer(fn_abi, value):
    return encode([story_abi.abi_type(p) for p in fn_abi["outputs"]], [value])


def derived_ip_id(contract, token_id):
    """Stable fake IP id for an NFT"""
    return to_checksum_address(keccak(text=f"{contract.lower()}:{token_id}")[-20:])


class Collection:
    """A scripted ERC-721: token id -> owner and token id -> tokenURI"""

    def __init__(self, owners, uris=None, supply=None):
        self.owners = {t: o.lower() for t, o in owners.items()}
        self.uris = uris or {}
        self.supply = supply

    def answer(self, fn_abi, args):
        if fn_abi is story_abi.ERC721_BALANCE_OF:
            return sum(1 for o in self.owners.values() if o == args[0].lower())
        if fn_abi is story_abi.ERC721_TOTAL_SUPPLY:
            if self.supply is None:
                raise ContractLogicError("execution reverted")
            return self.supply
        token_id = args[0]
        if token_id not in self.owners:
            raise ContractLogicError("ERC721NonexistentToken")
        if fn_abi is story_abi.ERC721_OWNER_OF:
            return to_checksum_address(self.owners[token_id])
        return self.uris.get(token_id, "")


class FakeChainClient:
    """Stands in for ChainClient; every answer is scripted and every call recorded"""

    def __init__(self, balance=10 ** 21, gas_price=10 ** 9, gas=100_000, chain_id=1315, block_number=123,
                 estimate_error=None, balance_error=False, gas_price_error=False, rpc_down=False,
                 collections=None, registered=()):
        self.balance = balance
        self.gas_price = gas_price
        self.gas = gas
        self.chain_id = chain_id
        self.block_number = block_number
        self.estimate_error = estimate_error
        self.balance_error = balance_error
        self.gas_price_error = gas_price_error
        self.rpc_down = rpc_down
        self.active_rpc_url = "https://rpc.test"
        self.estimates = []
        self.balance_queries = []
        # {contract: Collection}; any other address has no code and answers with empty return data
        self.collections = {c.lower(): coll for c, coll in (collections or {}).items()}
        self.registered = {r.lower() for r in registered}
        self.calls = []

    async def get_balance(self, address):
        self.balance_queries.append(address)
        if self.balance_error or self.rpc_down:
            raise ChainRPCError("All RPC endpoints failed during get_balance")
        return self.balance

    async def get_gas_price(self):
        if self.gas_price_error or self.rpc_down:
            raise ChainRPCError("All RPC endpoints failed during gas_price")
        return self.gas_price

    async def estimate_gas(self, to, data, sender, value=0):
        self.estimates.append({"to": to, "data": data, "sender": sender, "value": value})
        if self.estimate_error is not None:
            raise self.estimate_error
        return self.gas

    async def get_chain_id(self):
        if self.rpc_down:
            raise ChainRPCError("All RPC endpoints failed during chain_id")
        return self.chain_id

    async def get_block_number(self):
        if self.rpc_down:
            raise ChainRPCError("All RPC endpoints failed during block_number")
        return self.block_number

    async def call(self, to, data):
        self.calls.append({"to": to, "data": data})
        if self.rpc_down:
            raise ChainRPCError("All RPC endpoints failed during call")
        raw = bytes.fromhex(data[2:])
        fn_abi = READ_SELECTORS.get(raw[:4])
        if fn_abi is None:
            raise ContractLogicError("execution reverted")
        args = decode_args(fn_abi, raw[4:])

        if fn_abi is story_abi.IP_ASSET_ID:
            return _answer(fn_abi, derived_ip_id(args[1], args[2]))
        if fn_abi is story_abi.IS_REGISTERED:
            return _answer(fn_abi, args[0].lower() in self.registered)

        collection = self.collections.get(to.lower())
        if collection is None:
            return b""
        return _answer(fn_abi, collection.answer(fn_abi, args))


def aeneid_network(**env):
    """aeneid table without picking up the developer's environment"""
    return get_network_config("aeneid", env=env)


def make_pipeline(chain=None, store=None, network=None, **kwargs):
    chain = chain or FakeChainClient()
    store = store or MockContentStore()
    network = network or aeneid_network()
    return PreparationPipeline(network=network, content_store=store, chain_client=chain, **kwargs)


def creator(address=USER, percent=100, name="Alice"):
    return {"name": name, "address": address, "contributionPercent": percent}


def ip_metadata(**overrides):
    data = {
        "title": "My Artwork",
        "description": "Original digital artwork",
        "creators": [creator()],
    }
    data.update(overrides)
    return data


def nft_metadata(**overrides):
    data = {"name": "My Artwork NFT", "description": "Ownership token for My Artwork"}
    data.update(overrides)
    return data


def register_payload(**overrides):
    data = {"userAddress": USER, "ipMetadata": ip_metadata(), "nftMetadata": nft_metadata()}
    data.update(overrides)
    return data


def derivative_payload(**overrides):
    data = {
        "userAddress": USER,
        "parentIpIds": [PARENT_IP],
        "licenseTermsIds": [1],
        "ipMetadata": ip_metadata(title="My Remix"),
    }
    data.update(overrides)
    return data


def license_payload(**overrides):
    data = {"userAddress": USER, "licenseTermsId": 1, "licensorIpId": PARENT_IP, "amount": 2}
    data.update(overrides)
    return data


def royalty_payload(operation="pay", **overrides):
    data = {"userAddress": USER, "operation": operation, "ipId": PARENT_IP}
    if operation == "pay":
        data.update(amount="1000", token=TOKEN)
    elif operation == "claim":
        data.update(currencyTokens=[TOKEN])
    else:
        data.update(amount="500", recipient=OTHER)
    data.update(overrides)
    return data


def collection_payload(**overrides):
    data = {
        "userAddress": USER,
        "name": "My Collection",
        "symbol": "MYC",
        "isPublicMinting": True,
        "mintOpen": True,
    }
    data.update(overrides)
    return data


def dispute_payload(**overrides):
    data = {
        "userAddress": USER,
        "targetIpId": PARENT_IP,
        "evidence": "This asset copies my registered artwork line for line.",
        "targetTag": "PLAGIARISM",
        "bond": "1000000000000000000",
        "liveness": 86400,
    }
    data.update(overrides)
    return data


def cli_payload(**overrides):
    data = {
        "userAddress": USER,
        "filePath": "/home/alice/art/my_cool-photo.png",
        "fileData": PNG_B64,
        "filename": "my_cool-photo.png",
        "contentType": "image/png",
    }
    data.update(overrides)
    return data
