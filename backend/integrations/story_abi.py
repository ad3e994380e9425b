"""Story protocol ABI fragments used to encode prepared calls and read chain state"""

from typing import Any, Dict, List, Sequence

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector


def _param(name: str, type_: str, components: List[Dict] = None) -> Dict[str, Any]:
    param = {"name": name, "type": type_}
    if components is not None:
        param["components"] = components
    return param


def _function(name: str, inputs: List[Dict], mutability: str = "nonpayable") -> Dict[str, Any]:
    return {"type": "function", "name": name, "inputs": inputs, "outputs": [], "stateMutability": mutability}


def _view(name: str, inputs: List[Dict], outputs: List[Dict]) -> Dict[str, Any]:
    return {"type": "function", "name": name, "inputs": inputs, "outputs": outputs, "stateMutability": "view"}


IP_METADATA = [
    _param("ipMetadataURI", "string"),
    _param("ipMetadataHash", "bytes32"),
    _param("nftMetadataURI", "string"),
    _param("nftMetadataHash", "bytes32"),
]

PIL_TERMS = [
    _param("transferable", "bool"),
    _param("royaltyPolicy", "address"),
    _param("defaultMintingFee", "uint256"),
    _param("expiration", "uint256"),
    _param("commercialUse", "bool"),
    _param("commercialAttribution", "bool"),
    _param("commercializerChecker", "address"),
    _param("commercializerCheckerData", "bytes"),
    _param("commercialRevShare", "uint32"),
    _param("commercialRevCeiling", "uint256"),
    _param("derivativesAllowed", "bool"),
    _param("derivativesAttribution", "bool"),
    _param("derivativesApproval", "bool"),
    _param("derivativesReciprocal", "bool"),
    _param("derivativeRevCeiling", "uint256"),
    _param("currency", "address"),
    _param("uri", "string"),
]

LICENSING_CONFIG = [
    _param("isSet", "bool"),
    _param("mintingFee", "uint256"),
    _param("licensingHook", "address"),
    _param("hookData", "bytes"),
    _param("commercialRevShare", "uint32"),
    _param("disabled", "bool"),
    _param("expectMinimumGroupRewardShare", "uint32"),
    _param("expectGroupRewardPool", "address"),
]

MAKE_DERIVATIVE = [
    _param("parentIpIds", "address[]"),
    _param("licenseTemplate", "address"),
    _param("licenseTermsIds", "uint256[]"),
    _param("royaltyContext", "bytes"),
    _param("maxMintingFee", "uint256"),
    _param("maxRts", "uint32"),
    _param("maxRevenueShare", "uint32"),
]

COLLECTION_INIT_PARAMS = [
    _param("name", "string"),
    _param("symbol", "string"),
    _param("baseURI", "string"),
    _param("contractURI", "string"),
    _param("maxSupply", "uint32"),
    _param("mintFee", "uint256"),
    _param("mintFeeToken", "address"),
    _param("mintFeeRecipient", "address"),
    _param("owner", "address"),
    _param("mintOpen", "bool"),
    _param("isPublicMinting", "bool"),
]

# RegistrationWorkflows
CREATE_COLLECTION = _function("createCollection", [
    _param("spgNftInitParams", "tuple", COLLECTION_INIT_PARAMS),
])

# LicenseAttachmentWorkflows
MINT_AND_REGISTER_IP_AND_ATTACH_PIL_TERMS = _function("mintAndRegisterIpAndAttachPILTerms", [
    _param("spgNftContract", "address"),
    _param("recipient", "address"),
    _param("ipMetadata", "tuple", IP_METADATA),
    _param("licenseTermsData", "tuple[]", [
        _param("terms", "tuple", PIL_TERMS),
        _param("licensingConfig", "tuple", LICENSING_CONFIG),
    ]),
    _param("allowDuplicates", "bool"),
])

# DerivativeWorkflows
MINT_AND_REGISTER_IP_AND_MAKE_DERIVATIVE = _function("mintAndRegisterIpAndMakeDerivative", [
    _param("spgNftContract", "address"),
    _param("derivData", "tuple", MAKE_DERIVATIVE),
    _param("ipMetadata", "tuple", IP_METADATA),
    _param("recipient", "address"),
    _param("allowDuplicates", "bool"),
])

# LicensingModule
MINT_LICENSE_TOKENS = _function("mintLicenseTokens", [
    _param("licensorIpId", "address"),
    _param("licenseTemplate", "address"),
    _param("licenseTermsId", "uint256"),
    _param("amount", "uint256"),
    _param("receiver", "address"),
    _param("royaltyContext", "bytes"),
    _param("maxMintingFee", "uint256"),
    _param("maxRevenueShare", "uint32"),
])

# RoyaltyModule
PAY_ROYALTY_ON_BEHALF = _function("payRoyaltyOnBehalf", [
    _param("receiverIpId", "address"),
    _param("payerIpId", "address"),
    _param("token", "address"),
    _param("amount", "uint256"),
])

# RoyaltyWorkflows
CLAIM_ALL_REVENUE = _function("claimAllRevenue", [
    _param("ancestorIpId", "address"),
    _param("claimer", "address"),
    _param("childIpIds", "address[]"),
    _param("royaltyPolicies", "address[]"),
    _param("currencyTokens", "address[]"),
])

# IPAccount
IP_ACCOUNT_EXECUTE = _function("execute", [
    _param("to", "address"),
    _param("value", "uint256"),
    _param("data", "bytes"),
], mutability="payable")

ERC20_TRANSFER = _function("transfer", [
    _param("to", "address"),
    _param("amount", "uint256"),
])

# DisputeModule
RAISE_DISPUTE = _function("raiseDispute", [
    _param("targetIpId", "address"),
    _param("disputeEvidenceHash", "bytes32"),
    _param("targetTag", "bytes32"),
    _param("data", "bytes"),
])

# ERC-721 reads (SPG collections and any other NFT contract)
ERC721_BALANCE_OF = _view("balanceOf", [_param("owner", "address")], [_param("", "uint256")])
ERC721_OWNER_OF = _view("ownerOf", [_param("tokenId", "uint256")], [_param("", "address")])
ERC721_TOKEN_URI = _view("tokenURI", [_param("tokenId", "uint256")], [_param("", "string")])
ERC721_TOTAL_SUPPLY = _view("totalSupply", [], [_param("", "uint256")])

# IPAssetRegistry
IP_ASSET_ID = _view("ipId", [
    _param("chainId", "uint256"),
    _param("tokenContract", "address"),
    _param("tokenId", "uint256"),
], [_param("", "address")])
IS_REGISTERED = _view("isRegistered", [_param("id", "address")], [_param("", "bool")])

# UMA arbitration policy payload carried in raiseDispute's `data`
UMA_DISPUTE_DATA_TYPES = ["uint64", "address", "uint256"]


def abi_type(param: Dict[str, Any]) -> str:
    """Canonical type string, expanding tuples: tuple[] -> (address,uint256)[]"""
    type_ = param["type"]
    if type_.startswith("tuple"):
        inner = ",".join(abi_type(c) for c in param["components"])
        return f"({inner}){type_[len('tuple'):]}"
    return type_


def function_signature(fn_abi: Dict[str, Any]) -> str:
    return f"{fn_abi['name']}({','.join(abi_type(p) for p in fn_abi['inputs'])})"


def selector(fn_abi: Dict[str, Any]) -> bytes:
    return function_signature_to_4byte_selector(function_signature(fn_abi))


def encode_call(fn_abi: Dict[str, Any], args: Sequence[Any]) -> str:
    """4-byte selector + ABI-encoded arguments as 0x-hex"""
    types = [abi_type(p) for p in fn_abi["inputs"]]
    if len(types) != len(args):
        raise ValueError(f"{fn_abi['name']} expects {len(types)} arguments, got {len(args)}")
    return "0x" + (selector(fn_abi) + encode(types, list(args))).hex()


def encode_values(types: Sequence[str], values: Sequence[Any]) -> bytes:
    return encode(list(types), list(values))


def decode_result(fn_abi: Dict[str, Any], data: bytes) -> Any:
    """Decode eth_call return data; single outputs come back unwrapped"""
    values = decode([abi_type(p) for p in fn_abi["outputs"]], data)
    return values[0] if len(values) == 1 else values
