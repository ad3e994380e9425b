"""
Per-operation parameter assembly.

Each assemble_* function is pure: validated request + staged content +
network context in, ProtocolCall out. Business rules that would only show up
as an on-chain revert (missing contract, bad license terms, dispute windows)
are enforced here so we never estimate gas for a doomed transaction.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from config import NetworkConfig
from integrations import story_abi
from pydantic.alias_generators import to_camel
from schemas.api import (
    CLIMintRequest,
    CollectionRequest,
    DerivativeRequest,
    DisputeRequest,
    LicenseMintRequest,
    RegisterIPRequest,
    RoyaltyRequest,
    check_dispute_bond,
    check_dispute_liveness,
)
from schemas.domain import ADDRESS_RE, ContentMetadata, LicenseTermsConfig, UploadedContentRef
from services.hashing import to_bytes32, to_bytes32_hex
from utils.errors import ConfigurationError, ParameterError, ValidationError

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40
MAX_UINT32 = 2 ** 32 - 1

# PIL percentages are uint32 with 100% == 100_000_000
REV_SHARE_SCALE = 10 ** 6
MAX_REVENUE_SHARE = 100 * REV_SHARE_SCALE
MAX_RTS = 100_000_000

DEFAULT_COMMERCIAL_REV_SHARE = 5
DEFAULT_MINTING_FEE_WEI = 10 ** 18  # 1 IP

PIL_URI_NON_COMMERCIAL = (
    "https://github.com/piplabs/pil-document/blob/998c13e6ee1d04eb817aefd1fe16dfe8be3cd7a2/off-chain-terms/NCSR.json"
)
PIL_URI_COMMERCIAL_REMIX = (
    "https://github.com/piplabs/pil-document/blob/ad67bb632a310d2557f8abcccd428e4c9c798db1/off-chain-terms/CommercialRemix.json"
)

# What a non-commercial flavor still lets the caller change
NON_COMMERCIAL_OVERRIDES = {
    "transferable",
    "expiration",
    "derivatives_allowed",
    "derivatives_attribution",
    "derivatives_approval",
    "derivatives_reciprocal",
    "uri",
}


@dataclass(frozen=True)
class AssemblyContext:
    network: NetworkConfig
    license_fee_per_token_wei: int = DEFAULT_MINTING_FEE_WEI


@dataclass(frozen=True)
class StagedContent:
    """Whatever the content stage pinned before assembly"""
    metadata: ContentMetadata = field(default_factory=ContentMetadata)
    ip_metadata_uri: Optional[str] = None
    nft_metadata_uri: Optional[str] = None
    uploaded_files: Tuple[UploadedContentRef, ...] = ()
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ProtocolCall:
    """A contract call ready for encoding"""
    to: str
    function: Dict[str, Any]
    args: Tuple[Any, ...]
    value: int = 0
    additional_data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LicenseTerms:
    flavor: str
    terms: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        """camelCase record for responses; wei amounts as strings"""
        out = {}
        for key, value in self.terms.items():
            out[to_camel(key)] = str(value) if key in ("default_minting_fee", "expiration") else value
        out["flavor"] = self.flavor
        return out


def _address(value: str, label: str) -> str:
    """Lower-cased address for ABI encoding"""
    if not isinstance(value, str) or not ADDRESS_RE.fullmatch(value):
        raise ParameterError(f"{label} must be a 0x-prefixed 20-byte address", {"field": label, "value": value})
    return value.lower()


def _addresses(values: Sequence[str], label: str) -> List[str]:
    return [_address(v, f"{label}[{i}]") for i, v in enumerate(values)]


def _hex_bytes(value: str, label: str) -> bytes:
    if not value or value == "0x":
        return b""
    if not value.startswith("0x"):
        raise ValidationError(f"{label} must be 0x-prefixed hex")
    try:
        return bytes.fromhex(value[2:])
    except ValueError:
        raise ValidationError(f"{label} must be 0x-prefixed hex")


def resolve_contract(explicit: Optional[str], default: Optional[str], setting: str, operation: str) -> str:
    """Caller value, else network default, else a configuration error"""
    if explicit:
        return explicit
    if default:
        return default
    raise ConfigurationError(
        f"No contract address available for {operation}: set {setting} or pass one in the request",
        {"setting": setting, "operation": operation},
    )


def _ip_metadata_tuple(staged: StagedContent) -> Tuple[str, bytes, str, bytes]:
    meta = staged.metadata
    if not (staged.ip_metadata_uri and meta.ip_hash and staged.nft_metadata_uri and meta.nft_hash):
        raise ParameterError("Metadata must be uploaded before registration parameters can be assembled")
    return (
        staged.ip_metadata_uri,
        to_bytes32(meta.ip_hash),
        staged.nft_metadata_uri,
        to_bytes32(meta.nft_hash),
    )


# License terms

def non_commercial_social_remixing() -> Dict[str, Any]:
    return {
        "transferable": True,
        "royalty_policy": ZERO_ADDRESS,
        "default_minting_fee": 0,
        "expiration": 0,
        "commercial_use": False,
        "commercial_attribution": False,
        "commercializer_checker": ZERO_ADDRESS,
        "commercializer_checker_data": "0x",
        "commercial_rev_share": 0,
        "derivatives_allowed": True,
        "derivatives_attribution": True,
        "derivatives_approval": False,
        "derivatives_reciprocal": True,
        "derivative_rev_share": 0,
        "currency": ZERO_ADDRESS,
        "uri": PIL_URI_NON_COMMERCIAL,
    }


def commercial_remix(rev_share: float, minting_fee: int, currency: str, royalty_policy: str) -> Dict[str, Any]:
    return {
        "transferable": True,
        "royalty_policy": royalty_policy,
        "default_minting_fee": minting_fee,
        "expiration": 0,
        "commercial_use": True,
        "commercial_attribution": True,
        "commercializer_checker": ZERO_ADDRESS,
        "commercializer_checker_data": "0x",
        "commercial_rev_share": rev_share,
        "derivatives_allowed": True,
        "derivatives_attribution": True,
        "derivatives_approval": False,
        "derivatives_reciprocal": True,
        "derivative_rev_share": 0,
        "currency": currency,
        "uri": PIL_URI_COMMERCIAL_REMIX,
    }


def resolve_license_terms(overrides: Optional[LicenseTermsConfig], network: NetworkConfig) -> LicenseTerms:
    """
    Complete PIL terms from caller overrides.

    No overrides -> commercial remix (5% share, 1 IP minting fee, WIP).
    commercialUse false or no revenue share -> non-commercial social remixing,
    keeping only the overrides that make sense without commercial use.
    Otherwise commercial remix with the caller's share/fee/currency and the
    remaining overrides merged on top.
    """
    wip = network.wip_token or ZERO_ADDRESS
    lap = network.royalty_policy_lap or ZERO_ADDRESS

    given: Dict[str, Any] = {}
    if overrides is None:
        terms = commercial_remix(DEFAULT_COMMERCIAL_REV_SHARE, DEFAULT_MINTING_FEE_WEI, wip, lap)
        flavor = "commercial_remix"
    else:
        given = overrides.overrides()
        share = given.get("commercial_rev_share")
        if given.get("commercial_use") is False or not share:
            terms = non_commercial_social_remixing()
            terms.update({k: v for k, v in given.items() if k in NON_COMMERCIAL_OVERRIDES})
            flavor = "non_commercial_social_remixing"
        else:
            terms = commercial_remix(
                share,
                int(given.get("default_minting_fee", DEFAULT_MINTING_FEE_WEI)),
                given.get("currency", wip),
                given.get("royalty_policy", lap),
            )
            terms.update(given)
            flavor = "commercial_remix"

    if not terms["derivatives_allowed"]:
        # flavor defaults describe derivatives; drop them unless the caller set them
        for key in ("derivatives_attribution", "derivatives_approval", "derivatives_reciprocal"):
            if key not in given:
                terms[key] = False

    terms["default_minting_fee"] = int(terms["default_minting_fee"])
    terms["expiration"] = int(terms["expiration"])
    check_license_terms(terms)
    return LicenseTerms(flavor=flavor, terms=terms)


def check_license_terms(terms: Dict[str, Any]) -> None:
    problems = []
    for key in ("commercial_rev_share", "derivative_rev_share"):
        if not 0 <= terms[key] <= 100:
            problems.append(f"{to_camel(key)} must be between 0 and 100")
    if terms["commercial_use"]:
        if terms["royalty_policy"].lower() == ZERO_ADDRESS:
            problems.append("commercialUse requires a royaltyPolicy")
        if terms["currency"].lower() == ZERO_ADDRESS:
            problems.append("commercialUse requires a currency")
    else:
        if terms["commercial_attribution"]:
            problems.append("commercialAttribution requires commercialUse")
        if terms["commercial_rev_share"]:
            problems.append("commercialRevShare requires commercialUse")
    if not terms["derivatives_allowed"]:
        for key in ("derivatives_attribution", "derivatives_approval", "derivatives_reciprocal"):
            if terms[key]:
                problems.append(f"{to_camel(key)} requires derivativesAllowed")
    if problems:
        raise ValidationError("Invalid license terms: " + "; ".join(problems), {"errors": problems})


def pil_terms_tuple(terms: Dict[str, Any]) -> Tuple:
    return (
        terms["transferable"],
        _address(terms["royalty_policy"], "royaltyPolicy"),
        terms["default_minting_fee"],
        terms["expiration"],
        terms["commercial_use"],
        terms["commercial_attribution"],
        _address(terms["commercializer_checker"], "commercializerChecker"),
        _hex_bytes(terms["commercializer_checker_data"], "commercializerCheckerData"),
        int(round(terms["commercial_rev_share"] * REV_SHARE_SCALE)),
        0,  # commercialRevCeiling
        terms["derivatives_allowed"],
        terms["derivatives_attribution"],
        terms["derivatives_approval"],
        terms["derivatives_reciprocal"],
        0,  # derivativeRevCeiling
        _address(terms["currency"], "currency"),
        terms["uri"],
    )


def default_licensing_config() -> Tuple:
    return (False, 0, ZERO_ADDRESS, b"", 0, False, 0, ZERO_ADDRESS)


# Operations

def _register_call(user_address: str, spg_override: Optional[str], terms_overrides: Optional[LicenseTermsConfig],
                   staged: StagedContent, ctx: AssemblyContext, operation: str) -> ProtocolCall:
    network = ctx.network
    spg = resolve_contract(spg_override, network.default_spg_nft_contract, "SPG_NFT_CONTRACT_ADDRESS", operation)
    license_terms = resolve_license_terms(terms_overrides, network)

    args = (
        _address(spg, "spgNftContract"),
        _address(user_address, "userAddress"),
        _ip_metadata_tuple(staged),
        [(pil_terms_tuple(license_terms.terms), default_licensing_config())],
        True,  # allowDuplicates
    )
    return ProtocolCall(
        to=spg,
        function=story_abi.MINT_AND_REGISTER_IP_AND_ATTACH_PIL_TERMS,
        args=args,
        value=0,
        additional_data={
            "spgNftContract": spg,
            "licenseTerms": license_terms.to_dict(),
            "ipMetadataURI": staged.ip_metadata_uri,
            "nftMetadataURI": staged.nft_metadata_uri,
        },
    )


def assemble_register(request: RegisterIPRequest, staged: StagedContent, ctx: AssemblyContext) -> ProtocolCall:
    return _register_call(request.user_address, request.spg_nft_contract, request.license_terms,
                          staged, ctx, "register")


def assemble_cli_mint(request: CLIMintRequest, staged: StagedContent, ctx: AssemblyContext) -> ProtocolCall:
    return _register_call(request.user_address, request.spg_nft_contract, request.license_terms,
                          staged, ctx, "cli_mint")


def assemble_derivative(request: DerivativeRequest, staged: StagedContent, ctx: AssemblyContext) -> ProtocolCall:
    network = ctx.network
    spg = resolve_contract(request.spg_nft_contract, network.default_spg_nft_contract,
                           "SPG_NFT_CONTRACT_ADDRESS", "derivative")
    template = resolve_contract(None, network.pil_license_template, "PIL_LICENSE_TEMPLATE_ADDRESS", "derivative")

    deriv_data = (
        _addresses(request.parent_ip_ids, "parentIpIds"),
        _address(template, "licenseTemplate"),
        list(request.license_terms_ids),
        b"",  # royaltyContext
        0,  # maxMintingFee: no cap
        MAX_RTS,
        MAX_REVENUE_SHARE,
    )
    args = (
        _address(spg, "spgNftContract"),
        deriv_data,
        _ip_metadata_tuple(staged),
        _address(request.user_address, "userAddress"),
        True,
    )
    return ProtocolCall(
        to=spg,
        function=story_abi.MINT_AND_REGISTER_IP_AND_MAKE_DERIVATIVE,
        args=args,
        additional_data={
            "parentIpIds": list(request.parent_ip_ids),
            "licenseTermsIds": list(request.license_terms_ids),
            "totalLicensingFee": "0",
            "spgNftContract": spg,
            "ipMetadataURI": staged.ip_metadata_uri,
            "nftMetadataURI": staged.nft_metadata_uri,
        },
    )


def assemble_license(request: LicenseMintRequest, staged: StagedContent, ctx: AssemblyContext) -> ProtocolCall:
    network = ctx.network
    module = resolve_contract(None, network.licensing_module, "LICENSING_MODULE_ADDRESS", "license")
    template = resolve_contract(None, network.pil_license_template, "PIL_LICENSE_TEMPLATE_ADDRESS", "license")
    receiver = request.receiver or request.user_address
    fee_per_license = ctx.license_fee_per_token_wei
    total_fee = fee_per_license * request.amount

    args = (
        _address(request.licensor_ip_id, "licensorIpId"),
        _address(template, "licenseTemplate"),
        request.license_terms_id,
        request.amount,
        _address(receiver, "receiver"),
        b"",  # royaltyContext
        0,  # maxMintingFee: no cap
        MAX_REVENUE_SHARE,
    )
    return ProtocolCall(
        to=module,
        function=story_abi.MINT_LICENSE_TOKENS,
        args=args,
        value=total_fee,
        additional_data={
            "licenseTermsId": request.license_terms_id,
            "licensorIpId": request.licensor_ip_id,
            "amount": request.amount,
            "receiver": receiver,
            "estimatedFeePerLicense": str(fee_per_license),
            "totalEstimatedFee": str(total_fee),
            "feeToken": "WIP",
        },
    )


def assemble_royalty(request: RoyaltyRequest, staged: StagedContent, ctx: AssemblyContext) -> ProtocolCall:
    network = ctx.network
    ip_id = _address(request.ip_id, "ipId")
    base = {"operation": request.operation, "ipId": request.ip_id}

    if request.operation == "pay":
        module = resolve_contract(None, network.royalty_module, "ROYALTY_MODULE_ADDRESS", "royalty pay")
        amount = int(request.amount)
        args = (ip_id, ZERO_ADDRESS, _address(request.token, "token"), amount)
        return ProtocolCall(
            to=module,
            function=story_abi.PAY_ROYALTY_ON_BEHALF,
            args=args,
            value=amount,
            additional_data={**base, "paymentAmount": request.amount, "paymentToken": request.token},
        )

    if request.operation == "claim":
        workflows = resolve_contract(None, network.royalty_workflows, "ROYALTY_WORKFLOWS_ADDRESS", "royalty claim")
        tokens = list(request.currency_tokens or [])
        # the IP account holds the royalty tokens by default, so it is the claimer
        args = (ip_id, ip_id, [], [], _addresses(tokens, "currencyTokens"))
        return ProtocolCall(
            to=workflows,
            function=story_abi.CLAIM_ALL_REVENUE,
            args=args,
            additional_data={**base, "currencyTokens": tokens, "tokenCount": len(tokens)},
        )

    # transfer out of the IP account
    amount = int(request.amount)
    recipient = _address(request.recipient, "recipient")
    if request.token:
        inner = story_abi.encode_call(story_abi.ERC20_TRANSFER, (recipient, amount))
        args = (_address(request.token, "token"), 0, bytes.fromhex(inner[2:]))
    else:
        args = (recipient, amount, b"")
    return ProtocolCall(
        to=request.ip_id,
        function=story_abi.IP_ACCOUNT_EXECUTE,
        args=args,
        additional_data={**base, "amount": request.amount, "recipient": request.recipient,
                         "token": request.token},
    )


def assemble_collection(request: CollectionRequest, staged: StagedContent, ctx: AssemblyContext) -> ProtocolCall:
    network = ctx.network
    workflows = resolve_contract(None, network.registration_workflows,
                                 "REGISTRATION_WORKFLOWS_ADDRESS", "collection")
    fee_token = request.mint_fee_token or network.wip_token or ZERO_ADDRESS
    fee_recipient = request.mint_fee_recipient or request.user_address
    init_params = (
        request.name,
        request.symbol,
        request.base_uri or "",
        request.contract_uri or "",
        request.max_supply if request.max_supply is not None else MAX_UINT32,
        int(request.mint_fee or 0),
        _address(fee_token, "mintFeeToken"),
        _address(fee_recipient, "mintFeeRecipient"),
        _address(request.user_address, "userAddress"),
        request.mint_open,
        request.is_public_minting,
    )
    return ProtocolCall(
        to=workflows,
        function=story_abi.CREATE_COLLECTION,
        args=(init_params,),
        additional_data={
            "collectionName": request.name,
            "collectionSymbol": request.symbol,
            "isPublicMinting": request.is_public_minting,
            "mintOpen": request.mint_open,
            "mintFeeRecipient": request.mint_fee_recipient,
            "contractURI": request.contract_uri,
            "estimatedGas": None,
        },
    )


def dispute_tag_bytes(tag: str) -> bytes:
    encoded = tag.encode("utf-8")
    if len(encoded) > 32:
        raise ValidationError(f"Dispute tag '{tag}' does not fit in bytes32")
    return encoded.ljust(32, b"\0")


def assemble_dispute(request: DisputeRequest, staged: StagedContent, ctx: AssemblyContext) -> ProtocolCall:
    network = ctx.network
    try:
        bond = int(check_dispute_bond(request.bond))
        liveness = check_dispute_liveness(request.liveness)
    except ValueError as e:
        raise ValidationError(str(e))

    module = resolve_contract(None, network.dispute_module, "DISPUTE_MODULE_ADDRESS", "dispute")
    currency = resolve_contract(None, network.wip_token, "WIP_TOKEN_ADDRESS", "dispute")
    if not staged.metadata.ip_hash:
        raise ParameterError("Dispute evidence must be uploaded before parameters can be assembled")

    evidence_hash = to_bytes32_hex(staged.metadata.ip_hash)
    uma_data = story_abi.encode_values(
        story_abi.UMA_DISPUTE_DATA_TYPES, [liveness, _address(currency, "currency"), bond]
    )
    args = (
        _address(request.target_ip_id, "targetIpId"),
        to_bytes32(evidence_hash),
        dispute_tag_bytes(request.target_tag),
        uma_data,
    )
    return ProtocolCall(
        to=module,
        function=story_abi.RAISE_DISPUTE,
        args=args,
        value=bond,
        additional_data={
            "targetIpId": request.target_ip_id,
            "targetTag": request.target_tag,
            "bondAmount": request.bond,
            "livenessPeriod": liveness,
            "evidenceHash": staged.metadata.ipfs_hash,
            "evidenceURI": staged.ip_metadata_uri,
            "estimatedGas": None,
            "disputeParameters": {
                "targetIpId": request.target_ip_id,
                "disputeEvidenceHash": evidence_hash,
                "targetTag": request.target_tag,
                "liveness": liveness,
                "bond": request.bond,
                "currency": currency,
            },
        },
    )
