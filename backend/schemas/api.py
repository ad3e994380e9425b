"""API request and response schemas"""

import re
from pydantic import Field, StrictBool, StrictInt, StrictStr, field_validator, model_validator
from typing import Annotated, List, Literal, Optional, get_args

from schemas.domain import (
    DECIMAL_RE,
    Address,
    Base64Data,
    DecimalAmount,
    FileUpload,
    HexHash,
    IPMetadata,
    LicenseTermsConfig,
    NFTMetadata,
    NonEmptyStr,
    Percent,
    PositiveInt,
    Url,
    WireModel,
)

MIN_DISPUTE_LIVENESS = 3600  # 1 hour
MAX_DISPUTE_LIVENESS = 2592000  # 30 days
MIN_EVIDENCE_LENGTH = 10
MAX_EVIDENCE_LENGTH = 10000
MAX_LICENSE_AMOUNT = 10000

DisputeTag = Literal["PLAGIARISM", "NON_COMMERCIAL_USE", "ATTRIBUTION", "COMMERCIAL_USE", "OTHER"]
DISPUTE_TAGS = get_args(DisputeTag)
COLLECTION_SYMBOL_RE = re.compile(r"[A-Z0-9]+")


def check_dispute_bond(bond: str) -> str:
    if not DECIMAL_RE.fullmatch(bond) or int(bond) <= 0:
        raise ValueError("Bond must be a positive integer amount in wei")
    return bond


def check_dispute_liveness(liveness: int) -> int:
    if not MIN_DISPUTE_LIVENESS <= liveness <= MAX_DISPUTE_LIVENESS:
        raise ValueError(
            f"Liveness must be between {MIN_DISPUTE_LIVENESS} (1 hour) and {MAX_DISPUTE_LIVENESS} (30 days) seconds"
        )
    return liveness


# Register IP
class RegisterIPRequest(WireModel):
    user_address: Address
    ip_metadata: IPMetadata
    nft_metadata: NFTMetadata
    license_terms: Optional[LicenseTermsConfig] = None
    files: Optional[List[FileUpload]] = None
    spg_nft_contract: Optional[Address] = None


# Derivative
class DerivativeRequest(WireModel):
    user_address: Address
    parent_ip_ids: List[NonEmptyStr] = Field(min_length=1)
    license_terms_ids: List[PositiveInt] = Field(min_length=1)
    ip_metadata: IPMetadata
    nft_metadata: Optional[NFTMetadata] = None
    spg_nft_contract: Optional[Address] = None

    @model_validator(mode="after")
    def parents_match_terms(self):
        if len(self.parent_ip_ids) != len(self.license_terms_ids):
            raise ValueError(
                f"parentIpIds and licenseTermsIds must have the same length "
                f"({len(self.parent_ip_ids)} != {len(self.license_terms_ids)})"
            )
        return self


# License mint
class LicenseMintRequest(WireModel):
    user_address: Address
    license_terms_id: PositiveInt
    licensor_ip_id: NonEmptyStr
    amount: Annotated[StrictInt, Field(ge=1, le=MAX_LICENSE_AMOUNT)]
    receiver: Optional[Address] = None


# Royalty
class RoyaltyRequest(WireModel):
    user_address: Address
    operation: Literal["pay", "claim", "transfer"]
    ip_id: NonEmptyStr
    amount: Optional[DecimalAmount] = None
    token: Optional[Address] = None
    recipient: Optional[Address] = None
    currency_tokens: Optional[List[Address]] = None

    @model_validator(mode="after")
    def operation_fields(self):
        missing = []
        if self.operation in ("pay", "transfer") and self.amount is None:
            missing.append(f"amount is required for {self.operation} operations")
        if self.operation == "pay" and self.token is None:
            missing.append("token is required for pay operations")
        if self.operation == "transfer" and self.recipient is None:
            missing.append("recipient is required for transfer operations")
        if self.operation == "claim" and not self.currency_tokens:
            missing.append("currencyTokens must contain at least one token for claim operations")
        if missing:
            raise ValueError("; ".join(missing))
        return self


# Collection
class CollectionRequest(WireModel):
    user_address: Address
    name: Annotated[StrictStr, Field(min_length=1, max_length=100)]
    symbol: StrictStr
    is_public_minting: StrictBool
    mint_open: StrictBool
    mint_fee_recipient: Optional[Address] = None
    contract_uri: Optional[Url] = Field(default=None, alias="contractURI")
    base_uri: Optional[StrictStr] = Field(default=None, alias="baseURI")
    max_supply: Optional[Annotated[StrictInt, Field(ge=0, le=2 ** 32 - 1)]] = None
    mint_fee: Optional[DecimalAmount] = None
    mint_fee_token: Optional[Address] = None

    @field_validator("symbol")
    @classmethod
    def symbol_format(cls, symbol: str) -> str:
        if not 1 <= len(symbol) <= 10:
            raise ValueError("Collection symbol must be between 1 and 10 characters")
        if not COLLECTION_SYMBOL_RE.fullmatch(symbol):
            raise ValueError("Collection symbol must contain only uppercase letters and numbers")
        return symbol


# Dispute
class DisputeRequest(WireModel):
    user_address: Address
    target_ip_id: NonEmptyStr
    evidence: Annotated[StrictStr, Field(min_length=1, max_length=MAX_EVIDENCE_LENGTH)]
    target_tag: DisputeTag
    bond: DecimalAmount
    liveness: StrictInt

    @field_validator("evidence")
    @classmethod
    def evidence_length(cls, evidence: str) -> str:
        if len(evidence.strip()) < MIN_EVIDENCE_LENGTH:
            raise ValueError(f"Evidence must be at least {MIN_EVIDENCE_LENGTH} characters")
        return evidence

    @field_validator("bond")
    @classmethod
    def bond_positive(cls, bond: str) -> str:
        return check_dispute_bond(bond)

    @field_validator("liveness")
    @classmethod
    def liveness_window(cls, liveness: int) -> int:
        return check_dispute_liveness(liveness)


# CLI file mint
class CLIMintRequest(WireModel):
    user_address: Address
    file_path: NonEmptyStr
    file_data: Base64Data
    filename: Annotated[StrictStr, Field(min_length=1, max_length=255)]
    content_type: NonEmptyStr
    title: Optional[Annotated[StrictStr, Field(max_length=200)]] = None
    description: Optional[Annotated[StrictStr, Field(max_length=2000)]] = None
    generate_metadata: StrictBool = True
    content_hash: Optional[HexHash] = None
    license_terms: Optional[LicenseTermsConfig] = None
    spg_nft_contract: Optional[Address] = None


# License remixer
LicenseTemplateName = Literal[
    "commercial-remix", "non-commercial", "commercial-no-derivatives", "exclusive-commercial", "custom"
]
MAX_REMIX_REVENUE_SHARE = 50
ShortText = Annotated[StrictStr, Field(min_length=1, max_length=200)]


class LicenseRemixRequest(WireModel):
    """Template (or custom) license terms plus whatever the creator overrides"""
    creator_address: Address
    license_type: LicenseTemplateName = "custom"
    title: Optional[ShortText] = None
    description: Optional[Annotated[StrictStr, Field(max_length=2000)]] = None
    creator_name: Optional[Annotated[StrictStr, Field(min_length=1, max_length=100)]] = None
    creator_email: Optional[Annotated[StrictStr, Field(max_length=254)]] = None

    commercial_use: Optional[StrictBool] = None
    derivatives_allowed: Optional[StrictBool] = None
    attribution_required: Optional[StrictBool] = None
    reciprocal: Optional[StrictBool] = None
    revenue_share_percentage: Optional[Percent] = None
    minting_fee: Optional[DecimalAmount] = None  # wei
    currency: Optional[Address] = None
    transferable: Optional[StrictBool] = None
    expiration: Optional[DecimalAmount] = None

    prohibited_uses: Optional[List[ShortText]] = Field(default=None, max_length=20)
    territory: Optional[ShortText] = None
    duration: Optional[ShortText] = None
    governing_law: Optional[ShortText] = None
    dispute_resolution: Optional[ShortText] = None

    upload_to_ipfs: StrictBool = Field(default=True, alias="uploadToIPFS")
    include_examples: StrictBool = False
    format: Literal["json", "markdown", "both"] = "json"

    @model_validator(mode="after")
    def core_terms(self):
        problems = []
        if self.license_type == "custom":
            if self.commercial_use is None:
                problems.append("commercialUse is required for custom licenses")
            if self.derivatives_allowed is None:
                problems.append("derivativesAllowed is required for custom licenses")
        share = self.revenue_share_percentage
        if share is not None and share > MAX_REMIX_REVENUE_SHARE:
            problems.append(f"revenueSharePercentage must be between 0 and {MAX_REMIX_REVENUE_SHARE}")
        if problems:
            raise ValueError("; ".join(problems))
        return self


# Asset queries (read-only)
DEFAULT_QUERY_LIMIT = 50
MAX_QUERY_LIMIT = 100
MAX_QUERY_CONTRACTS = 10


class AssetQuery(WireModel):
    address: Address
    contracts: Optional[List[Address]] = Field(default=None, max_length=MAX_QUERY_CONTRACTS)
    limit: Annotated[StrictInt, Field(ge=1, le=MAX_QUERY_LIMIT)] = DEFAULT_QUERY_LIMIT
    offset: Annotated[StrictInt, Field(ge=0)] = 0
    include_metadata: StrictBool = False
