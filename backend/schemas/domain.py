"""Domain models and entities"""

import base64
import binascii
import re
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    field_validator,
)
from pydantic.alias_generators import to_camel
from urllib.parse import urlparse

# fullmatch only: `$` would also accept a trailing newline, `\d` any Unicode digit
ADDRESS_RE = re.compile(r"0x[a-fA-F0-9]{40}")
DECIMAL_RE = re.compile(r"[0-9]+")
BASE64_RE = re.compile(r"[A-Za-z0-9+/]*={0,2}")
HEX64_RE = re.compile(r"(0x)?[a-fA-F0-9]{64}")
URL_SCHEMES = ("http", "https", "ipfs", "ar")

CREATOR_SHARE_TOLERANCE = 0.01


def _check_address(value: str) -> str:
    if not ADDRESS_RE.fullmatch(value):
        raise ValueError("Invalid Ethereum address format")
    return value


def _check_decimal(value: str) -> str:
    if not DECIMAL_RE.fullmatch(value):
        raise ValueError("Must be a non-negative integer amount in wei (digits only)")
    return value


def _check_url(value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in URL_SCHEMES or not parsed.netloc:
        raise ValueError("Must be a valid URL")
    return value


def _check_base64(value: str) -> str:
    if not value:
        raise ValueError("File data must not be empty")
    if not BASE64_RE.fullmatch(value):
        raise ValueError("Invalid base64 format")
    try:
        base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise ValueError("Invalid base64 format")
    return value


def _check_hash(value: str) -> str:
    if not HEX64_RE.fullmatch(value):
        raise ValueError("Must be a 32-byte hex hash")
    return value


def _check_percent(value: Any) -> Any:
    # bools are ints in Python and numeric strings would be coerced otherwise
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("Must be a number")
    return value


def _check_timestamp(value: str) -> str:
    if DECIMAL_RE.fullmatch(value):
        return value
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValueError("Must be an ISO-8601 date or a unix timestamp")
    return value


Address = Annotated[StrictStr, AfterValidator(_check_address)]
DecimalAmount = Annotated[StrictStr, AfterValidator(_check_decimal)]
Url = Annotated[StrictStr, AfterValidator(_check_url)]
Base64Data = Annotated[StrictStr, AfterValidator(_check_base64)]
HexHash = Annotated[StrictStr, AfterValidator(_check_hash)]
Percent = Annotated[float, BeforeValidator(_check_percent), Field(ge=0, le=100)]
NonEmptyStr = Annotated[StrictStr, Field(min_length=1)]
PositiveInt = Annotated[StrictInt, Field(gt=0)]


def creator_share_total(creators) -> float:
    return sum(c.contribution_percent for c in creators)


def creator_shares_valid(creators) -> bool:
    return abs(creator_share_total(creators) - 100) < CREATOR_SHARE_TOLERANCE


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python, immutable once validated"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Creator(WireModel):
    """IP creator and their share of the asset"""
    name: NonEmptyStr
    address: Address
    contribution_percent: Percent


class IPMetadata(WireModel):
    """IP-level metadata pinned to IPFS and referenced by ipMetadataURI"""
    title: Annotated[StrictStr, Field(min_length=1, max_length=200)]
    description: Annotated[StrictStr, Field(min_length=1, max_length=2000)]
    created_at: Optional[Annotated[StrictStr, AfterValidator(_check_timestamp)]] = None
    creators: List[Creator] = Field(min_length=1)
    image: Optional[Url] = None
    image_hash: Optional[StrictStr] = None
    media_url: Optional[Url] = None
    media_hash: Optional[StrictStr] = None
    media_type: Optional[StrictStr] = None

    @field_validator("creators")
    @classmethod
    def creators_sum_to_100(cls, creators: List[Creator]) -> List[Creator]:
        if creators and not creator_shares_valid(creators):
            raise ValueError(
                f"Creator contribution percentages must sum to 100 (got {creator_share_total(creators):g})"
            )
        return creators

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Attribute(WireModel):
    """NFT trait"""
    key: NonEmptyStr
    value: NonEmptyStr


class NFTMetadata(WireModel):
    """ERC-721 token metadata for the SPG NFT that wraps the IP"""
    name: Annotated[StrictStr, Field(min_length=1, max_length=100)]
    description: Annotated[StrictStr, Field(min_length=1, max_length=1000)]
    image: Optional[Url] = None
    animation_url: Optional[Url] = Field(default=None, alias="animation_url")
    attributes: List[Attribute] = Field(default_factory=list)

    def to_document(self) -> Dict[str, Any]:
        """ERC-721 JSON shape (attributes as trait_type/value pairs)"""
        doc = self.model_dump(by_alias=True, exclude_none=True, exclude={"attributes"})
        doc["attributes"] = [{"trait_type": a.key, "value": a.value} for a in self.attributes]
        return doc


class LicenseTermsConfig(WireModel):
    """Caller overrides for PIL terms - every field optional, merged over a default flavor"""
    transferable: Optional[StrictBool] = None
    royalty_policy: Optional[Address] = None
    default_minting_fee: Optional[DecimalAmount] = None
    expiration: Optional[DecimalAmount] = None
    commercial_use: Optional[StrictBool] = None
    commercial_attribution: Optional[StrictBool] = None
    commercializer_checker: Optional[Address] = None
    commercializer_checker_data: Optional[StrictStr] = None
    commercial_rev_share: Optional[Percent] = None
    derivatives_allowed: Optional[StrictBool] = None
    derivatives_attribution: Optional[StrictBool] = None
    derivatives_approval: Optional[StrictBool] = None
    derivatives_reciprocal: Optional[StrictBool] = None
    derivative_rev_share: Optional[Percent] = None
    currency: Optional[Address] = None
    uri: Optional[Url] = None

    def overrides(self) -> Dict[str, Any]:
        """Only the fields the caller actually set"""
        return self.model_dump(exclude_none=True)


class FileUpload(WireModel):
    """Base64 file shipped inside a JSON request"""
    data: Base64Data
    filename: Annotated[StrictStr, Field(min_length=1, max_length=255)]
    content_type: NonEmptyStr
    purpose: Literal["media", "metadata", "evidence", "attachment"]

    def decode(self) -> bytes:
        return base64.b64decode(self.data)


class UploadedContentRef(WireModel):
    """A file pinned to IPFS during this request"""
    filename: str
    content_id: str
    url: str
    purpose: str
    content_type: Optional[str] = None
    size: Optional[int] = None
    content_hash: Optional[str] = None


class ContentMetadata(WireModel):
    """IPFS ids and integrity hashes for the pinned metadata documents"""
    ipfs_hash: Optional[str] = None
    ip_hash: Optional[str] = None  # sha256 hex, no prefix
    nft_ipfs_hash: Optional[str] = None
    nft_hash: Optional[str] = None


class PreparedTransaction(WireModel):
    """Unsigned transaction handed back to the wallet"""
    to: str
    data: str
    value: str = "0"
    gas_estimate: Optional[str] = None
