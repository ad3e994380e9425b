"""
Metadata builders for IP assets and their NFTs.

Two ways in:
- fluent builders, for callers assembling metadata field by field
- auto_generate(), which derives both documents from nothing but a file and
  the uploader's address (CLI / CI path)
"""

import logging
import os
import re
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from schemas.domain import (
    Attribute,
    Creator,
    IPMetadata,
    NFTMetadata,
    UploadedContentRef,
    creator_share_total,
    creator_shares_valid,
)

logger = logging.getLogger(__name__)

_SIZE_UNITS = ["Bytes", "KB", "MB", "GB", "TB"]


def format_file_size(size: int) -> str:
    """1024-based human readable size: 0 Bytes, 1 KB, 1.5 MB"""
    if size <= 0:
        return "0 Bytes"
    index = 0
    value = float(size)
    while value >= 1024 and index < len(_SIZE_UNITS) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {_SIZE_UNITS[index]}"


def short_address(address: str) -> str:
    return f"{address[2:8]}...{address[-4:]}"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class IPMetadataBuilder:
    """Fluent builder for IPMetadata"""

    def __init__(self, include_timestamp: bool = False, default_creator: Optional[Creator] = None):
        self._include_timestamp = include_timestamp
        self._fields = {}
        self._creators: List[Creator] = [default_creator] if default_creator else []

    def title(self, title: str) -> "IPMetadataBuilder":
        self._fields["title"] = title
        return self

    def description(self, description: str) -> "IPMetadataBuilder":
        self._fields["description"] = description
        return self

    def created_at(self, timestamp: str) -> "IPMetadataBuilder":
        self._fields["created_at"] = timestamp
        return self

    def creator(self, name: str, address: str, contribution_percent: float = 100) -> "IPMetadataBuilder":
        self._creators.append(
            Creator(name=name, address=address.lower(), contribution_percent=contribution_percent)
        )
        return self

    def creators(self, creators: List[Creator]) -> "IPMetadataBuilder":
        self._creators = list(creators)
        return self

    def image(self, url: str, image_hash: Optional[str] = None) -> "IPMetadataBuilder":
        self._fields["image"] = url
        if image_hash:
            self._fields["image_hash"] = image_hash
        return self

    def media(self, url: str, media_type: str, media_hash: Optional[str] = None) -> "IPMetadataBuilder":
        self._fields["media_url"] = url
        self._fields["media_type"] = media_type
        if media_hash:
            self._fields["media_hash"] = media_hash
        return self

    def build(self) -> IPMetadata:
        """Validate and freeze. Raises ValueError naming the first problem."""
        for required in ("title", "description"):
            if not self._fields.get(required):
                raise ValueError(f"IP metadata {required} is required")
        if not self._creators:
            raise ValueError("IP metadata requires at least one creator")
        if not creator_shares_valid(self._creators):
            raise ValueError(
                f"Creator contribution percentages must sum to 100 (got {creator_share_total(self._creators):g})"
            )

        fields = dict(self._fields)
        if self._include_timestamp and "created_at" not in fields:
            fields["created_at"] = _now_iso()

        return IPMetadata(creators=self._creators, **fields)


class NFTMetadataBuilder:
    """Fluent builder for NFTMetadata"""

    def __init__(self):
        self._fields = {}
        self._attributes: List[Attribute] = []

    def name(self, name: str) -> "NFTMetadataBuilder":
        self._fields["name"] = name
        return self

    def description(self, description: str) -> "NFTMetadataBuilder":
        self._fields["description"] = description
        return self

    def image(self, url: str) -> "NFTMetadataBuilder":
        self._fields["image"] = url
        return self

    def animation_url(self, url: str) -> "NFTMetadataBuilder":
        self._fields["animation_url"] = url
        return self

    def attribute(self, key: str, value) -> "NFTMetadataBuilder":
        self._attributes.append(Attribute(key=key, value=str(value)))
        return self

    def attributes(self, attributes: List[Attribute]) -> "NFTMetadataBuilder":
        self._attributes.extend(attributes)
        return self

    def build(self) -> NFTMetadata:
        for required in ("name", "description"):
            if not self._fields.get(required):
                raise ValueError(f"NFT metadata {required} is required")
        return NFTMetadata(attributes=self._attributes, **self._fields)


def title_from_filename(filename: str) -> str:
    """'my_cool-photo.final.png' -> 'My Cool Photo.Final'"""
    base, _ = os.path.splitext(filename)
    base = re.sub(r"[-_]+", " ", base).strip()
    if not base:
        return filename
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), base)


def describe_content(filename: str, content_type: str, file_size: Optional[int] = None) -> str:
    """Type-appropriate description keyed on the MIME prefix"""
    if content_type.startswith("image/"):
        prefix = "Image file"
    elif content_type.startswith("video/"):
        prefix = "Video file"
    elif content_type.startswith("audio/"):
        prefix = "Audio file"
    elif content_type == "application/pdf":
        prefix = "PDF document"
    elif content_type.startswith("text/") or "json" in content_type:
        prefix = "Document"
    else:
        prefix = "Digital asset"

    description = f"{prefix}: {filename}"
    if file_size is not None:
        description += f" ({format_file_size(file_size)})"
    return description


def auto_generate(
    filename: str,
    content_type: str,
    uploader_address: str,
    file_size: Optional[int] = None,
    content_hash: Optional[str] = None,
    user_name: Optional[str] = None,
) -> Tuple[IPMetadata, NFTMetadata]:
    """Derive IP + NFT metadata from file properties alone"""
    title = title_from_filename(filename)[:100]
    description = describe_content(filename, content_type, file_size)
    creator_name = user_name or f"User-{short_address(uploader_address)}"
    minted_at = _now_iso()

    ip_metadata = (
        IPMetadataBuilder(include_timestamp=True)
        .title(title)
        .description(description)
        .creator(creator_name, uploader_address, 100)
        .build()
    )

    nft = NFTMetadataBuilder().name(title).description(description)
    nft.attribute("File Name", filename)
    nft.attribute("Content Type", content_type)
    extension = os.path.splitext(filename)[1].lstrip(".")
    if extension:
        nft.attribute("File Extension", extension.upper())
    if file_size is not None:
        nft.attribute("File Size", format_file_size(file_size))
    if content_hash:
        nft.attribute("Content Hash", content_hash)
    nft.attribute("Minted At", minted_at)

    logger.debug(f"📝 Auto-generated metadata for {filename}: '{title}'")
    return ip_metadata, nft.build()


def basic_metadata(title: str, description: str, creator_address: str) -> Tuple[IPMetadata, NFTMetadata]:
    """Minimal pair for callers that opt out of auto-generation"""
    ip_metadata = (
        IPMetadataBuilder(include_timestamp=True)
        .title(title)
        .description(description)
        .creator(f"User-{short_address(creator_address)}", creator_address, 100)
        .build()
    )
    nft_metadata = NFTMetadataBuilder().name(title[:100]).description(description[:1000]).build()
    return ip_metadata, nft_metadata


def attach_media(ip_metadata: IPMetadata, nft_metadata: NFTMetadata,
                 ref: UploadedContentRef) -> Tuple[IPMetadata, NFTMetadata]:
    """Point both documents at an uploaded file without clobbering caller values"""
    content_type = ref.content_type or ""
    ip_update = {}
    nft_update = {}

    if not ip_metadata.media_url:
        ip_update.update(media_url=ref.url, media_type=content_type or None, media_hash=ref.content_hash)
    if content_type.startswith("image/"):
        if not ip_metadata.image:
            ip_update.update(image=ref.url, image_hash=ref.content_hash)
        if not nft_metadata.image:
            nft_update["image"] = ref.url
    elif not nft_metadata.animation_url:
        nft_update["animation_url"] = ref.url

    return ip_metadata.model_copy(update=ip_update), nft_metadata.model_copy(update=nft_update)


def with_file_attributes(nft_metadata: NFTMetadata, ref: UploadedContentRef) -> NFTMetadata:
    """Add the IPFS Hash / File URL traits used by the CLI path"""
    extra = [Attribute(key="IPFS Hash", value=ref.content_id), Attribute(key="File URL", value=ref.url)]
    return nft_metadata.model_copy(update={"attributes": list(nft_metadata.attributes) + extra})
