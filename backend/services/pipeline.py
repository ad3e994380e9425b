"""
Generic transaction preparation pipeline.

Every prepare-* endpoint runs the same steps:

    validate -> stage content (build, hash, pin) -> assemble parameters
             -> build unsigned transaction -> success envelope

An OperationDescriptor supplies the per-operation pieces (schema, content
stage, assembler, default gas, usage docs). Errors are raised as
utils.errors types and rendered by the app's exception handlers.
"""

import base64
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from config import NetworkConfig, get_network_config
from integrations.chain_client import ChainClient
from integrations.ipfs import ContentStore, create_content_store, pin_concurrently, upload_files
from schemas.api import CLIMintRequest, DerivativeRequest, DisputeRequest, RegisterIPRequest
from schemas.domain import ContentMetadata, IPMetadata, NFTMetadata, UploadedContentRef
from services import metadata_builder
from services import parameter_assembler as assembler
from services.file_validation import validate_file
from services.hashing import canonical_document, hash_content, hash_metadata, to_bytes32_hex
from services.parameter_assembler import AssemblyContext, StagedContent
from services.transaction_builder import DEFAULT_GAS_LIMITS, TransactionBuilder
from services.validation import validate
from utils.errors import ValidationError, success_body

logger = logging.getLogger(__name__)

Stage = Callable[[ContentStore, Any], Awaitable[StagedContent]]


@dataclass(frozen=True)
class RunInfo:
    request_id: Optional[str]
    started_at: str
    completed_at: str
    processing_ms: int


@dataclass(frozen=True)
class OperationDescriptor:
    name: str
    endpoint: str
    schema: str
    assemble: Callable[[Any, StagedContent, AssemblyContext], assembler.ProtocolCall]
    default_gas: int
    stage: Optional[Stage] = None
    decorate: Optional[Callable[[Dict[str, Any], StagedContent, RunInfo], Dict[str, Any]]] = None
    docs: Dict[str, Any] = field(default_factory=dict)

    @property
    def requires_metadata(self) -> bool:
        return self.stage is not None

    def describe(self) -> Dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "method": "POST",
            "operation": self.name,
            "defaultGas": str(self.default_gas),
            **self.docs,
        }


# Content stages

async def pin_metadata_pair(store: ContentStore, ip_metadata: IPMetadata, nft_metadata: Optional[NFTMetadata],
                            ip_name: str, nft_name: str,
                            uploaded=()) -> StagedContent:
    """Hash and pin the IP/NFT documents; without NFT metadata the IP document stands in"""
    ip_doc = canonical_document(ip_metadata.to_document())
    ip_hash = hash_metadata(ip_doc)

    if nft_metadata is None:
        ip_cid = await store.pin_json(ip_doc, ip_name)
        nft_cid, nft_hash = ip_cid, ip_hash
    else:
        nft_doc = canonical_document(nft_metadata.to_document())
        nft_hash = hash_metadata(nft_doc)
        ip_cid, nft_cid = await pin_concurrently(
            store.pin_json(ip_doc, ip_name),
            store.pin_json(nft_doc, nft_name),
        )

    return StagedContent(
        metadata=ContentMetadata(ipfs_hash=ip_cid, ip_hash=ip_hash, nft_ipfs_hash=nft_cid, nft_hash=nft_hash),
        ip_metadata_uri=store.get_url(ip_cid),
        nft_metadata_uri=store.get_url(nft_cid),
        uploaded_files=tuple(uploaded),
    )


def _first_media(refs) -> Optional[UploadedContentRef]:
    for ref in refs:
        if ref.purpose == "media":
            return ref
    return None


async def stage_register(store: ContentStore, request: RegisterIPRequest) -> StagedContent:
    # files first: the metadata documents embed their URLs
    refs = await upload_files(store, list(request.files or []))
    ip_metadata, nft_metadata = request.ip_metadata, request.nft_metadata
    media = _first_media(refs)
    if media:
        ip_metadata, nft_metadata = metadata_builder.attach_media(ip_metadata, nft_metadata, media)
    return await pin_metadata_pair(store, ip_metadata, nft_metadata, "ip-metadata.json", "nft-metadata.json", refs)


async def stage_derivative(store: ContentStore, request: DerivativeRequest) -> StagedContent:
    return await pin_metadata_pair(store, request.ip_metadata, request.nft_metadata,
                                   "derivative-ip-metadata.json", "derivative-nft-metadata.json")


async def stage_dispute(store: ContentStore, request: DisputeRequest) -> StagedContent:
    evidence = {
        "targetIpId": request.target_ip_id,
        "targetTag": request.target_tag,
        "evidence": request.evidence,
        "submittedBy": request.user_address,
        "submittedAt": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "disputeType": "IP_INFRINGEMENT",
        "metadata": {"version": "1.0", "format": "story-protocol-dispute-evidence"},
    }
    evidence = canonical_document(evidence)
    evidence_hash = hash_metadata(evidence)
    cid = await store.pin_json(evidence, "dispute-evidence.json")
    return StagedContent(
        metadata=ContentMetadata(ipfs_hash=cid, ip_hash=evidence_hash),
        ip_metadata_uri=store.get_url(cid),
    )


async def stage_cli_mint(store: ContentStore, request: CLIMintRequest) -> StagedContent:
    data = base64.b64decode(request.file_data)
    check = validate_file(data, request.filename, request.content_type)
    if not check.ok:
        raise ValidationError("File validation failed:\n" + "\n".join(check.errors), {"errors": check.errors})

    content_hash = hash_content(data)
    if request.content_hash and to_bytes32_hex(request.content_hash) != "0x" + content_hash:
        raise ValidationError("contentHash does not match the SHA-256 of fileData")

    cid = await store.pin_file(data, request.filename, check.mime_type)
    ref = UploadedContentRef(
        filename=request.filename,
        content_id=cid,
        url=store.get_url(cid),
        purpose="media",
        content_type=check.mime_type,
        size=check.size,
        content_hash=content_hash,
    )

    if request.generate_metadata:
        ip_metadata, nft_metadata = metadata_builder.auto_generate(
            request.filename, check.mime_type, request.user_address,
            file_size=check.size, content_hash=content_hash,
        )
        ip_update, nft_update = {}, {}
        if request.title:
            ip_update["title"] = request.title
            nft_update["name"] = request.title[:100]
        if request.description:
            ip_update["description"] = request.description
            nft_update["description"] = request.description[:1000]
        ip_metadata = ip_metadata.model_copy(update=ip_update)
        nft_metadata = metadata_builder.with_file_attributes(nft_metadata.model_copy(update=nft_update), ref)
    else:
        ip_metadata, nft_metadata = metadata_builder.basic_metadata(
            request.title or request.filename,
            request.description or f"File uploaded via CLI: {request.filename}",
            request.user_address,
        )
    ip_metadata, nft_metadata = metadata_builder.attach_media(ip_metadata, nft_metadata, ref)

    staged = await pin_metadata_pair(
        store, ip_metadata, nft_metadata,
        f"{request.filename}-ip-metadata.json", f"{request.filename}-nft-metadata.json",
        [ref],
    )
    extra = {
        "contentHash": content_hash,
        "fileSize": check.size,
        "originalPath": request.file_path,
        "autoGenerated": request.generate_metadata,
        "generatedMetadata": {
            "ip": canonical_document(ip_metadata.to_document()),
            "nft": canonical_document(nft_metadata.to_document()),
        },
    }
    return StagedContent(
        metadata=staged.metadata,
        ip_metadata_uri=staged.ip_metadata_uri,
        nft_metadata_uri=staged.nft_metadata_uri,
        uploaded_files=staged.uploaded_files,
        extra=extra,
    )


def decorate_cli(additional: Dict[str, Any], staged: StagedContent, info: RunInfo) -> Dict[str, Any]:
    extra = staged.extra
    out = dict(additional)
    out["cli"] = {
        "requestId": info.request_id,
        "processingTime": info.processing_ms,
        "contentHash": extra.get("contentHash"),
        "fileSize": extra.get("fileSize"),
        "originalPath": extra.get("originalPath"),
        "autoGenerated": extra.get("autoGenerated"),
        "timestamps": {"started": info.started_at, "completed": info.completed_at},
    }
    out["generatedMetadata"] = extra.get("generatedMetadata")
    return out


_ADDRESS_EXAMPLE = "0x1234567890123456789012345678901234567890"

OPERATIONS: Dict[str, OperationDescriptor] = {
    "register": OperationDescriptor(
        name="register",
        endpoint="/api/prepare-mint",
        schema="register",
        stage=stage_register,
        assemble=assembler.assemble_register,
        default_gas=DEFAULT_GAS_LIMITS["register"],
        docs={
            "description": "Prepare a mint-and-register IP transaction (metadata pinned to IPFS, PIL terms attached)",
            "requiredFields": ["userAddress", "ipMetadata", "nftMetadata"],
            "optionalFields": ["licenseTerms", "files", "spgNftContract"],
            "example": {
                "userAddress": _ADDRESS_EXAMPLE,
                "ipMetadata": {
                    "title": "My Artwork",
                    "description": "Original digital artwork",
                    "creators": [{"name": "Artist", "address": _ADDRESS_EXAMPLE, "contributionPercent": 100}],
                },
                "nftMetadata": {"name": "My Artwork NFT", "description": "Ownership token"},
            },
        },
    ),
    "derivative": OperationDescriptor(
        name="derivative",
        endpoint="/api/prepare-derivative",
        schema="derivative",
        stage=stage_derivative,
        assemble=assembler.assemble_derivative,
        default_gas=DEFAULT_GAS_LIMITS["derivative"],
        docs={
            "description": "Prepare a derivative IP registration linked to parent IPs",
            "requiredFields": ["userAddress", "parentIpIds", "licenseTermsIds", "ipMetadata"],
            "optionalFields": ["nftMetadata", "spgNftContract"],
            "notes": "parentIpIds and licenseTermsIds must have the same length",
        },
    ),
    "license": OperationDescriptor(
        name="license",
        endpoint="/api/prepare-license",
        schema="license",
        assemble=assembler.assemble_license,
        default_gas=DEFAULT_GAS_LIMITS["license"],
        docs={
            "description": "Prepare a license token mint (value = fee per license x amount)",
            "requiredFields": ["userAddress", "licenseTermsId", "licensorIpId", "amount"],
            "optionalFields": ["receiver"],
            "notes": "amount must be between 1 and 10000",
        },
    ),
    "royalty": OperationDescriptor(
        name="royalty",
        endpoint="/api/prepare-royalty",
        schema="royalty",
        assemble=assembler.assemble_royalty,
        default_gas=DEFAULT_GAS_LIMITS["royalty"],
        docs={
            "description": "Prepare a royalty pay, claim or transfer",
            "requiredFields": ["userAddress", "operation", "ipId"],
            "operations": {
                "pay": ["amount", "token"],
                "claim": ["currencyTokens"],
                "transfer": ["amount", "recipient"],
            },
        },
    ),
    "collection": OperationDescriptor(
        name="collection",
        endpoint="/api/prepare-collection",
        schema="collection",
        assemble=assembler.assemble_collection,
        default_gas=DEFAULT_GAS_LIMITS["collection"],
        docs={
            "description": "Prepare an SPG NFT collection deployment",
            "requiredFields": ["userAddress", "name", "symbol", "isPublicMinting", "mintOpen"],
            "optionalFields": ["mintFeeRecipient", "contractURI", "baseURI", "maxSupply", "mintFee", "mintFeeToken"],
            "notes": "symbol: 1-10 uppercase letters and numbers",
        },
    ),
    "dispute": OperationDescriptor(
        name="dispute",
        endpoint="/api/prepare-dispute",
        schema="dispute",
        stage=stage_dispute,
        assemble=assembler.assemble_dispute,
        default_gas=DEFAULT_GAS_LIMITS["dispute"],
        docs={
            "description": "Prepare a dispute against an IP asset (evidence pinned to IPFS)",
            "requiredFields": ["userAddress", "targetIpId", "evidence", "targetTag", "bond", "liveness"],
            "targetTags": ["PLAGIARISM", "NON_COMMERCIAL_USE", "ATTRIBUTION", "COMMERCIAL_USE", "OTHER"],
            "notes": "liveness between 3600 and 2592000 seconds, bond > 0 wei",
        },
    ),
    "cli_mint": OperationDescriptor(
        name="cli_mint",
        endpoint="/api/cli/mint-file",
        schema="cli_mint",
        stage=stage_cli_mint,
        assemble=assembler.assemble_cli_mint,
        default_gas=DEFAULT_GAS_LIMITS["cli_mint"],
        decorate=decorate_cli,
        docs={
            "description": "Upload a base64 file and prepare its IP registration with generated metadata",
            "requiredFields": ["userAddress", "filePath", "fileData", "filename", "contentType"],
            "optionalFields": ["title", "description", "generateMetadata", "contentHash", "licenseTerms"],
        },
    ),
}


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class PreparationPipeline:
    """Runs any operation descriptor against injected collaborators"""

    def __init__(self, network: NetworkConfig, content_store: ContentStore, chain_client,
                 license_fee_per_token_wei: int = assembler.DEFAULT_MINTING_FEE_WEI,
                 balance_preflight: bool = True,
                 operations: Optional[Dict[str, OperationDescriptor]] = None):
        self.network = network
        self.content_store = content_store
        self.chain_client = chain_client
        self.context = AssemblyContext(network=network, license_fee_per_token_wei=license_fee_per_token_wei)
        self.builder = TransactionBuilder(chain_client, network, balance_preflight=balance_preflight)
        self.operations = operations or OPERATIONS

    def descriptor(self, operation: str) -> OperationDescriptor:
        try:
            return self.operations[operation]
        except KeyError:
            raise ValueError(f"Unknown operation '{operation}'")

    async def run(self, operation: str, raw: Any, request_id: Optional[str] = None) -> Dict[str, Any]:
        descriptor = self.descriptor(operation)
        started = time.monotonic()
        started_at = _utc_now()

        request = validate(descriptor.schema, raw)
        staged = await descriptor.stage(self.content_store, request) if descriptor.stage else StagedContent()
        call = descriptor.assemble(request, staged, self.context)
        transaction = await self.builder.build(call, request.user_address, descriptor.default_gas)

        additional = dict(call.additional_data)
        if "estimatedGas" in additional:
            additional["estimatedGas"] = transaction.gas_estimate
        if descriptor.decorate:
            info = RunInfo(
                request_id=request_id,
                started_at=started_at,
                completed_at=_utc_now(),
                processing_ms=int((time.monotonic() - started) * 1000),
            )
            additional = descriptor.decorate(additional, staged, info)

        logger.info(
            f"✅ Prepared {descriptor.name} transaction to {transaction.to} "
            f"(gas {transaction.gas_estimate}, request {request_id})"
        )
        return success_body(
            transaction=transaction.model_dump(by_alias=True),
            metadata=staged.metadata.model_dump(by_alias=True),
            uploaded_files=[ref.model_dump(by_alias=True) for ref in staged.uploaded_files],
            additional_data=additional,
        )


def build_pipeline(cfg) -> PreparationPipeline:
    """Production wiring from Config"""
    network = get_network_config(cfg.STORY_NETWORK)
    return PreparationPipeline(
        network=network,
        content_store=create_content_store(cfg),
        chain_client=ChainClient.from_network(network, timeout=cfg.HTTP_TIMEOUT_SECONDS),
        license_fee_per_token_wei=cfg.LICENSE_FEE_PER_TOKEN_WEI,
        balance_preflight=cfg.BALANCE_PREFLIGHT_ENABLED,
    )
