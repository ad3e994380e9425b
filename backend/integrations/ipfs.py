"""
IPFS content store adapters.

PinataContentStore is the only store used for real deployments: any failure
is raised as ContentStoreError (retryable) so a client never receives an id
for content that was not pinned.

MockContentStore fabricates deterministic ids for tests and demos. It is
selected by CONTENT_STORE_MODE=mock and nothing else.
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, List, Optional, Protocol, TypeVar

import httpx

from schemas.domain import FileUpload, UploadedContentRef
from services.file_validation import validate_file
from services.hashing import canonical_document, canonical_json, hash_content
from utils.errors import ConfigurationError, ContentStoreError, ValidationError

logger = logging.getLogger(__name__)

# base58 alphabet (no 0, O, I, l) so mock ids still look like CIDv0
_BASE58 = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


class ContentStore(Protocol):
    mode: str

    async def pin_json(self, content: Any, name: str) -> str: ...

    async def pin_file(self, data: bytes, filename: str, content_type: str) -> str: ...

    def get_url(self, content_id: str) -> str: ...


class PinataContentStore:
    """Pins JSON documents and files through the Pinata API"""

    mode = "strict"

    def __init__(
        self,
        jwt: Optional[str],
        api_url: str = "https://api.pinata.cloud",
        gateway_url: str = "https://gateway.pinata.cloud/ipfs",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.jwt = jwt
        self.api_url = api_url.rstrip("/")
        self.gateway_url = gateway_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.jwt)

    def get_url(self, content_id: str) -> str:
        return f"{self.gateway_url}/{content_id}"

    def _headers(self) -> dict:
        if not self.jwt:
            raise ContentStoreError("PINATA_JWT is not configured", {"setting": "PINATA_JWT"})
        return {"Authorization": f"Bearer {self.jwt}"}

    async def _post(self, path: str, name: str, extra_headers: Optional[dict] = None, **kwargs) -> str:
        headers = {**self._headers(), **(extra_headers or {})}
        url = f"{self.api_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"❌ Pinata request failed for {name}: {type(e).__name__}: {e}")
            raise ContentStoreError(f"Upload of {name} failed: {type(e).__name__}")

        if response.status_code >= 400:
            logger.error(f"❌ Pinata returned {response.status_code} for {name}")
            raise ContentStoreError(
                f"Upload of {name} failed with status {response.status_code}",
                {"status": response.status_code},
            )

        try:
            content_id = response.json().get("IpfsHash")
        except ValueError:
            content_id = None
        if not content_id:
            raise ContentStoreError(f"Pinata response for {name} did not include an IpfsHash")

        logger.info(f"📦 Pinned {name} -> {content_id}")
        return content_id

    async def pin_json(self, content: Any, name: str) -> str:
        # pinataContent is sent in canonical form so the pinned bytes are the hashed bytes
        body = {
            "pinataOptions": {"cidVersion": 0},
            "pinataMetadata": {"name": name},
            "pinataContent": canonical_document(content),
        }
        payload = json.dumps(body, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        return await self._post(
            "/pinning/pinJSONToIPFS", name,
            extra_headers={"Content-Type": "application/json"}, content=payload,
        )

    async def pin_file(self, data: bytes, filename: str, content_type: str) -> str:
        files = {"file": (filename, data, content_type)}
        form = {
            "pinataMetadata": json.dumps({"name": filename}),
            "pinataOptions": json.dumps({"cidVersion": 0}),
        }
        return await self._post("/pinning/pinFileToIPFS", filename, files=files, data=form)


class MockContentStore:
    """
    Deterministic stand-in for tests and demos.

    Ids are 'QmMock' + base58 of the content hash, so identical content maps to
    the same id and nothing here touches the network.
    """

    mode = "mock"
    configured = True

    def __init__(self, gateway_url: str = "https://gateway.pinata.cloud/ipfs"):
        self.gateway_url = gateway_url.rstrip("/")
        self.pinned = {}

    @staticmethod
    def _fake_cid(digest_hex: str) -> str:
        n = int(digest_hex, 16)
        chars = []
        while len(chars) < 40:
            n, rem = divmod(n, 58)
            chars.append(_BASE58[rem])
        return "QmMock" + "".join(chars)

    def get_url(self, content_id: str) -> str:
        return f"{self.gateway_url}/{content_id}"

    async def pin_json(self, content: Any, name: str) -> str:
        content_id = self._fake_cid(hash_content(canonical_json(content).encode("utf-8")))
        self.pinned[content_id] = canonical_document(content)
        logger.debug(f"🧪 Mock-pinned {name} -> {content_id}")
        return content_id

    async def pin_file(self, data: bytes, filename: str, content_type: str) -> str:
        content_id = self._fake_cid(hash_content(data))
        self.pinned[content_id] = data
        logger.debug(f"🧪 Mock-pinned {filename} -> {content_id}")
        return content_id


def create_content_store(cfg) -> ContentStore:
    """Pick the store from configuration (never from runtime failures)"""
    if cfg.CONTENT_STORE_MODE == "mock":
        logger.warning("⚠️  CONTENT_STORE_MODE=mock - IPFS ids are fabricated, do not use for real mints")
        return MockContentStore(gateway_url=cfg.IPFS_GATEWAY_URL)
    if cfg.CONTENT_STORE_MODE != "strict":
        raise ConfigurationError(
            f"Unknown CONTENT_STORE_MODE '{cfg.CONTENT_STORE_MODE}'",
            {"setting": "CONTENT_STORE_MODE"},
        )
    if not cfg.PINATA_JWT:
        logger.warning("⚠️  PINATA_JWT not set - uploads will fail until it is configured")
    return PinataContentStore(
        jwt=cfg.PINATA_JWT,
        api_url=cfg.PINATA_API_URL,
        gateway_url=cfg.IPFS_GATEWAY_URL,
        timeout=cfg.HTTP_TIMEOUT_SECONDS,
    )


T = TypeVar("T")


async def pin_concurrently(*pins: Awaitable[T]) -> List[T]:
    """
    Run uploads together and return their results in order.

    The first failure cancels the uploads still in flight and is re-raised;
    the cancelled tasks are awaited so none of their errors go unretrieved.
    """
    tasks = [asyncio.ensure_future(pin) for pin in pins]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if pending:
            logger.warning(f"⚠️  Cancelled {len(pending)} in-flight upload(s) after a failed upload")
        raise


async def upload_files(store: ContentStore, files: List[FileUpload]) -> List[UploadedContentRef]:
    """
    Validate every file, then pin them concurrently.

    Validation failures for any file reject the whole batch before anything is
    uploaded; an upload failure for any file fails the batch.
    """
    if not files:
        return []

    decoded = []
    problems = []
    for upload in files:
        data = upload.decode()
        check = validate_file(data, upload.filename, upload.content_type)
        problems.extend(check.errors)
        decoded.append((upload, data, check))

    if problems:
        raise ValidationError("File validation failed:\n" + "\n".join(problems), {"errors": problems})

    async def _pin(upload: FileUpload, data: bytes, check) -> UploadedContentRef:
        content_id = await store.pin_file(data, upload.filename, check.mime_type)
        return UploadedContentRef(
            filename=upload.filename,
            content_id=content_id,
            url=store.get_url(content_id),
            purpose=upload.purpose,
            content_type=check.mime_type,
            size=check.size,
            content_hash=hash_content(data),
        )

    refs = await pin_concurrently(*(_pin(u, d, c) for u, d, c in decoded))
    logger.info(f"📦 Uploaded {len(refs)} file(s)")
    return refs
