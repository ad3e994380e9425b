"""Read-only asset query routes"""

from typing import Any, Dict

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from app.api.routes.prepare import get_pipeline
from config import config
from middleware.security import read_json_payload
from schemas.api import AssetQuery
from schemas.domain import DECIMAL_RE
from services.asset_queries import AssetReader
from services.validation import validate
from utils.rate_limit import limiter

router = APIRouter()


def get_reader(request: Request) -> AssetReader:
    pipeline = get_pipeline(request)
    gateway_url = getattr(pipeline.content_store, "gateway_url", config.IPFS_GATEWAY_URL)
    return AssetReader(pipeline.chain_client, pipeline.network, gateway_url=gateway_url,
                       timeout=config.HTTP_TIMEOUT_SECONDS)


def query_from_params(request: Request) -> Dict[str, Any]:
    """Query string -> the same shape a POST body would have"""
    params = request.query_params
    raw: Dict[str, Any] = {}
    if "address" in params:
        raw["address"] = params["address"]
    if params.get("contracts"):
        raw["contracts"] = [c.strip() for c in params["contracts"].split(",") if c.strip()]
    for key in ("limit", "offset"):
        if key in params:
            value = params[key]
            # anything else is left as a string for validation to reject
            raw[key] = int(value) if DECIMAL_RE.fullmatch(value) else value
    if "includeMetadata" in params:
        raw["includeMetadata"] = params["includeMetadata"].lower() == "true"
    return raw


@router.get("/get-assets")
@limiter.limit(config.STANDARD_RATE_LIMIT)
async def get_assets(request: Request):
    """IP assets (NFT + derived IP id) held by `address`"""
    query = validate(AssetQuery, query_from_params(request))
    return JSONResponse(content=await get_reader(request).get_assets(query))


@router.post("/get-assets")
@limiter.limit(config.STANDARD_RATE_LIMIT)
async def get_assets_post(request: Request):
    query = validate(AssetQuery, await read_json_payload(request))
    return JSONResponse(content=await get_reader(request).get_assets(query))


@router.get("/get-nfts")
@limiter.limit(config.STANDARD_RATE_LIMIT)
async def get_nfts(request: Request):
    query = validate(AssetQuery, query_from_params(request))
    return JSONResponse(content=await get_reader(request).get_nfts(query))


@router.post("/get-nfts")
@limiter.limit(config.STANDARD_RATE_LIMIT)
async def get_nfts_post(request: Request):
    query = validate(AssetQuery, await read_json_payload(request))
    return JSONResponse(content=await get_reader(request).get_nfts(query))


async def preflight(request: Request):
    return Response(status_code=200)


for _path in ("/get-assets", "/get-nfts"):
    router.add_api_route(_path, preflight, methods=["OPTIONS"], include_in_schema=False)
