"""Transaction preparation routes"""

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from config import config
from middleware.error_handler import get_request_id
from middleware.security import read_json_payload
from services.pipeline import OPERATIONS, PreparationPipeline
from utils.rate_limit import limiter

router = APIRouter()

# path under /api -> operation
ENDPOINTS = {
    "/prepare-mint": "register",
    "/prepare-derivative": "derivative",
    "/prepare-license": "license",
    "/prepare-royalty": "royalty",
    "/prepare-collection": "collection",
    "/prepare-dispute": "dispute",
}


def get_pipeline(request: Request) -> PreparationPipeline:
    return request.app.state.pipeline


async def run_operation(request: Request, operation: str) -> JSONResponse:
    payload = await read_json_payload(request)
    body = await get_pipeline(request).run(operation, payload, request_id=get_request_id(request))
    return JSONResponse(content=body)


@router.post("/prepare-mint")
@limiter.limit(config.STANDARD_RATE_LIMIT)
async def prepare_mint(request: Request):
    """Mint an SPG NFT, register it as an IP asset and attach PIL terms."""
    return await run_operation(request, "register")


@router.post("/prepare-derivative")
@limiter.limit(config.STANDARD_RATE_LIMIT)
async def prepare_derivative(request: Request):
    """Register a derivative IP asset under one or more parents."""
    return await run_operation(request, "derivative")


@router.post("/prepare-license")
@limiter.limit(config.STANDARD_RATE_LIMIT)
async def prepare_license(request: Request):
    return await run_operation(request, "license")


@router.post("/prepare-royalty")
@limiter.limit(config.STANDARD_RATE_LIMIT)
async def prepare_royalty(request: Request):
    """Pay, claim or transfer royalties depending on `operation`."""
    return await run_operation(request, "royalty")


@router.post("/prepare-collection")
@limiter.limit(config.STANDARD_RATE_LIMIT)
async def prepare_collection(request: Request):
    return await run_operation(request, "collection")


@router.post("/prepare-dispute")
@limiter.limit(config.STANDARD_RATE_LIMIT)
async def prepare_dispute(request: Request):
    """Raise a dispute against an IP asset with pinned evidence."""
    return await run_operation(request, "dispute")


@limiter.limit(config.HEALTH_RATE_LIMIT)
async def usage(request: Request):
    """Usage documentation for the endpoint being requested"""
    path = request.url.path[len("/api"):]
    descriptor = OPERATIONS[ENDPOINTS[path]]
    return JSONResponse(content={"success": True, **descriptor.describe()})


async def preflight(request: Request):
    return Response(status_code=200)


for _path in ENDPOINTS:
    router.add_api_route(_path, usage, methods=["GET"], include_in_schema=False)
    router.add_api_route(_path, preflight, methods=["OPTIONS"], include_in_schema=False)
