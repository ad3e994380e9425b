"""CLI file mint route"""

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from app.api.routes.prepare import run_operation
from config import config
from services.pipeline import OPERATIONS
from utils.rate_limit import limiter

router = APIRouter()


@router.post("/mint-file")
@limiter.limit(config.CLI_RATE_LIMIT)
async def mint_file(request: Request):
    """
    Pin a base64 file, generate metadata for it and prepare the registration.

    Higher rate limit than the web endpoints; the CLI batches files.
    """
    return await run_operation(request, "cli_mint")


@router.get("/mint-file")
@limiter.limit(config.HEALTH_RATE_LIMIT)
async def mint_file_usage(request: Request):
    return JSONResponse(content={"success": True, **OPERATIONS["cli_mint"].describe()})


@router.options("/mint-file", include_in_schema=False)
async def mint_file_preflight(request: Request):
    return Response(status_code=200)
