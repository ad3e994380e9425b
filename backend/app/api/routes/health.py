"""Health check routes"""

from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from config import config
from utils.rate_limit import limiter

router = APIRouter()

SERVICE_NAME = "Story IP Transaction Preparation API"
SERVICE_VERSION = "1.0.0"


@router.get("/")
async def root():
    return {"message": f"Welcome to {SERVICE_NAME}", "status": "running", "docs": "/docs"}


@router.get("/api/health")
@limiter.limit(config.HEALTH_RATE_LIMIT)
async def health_check(request: Request):
    """Health check endpoint for monitoring (configuration only, no outbound calls)"""
    pipeline = request.app.state.pipeline
    network = pipeline.network
    store = pipeline.content_store
    return JSONResponse(content={
        "success": True,
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "config": {
            "network": network.name,
            "chainId": network.chain_id,
            "rpcUrl": network.rpc_url,
            "contentStoreMode": store.mode,
            "contentStoreConfigured": bool(getattr(store, "configured", False)),
        },
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    })


@router.get("/api/network/status")
@limiter.limit(config.HEALTH_RATE_LIMIT)
async def network_status(request: Request):
    """Live chain id and block height through the failover client"""
    pipeline = request.app.state.pipeline
    chain = pipeline.chain_client
    chain_id = await chain.get_chain_id()
    block_number = await chain.get_block_number()
    network = pipeline.network
    return JSONResponse(content={
        "success": True,
        "network": network.name,
        "expectedChainId": network.chain_id,
        "chainId": chain_id,
        "chainIdMatches": chain_id == network.chain_id,
        "blockNumber": block_number,
        "rpcUrl": getattr(chain, "active_rpc_url", network.rpc_url),
        "explorerUrl": network.explorer_url,
    })
