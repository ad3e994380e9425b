"""License remixer routes"""

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from app.api.routes.prepare import get_pipeline
from config import config
from middleware.security import read_json_payload
from schemas.api import LicenseRemixRequest
from services.license_remixer import CUSTOMIZATION_TIPS, get_template, remix_license, template_catalog
from services.validation import validate
from utils.rate_limit import limiter

router = APIRouter()

USAGE = {
    "endpoint": "/api/license-remixer",
    "description": "Build custom license terms from a template and pin the terms document to IPFS",
    "endpoints": {
        "GET ?action=templates": "List all available license templates",
        "GET ?template=name": "Get specific template details",
        "POST": "Create a license terms document and matching licenseTerms",
    },
    "requiredFields": ["creatorAddress"],
    "optionalFields": [
        "licenseType", "title", "description", "creatorName", "creatorEmail", "commercialUse",
        "derivativesAllowed", "attributionRequired", "reciprocal", "revenueSharePercentage", "mintingFee",
        "currency", "transferable", "expiration", "prohibitedUses", "territory", "duration", "governingLaw",
        "disputeResolution", "uploadToIPFS", "includeExamples", "format",
    ],
    "example": {
        "creatorAddress": "0x1234567890123456789012345678901234567890",
        "licenseType": "commercial-remix",
        "revenueSharePercentage": 15,
        "format": "both",
    },
}


@router.get("/license-remixer")
@limiter.limit(config.HEALTH_RATE_LIMIT)
async def license_remixer_info(request: Request):
    """Template catalog, one template, or usage documentation"""
    if request.query_params.get("action") == "templates":
        return JSONResponse(content={"success": True, **template_catalog()})

    name = request.query_params.get("template")
    if name:
        return JSONResponse(content={
            "success": True,
            "name": name,
            "template": get_template(name).describe(),
            "customizationTips": CUSTOMIZATION_TIPS,
        })

    return JSONResponse(content={"success": True, "method": "POST", **USAGE})


@router.post("/license-remixer")
@limiter.limit(config.STANDARD_RATE_LIMIT)
async def license_remixer(request: Request):
    payload = await read_json_payload(request)
    remix = validate(LicenseRemixRequest, payload)
    pipeline = get_pipeline(request)
    body = await remix_license(remix, pipeline.network, pipeline.content_store)
    return JSONResponse(content=body)


@router.options("/license-remixer", include_in_schema=False)
async def license_remixer_preflight(request: Request):
    return Response(status_code=200)
