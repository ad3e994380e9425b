"""
Story IP Transaction Preparation API - Application Factory
"""

import logging
import sys
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from config import config
from utils.errors import PreparationError
from utils.rate_limit import limiter
from middleware.error_handler import (
    ErrorHandlerMiddleware,
    preparation_error_handler,
    rate_limit_handler,
    request_validation_handler,
)
from middleware.security import SecurityMiddleware
from services.pipeline import PreparationPipeline, build_pipeline
from app.api.routes import assets, cli, health, license, prepare


# Configure logging
def setup_logging():
    """Setup structured logging for production"""
    log_level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)

    # Clear any existing handlers
    logging.root.handlers = []

    if config.STRUCTURED_LOGGING:
        # JSON-like structured logging for production
        formatter = logging.Formatter(
            '{"time":"%(asctime)s", "level":"%(levelname)s", "name":"%(name)s", "message":"%(message)s"}'
        )
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)

    logging.root.setLevel(log_level)
    logging.root.addHandler(console_handler)

    # Set specific levels for noisy libraries
    for noisy in ("httpx", "httpcore", "web3", "aiohttp", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def create_app(pipeline: PreparationPipeline = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        pipeline: preparation pipeline to serve; built from Config when omitted
            (tests inject one with a fake chain client and the mock content store)
    """
    setup_logging()
    logger = logging.getLogger(__name__)

    config_errors = config.validate()
    if config_errors:
        logger.error(f"❌ Configuration errors: {', '.join(config_errors)}")
        if config.IS_PRODUCTION:
            raise ValueError(f"Production configuration invalid: {', '.join(config_errors)}")
        else:
            logger.warning("⚠️  Configuration warnings (development mode - proceeding anyway)")

    logger.info(f"🚀 Starting application with config: {config.get_summary()}")

    app = FastAPI(
        title="Story IP Transaction Preparation API",
        description="Prepares unsigned Story protocol transactions for wallet signing",
        version="1.0.0"
    )

    app.state.pipeline = pipeline or build_pipeline(config)
    logger.info(
        f"✅ Pipeline ready on {app.state.pipeline.network.name} "
        f"(chain {app.state.pipeline.network.chain_id}, content store: {app.state.pipeline.content_store.mode})"
    )

    # Rate limiting
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(SecurityMiddleware, max_request_bytes=config.MAX_REQUEST_BYTES)

    # Error handling wraps everything but CORS so error responses still get CORS headers
    app.add_middleware(ErrorHandlerMiddleware)

    if config.ALLOWED_ORIGINS:
        allowed_origins = config.ALLOWED_ORIGINS
        logger.info(f"✅ CORS configured with {len(allowed_origins)} allowed origins")
    else:
        allowed_origins = ["*"]
        logger.warning("⚠️  WARNING: ALLOWED_ORIGINS not set - using permissive CORS policy!")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        expose_headers=["X-Request-ID", "Retry-After", "X-RateLimit-Limit", "X-RateLimit-Remaining"],
    )

    # Custom exception handlers
    app.add_exception_handler(PreparationError, preparation_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)

    # Include API routes
    app.include_router(health.router, tags=["health"])
    app.include_router(prepare.router, prefix="/api", tags=["prepare"])
    app.include_router(cli.router, prefix="/api/cli", tags=["cli"])
    app.include_router(license.router, prefix="/api", tags=["license"])
    app.include_router(assets.router, prefix="/api", tags=["assets"])

    return app
