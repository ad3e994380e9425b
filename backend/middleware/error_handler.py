"""Global error handling: request ids and the error envelope for everything that escapes a route"""

import logging
import traceback
from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware
from typing import Callable

from config import config
from utils.errors import PreparationError, error_body, new_request_id

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def get_request_id(request: Request) -> str:
    """Request id assigned by ErrorHandlerMiddleware (generated if the middleware didn't run)"""
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = new_request_id()
        request.state.request_id = request_id
    return request_id


def envelope_response(request: Request, status_code: int, code: str, message: str, retryable: bool,
                      details: dict = None, headers: dict = None, log_detail: str = None) -> JSONResponse:
    """
    Render an error envelope and log it once, tagged with the request id the client receives.

    log_detail goes to the log only (exception text, tracebacks); clients get `message`.
    """
    request_id = get_request_id(request)
    log = logger.error if status_code >= 500 else logger.warning
    log(f"{code} ({status_code}) in {request.method} {request.url.path} [{request_id}]: {log_detail or message}")

    body = error_body(code, message, retryable, details, request_id=request_id,
                      expose=config.EXPOSE_ERROR_DETAILS)
    response = JSONResponse(status_code=status_code, content=body, headers=headers)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Tag every request with an id and turn unhandled exceptions into error envelopes"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.request_id = new_request_id()

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request.state.request_id
            return response

        except PreparationError as e:
            # normally rendered by the app's exception handler
            return preparation_error_response(request, e)

        except ValueError as e:
            return envelope_response(request, 400, "VALIDATION_ERROR", str(e), False,
                                     log_detail=f"ValueError: {str(e)}")

        except ConnectionError as e:
            return envelope_response(
                request, 503, "NETWORK_ERROR",
                "External service temporarily unavailable. Please try again.", True,
                log_detail=f"Connection error: {str(e)}",
            )

        except Exception as e:
            return envelope_response(
                request, 500, "INTERNAL_ERROR",
                "An unexpected error occurred. Please try again later.", True,
                log_detail=(
                    f"Unhandled exception: {type(e).__name__}: {str(e)}\n"
                    f"Traceback:\n{traceback.format_exc()}"
                ),
            )


def preparation_error_response(request: Request, exc: PreparationError) -> JSONResponse:
    return envelope_response(request, exc.status, exc.code, exc.message, exc.retryable, exc.details)


async def preparation_error_handler(request: Request, exc: PreparationError) -> JSONResponse:
    return preparation_error_response(request, exc)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for err in exc.errors():
        path = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{path}: {err.get('msg')}" if path else err.get("msg", "Invalid value"))
    return envelope_response(request, 400, "VALIDATION_ERROR", "; ".join(messages), False, {"errors": messages})


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    response = envelope_response(
        request, 429, "RATE_LIMIT_EXCEEDED",
        f"Rate limit exceeded: {exc.detail}", True,
        {"limit": str(exc.detail)},
        log_detail=f"🚦 Rate limit exceeded: {exc.detail}",
    )
    view_rate_limit = getattr(request.state, "view_rate_limit", None)
    if view_rate_limit is not None:
        response = request.app.state.limiter._inject_headers(response, view_rate_limit)
    return response
