"""Admission checks and response hardening"""

import re
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from typing import Any, Callable

from config import config
from middleware.error_handler import envelope_response
from utils.errors import SecurityViolationError, ValidationError


SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-XSS-Protection": "1; mode=block",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none';",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
}

# keep \t \n \r
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_INJECTION_PATTERNS = [
    re.compile(r"<script\b", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"<[^>]*\bon\w+\s*=", re.IGNORECASE),
]
MAX_PAYLOAD_DEPTH = 10


def sanitize_string(value: str) -> str:
    return _CONTROL_CHARS.sub("", value).strip()


def contains_injection(value: str) -> bool:
    return any(pattern.search(value) for pattern in _INJECTION_PATTERNS)


def sanitize_payload(value: Any, depth: int = 0) -> Any:
    """
    Strip control characters and surrounding whitespace from every string.

    Raises:
        SecurityViolationError: script-like content or absurd nesting
    """
    if depth > MAX_PAYLOAD_DEPTH:
        raise SecurityViolationError("Request payload is nested too deeply")
    if isinstance(value, str):
        cleaned = sanitize_string(value)
        if contains_injection(cleaned):
            raise SecurityViolationError("Input contains potentially dangerous patterns")
        return cleaned
    if isinstance(value, dict):
        return {sanitize_string(str(k)): sanitize_payload(v, depth + 1) for k, v in value.items()}
    if isinstance(value, list):
        return [sanitize_payload(v, depth + 1) for v in value]
    return value


async def read_json_payload(request: Request) -> Any:
    """Decoded and sanitized JSON body"""
    try:
        raw = await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON")
    return sanitize_payload(raw)


def _is_json(content_type: str) -> bool:
    return content_type.split(";")[0].strip().lower() == "application/json"


class SecurityMiddleware(BaseHTTPMiddleware):
    """Reject oversized or non-JSON POSTs before routing; add security headers to every response"""

    def __init__(self, app, max_request_bytes: int = None):
        super().__init__(app)
        self.max_request_bytes = max_request_bytes or config.MAX_REQUEST_BYTES

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rejection = self.admission_check(request)
        response = rejection if rejection is not None else await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response

    def admission_check(self, request: Request):
        if request.method != "POST":
            return None

        length = request.headers.get("content-length")
        if length and length.isascii() and length.isdigit() and int(length) > self.max_request_bytes:
            return envelope_response(
                request, 413, "REQUEST_TOO_LARGE", "Request payload too large", False,
                {"maxBytes": self.max_request_bytes},
                log_detail=f"🚫 Rejected {length}-byte request (limit {self.max_request_bytes})",
            )

        if not _is_json(request.headers.get("content-type", "")):
            return envelope_response(
                request, 400, "INVALID_CONTENT_TYPE", "Invalid or missing Content-Type header", False,
                {"allowed": ["application/json"]},
            )
        return None
