"""Common error classes and utilities"""

import re
import time
import uuid
from fastapi import HTTPException
from typing import Any, Dict, List, Optional


class PreparationError(HTTPException):
    """
    Base class for every error the preparation pipeline reports to clients.

    Each subclass pins a machine-stable `code`, an HTTP status and whether an
    automated caller may retry the same request unchanged.
    """
    code = "INTERNAL_ERROR"
    status = 500
    retryable = True

    def __init__(self, detail: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(status_code=self.status, detail=detail)
        self.details = details or {}

    @property
    def message(self) -> str:
        return str(self.detail)


class ValidationError(PreparationError):
    """Request validation errors"""
    code = "VALIDATION_ERROR"
    status = 400
    retryable = False


class ParameterError(PreparationError):
    """Request is valid but can't be turned into protocol parameters"""
    code = "PARAMETER_ERROR"
    status = 400
    retryable = False


class ConfigurationError(ParameterError):
    """Deployment is missing something the operation needs (e.g. a contract address)"""
    code = "CONFIGURATION_ERROR"
    status = 500
    retryable = False


class InsufficientFundsError(PreparationError):
    """Signer can't cover gas plus value"""
    code = "INSUFFICIENT_FUNDS"
    status = 400
    retryable = False

    def __init__(self, required: int, available: int, details: Optional[Dict[str, Any]] = None):
        detail = f"Insufficient funds. Required: {required} wei, Available: {available} wei"
        merged = {"requiredWei": str(required), "availableWei": str(available)}
        merged.update(details or {})
        super().__init__(detail, merged)
        self.required = required
        self.available = available


class ExternalServiceError(PreparationError):
    """External service integration errors"""
    code = "EXTERNAL_SERVICE_ERROR"
    status = 503
    retryable = True

    def __init__(self, service: str, detail: str = "External service unavailable",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(f"{service}: {detail}", details)
        self.service = service


class ContentStoreError(ExternalServiceError):
    """IPFS pinning failed or isn't configured"""
    code = "IPFS_UPLOAD_ERROR"

    def __init__(self, detail: str = "Upload failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("IPFS", detail, details)


class ChainRPCError(ExternalServiceError):
    """Every configured RPC endpoint failed"""
    code = "NETWORK_ERROR"

    def __init__(self, detail: str = "RPC unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("Story RPC", detail, details)


class SecurityViolationError(PreparationError):
    """Request rejected by admission checks"""
    code = "SECURITY_VIOLATION"
    status = 400
    retryable = False

    def __init__(self, detail: str, code: Optional[str] = None, status: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        if code:
            self.code = code
        if status:
            self.status = status
        super().__init__(detail, details)


RETRY_GUIDANCE = {
    "VALIDATION_ERROR": "Fix the listed fields and resubmit.",
    "PARAMETER_ERROR": "Check the request parameters; retrying unchanged will fail again.",
    "CONFIGURATION_ERROR": "Server configuration is incomplete; contact the operator.",
    "INSUFFICIENT_FUNDS": "Fund the wallet (see faucet links) and try again.",
    "IPFS_UPLOAD_ERROR": "IPFS is temporarily unavailable; retry with backoff.",
    "NETWORK_ERROR": "Story RPC is temporarily unavailable; retry with backoff.",
    "RATE_LIMIT_EXCEEDED": "Too many requests; wait for the window to reset.",
    "INTERNAL_ERROR": "Unexpected error; retry later.",
}


# Redaction rules for anything echoed back in `details`
_SENSITIVE_PATTERNS = [
    (re.compile(r"Bearer\s+[A-Za-z0-9\-._~+/]+=*"), "Bearer [REDACTED]"),
    (re.compile(r"0x[a-fA-F0-9]{64}"), "0x[REDACTED_PRIVATE_KEY]"),
    (re.compile(r"sk_[A-Za-z0-9]+"), "sk_[REDACTED]"),
]
_SENSITIVE_KEYS = ("password", "secret", "key", "token", "jwt")


def sanitize_details(value: Any, expose: bool = False) -> Any:
    """Recursively redact credentials from error details (no-op when expose=True)"""
    if expose:
        return value
    if isinstance(value, dict):
        cleaned = {}
        for k, v in value.items():
            if any(marker in str(k).lower() for marker in _SENSITIVE_KEYS):
                cleaned[k] = "[REDACTED]"
            else:
                cleaned[k] = sanitize_details(v)
        return cleaned
    if isinstance(value, (list, tuple)):
        return [sanitize_details(v) for v in value]
    if isinstance(value, str):
        for pattern, replacement in _SENSITIVE_PATTERNS:
            value = pattern.sub(replacement, value)
        return value
    return value


def new_request_id() -> str:
    """req_<epoch ms>_<random> - sortable and unique enough for log correlation"""
    return f"req_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def format_validation_messages(messages: List[str]) -> str:
    return "; ".join(messages)


def error_body(code: str, message: str, retryable: bool, details: Optional[Dict[str, Any]] = None,
               request_id: Optional[str] = None, expose: bool = False) -> Dict[str, Any]:
    """Build the `{success: false, error: {...}}` envelope"""
    payload = sanitize_details(dict(details or {}), expose=expose)
    if request_id:
        payload["requestId"] = request_id
    guidance = RETRY_GUIDANCE.get(code)
    if guidance:
        payload.setdefault("retryGuidance", guidance)
    return {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "details": payload,
            "retryable": retryable,
        },
    }


def success_body(transaction: Dict[str, Any], metadata: Optional[Dict[str, Any]],
                 uploaded_files: Optional[List[Dict[str, Any]]] = None,
                 additional_data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Same four fields for every operation; operation detail only in additionalData"""
    return {
        "success": True,
        "transaction": transaction,
        "metadata": metadata,
        "uploadedFiles": uploaded_files or [],
        "additionalData": additional_data or {},
    }
