"""
Request validation for every prepare-* operation.

Wraps pydantic so callers get our ValidationError with *all* problems in one
message (`path: message; path: message`), never just the first.
"""

import logging
from typing import Any, Dict, List, Type, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from schemas.api import (
    CLIMintRequest,
    CollectionRequest,
    DerivativeRequest,
    DisputeRequest,
    LicenseMintRequest,
    RegisterIPRequest,
    RoyaltyRequest,
)
from schemas.domain import IPMetadata, NFTMetadata
from utils.errors import ValidationError, format_validation_messages

logger = logging.getLogger(__name__)

SCHEMAS: Dict[str, Type[BaseModel]] = {
    "register": RegisterIPRequest,
    "derivative": DerivativeRequest,
    "license": LicenseMintRequest,
    "royalty": RoyaltyRequest,
    "collection": CollectionRequest,
    "dispute": DisputeRequest,
    "cli_mint": CLIMintRequest,
}


def error_messages(exc: PydanticValidationError) -> List[str]:
    """Flatten pydantic errors into 'a.b.0: message' strings"""
    messages = []
    for err in exc.errors():
        path = ".".join(str(part) for part in err.get("loc", ()))
        if err.get("type") == "value_error" and "ctx" in err and "error" in err["ctx"]:
            msg = str(err["ctx"]["error"])
        else:
            msg = err.get("msg", "Invalid value")
        messages.append(f"{path}: {msg}" if path else msg)
    return messages


def validate(schema: Union[str, Type[BaseModel]], raw: Any) -> BaseModel:
    """
    Validate raw JSON input against an operation schema.

    Args:
        schema: operation name from SCHEMAS or a model class
        raw: decoded JSON body

    Returns:
        The validated (frozen) request model

    Raises:
        ValidationError: with every violated constraint joined by '; '
    """
    model_cls = SCHEMAS[schema] if isinstance(schema, str) else schema

    if not isinstance(raw, dict):
        raise ValidationError("Request body must be a JSON object")

    try:
        return model_cls.model_validate(raw)
    except PydanticValidationError as e:
        messages = error_messages(e)
        logger.info(f"Validation failed for {model_cls.__name__}: {len(messages)} problem(s)")
        raise ValidationError(
            format_validation_messages(messages),
            {"errors": messages},
        )


def _problems(model_cls: Type[BaseModel], data: Any) -> List[str]:
    try:
        model_cls.model_validate(data)
        return []
    except PydanticValidationError as e:
        return error_messages(e)


def validate_ip_metadata(data: Any) -> List[str]:
    """Report problems with an IP metadata document without raising"""
    return _problems(IPMetadata, data)


def validate_nft_metadata(data: Any) -> List[str]:
    """Report problems with an NFT metadata document without raising"""
    return _problems(NFTMetadata, data)
