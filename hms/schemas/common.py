"""
Common schemas and helpers used across multiple route modules.
"""

import re
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from core.errors import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(value: str) -> str:
    """Trim, lowercase and sanity-check an email address."""
    value = value.strip().lower()
    if not EMAIL_RE.match(value) or len(value) > 254:
        raise ValueError("Please provide a valid email address")
    return value


def _field_path(loc) -> str:
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path or "body"


def format_validation_errors(exc: PydanticValidationError) -> List[Dict[str, str]]:
    """Flatten Pydantic errors into [{field, message}]."""
    errors = []
    for err in exc.errors():
        message = err.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.append({"field": _field_path(err.get("loc", ())), "message": message})
    return errors


def parse_body(model: Type[ModelT], payload: Any) -> ModelT:
    """Validate a JSON body against `model`.

    Raises:
        ValidationError: with one {field, message} entry per failure
    """
    if not isinstance(payload, dict):
        raise ValidationError(
            "Validation failed",
            errors=[{"field": "body", "message": "Request body must be a JSON object"}],
        )
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError("Validation failed", errors=format_validation_errors(e))


def parse_query(model: Type[ModelT], args) -> ModelT:
    """Validate query-string arguments against `model`."""
    try:
        return model.model_validate(args.to_dict() if hasattr(args, "to_dict") else dict(args))
    except PydanticValidationError as e:
        raise ValidationError("Invalid query parameters", errors=format_validation_errors(e))


class ListQuery(BaseModel):
    """Common pagination, search and sort parameters."""
    page: int = Field(default=1, ge=1, description="Page number (1-based)")
    limit: int = Field(default=10, ge=1, le=100, description="Items per page")
    search: Optional[str] = Field(None, max_length=100, description="Free-text search")
    is_active: Optional[bool] = Field(None, description="Filter on active flag")
    sort_by: str = Field(default="created_at", max_length=32, description="Sort column")
    sort_order: str = Field(default="desc", description="asc or desc")

    @field_validator("sort_order")
    @classmethod
    def validate_sort_order(cls, v: str) -> str:
        v = v.lower()
        if v not in ("asc", "desc"):
            raise ValueError("sort_order must be 'asc' or 'desc'")
        return v

    @field_validator("search")
    @classmethod
    def strip_search(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None
