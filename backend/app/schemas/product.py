"""
Catalog Backend — Pydantic Request/Response Schemas
=====================================================

What:  Pydantic models defining the API contract for the Product resource.
How:   Routes feed multipart form fields and query parameters through these
       models; ProductService receives the validated objects; responses are
       serialized from ORM rows with camelCase field names.

Input models reject unknown fields (extra="forbid") and accept camelCase
names only (``imageUrl``, ``minPrice``, ``maxPrice``).
"""

import json
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasGenerator, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


_INPUT_CONFIG = ConfigDict(
    extra="forbid",
    str_strip_whitespace=True,
)


def _coerce_colors(value: Any) -> Any:
    """
    Accepts the shapes a multipart form can carry for ``colors``:
    repeated fields (list of strings) or one JSON array string.
    """
    if isinstance(value, str):
        value = [value]
    if isinstance(value, list) and len(value) == 1 and isinstance(value[0], str):
        candidate = value[0].strip()
        if candidate.startswith("["):
            try:
                parsed = json.loads(candidate)
            except json.JSONDecodeError:
                raise ValueError("colors must be a JSON array of strings")
            return parsed
    return value


# ══════════════════════════════════════════════════════════════════════════
# Request Models — What the client sends
# ══════════════════════════════════════════════════════════════════════════


class ProductCreate(BaseModel):
    """
    Body of POST /products.

    ``price`` arrives as text in multipart forms and is coerced to a number.
    """
    model_config = _INPUT_CONFIG

    name: str = Field(min_length=1, max_length=255)
    price: float = Field(ge=0, allow_inf_nan=False)
    description: Optional[str] = None
    colors: Optional[List[str]] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl", max_length=512)

    @field_validator("colors", mode="before")
    @classmethod
    def parse_colors(cls, v: Any) -> Any:
        return _coerce_colors(v)


class ProductUpdate(BaseModel):
    """Body of PATCH /products/{id}. Every field is optional."""
    model_config = _INPUT_CONFIG

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    price: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    description: Optional[str] = None
    colors: Optional[List[str]] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl", max_length=512)

    @field_validator("colors", mode="before")
    @classmethod
    def parse_colors(cls, v: Any) -> Any:
        return _coerce_colors(v)

    @field_validator("name", "price")
    @classmethod
    def reject_explicit_null(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("must not be null")
        return v

    def changes(self) -> Dict[str, Any]:
        """Fields the client actually sent, keyed by model attribute name."""
        return self.model_dump(exclude_unset=True)


class ProductSort(str, Enum):
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"
    NEWEST = "newest"


class ProductFilter(BaseModel):
    """
    Query parameters of GET /products.

    Empty strings (what HTML forms send for untouched inputs) mean "absent".
    Price bounds are inclusive and independent of each other.
    """
    model_config = _INPUT_CONFIG

    keyword: Optional[str] = Field(default=None, max_length=255)
    min_price: Optional[float] = Field(default=None, alias="minPrice", allow_inf_nan=False)
    max_price: Optional[float] = Field(default=None, alias="maxPrice", allow_inf_nan=False)
    sort: Optional[ProductSort] = None

    @field_validator("keyword", "min_price", "max_price", "sort", mode="before")
    @classmethod
    def blank_as_absent(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


# ══════════════════════════════════════════════════════════════════════════
# Response Models — What the API returns to clients
# ══════════════════════════════════════════════════════════════════════════


class ProductResponse(BaseModel):
    """
    Full representation of a product.

    ``imageUrl`` is relative to the upload root; clients load the image from
    ``/uploads/<imageUrl>``.
    """
    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=AliasGenerator(serialization_alias=to_camel),
    )

    id: uuid.UUID
    name: str
    price: float
    description: Optional[str] = None
    colors: Optional[List[str]] = None
    image_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "not_found",
            "message": "product with ID '...' was not found",
            "request_id": "1a2b3c4d"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Health check response showing service and dependency status."""
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    storage: str = Field(description="Upload directory: writable, unavailable")
    uptime_seconds: float = Field(description="Seconds since service started")
