"""Pydantic request/response schemas for the Reviews API.

These are separate from the domain model (anti-corruption pattern).
The API layer is the external contract; camelCase on the wire.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class ApprovalRequest(ApiModel):
    approved: bool
    response: str | None = Field(default=None, max_length=5000)


class BulkApprovalRequest(ApiModel):
    review_ids: list[int] = Field(min_length=1, max_length=100)
    approved: bool
    response: str | None = Field(default=None, max_length=5000)


class PreloadRequest(ApiModel):
    listing_ids: list[int] = Field(default_factory=list, max_length=100)
    limit: int = Field(default=20, ge=1, le=100)


class IngestRequest(ApiModel):
    # None pulls from the configured upstream source
    reviews: list[dict[str, Any]] | None = None
    strict: bool = False


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class StatusResponse(ApiModel):
    status: str = "success"
    message: str | None = None


class DataResponse(StatusResponse):
    data: Any = None


class BulkApprovalError(ApiModel):
    review_id: int
    error: str
    code: str


class BulkApprovalResponse(ApiModel):
    status: str
    success: bool
    updated: int
    failed: int
    errors: list[BulkApprovalError] = Field(default_factory=list)


class IngestResponse(ApiModel):
    success: bool
    processed_count: int
    skipped_count: int
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

