"""FastAPI routes for the Reviews bounded context.

Each route translates between Pydantic schemas (external contract) and
the domain services resolved through ``get_domain``. Domain errors are
mapped to HTTP status codes by the handlers in ``reviews.api``.
"""

from enum import Enum
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from reviews.api.schemas import (
    ApprovalRequest,
    BulkApprovalRequest,
    BulkApprovalResponse,
    DataResponse,
    IngestRequest,
    IngestResponse,
    PreloadRequest,
)
from reviews.domain import ReviewsDomain, get_domain
from reviews.errors import NotFound, ValidationFailure
from reviews.projections.review_listing import ReviewQuery
from reviews.review.dates import normalize_date
from reviews.review.querying import DEFAULT_PAGE_LIMIT, ReviewFilterOptions, SortField, SortOrder
from reviews.review.review import ActorContext, ReviewChannel, ReviewType

review_router = APIRouter(prefix="/reviews", tags=["reviews"])

Domain = Annotated[ReviewsDomain, Depends(get_domain)]


# ---------------------------------------------------------------------------
# Request parsing
# ---------------------------------------------------------------------------
def _enum(enum_cls: type[Enum], value: str | None, field: str) -> Enum | None:
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationFailure({field: [f"Must be one of: {allowed}"]}) from None


def review_query(
    listing_id: Annotated[int | None, Query(alias="listingId", ge=1)] = None,
    date_from: Annotated[str | None, Query(alias="from")] = None,
    date_to: Annotated[str | None, Query(alias="to")] = None,
    channel: str | None = None,
    approved: bool | None = None,
    review_type: Annotated[str | None, Query(alias="reviewType")] = None,
    min_rating: Annotated[float | None, Query(alias="minRating", ge=0, le=10)] = None,
    max_rating: Annotated[float | None, Query(alias="maxRating", ge=0, le=10)] = None,
    has_response: Annotated[bool | None, Query(alias="hasResponse")] = None,
    guest_name: Annotated[str | None, Query(alias="guestName", max_length=255)] = None,
    search: Annotated[str | None, Query(max_length=255)] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1)] = DEFAULT_PAGE_LIMIT,
    sort_by: Annotated[str, Query(alias="sortBy")] = SortField.CREATED_AT.value,
    sort_order: Annotated[str, Query(alias="sortOrder")] = SortOrder.DESC.value,
) -> ReviewQuery:
    filters = ReviewFilterOptions(
        listing_id=listing_id,
        date_from=normalize_date(date_from, field="from") if date_from else None,
        date_to=normalize_date(date_to, field="to") if date_to else None,
        channel=_enum(ReviewChannel, channel, "channel"),
        approved=approved,
        review_type=_enum(ReviewType, review_type, "reviewType"),
        min_rating=min_rating,
        max_rating=max_rating,
        has_response=has_response,
        guest_name=guest_name,
        search=search,
    )
    return ReviewQuery(
        filters=filters,
        page=page,
        limit=limit,
        sort_field=_enum(SortField, sort_by, "sortBy"),
        sort_order=_enum(SortOrder, sort_order.lower(), "sortOrder"),
    )


def stats_filters(
    listing_id: Annotated[int | None, Query(alias="listingId", ge=1)] = None,
    date_from: Annotated[str | None, Query(alias="from")] = None,
    date_to: Annotated[str | None, Query(alias="to")] = None,
    channel: str | None = None,
    approved: bool | None = None,
) -> ReviewFilterOptions:
    return ReviewFilterOptions(
        listing_id=listing_id,
        date_from=normalize_date(date_from, field="from") if date_from else None,
        date_to=normalize_date(date_to, field="to") if date_to else None,
        channel=_enum(ReviewChannel, channel, "channel"),
        approved=approved,
    )


def actor_context(request: Request) -> ActorContext:
    return ActorContext(
        user_id=request.headers.get("x-user-id"),
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


ListQuery = Annotated[ReviewQuery, Depends(review_query)]
StatsFilters = Annotated[ReviewFilterOptions, Depends(stats_filters)]
Actor = Annotated[ActorContext, Depends(actor_context)]


# ---------------------------------------------------------------------------
# Cache administration (declared before /{review_id})
# ---------------------------------------------------------------------------
@review_router.get("/cache/metrics", response_model=DataResponse)
def cache_metrics(domain: Domain) -> DataResponse:
    """Cache hit/miss/error counters."""
    return DataResponse(data=domain.cache.metrics().to_dict())


@review_router.get("/cache/health", response_model=DataResponse)
def cache_health(domain: Domain) -> DataResponse:
    return DataResponse(data=domain.cache.health_check())


@review_router.delete("/cache", response_model=DataResponse)
def clear_cache(
    domain: Domain,
    key: str | None = None,
    pattern: str | None = None,
    listing_id: Annotated[int | None, Query(alias="listingId", ge=1)] = None,
) -> DataResponse:
    """Invalidate one key, a pattern, one listing, or the whole namespace."""
    if listing_id is not None:
        deleted = domain.cache.invalidate_listing(listing_id)
    else:
        deleted = domain.cache.invalidate(key=key, pattern=pattern)
    return DataResponse(message=f"Invalidated {deleted} cache entries", data={"deleted": deleted})


@review_router.post("/cache/preload", response_model=DataResponse)
def preload_cache(body: PreloadRequest, domain: Domain) -> DataResponse:
    queries = [ReviewQuery(limit=body.limit)]
    queries += [ReviewQuery(filters=ReviewFilterOptions(listing_id=lid), limit=body.limit) for lid in body.listing_ids]
    written = domain.listings.preload(queries)
    return DataResponse(message=f"Preloaded {written} cache entries", data={"written": written})


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------
@review_router.get("", response_model=DataResponse)
def list_reviews(query: ListQuery, domain: Domain) -> DataResponse:
    """Stored reviews, filtered, sorted and paginated."""
    return DataResponse(data=domain.listings.list_reviews(query))


@review_router.get("/stats", response_model=DataResponse)
def review_stats(filters: StatsFilters, domain: Domain) -> DataResponse:
    """Counts, rating and channel distributions and 12-month trends."""
    return DataResponse(data=domain.listings.review_stats(filters))


@review_router.get("/upstream", response_model=DataResponse)
def list_upstream_reviews(query: ListQuery, domain: Domain) -> DataResponse:
    """Reviews pulled from the upstream source and normalized on the fly."""
    return DataResponse(data=domain.listings.list_upstream(query))


@review_router.post("/ingest", response_model=IngestResponse)
def ingest_reviews(body: IngestRequest, domain: Domain) -> IngestResponse:
    """Normalize raw records and store them."""
    result = domain.listings.ingest(body.reviews, strict=body.strict)
    return IngestResponse(
        success=result.success,
        processed_count=result.processed_count,
        skipped_count=result.skipped_count,
        errors=result.errors,
        warnings=result.warnings,
    )


# ---------------------------------------------------------------------------
# Approval
# ---------------------------------------------------------------------------
@review_router.post("/bulk-approval", response_model=BulkApprovalResponse)
def bulk_approval(body: BulkApprovalRequest, actor: Actor, domain: Domain) -> BulkApprovalResponse:
    """Approve or unapprove several reviews; one failure never blocks another."""
    result = domain.approvals.bulk_transition(body.review_ids, body.approved, body.response, actor)
    return BulkApprovalResponse(
        status=result.status,
        success=result.success,
        updated=result.updated,
        failed=result.failed,
        errors=result.errors,
    )


@review_router.get("/{review_id}", response_model=DataResponse)
def get_review(review_id: int, domain: Domain) -> DataResponse:
    review = domain.store.get(review_id)
    if review is None:
        raise NotFound(review_id)
    return DataResponse(data=review.to_json_dict())


@review_router.get("/{review_id}/history", response_model=DataResponse)
def review_history(review_id: int, domain: Domain) -> DataResponse:
    """Approval audit trail, newest first."""
    entries = domain.approvals.history(review_id)
    return DataResponse(data=[entry.to_json_dict() for entry in entries])


@review_router.put("/{review_id}/approval", response_model=DataResponse)
def set_approval(review_id: int, body: ApprovalRequest, actor: Actor, domain: Domain) -> DataResponse:
    """Approve or unapprove a review. 409 when it is already in that state."""
    outcome = domain.approvals.set_approval(review_id, body.approved, body.response, actor)
    state = "approved" if body.approved else "unapproved"
    return DataResponse(
        message=f"Review {review_id} {state}",
        data={"review": outcome.review.to_json_dict(), "auditId": outcome.audit.id},
    )
