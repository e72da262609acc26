"""Reviews API package."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from reviews.api.routes import review_router
from reviews.errors import (
    NoChangeRequired,
    NormalizationFailure,
    NotFound,
    ReviewsError,
    StoreError,
    UpstreamUnavailable,
    ValidationFailure,
)

__all__ = ["review_router", "register_exception_handlers"]

logger = structlog.get_logger(__name__)

_STATUS_CODES: dict[type[ReviewsError], int] = {
    ValidationFailure: 400,
    NotFound: 404,
    NoChangeRequired: 409,
    NormalizationFailure: 422,
    StoreError: 503,
    UpstreamUnavailable: 503,
}


def status_code_for(exc: ReviewsError) -> int:
    for error_cls, status_code in _STATUS_CODES.items():
        if isinstance(exc, error_cls):
            return status_code
    return 500


async def _reviews_error_handler(request: Request, exc: ReviewsError) -> JSONResponse:
    status_code = status_code_for(exc)
    log = logger.error if status_code >= 500 else logger.info
    log("Request rejected", path=request.url.path, code=exc.code, status_code=status_code, error=exc.message)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "status": "error",
            "message": "Invalid request parameters",
            "code": ValidationFailure.code,
            "details": details,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ReviewsError, _reviews_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
