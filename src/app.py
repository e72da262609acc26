"""Guest review hub FastAPI application.

Serves normalized review listings through the response cache and the
approval workflow. The reviews domain is built lazily on the first request
that needs it, from environment settings (see ``reviews.config``).

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from reviews.api import register_exception_handlers, review_router
from reviews.domain import get_domain
from reviews.utils.logging import add_context, clear_context

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Guest Review Hub API",
    description="Review normalization, cached listings and approval workflow",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """Bind a request id to every log line emitted while serving the request."""
    request_id = request.headers.get("x-request-id") or f"req_{uuid4().hex[:12]}"
    clear_context()
    add_context(request_id=request_id, path=request.url.path)
    try:
        response = await call_next(request)
    finally:
        clear_context()
    response.headers["X-Request-ID"] = request_id
    return response


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
register_exception_handlers(app)
app.include_router(review_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
def health():
    domain = get_domain()
    cache = domain.cache.health_check()
    return JSONResponse(
        content={
            "status": "ok" if cache["healthy"] else "degraded",
            "environment": domain.settings.environment,
            "cache": cache,
        }
    )
