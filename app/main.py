"""
BizModelAI — FastAPI Application Entry Point

Wires the assessment and reports routers onto one app with:
- Lifespan management of the shared key/value store (Redis or in-process)
- Per-request ids bound into structlog context
- Route-aware request timeouts (report generation gets the pipeline
  ceiling plus headroom, everything else a short fixed limit)
- Graceful shutdown: new generations are refused with 503 while in-flight
  requests drain
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from app.config import get_settings
from app.services.cache_service import ContentCache
from app.services.report_tracker import ReportViewTracker
from app.utils.storage import close_store, get_store

settings = get_settings()

# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    ),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger("bizmodelai")

GENERATE_PATH_SUFFIX = "/reports/generate"
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0
GENERATE_REQUEST_TIMEOUT_SECONDS = settings.GENERATION_PIPELINE_TIMEOUT_SECONDS + 10.0
DRAIN_TIMEOUT_SECONDS = GENERATE_REQUEST_TIMEOUT_SECONDS


def _is_generate_request(request: Request) -> bool:
    return request.method == "POST" and request.url.path.endswith(GENERATE_PATH_SUFFIX)


# ---------------------------------------------------------------------------
# In-flight request accounting
# ---------------------------------------------------------------------------

class InFlightRequests:
    """Counts running requests, separately tracking report generations."""

    def __init__(self) -> None:
        self.total = 0
        self.generations = 0
        self.shutting_down = False

    def enter(self, generation: bool) -> None:
        self.total += 1
        if generation:
            self.generations += 1

    def leave(self, generation: bool) -> None:
        self.total -= 1
        if generation:
            self.generations -= 1

    async def drain(self, timeout_seconds: float) -> None:
        """Wait for running requests to finish, giving up after ``timeout_seconds``."""
        self.shutting_down = True
        deadline = time.monotonic() + timeout_seconds
        while self.total > 0:
            if time.monotonic() >= deadline:
                logger.warning(
                    "drain_timeout_exceeded",
                    remaining_requests=self.total,
                    remaining_generations=self.generations,
                )
                return
            await asyncio.sleep(0.25)


in_flight = InFlightRequests()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the shared store on startup; drain and close it on shutdown."""
    log = logger.bind(environment=settings.ENVIRONMENT)
    log.info("startup_begin", store="redis" if settings.uses_redis else "memory")

    store = get_store()
    if settings.uses_redis:
        await store.ping()
        log.info("redis_connected")

    log.info("startup_complete")
    yield

    log.info("shutdown_begin", in_flight=in_flight.total)
    await in_flight.drain(DRAIN_TIMEOUT_SECONDS)
    await close_store()
    log.info("shutdown_complete")


# ---------------------------------------------------------------------------
# Middleware classes
# ---------------------------------------------------------------------------

class TimeoutMiddleware(BaseHTTPMiddleware):
    """Return 504 when a request outlives its route's time limit."""

    def __init__(
        self,
        app,
        default_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        generate_timeout: float = GENERATE_REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__(app)
        self.default_timeout = default_timeout
        self.generate_timeout = generate_timeout

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        timeout = self.generate_timeout if _is_generate_request(request) else self.default_timeout
        try:
            return await asyncio.wait_for(call_next(request), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("request_timeout", path=request.url.path, timeout=timeout)
            return JSONResponse(status_code=504, content={"detail": "Request timed out"})


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id, track in-flight work and log each request."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        generation = _is_generate_request(request)
        if generation and in_flight.shutting_down:
            return JSONResponse(
                status_code=503,
                content={"detail": "Server is shutting down; retry shortly."},
            )

        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start = time.perf_counter()
        in_flight.enter(generation)
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("request_error", method=request.method, path=request.url.path)
            raise
        finally:
            in_flight.leave(generation)

        response.headers["x-request-id"] = request_id
        logger.info(
            "request_handled",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return response


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="BizModelAI",
    description="Business-model fit scoring and AI report generation",
    version="3.0.0",
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
)

# Last added runs first.
app.add_middleware(RequestContextMiddleware)
app.add_middleware(TimeoutMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["health"])
async def health_liveness() -> dict:
    return {"status": "healthy"}


@app.get("/health/ready", tags=["health"])
async def health_ready() -> dict:
    """Readiness probe: the store answers and the cache and view ledger can be read."""
    result: dict = {
        "status": "healthy",
        "store": "redis" if settings.uses_redis else "memory",
        "generations_in_flight": in_flight.generations,
    }

    store = get_store()
    try:
        if not await store.ping():
            raise RuntimeError("ping returned false")
        result["cache_entries"] = (await ContentCache(store).status()).count
        result["reports_viewed"] = await ReportViewTracker(store).viewed_count()
    except Exception as exc:
        logger.error("health_store_failure", error=str(exc))
        result["status"] = "degraded"
        result["store_error"] = str(exc)

    return result


from app.api.router import router as api_router  # noqa: E402

app.include_router(api_router, prefix="/api/v1")
