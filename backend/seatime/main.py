import hmac
import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from sqlalchemy.exc import IntegrityError
from starlette.middleware.base import BaseHTTPMiddleware
from seatime.api.routes import router
from seatime.config import settings
from seatime.modules.ais_client import AISProviderError, AISRateLimitError

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Provider failure kind -> (HTTP status, error code) for API callers
_PROVIDER_ERROR_STATUS: dict[str, tuple[int, str]] = {
    "auth": (502, "ais_auth"),
    "rate_limited": (429, "ais_rate_limited"),
    "not_found": (404, "vessel_not_found_at_provider"),
    "connection": (503, "ais_unreachable"),
    "unavailable": (503, "ais_unavailable"),
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load the sea-time policy and start the background scheduler."""
    from seatime.modules.sea_time_policy import load_policy
    from seatime.modules.scheduler import get_scheduler

    load_policy()
    scheduler = None
    if settings.SCHEDULER_ENABLED:
        if not settings.MYSHIPTRACKING_API_KEY:
            logger.warning("MYSHIPTRACKING_API_KEY not set: scheduled AIS checks will stay due until it is")
        scheduler = get_scheduler()
        scheduler.start()
    else:
        logger.info("Background scheduler disabled (SCHEDULER_ENABLED=false)")
    yield
    if scheduler is not None:
        scheduler.stop()


app = FastAPI(
    title="SeaTime Tracker",
    description=(
        "Sea service logbook backend. Infers MCA sea time from AIS positions "
        "and records it as pending entries for the crew member to confirm."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

# CORS: origins from settings (supports comma-separated env var)
cors_origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


_PUBLIC_PATHS = frozenset({"/health", "/docs", "/openapi.json", "/redoc"})


class APIKeyMiddleware(BaseHTTPMiddleware):
    """Shared-secret check on X-API-Key. With SEATIME_API_KEY unset (local dev) every request passes."""

    async def dispatch(self, request: Request, call_next):
        expected = settings.SEATIME_API_KEY
        if expected is None or request.url.path in _PUBLIC_PATHS:
            return await call_next(request)
        if not hmac.compare_digest(request.headers.get("X-API-Key") or "", expected):
            logger.warning("Rejected %s %s: invalid or missing API key", request.method, request.url.path)
            return JSONResponse(status_code=401, content={"detail": "Invalid or missing API key"})
        return await call_next(request)


app.add_middleware(APIKeyMiddleware)

# Rate limiting: 60/min default per client address
limiter = Limiter(key_func=get_remote_address, default_limits=["60/minute"])
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.include_router(router, prefix="/api/v1")


# ── Structured error handlers ─────────────────────────────────────────────────

@app.exception_handler(AISProviderError)
async def provider_error_handler(request: Request, exc: AISProviderError):
    status_code, code = _PROVIDER_ERROR_STATUS.get(exc.kind, (502, "ais_error"))
    headers = {}
    if isinstance(exc, AISRateLimitError) and exc.retry_after:
        headers["Retry-After"] = str(int(exc.retry_after))
    return JSONResponse(
        status_code=status_code,
        content={"error": "AIS provider error", "code": code, "detail": str(exc)},
        headers=headers,
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=422, content={"error": "Validation error", "detail": str(exc)})


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    return JSONResponse(status_code=409, content={"error": "Conflict", "detail": str(exc.orig) if exc.orig else str(exc)})


@app.exception_handler(Exception)
async def general_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception on %s %s:\n%s", request.method, request.url.path, traceback.format_exc())
    return JSONResponse(status_code=500, content={"error": "Internal server error", "detail": "An unexpected error occurred."})


@app.get("/health")
def health() -> dict:
    from seatime.modules.scheduler import get_scheduler

    scheduler = get_scheduler()
    return {
        "status": "ok",
        "version": "0.1.0",
        "scheduler_running": scheduler.is_running,
        "tick_in_progress": scheduler.tick_in_progress,
    }
