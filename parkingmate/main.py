# parkingmate/main.py
"""
FastAPI application entry point.
Includes security middleware, global error handlers, and all routers.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from parkingmate.routers import camera_events, guests, parking_sessions, health
from parkingmate.database import create_tables
from parkingmate.config import settings
from parkingmate.errors import DomainError
from parkingmate.utils.logger import get_logger
import time

logger = get_logger(__name__)

app = FastAPI(
    title="ParkingMate ALPR API",
    description="Camera entry/exit reconciliation and guest parking confirmation.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS (guest web app + staff dashboard) ───────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── API Key Middleware ───────────────────────────────────────────────────────
class APIKeyMiddleware(BaseHTTPMiddleware):
    """
    Optional lightweight API key auth for staff endpoints.
    The camera webhook and the public guest endpoint are excluded.
    Set API_KEY in .env. Leave empty to disable auth.
    """
    open_paths = {
        f"{settings.API_PREFIX}/datahub/entry",
        f"{settings.API_PREFIX}/guest/validate-plate",
        f"{settings.API_PREFIX}/health",
        "/docs", "/redoc", "/openapi.json",
    }

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.open_paths or request.method == "OPTIONS" or not settings.API_KEY:
            return await call_next(request)

        api_key = request.headers.get("X-API-Key") or request.query_params.get("api_key")
        if api_key != settings.API_KEY:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"success": False, "error": {"code": "UNAUTHORIZED", "message": "Invalid or missing API key"}},
            )
        return await call_next(request)


if settings.API_KEY:
    app.add_middleware(APIKeyMiddleware)


# ── Request Timing Middleware ────────────────────────────────────────────────
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 2)
    logger.debug(f"{request.method} {request.url.path} → {response.status_code} ({duration}ms)")
    return response


# ── Exception Handlers ───────────────────────────────────────────────────────
@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error(f"[API] {request.url.path} → {exc}")
    else:
        logger.info(f"[API] {request.url.path} → {exc}")
    headers = None
    if exc.details and "retryAfterSeconds" in exc.details:
        headers = {"Retry-After": str(exc.details["retryAfterSeconds"])}
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.to_dict()},
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = [".".join(str(p) for p in err["loc"] if p != "body") for err in exc.errors()]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "error": {"code": "VALIDATION_ERROR", "message": "Invalid request body", "details": {"fields": fields}},
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}},
    )


# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(camera_events.router,    prefix=settings.API_PREFIX, tags=["📡 Camera Events"])
app.include_router(guests.router,           prefix=settings.API_PREFIX, tags=["🚗 Guests"])
app.include_router(parking_sessions.router, prefix=settings.API_PREFIX, tags=["🅿️  Parking Sessions"])
app.include_router(health.router,           prefix=settings.API_PREFIX, tags=["💚 Health"])


# ── Startup ───────────────────────────────────────────────────────────────────
@app.on_event("startup")
async def startup():
    logger.info("🚀 ParkingMate backend starting up...")
    create_tables()
    logger.info("✅ Database tables ready")
    logger.info(f"🌍 Environment: {settings.ENVIRONMENT} | org: {settings.DEFAULT_ORG_ID}")
    logger.info(f"⏱️  Guest window {settings.GUEST_CONFIRMATION_WINDOW_MINUTES}min, "
                f"stay {settings.GUEST_PARKING_DURATION_HOURS}h")
    logger.info(f"🌐 Listening on http://{settings.HOST}:{settings.PORT}")
    logger.info("📖 API docs at /docs")


@app.on_event("shutdown")
async def shutdown():
    logger.info("🛑 ParkingMate backend shutting down...")
