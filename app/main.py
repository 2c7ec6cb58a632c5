# app/main.py
"""
FastAPI application entry point.
Includes security middleware, error handlers, and all routers.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from app.routers import credentials, door, access_logs, health
from app.database import create_tables
from app.config import settings
from app.errors import EngineError
from app.utils.logger import get_logger
import time

logger = get_logger(__name__)

app = FastAPI(
    title="Stay Credential Engine API",
    description="Room-credential lifecycle and door admission over external wallet issuer/verifier services.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── API Key Middleware ───────────────────────────────────────────────────────
OPEN_PATHS = {"/api/v1/health", "/docs", "/redoc", "/openapi.json"}


class APIKeyMiddleware(BaseHTTPMiddleware):
    """
    Optional service key shared with the identity gateway and door clients.
    Set API_KEY in .env. Leave empty to disable.
    """
    async def dispatch(self, request: Request, call_next):
        if request.url.path in OPEN_PATHS or not settings.API_KEY:
            return await call_next(request)

        api_key = request.headers.get("X-API-Key") or request.query_params.get("api_key")
        if api_key != settings.API_KEY:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Invalid or missing API key"},
            )
        return await call_next(request)


app.add_middleware(APIKeyMiddleware)


# ── Request Timing Middleware ────────────────────────────────────────────────
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = round((time.perf_counter() - start) * 1000, 2)
    actor = request.headers.get("X-Actor-Id", "-")
    log = logger.info if response.status_code >= 400 else logger.debug
    log(f"{request.method} {request.url.path} actor={actor} → {response.status_code} ({duration_ms}ms)")
    return response


# ── Exception Handlers ───────────────────────────────────────────────────────
@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    if exc.status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} → {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "INTERNAL_ERROR", "message": "Internal server error"},
    )


# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(credentials.router, prefix="/api/v1", tags=["🔑 Credentials"])
app.include_router(door.router,        prefix="/api/v1", tags=["🚪 Door Admission"])
app.include_router(access_logs.router, prefix="/api/v1", tags=["📜 Access Logs"])
app.include_router(health.router,      prefix="/api/v1", tags=["💚 Health"])


# ── Startup ───────────────────────────────────────────────────────────────────
@app.on_event("startup")
async def startup():
    logger.info("🚀 Credential engine starting up...")
    create_tables()
    logger.info("✅ Database tables ready")
    logger.info(f"🔗 Issuer: {settings.ISSUER_API_URL} | Verifier: {settings.VERIFIER_API_URL}")
    logger.info(f"🔒 Revocation fallback: {settings.REVOCATION_FALLBACK}")
    logger.info(f"🌐 Listening on http://{settings.BACKEND_HOST}:{settings.BACKEND_PORT}")


@app.on_event("shutdown")
async def shutdown():
    logger.info("🛑 Credential engine shutting down...")
