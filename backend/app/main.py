"""
Falak Mail Relay API
FastAPI application that relays transactional email through NotificationAPI
with Brevo as fallback, plus the admin APIs for keys, logs and status.
"""

import logging
import os
from typing import List

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.routers import api_keys, logs, relay, session
from app.db import EMAIL_LOGS_TABLE, supabase_admin
from app.services.providers import build_providers

# Configure logging to output to console
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


app = FastAPI(
    title="Falak Mail Relay API",
    description="Authenticated transactional email relay with provider fallback",
    version="0.1.0",
)


DEV_DASHBOARD_ORIGINS = ("http://localhost:3000", "http://127.0.0.1:3000")


def get_cors_origins() -> List[str]:
    """
    Origins allowed to call the admin APIs with credentials.

    The local dashboard dev servers are always allowed. CORS_ORIGINS adds
    deployed dashboards, comma-separated:
        CORS_ORIGINS=https://relay.falak.me,https://admin.falak.me
    """
    configured = [
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "").split(",")
        if origin.strip()
    ]
    # dict.fromkeys keeps first-seen order
    return list(dict.fromkeys([*DEV_DASHBOARD_ORIGINS, *configured]))


# Credentials are allowed so the dashboard's session cookie is sent
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(relay.router, prefix="/relay", tags=["relay"])
app.include_router(api_keys.router, prefix="/api/keys", tags=["api-keys"])
app.include_router(logs.router, prefix="/api/logs", tags=["logs"])
app.include_router(session.router, prefix="/api/auth", tags=["auth"])


def describe_configuration() -> List[str]:
    """One line per provider (in priority order) saying whether it can send."""
    lines = []
    for position, provider in enumerate(build_providers(), start=1):
        state = "configured" if provider.is_configured() else "NOT configured"
        lines.append(f"  {position}. {provider.label}: {state}")
    return lines


@app.on_event("startup")
async def log_startup_summary() -> None:
    """
    Log where the API listens and which providers are usable.

    The port shown is taken from the ``HOST_PORT`` environment variable so
    that Docker-mapped ports are reported correctly. Defaults to 8000.

    Example output:

        Falak Mail Relay running at http://localhost:8000
        Providers:
          1. NotificationAPI: configured
          2. Brevo: NOT configured
    """
    host_port = os.getenv("HOST_PORT", "8000")
    logger.info(
        "Falak Mail Relay running at http://localhost:%s\nProviders:\n%s",
        host_port,
        "\n".join(describe_configuration()),
    )
    if not os.getenv("SITE_KEY"):
        logger.warning("SITE_KEY is not set: admin login is disabled")
        if not os.getenv("API_KEY_HASH_SECRET"):
            logger.warning("No API key hashing secret: every relay request will be rejected")


@app.get("/")
async def root():
    return {"message": "Falak Mail Relay API", "version": "0.1.0"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/db")
async def health_db():
    """Probe the email_logs table with the service-role client; 503 if unreachable."""
    try:
        supabase_admin.table(EMAIL_LOGS_TABLE).select("id").limit(1).execute()
    except Exception as exc:
        logger.error(f"[Health] Supabase unreachable: {exc}")
        raise HTTPException(status_code=503, detail=f"Database unreachable: {exc}")
    return {"status": "ok", "database": "reachable"}


# ---------------------------------------------------------------------------
# Error envelopes: every error leaves as {"success": false, "message": ...}
# ---------------------------------------------------------------------------

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report the first invalid field as a 400."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(
        str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")
    )
    reason = first.get("msg", "Invalid request")
    message = f'Invalid "{field}": {reason}' if field else reason
    return JSONResponse(status_code=400, content={"success": False, "message": message})
