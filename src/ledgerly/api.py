"""FastAPI application entry point."""

import logging

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ledgerly import __version__
from ledgerly.database import SessionLocal
from ledgerly.errors import AppError, app_error_handler, database_error_handler
from ledgerly.ratelimit import limiter
from ledgerly.settings import settings

from ledgerly.routers import (
    analytics,
    auth,
    clients,
    contracts,
    dashboard,
    documents,
    expenses,
    invoices,
    notifications,
    organizations,
    public,
    users,
)

app = FastAPI(
    title="Ledgerly",
    description="Invoicing, contracts and expenses for individuals and organizations",
    version=__version__,
)
logger = logging.getLogger(__name__)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(SQLAlchemyError, database_error_handler)


@app.on_event("startup")
async def warm_jwks_cache():
    """Pre-fetch JWKS on startup so the first real request isn't blocked."""
    from ledgerly.auth.jwt import get_jwks

    try:
        await get_jwks()
    except Exception:
        # Requests fetch the key set on demand if this fails.
        logger.warning("JWKS warm-up failed", exc_info=True)


# The frontend is a separate Vite app; local development runs it on another port.
_allowed_origins = [settings.app_url]
if settings.is_development:
    _allowed_origins += [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Account and organization management
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(organizations.router)
app.include_router(dashboard.router)

# Business records (scoped by account type / X-Organization-ID)
app.include_router(clients.router)
app.include_router(invoices.router)
app.include_router(contracts.router)
app.include_router(expenses.router)
app.include_router(documents.router)
app.include_router(analytics.router)
app.include_router(notifications.router)

# Share links
app.include_router(public.router)


@app.get("/health")
async def health_check():
    """Health check endpoint with DB connectivity verification."""
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return {"status": "healthy", "version": __version__}
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=503, detail=f"Database unavailable: {exc}")
    finally:
        db.close()
