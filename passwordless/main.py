"""
Passwordless Auth Service - Main Application Entry Point

This module serves as the central configuration point for the authentication
API. It assembles email-code and magic-link authentication, session handling
and health monitoring endpoints into a FastAPI application using the
dependency injection pattern.

Authentication state lives entirely in the database (credentials, attempts,
identities) and in signed session cookies; the process itself holds no
shared mutable state, so any number of workers can serve requests.
"""

import logging
from datetime import datetime, timezone

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from passwordless.auth.dependencies import current_active_identity
from passwordless.auth.router import router as auth_router
from passwordless.core.config import get_settings
from passwordless.models.identity import Identity, IdentityRead

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.value,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Passwordless Auth Service")

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["meta"])
def health_check():
    """Simple health check endpoint returning application status."""
    return {
        "status": "ok",
        "environment": settings.environment.value,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


# Include passwordless authentication routes
app.include_router(auth_router, tags=["auth"])


@app.get("/me", tags=["auth"], response_model=IdentityRead)
async def read_me(identity: Identity = Depends(current_active_identity)):
    """Return the currently authenticated identity's profile information."""
    return IdentityRead.from_identity(identity)
