# API Main - FastAPI application for the OTP vault backend
#
# Local-only API consumed by the desktop/extension frontend.
# Startup generates the session token and the idle auto-lock timer;
# shutdown cancels the timer and locks the vault.

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..core import EventSeverity, EventType, VaultError, get_audit_logger
from .security import get_session_token, initialize_session_token
from . import vault_routes
from .vault_routes import router as vault_router, vault_error_handler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    initialize_session_token()
    logger.info("Session token initialized")
    get_audit_logger().log_event(
        event_type=EventType.SYSTEM_START,
        severity=EventSeverity.INFO,
        message="Vault API started",
        details={"version": __version__},
    )
    auto_lock = vault_routes.get_auto_lock_timer()
    yield
    auto_lock.cancel()
    if auto_lock.vault.is_unlocked:
        await auto_lock.vault.lock()
    get_audit_logger().log_event(
        event_type=EventType.SYSTEM_STOP,
        severity=EventSeverity.INFO,
        message="Vault API stopped",
    )


def create_app() -> FastAPI:
    """Build the FastAPI app with the vault router and error mapping."""
    app = FastAPI(
        title="Citadel OTP API",
        description="Encrypted TOTP vault API",
        version=__version__,
        lifespan=lifespan,
    )

    # Local frontends only
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000", "http://127.0.0.1:3000",
            "http://localhost:8000", "http://127.0.0.1:8000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(VaultError, vault_error_handler)
    app.include_router(vault_router)

    @app.get("/api/session")
    async def get_session():
        """Hand the session token to the local frontend."""
        return {"token": get_session_token()}

    return app


app = create_app()


def start_api_server(host: str = "127.0.0.1", port: int = 8000):
    """
    Start FastAPI server.

    Args:
        host: Host to bind to (default: localhost only)
        port: Port to listen on
    """
    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    start_api_server()
