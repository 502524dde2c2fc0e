"""
Banking API Application Factory
"""

from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .auth import router as auth_router
from .transactions import router as transactions_router
from .accounts import router as accounts_router
from .users import router as users_router
from .. import __version__
from ..audit import AuditEventType
from ..config import get_config
from ..errors import BankingError
from ..logging_config import setup_logging
from ..seed import seed_demo_data
from ..system import BankingSystem


def create_app(system: Optional[BankingSystem] = None) -> FastAPI:
    """
    Create and configure the FastAPI application

    Without an explicit ``system`` one is built from configuration and, when
    ``seed_demo_data`` is enabled, populated with demo users and accounts.
    """
    if system is None:
        config = get_config()
        setup_logging(config.log_level, fmt=config.log_format)
        system = BankingSystem(config)
        if config.seed_demo_data:
            seed_demo_data(system)
        system.audit_trail.log_event(
            event_type=AuditEventType.SYSTEM_START,
            entity_type="system",
            entity_id="banking_api",
            metadata={"version": __version__}
        )

    app = FastAPI(
        title="Banking API",
        description="Funds transfers, statements and token-based sessions",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.banking_system = system

    app.add_middleware(
        CORSMiddleware,
        allow_origins=system.config.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BankingError)
    async def banking_error_handler(request: Request, exc: BankingError):
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    app.include_router(auth_router, tags=["Auth"])
    app.include_router(transactions_router, tags=["Transactions"])
    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])
    app.include_router(users_router, prefix="/users", tags=["Users"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "banking_api",
            "version": __version__
        }

    return app


def run_server(host: str = "0.0.0.0", port: int = 8090) -> None:
    """Run the API with uvicorn"""
    uvicorn.run("banking_api.api:create_app", factory=True, host=host, port=port)
