from contextlib import asynccontextmanager
from typing import Any, Mapping, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api import health, wallet
from .config import settings
from .core.wallet import ConnectionController, create_controller
from .logging_config import setup_logging


def create_app(
    controller: Optional[ConnectionController] = None,
    host: Optional[Mapping[str, Any]] = None,
) -> FastAPI:
    """Build the API. The app owns the controller for its whole lifetime."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.controller = controller or create_controller(host)
        await app.state.controller.start()
        try:
            yield
        finally:
            await app.state.controller.close()

    app = FastAPI(
        title="MediChain Wallet API",
        description="Wallet session service for the MediChain health-record ledger",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(wallet.router, tags=["Wallet"])

    @app.get("/")
    async def root():
        """Root endpoint with basic info"""
        return {
            "name": "MediChain Wallet API",
            "version": __version__,
            "network": settings.sui_network,
            "docs": "/docs",
            "health": "/healthz",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    setup_logging()
    uvicorn.run(
        "medichain.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level.lower()
    )
