"""Perpetua Governance Backend API - Main Application"""
import structlog
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.api.v1.router import api_router
from app.errors import GovernanceError
from app.models.database import init_db, close_db
from app.services.solana_client import close_solana_client, get_solana_client

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.dev.ConsoleRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting Perpetua Governance API", version=settings.app_version)

    await init_db()
    logger.info("Database initialized")

    if settings.vote_attestation_enabled:
        logger.info("On-chain vote attestation enabled", cluster=settings.solana_cluster)

    yield

    # Cleanup
    await close_solana_client()
    await close_db()
    logger.info("Perpetua Governance API shutdown complete")


async def governance_error_handler(request: Request, exc: GovernanceError) -> JSONResponse:
    """Render typed service failures as JSON with their status code"""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "Request failed",
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        path=request.url.path,
        method=request.method,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


def create_app() -> FastAPI:
    """Create FastAPI application"""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Governance API for the Perpetua tokenized asset platform",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(GovernanceError, governance_error_handler)

    # Include routers
    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "version": settings.app_version,
            "cluster": settings.solana_cluster,
        }

    @app.get("/slot")
    async def get_current_slot():
        """Get the current slot of the attestation cluster"""
        try:
            solana_client = await get_solana_client()
            slot = await solana_client.get_slot()
            return {
                "slot": slot,
                "cluster": settings.solana_cluster,
            }
        except Exception as e:
            logger.error("Failed to get current slot", error=str(e))
            return {
                "slot": None,
                "cluster": settings.solana_cluster,
                "error": str(e),
            }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
