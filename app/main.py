from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
from app.api.admin import router as admin_router
from app.api.automations import router as automations_router
from app.api.connectors import router as connectors_router
from app.api.devices import router as devices_router
from app.api.events import router as events_router
from app.api.health import router as health_router
from app.api.locations import router as locations_router
from app.api.retention import router as retention_router
from app.api.services import router as services_router
from app.api.toggles import router as toggles_router
from app.core.config import get_settings
from app.core.database import init_db, check_db_connection
from app.services.retention_scheduler import retention_scheduler
from app.core.redis_client import redis_client
from app.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager for startup and shutdown events.
    """
    # Startup
    logger.info("Starting Fusion Bridge")
    logger.info(f"Database: {settings.database_url.split('@')[1] if '@' in settings.database_url else settings.database_url}")

    if redis_client.enabled:
        logger.info(f"Redis: {settings.redis_host}:{settings.redis_port} (channel '{settings.redis_channel_name}')")
        if redis_client.health_check():
            logger.info("Redis connection verified")
        else:
            logger.error("Failed to connect to Redis")
    else:
        logger.info("Redis publication disabled")

    # Initialize database
    try:
        if check_db_connection():
            logger.info("Database connection verified")
            init_db()
        else:
            logger.error("Failed to connect to database")
    except Exception as e:
        logger.error(f"Database initialization error: {e}", exc_info=True)

    # Start retention scheduler
    if settings.event_retention_enabled:
        try:
            retention_scheduler.start()
            logger.info("Retention scheduler started")
        except Exception as e:
            logger.error(f"Failed to start retention scheduler: {e}", exc_info=True)
    else:
        logger.info("Event retention disabled")

    yield

    # Shutdown
    logger.info("Shutting down Fusion Bridge")
    retention_scheduler.stop()
    redis_client.close()
    logger.info("Fusion Bridge stopped")


# Create FastAPI application
app = FastAPI(
    title="Fusion Bridge",
    description="Multi-tenant monitoring and automation of physical-security devices (YoLink, Piko, Genea)",
    version="1.0.0",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render every HTTP error in the {success, error} envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning(f"Invalid request to {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "error": "Invalid request data",
            "details": [
                {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
                for err in exc.errors()
            ]
        }
    )


# Include routers
app.include_router(health_router)
app.include_router(events_router)
app.include_router(devices_router)
app.include_router(connectors_router)
app.include_router(automations_router)
app.include_router(toggles_router)
app.include_router(admin_router)
app.include_router(services_router)
app.include_router(retention_router)
app.include_router(locations_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Fusion Bridge",
        "version": "1.0.0",
        "status": "running"
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
        log_level=settings.log_level.lower()
    )
