"""Consultation calendar sync web application."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from consult_sync.core.config import settings
from consult_sync.core.database import create_db_and_tables
from consult_sync.core.errors import ConfigurationError
from consult_sync.core.scheduler import shutdown_scheduler, start_scheduler
from consult_sync.routes import sync, webhooks

# Configure logging
settings.log_dir.mkdir(parents=True, exist_ok=True)
log_file = settings.log_dir / "latest.log"

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    filename=str(log_file),
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    # Startup
    logger.info("Starting consultation calendar sync")
    for problem in settings.configuration_problems():
        logger.error(f"Configuration problem: {problem}")
    create_db_and_tables()
    if settings.sync_enabled and settings.calendly_api_key:
        start_scheduler()
    yield
    # Shutdown
    shutdown_scheduler()
    logger.info("Consultation calendar sync shut down")


app = FastAPI(
    title=settings.app_name,
    description="Keeps advising consultations in step with an external scheduling provider",
    version="0.1.0",
    lifespan=lifespan,
)

origins = (
    ["*"]
    if settings.allowed_origins == "*"
    else [o.strip() for o in settings.allowed_origins.split(",")]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(webhooks.router)
app.include_router(sync.router)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    """Missing credentials are an operator problem, reported as a 500."""
    logger.error(f"Configuration error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "Calendar integration is not configured"},
    )


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}
