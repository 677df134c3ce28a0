import os
import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from dotenv import load_dotenv

from app.core import setup_scheduler, start_scheduler, stop_scheduler
from app.core.exceptions import ContestEngineError
from app.database import Database
from app.routes.contest.contest_routes import router as contest_router
from app.routes.contest.submission_routes import router as submission_router
from app.routes.contest.leaderboard_routes import router as leaderboard_router
from app.utils.response import error_response, validation_error_response
from app.utils.serialization import serialize_value

# Load environment variables
load_dotenv()

# Get environment variables
APP_NAME = os.getenv("APP_NAME", "CodeArena Contests")
APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
DEBUG = os.getenv("DEBUG", "True").lower() == "true"
SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "True").lower() == "true"

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for the application"""
    # Startup
    await Database.connect_db()

    if SCHEDULER_ENABLED:
        setup_scheduler()
        start_scheduler()

    yield
    # Shutdown
    stop_scheduler()
    await Database.close_db()


app = FastAPI(
    title=APP_NAME,
    version=APP_VERSION,
    description="Contest engine API: contests, registration, scored submissions and leaderboards",
    lifespan=lifespan
)

# CORS middleware
# In development, allow all origins for easier testing
cors_origins = [
    FRONTEND_URL,
    "http://localhost:3000",
    "http://localhost:5173",
    "http://localhost:8000",
    "http://127.0.0.1:8000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins if not DEBUG else ["*"],
    allow_credentials=not DEBUG,  # Can't use credentials with wildcard origin
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ContestEngineError)
async def contest_engine_error_handler(request: Request, exc: ContestEngineError):
    """Business errors become the standard error envelope"""
    if exc.status_code >= 500:
        logger.error(f"[ERROR] {request.method} {request.url.path}: {exc.message}")
    return error_response(
        message=exc.message,
        status_code=exc.status_code,
        code=exc.code,
        details=serialize_value(exc.details)
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies and query parameters"""
    errors = {
        ".".join(str(part) for part in error["loc"]): error["msg"]
        for error in exc.errors()
    }
    return validation_error_response(message="Invalid request", errors=errors)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"[ERROR] Unhandled error on {request.method} {request.url.path}")
    return error_response(
        message="Internal server error",
        status_code=500,
        code="INTERNAL_ERROR"
    )


# Include routers with /api prefix
app.include_router(contest_router, prefix="/api")
app.include_router(submission_router, prefix="/api")
app.include_router(leaderboard_router, prefix="/api")


@app.get("/")
async def read_root():
    """Root endpoint"""
    return {
        "message": f"Welcome to {APP_NAME} API",
        "version": APP_VERSION,
        "docs": "/docs"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}
