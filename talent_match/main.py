from datetime import datetime, timezone
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from talent_match.routers import bookmarks, candidates, match, resumes, searches

# Import logging and middleware
from talent_match.utils.logging_config import configure_for_environment, get_logger
from talent_match.middleware.error_handlers import (
    ExceptionHandlerMiddleware,
    RequestLoggingMiddleware,
    PerformanceMiddleware,
)
from talent_match.services.ai_client import close_ai_client
from talent_match.utils import config

# Configure logging first
configure_for_environment()
logger = get_logger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager"""
    logger.info("Talent Match API starting up...")
    if not config.GEMINI_API_KEY:
        logger.warning("GEMINI_API_KEY is not set; matching and resume parsing will fail until it is")
    if not config.AUTH_URL:
        logger.warning("AUTH_URL is not set; authenticated routes will fail until it is")

    try:
        from talent_match.services.db import init_indexes
        await init_indexes()
        logger.info("Database indexes initialized successfully")
    except Exception as e:
        logger.warning(f"Database index initialization had issues: {e}")
        logger.info("Application will continue - some operations may be slower without indexes")

    logger.info("Talent Match API startup completed")

    yield

    logger.info("Talent Match API shutting down...")
    await close_ai_client()
    logger.info("Talent Match API shutdown completed")

app = FastAPI(title="Talent Match API", version=VERSION, lifespan=lifespan)

# Add middleware in order (LIFO - Last In, First Out)
# Exception handler should be the outermost middleware
app.add_middleware(PerformanceMiddleware, slow_request_threshold=2.0)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(ExceptionHandlerMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/")
@app.head("/")
async def root():
    """Root endpoint - handles both GET and HEAD requests for health checks"""
    logger.debug("Root endpoint accessed")
    return {"message": "Welcome to the Talent Match API", "version": VERSION, "status": "ok"}

@app.get("/health")
@app.head("/health")
async def health_check():
    """Health check endpoint - handles both GET and HEAD requests"""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

# Include routers
app.include_router(match.router, prefix="/api", tags=["matching"])
app.include_router(resumes.router, prefix="/api", tags=["resumes"])
app.include_router(candidates.router, prefix="/api/candidates", tags=["candidates"])
app.include_router(searches.router, prefix="/api/searches", tags=["searches"])
app.include_router(bookmarks.router, prefix="/api/bookmarks", tags=["bookmarks"])

logger.info("Talent Match API initialized successfully")
