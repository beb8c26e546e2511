"""
Game clip batch processing
Backend API - FastAPI Application
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from clipforge.api import jobs, subtitles
from clipforge.core.config import settings
from clipforge.services.task_registry import TaskRegistry

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "registry", None) is None:
        app.state.registry = TaskRegistry()
    logger.info(f"Job output directory: {app.state.registry.store.output_root}")
    yield
    await app.state.registry.shutdown()


app = FastAPI(
    title="Clip Forge API",
    description="Batch segmenting, dubbing and subtitling of game clips",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(jobs.router, prefix=settings.API_V1_PREFIX, tags=["jobs"])
app.include_router(subtitles.router, prefix=settings.API_V1_PREFIX, tags=["subtitles"])


@app.get("/")
async def root():
    """Health check endpoint"""
    return {"status": "ok", "service": "Clip Forge API"}


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "healthy"}


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An internal error occurred",
            "field": None
        }
    )
