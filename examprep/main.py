"""
FastAPI main application entry point
"""

from fastapi import FastAPI, Request, status, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from contextlib import asynccontextmanager
import time
import uuid
import asyncio

from examprep.config import settings
from examprep.dependencies import get_document_store, get_supabase_service, managed_caches
from examprep.utils.logger import setup_logger, logger
from examprep.utils.error_handler import (
    global_exception_handler,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    AppException
)
from examprep.utils.rate_limit import rate_limit_middleware
from examprep.routes import quiz, support, tutor

# Initialize logger BEFORE using it
setup_logger("examprep")

CACHE_CLEANUP_INTERVAL_SECONDS = 300


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Warn about placeholder credentials
    if settings.DOCUMENT_STORE_BACKEND == "supabase" and (
        "your-project" in settings.SUPABASE_URL or "your-supabase" in settings.SUPABASE_KEY
    ):
        logger.warning("[WARN] Supabase credentials appear to be placeholders. Quiz storage will not work.")
    if "your-openai" in settings.OPENAI_API_KEY:
        logger.warning("[WARN] OpenAI API key appears to be a placeholder. AI features will not work.")

    async def cache_cleanup_loop():
        while True:
            await asyncio.sleep(CACHE_CLEANUP_INTERVAL_SECONDS)
            for cache in managed_caches():
                await cache.cleanup_expired()

    cleanup_task = asyncio.create_task(cache_cleanup_loop())

    try:
        yield
    finally:
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass


# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description=f"""
    {settings.PLATFORM_NAME} API

    Backend for timed practice quizzes and an AI tutor.

    Features:
    - Quiz attempts with debounced autosave and timer sync
    - Idempotent, transactional quiz submission with server-side scoring
    - Per-subject performance analytics
    - Retrieval-augmented AI tutor over textbook and syllabus content
    - Website support chat
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS Middleware
# When allow_origins=["*"], allow_credentials must be False
cors_origins = settings.cors_origins_list
cors_allow_credentials = "*" not in cors_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=cors_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Confidence", "X-Subject", "X-Intent"],
)


# Request ID and timing middleware
@app.middleware("http")
async def request_id_and_timing_middleware(request: Request, call_next):
    """Add request ID and track processing time"""
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    start_time = time.time()

    response = await call_next(request)

    process_time = (time.time() - start_time) * 1000

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = f"{process_time:.2f}ms"

    # Log only errors
    if response.status_code >= 400:
        logger.error(
            f"{request.method} {request.url.path} - {response.status_code}",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": process_time
            }
        )

    return response


# Rate limiting middleware
@app.middleware("http")
async def rate_limit_middleware_wrapper(request: Request, call_next):
    """Apply rate limiting"""
    return await rate_limit_middleware(request, call_next)


# Exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)


def _supabase_check() -> dict:
    """Probe the documents table; synchronous like supabase-py itself"""
    client = get_supabase_service().get_client()
    if not client:
        return {"status": "unavailable", "test": "Client not initialized - check credentials"}

    try:
        client.table(settings.DOCUMENTS_TABLE).select("path").limit(0).execute()
        return {"status": "connected", "test": "Connection successful"}
    except Exception as test_error:
        error_msg = str(test_error).lower()
        if "does not exist" in error_msg or "relation" in error_msg:
            return {"status": "connected", "test": "Connected but the documents table may not exist"}
        return {"status": "error", "test": f"Connection test failed: {str(test_error)[:100]}"}


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint with system status

    Returns:
        Health status and system information
    """
    try:
        store = get_document_store()
        if settings.DOCUMENT_STORE_BACKEND == "supabase":
            store_check = await asyncio.to_thread(_supabase_check)
        else:
            store_check = {"status": "connected", "test": "In-memory store"}
        store_check["backend"] = type(store).__name__

        openai_status = "configured" if settings.OPENAI_API_KEY and "your-openai" not in settings.OPENAI_API_KEY else "not_configured"

        validation = None
        if settings.DEBUG:
            try:
                from examprep.utils.validation import system_validator
                validation = system_validator.full_validation()
            except Exception as e:
                logger.warning(f"Validation check failed: {str(e)}")

        response = {
            "status": "healthy",
            "version": settings.VERSION,
            "service": settings.PROJECT_NAME,
            "checks": {
                "document_store": store_check,
                "openai": openai_status,
                "caches": [cache.stats() for cache in managed_caches()]
            },
            "timestamp": time.time()
        }

        if validation:
            response["validation"] = validation

        return response
    except Exception as e:
        logger.error(f"Health check failed: {str(e)}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "error": str(e) if settings.DEBUG else "Service check failed"
            }
        )


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.PLATFORM_NAME}",
        "version": settings.VERSION,
        "docs": "/docs",
        "health": "/health"
    }


# Include routers
app.include_router(quiz.router)
app.include_router(tutor.router)
app.include_router(support.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "examprep.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
