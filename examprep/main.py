"""
Main FastAPI application
Exam practice platform with one-time purchase access
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import time

from examprep.config import settings
from examprep.database import init_db
from examprep.errors import ServiceError
from examprep.api import attempts, billing, exams, questions
from examprep.utils.rate_limiter import rate_limiter

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Health probes, docs and gateway webhooks bypass the rate limiter
RATE_LIMIT_EXEMPT_PATHS = {"/health", "/docs", "/redoc", "/openapi.json", "/api/billing/webhook"}


def _error_body(error: str, message, status_code: int) -> dict:
    return {"error": error, "message": message, "status_code": status_code}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables before serving; nothing to release on shutdown"""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    try:
        init_db()
    except Exception as e:
        logger.error(f"Database initialization failed: {str(e)}")
        raise
    yield
    logger.info(f"{settings.APP_NAME} stopped")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Randomized practice exams over a question bank, unlocked by a one-time purchase",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    """Per-caller request limits (off when RATE_LIMIT_ENABLED is false)"""
    if settings.RATE_LIMIT_ENABLED and request.url.path not in RATE_LIMIT_EXEMPT_PATHS:
        try:
            await rate_limiter.check_rate_limit(request)
        except HTTPException as e:
            return JSONResponse(status_code=e.status_code, content=e.detail)

    return await call_next(request)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} "
        f"({time.perf_counter() - started:.3f}s)"
    )
    return response


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    """Domain errors carry their own status and error code"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.error}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.error, exc.message, exc.status_code),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body("http_error", exc.detail, exc.status_code),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Last resort: log the traceback, answer with a generic 500"""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {str(exc)}", exc_info=True)
    body = _error_body("internal_server_error", "An unexpected error occurred. Please try again later.", 500)
    if settings.DEBUG:
        body["detail"] = str(exc)
    return JSONResponse(status_code=500, content=body)


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": time.time()
    }


@app.get("/")
async def root():
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "health": "/health"
    }


app.include_router(questions.router)
app.include_router(exams.router)
app.include_router(attempts.router)
app.include_router(billing.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "examprep.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
