"""
Question paper generation service: reference material in, versioned exam papers out
"""
from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import time

from papergen.config import settings
from papergen.database import init_db
from papergen.dependencies import get_cache_service, get_gemini_service
from papergen.errors import PaperGenError
from papergen.api import papers

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Backend for AI-assisted exam paper generation from course material",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    logger.info(
        f"{request.method} {request.url.path} - {response.status_code} "
        f"({time.time() - start_time:.3f}s)"
    )
    return response


@app.exception_handler(PaperGenError)
async def paper_gen_exception_handler(request: Request, exc: PaperGenError):
    """Domain errors carry their own status and machine-readable code"""
    logger.warning(f"{request.method} {request.url.path} - {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.code, "message": exc.message})


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "http_error", "message": exc.detail},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please try again later.",
            "detail": str(exc) if settings.DEBUG else None,
        },
    )


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "cache": "enabled" if get_cache_service().redis_client else "disabled",
    }


@app.get("/")
async def root():
    return {"message": settings.APP_NAME, "docs": "/docs", "health": "/health"}


app.include_router(papers.router)


@app.on_event("startup")
async def startup_event():
    init_db()
    # Fail fast on a missing API key instead of on the first request
    get_gemini_service()
    get_cache_service()
    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} started")
