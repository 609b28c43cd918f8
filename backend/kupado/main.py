import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from .core.database import initialize_store
from .core.errors import AppError
from .core.logging import configure_logging, get_logger, get_trace_id
from .core.middleware import TraceIDMiddleware
from .routes import ai, health, metrics, payments, recommend
from .services.ai.chat import shutdown_chat_service
from .services.ai.orchestration import shutdown_ai_orchestration_service

# Use JSON output in production (containerized), console output in development
log_level = os.getenv("LOG_LEVEL", "INFO")
json_output = os.getenv("LOG_JSON", "true").lower() == "true"
configure_logging(log_level=log_level, json_output=json_output)

logger = get_logger(__name__)

app = FastAPI(
    title="Kupado AI API",
    description="AI features for the Kupado marketplace",
    version="1.0.0"
)

# CORS for local dev; restrict in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Must be added after CORS
app.add_middleware(TraceIDMiddleware)


@app.on_event("startup")
async def startup_event():
    """Initialize services on application startup."""
    logger.info("app_startup_started")

    store_initialized = await initialize_store()
    if store_initialized:
        logger.info("app_startup_store_ready")
    else:
        logger.warning(
            "app_startup_store_unavailable",
            message="Supabase not available. Endpoints that need the database will return 503.",
        )

    logger.info("app_startup_completed")


@app.on_event("shutdown")
async def shutdown_event():
    """Let pending usage logs and cache writes finish."""
    logger.info("app_shutdown_started")
    await shutdown_ai_orchestration_service()
    await shutdown_chat_service()
    logger.info("app_shutdown_completed")


def _error_response(request: Request, status_code: int, message: str) -> JSONResponse:
    trace_id = get_trace_id()
    response = JSONResponse(
        status_code=status_code,
        content={
            "error": message,
            "status_code": status_code,
            "trace_id": trace_id,
        },
    )
    if trace_id:
        response.headers["X-Trace-ID"] = trace_id
    return response


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Render service errors with the status code they carry."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "app_error",
        status_code=exc.status_code,
        error=exc.message,
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        **exc.context,
    )
    return _error_response(request, exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies (not JSON, wrong field types) are client errors."""
    logger.warning(
        "request_validation_failed",
        path=request.url.path,
        method=request.method,
        errors=exc.errors(),
    )
    return _error_response(request, 400, "Invalid request body")


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions."""
    logger.warning(
        "http_exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method,
    )
    return _error_response(request, exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )
    return _error_response(request, 500, "Internal server error")


app.include_router(health.router, prefix="/health", tags=["Health"])
app.include_router(ai.router, prefix="/api/ai", tags=["AI"])
app.include_router(recommend.router, prefix="/api/ai", tags=["Recommendations"])
app.include_router(payments.router, prefix="/api", tags=["Payments"])
app.include_router(metrics.router, prefix="/metrics", tags=["Metrics"])
