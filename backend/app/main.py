import logging
import json
import time
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.database import create_tables, ping
from app.core.exceptions import APIError, InternalError, RateLimitError
from app.routes import quota, stats

# Configure structured JSON logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(message)s",
)
logger = logging.getLogger(__name__)

_EXTRA_FIELDS = (
    "request_path",
    "response_time",
    "status_code",
    "endpoint",
    "client_ip",
)


class JSONFormatter(logging.Formatter):
    def format(self, record):
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
        }
        for field in _EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


# Apply JSON formatter to root logger
handler = logging.StreamHandler()
handler.setFormatter(JSONFormatter())
logging.getLogger().handlers = [handler]


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting Keygate API")
    if settings.ENVIRONMENT.lower() in {"development", "dev", "testing", "test"}:
        create_tables()
    else:
        logger.info("Skipping schema auto-creation in non-dev environment")
    yield
    # Shutdown
    logger.info("Shutting down Keygate API")


app = FastAPI(
    title="Keygate API",
    description="API key authorization, quotas and rate limiting in front of a public API",
    version="4.0.0",
    lifespan=lifespan,
)

# CORS middleware — origins driven by CORS_ORIGINS env var
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    response = await call_next(request)

    process_time = time.time() - start_time
    logger.info(
        f"{request.method} {request.url.path}",
        extra={
            "request_path": str(request.url.path),
            "response_time": f"{process_time:.3f}s",
            "status_code": response.status_code,
        },
    )

    return response


# Include routers
app.include_router(stats.router, prefix="/v4/stats", tags=["Statistics"])
app.include_router(quota.router, prefix="/v4/quota", tags=["Quota"])


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": "keygate-api",
        "version": app.version,
        "environment": settings.ENVIRONMENT,
    }


@app.get("/ready")
def readiness_check():
    try:
        ping()
        return {
            "status": "ready",
            "service": "keygate-api",
            "environment": settings.ENVIRONMENT,
        }
    except Exception:
        logger.warning("Readiness probe failed", exc_info=True)
        return JSONResponse(status_code=503, content={"status": "not_ready"})


@app.exception_handler(RateLimitError)
async def rate_limit_handler(request: Request, exc: RateLimitError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": exc.status_code, "message": exc.message},
        headers=exc.headers,
    )


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message},
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    error = InternalError()
    return JSONResponse(status_code=error.status_code, content={"message": error.message})
