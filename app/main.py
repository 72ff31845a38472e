import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.router import api_router
from app.core.config import settings, validate_settings_for_production
from app.core.dependencies import build_chat_gateway, build_rate_limiter
from app.core.exceptions import ChatError
from app.core.logging import setup_logging
from app.core.metrics import PrometheusMiddleware, metrics_response
from app.core.middleware import RequestLoggingMiddleware
from app.core.sentry import init_sentry

# Configure logging before anything else
setup_logging()
init_sentry()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    validate_settings_for_production()
    enabled = [p["name"] for p in app.state.chat_gateway.get_status() if p["enabled"]]
    logger.info("Starting Certificate Assistant (providers: %s)", ", ".join(enabled) or "none")

    yield

    logger.info("Certificate Assistant shut down")


app = FastAPI(
    title="Certificate Assistant",
    description="Multi-provider chat assistant for the certificate verification platform",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.app_debug else None,
    redoc_url="/api/redoc" if settings.app_debug else None,
)

# Gateway and limiter are process-wide; providers are fixed at startup
app.state.chat_gateway = build_chat_gateway()
app.state.chat_rate_limiter = build_rate_limiter()


@app.exception_handler(ChatError)
async def _chat_error_handler(request: Request, exc: ChatError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    logger.info("Invalid request on %s: %s", request.url.path, errors)
    message = "Message is required and must be a non-empty string"
    if location and location != "message":
        message = f"Invalid request field: {location}"
    return JSONResponse(status_code=400, content={"error": message})


# Log unhandled exceptions; the client only sees a generic message
@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
    logger.error("Unhandled %s on %s %s:\n%s", type(exc).__name__, request.method, request.url.path, "".join(tb))
    return JSONResponse(status_code=500, content={"error": ChatError.default_message})


# Request logging + metrics middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(PrometheusMiddleware)

# CORS: parse allowed_origins from settings (comma-separated)
_origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routes
app.include_router(api_router)


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return metrics_response()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=settings.app_host, port=settings.app_port, reload=settings.app_debug)
