import time
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from api import config
from api.routes import router
from api.database import init_db
from api.logging_config import configure_logging
from api.monitoring import (
    http_requests_total,
    http_request_duration_seconds,
)
from engine import GameError

# Configure logging
environment = config.environment()
logger = configure_logging(environment)

# Initialize database on startup
init_db()
logger.info("database_initialized", db_path=str(config.db_path()))

app = FastAPI(title="Hex Settlers API", version="1.0.0")

# CORS middleware for frontend communication
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(GameError)
async def game_error_handler(request: Request, exc: GameError):
    """Rule violations are client errors with a stable code."""
    return JSONResponse(status_code=400, content={"detail": exc.message, "code": exc.code})


# Request logging and metrics middleware
@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    """Log requests and track metrics."""
    start_time = time.time()

    # Skip logging for health checks, metrics and long-lived event streams
    if request.url.path in ["/health", "/metrics", "/"] or request.url.path.endswith("/events"):
        response = await call_next(request)
        return response

    try:
        response = await call_next(request)
        duration = time.time() - start_time

        # Track metrics
        http_requests_total.labels(
            method=request.method,
            endpoint=request.url.path,
            status=response.status_code
        ).inc()
        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=request.url.path
        ).observe(duration)

        # Log request
        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration=duration,
            client_ip=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent")
        )

        return response
    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            "http_request_error",
            method=request.method,
            path=request.url.path,
            duration=duration,
            error=str(e),
        )
        raise


app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    return {"message": "Hex Settlers API", "version": "1.0.0"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "environment": environment}


# Prometheus metrics endpoint
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


@app.on_event("startup")
async def startup_event():
    """Run on application startup."""
    logger.info("application_started", environment=environment)


@app.on_event("shutdown")
async def shutdown_event():
    """Run on application shutdown."""
    logger.info("application_shutdown")
