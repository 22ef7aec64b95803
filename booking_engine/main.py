import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

import redis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.engine import Engine

from . import __version__, config
from .cache import Cache
from .database import Base, create_session_factory
from .database import engine as default_engine
from .domain.bookings.locking import choose_discipline, create_lock_manager
from .domain.bookings.router import router as bookings_router
from .domain.catalog.router import router as catalog_router
from .domain.clients.router import router as clients_router
from .domain.scheduling.router import router as scheduling_router
from .errors import BookingEngineError, TransientError
from .rate_limiter import RateLimiter
from .shared.intervals import utcnow

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


def create_redis_client(url: Optional[str] = config.REDIS_URL) -> Optional[redis.Redis]:
    """Redis client from REDIS_URL, or None when Redis is not configured"""
    if not url:
        return None

    # Mask password in URL for logging
    if "@" in url:
        protocol = url.split("@")[0].split(":")[0]
        masked_url = f"{protocol}:****@{url.split('@')[1]}"
    else:
        masked_url = "****"
    logger.info(f"📡 Using Redis URL connection: {masked_url}")

    return redis.from_url(
        url,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
        retry_on_timeout=True,
        health_check_interval=30,
        max_connections=20,
    )


def create_app(
    engine: Optional[Engine] = None,
    redis_client: Optional[redis.Redis] = None,
    lock_manager=None,
    clock: Optional[Callable[[], datetime]] = None,
    strategy: str = config.BOOKING_CONCURRENCY_STRATEGY,
    create_tables: bool = True,
) -> FastAPI:
    """
    Build the application. Every in-memory store (locks, rate limit counters,
    cache) is created here and kept on ``app.state``.
    """
    db_engine = engine if engine is not None else default_engine
    if engine is None and redis_client is None:
        redis_client = create_redis_client()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Application starting up...")
        if create_tables:
            try:
                Base.metadata.create_all(bind=db_engine, checkfirst=True)
                logger.info("Database tables created successfully")
            except Exception as e:
                # Ignore "already exists" errors from race conditions between workers
                error_msg = str(e)
                if "already exists" in error_msg or "duplicate key" in error_msg:
                    logger.info("Database tables already exist (created by another worker)")
                else:
                    logger.error(f"Failed to create database tables: {e}")
                    raise

        if redis_client is not None:
            try:
                redis_client.ping()
                logger.info("Redis connection established")
            except redis.RedisError as e:
                logger.warning(f"Redis connection failed - bookings will return 503 until it recovers: {e}")

        yield
        logger.info("Application shutting down...")

    app = FastAPI(title="Booking Engine API", version=__version__, lifespan=lifespan)

    app.state.engine = db_engine
    app.state.session_factory = create_session_factory(db_engine)
    app.state.clock = clock or utcnow
    app.state.cache = Cache(redis_client)
    app.state.rate_limiter = RateLimiter(redis_client)
    app.state.booking_discipline = choose_discipline(
        strategy, db_engine, lock_manager or create_lock_manager(redis_client)
    )

    @app.exception_handler(BookingEngineError)
    async def booking_engine_error_handler(request: Request, exc: BookingEngineError):
        headers = None
        if isinstance(exc, TransientError):
            headers = {"Retry-After": str(exc.retry_after)}
            logger.warning(f"{request.method} {request.url.path} - {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
            for error in exc.errors()
        ]
        logger.warning(f"Validation error for {request.url.path}: {errors}")
        return JSONResponse(
            status_code=422,
            content={"error": "VALIDATION_ERROR", "message": "Invalid request", "details": {"errors": errors}},
        )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
            raise

    logger.info(f"CORS allowed origins: {config.ALLOWED_ORIGINS}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
    )

    # Routes
    app.include_router(catalog_router)
    app.include_router(scheduling_router)
    app.include_router(bookings_router)
    app.include_router(clients_router)

    @app.get("/health")
    async def health():
        try:
            with app.state.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            database = "ok"
        except Exception as e:
            logger.error(f"❌ Health check database error: {e}")
            database = "unavailable"
        return {
            "status": "healthy" if database == "ok" else "degraded",
            "database": database,
            "concurrency_strategy": app.state.booking_discipline.name,
            "redis": "configured" if redis_client is not None else "disabled",
        }

    return app


app = create_app()
