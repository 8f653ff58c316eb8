# salon_booking/main.py

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from redis import Redis, RedisError
from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from .config import Settings, settings as default_settings
from .database import create_db_engine, init_db, make_session_factory
from .errors import BookingEngineError
from .redis_client import create_redis_client
from .routers import bookings, integrations, slots
from .services.bookings.locks import ProviderLocks, build_provider_locks

logger = logging.getLogger(__name__)

# error kind → HTTP status
STATUS_BY_KIND = {
    "not_found": 404,
    "validation": 422,
    "conflict": 409,
    "transient": 503,
    "invalid_transition": 409,
}


def booking_error_handler(request: Request, exc: BookingEngineError) -> JSONResponse:
    status_code = STATUS_BY_KIND.get(exc.kind, 400)
    if status_code >= 500:
        logger.warning(f"{request.method} {request.url.path}: {exc.code} ({exc.message})")
    return JSONResponse(status_code=status_code, content={"error": exc.to_dict()})


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
    redis: Optional[Redis] = None,
    locks: Optional[ProviderLocks] = None,
) -> FastAPI:
    """
    Build the API application.

    Everything shared by requests lives on app.state; tests pass their
    own session factory, Redis double and lock registry.
    """
    settings = settings or default_settings
    logging.basicConfig(level=settings.log_level)

    if session_factory is None:
        engine = create_db_engine(settings.resolved_database_url)
        init_db(engine)
        session_factory = make_session_factory(engine)
    if redis is None:
        redis = create_redis_client(settings.redis_url)

    app = FastAPI(title="Salon Booking Engine")
    app.state.session_factory = session_factory
    app.state.redis = redis
    app.state.locks = locks or build_provider_locks(settings, redis)

    app.add_exception_handler(BookingEngineError, booking_error_handler)

    app.include_router(slots.router)
    app.include_router(bookings.router)
    app.include_router(integrations.router)

    @app.get("/health")
    def health():
        db = app.state.session_factory()
        try:
            db.execute(text("SELECT 1"))
            database_ok = True
        finally:
            db.close()

        redis_ok = None
        if app.state.redis is not None:
            try:
                redis_ok = bool(app.state.redis.ping())
            except RedisError as e:
                logger.error(f"Health check: redis ping failed: {e}")
                redis_ok = False

        return {"database": database_ok, "redis": redis_ok}

    return app
