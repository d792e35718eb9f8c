import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import Settings
from .database import Database
from .errors import DomainError
from .routers import availability, bookings, categories, messages, notifications, reviews, services, wallet
from .services.cache import MemoryCacheStore, RedisCacheStore
from .services.events import NotificationDispatcher, RealtimeEmitter
from .services.maintenance import maintenance_loop

logger = logging.getLogger(__name__)


def build_cache_store(settings: Settings):
    if settings.redis_url:
        return RedisCacheStore(settings.redis_url, settings.redis_socket_timeout)
    return MemoryCacheStore()


async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.kind},
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Application starting up...")
        database = Database(settings.resolved_database_url)
        database.connect()
        database.create_all()

        cache_store = build_cache_store(settings)
        cache_store.connect()
        notifier = NotificationDispatcher(settings.redis_url, settings.redis_socket_timeout)
        notifier.connect()
        emitter = RealtimeEmitter(settings.redis_url, settings.redis_socket_timeout)
        emitter.connect()

        app.state.database = database
        app.state.cache_store = cache_store
        app.state.notifier = notifier
        app.state.emitter = emitter

        task = None
        if settings.maintenance_enabled:
            task = asyncio.create_task(maintenance_loop(database, settings))

        yield

        logger.info("Application shutting down...")
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        app.state.emitter.close()
        app.state.notifier.close()
        app.state.cache_store.close()
        database.close()

    app = FastAPI(title="Marketplace API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.add_exception_handler(DomainError, domain_error_handler)

    app.include_router(services.router)
    app.include_router(categories.router)
    app.include_router(availability.router)
    app.include_router(bookings.router)
    app.include_router(messages.router)
    app.include_router(wallet.router)
    app.include_router(reviews.router)
    app.include_router(notifications.router)

    @app.get("/health")
    def health(request: Request):
        return {"status": "ok", "cache": request.app.state.cache_store.ping()}

    return app


app = create_app()
