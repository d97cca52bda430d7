import logging

import redis.asyncio as redis
from fastapi import FastAPI
from redis.exceptions import RedisError

from shared.database import create_schema, get_engine, get_session
from shared.rabbitmq import RabbitPublisher

from . import doer_routes, routes, task_routes
from .cache import RecommendationCache
from .config import SERVICE_NAME, Settings, load_settings
from .engine import MatchEngine
from .middleware import RequestLoggingMiddleware
from .stores import SqlDoerStore, SqlTaskHistoryStore

logger = logging.getLogger(__name__)

OPENAPI_TAGS = [
    {"name": "System", "description": "Operational endpoints."},
    {"name": "Recommendations", "description": "Best match and top-K doer recommendations for a task."},
    {"name": "Doers", "description": "Doer profiles: location, schedule, offered services."},
    {"name": "Tasks", "description": "Task lifecycle: create, assign, start, complete, cancel, rate."},
]


def build_match_engine(settings: Settings, session_factory) -> MatchEngine:
    return MatchEngine(
        SqlDoerStore(session_factory),
        SqlTaskHistoryStore(session_factory),
        outer_geofence_km=settings.outer_geofence_km,
        history_limit=settings.history_limit,
        max_concurrency=settings.max_concurrency,
    )


async def _connect_redis(settings: Settings):
    if not settings.redis_url:
        return None
    client = redis.from_url(settings.redis_url, decode_responses=True)
    try:
        await client.ping()
    except RedisError as e:
        logger.warning("redis unavailable, recommendations will not be cached: %s", e)
        await client.aclose()
        return None
    return client


def create_app(settings: Settings | None = None) -> FastAPI:
    app = FastAPI(title="Match Service", openapi_tags=OPENAPI_TAGS)
    app.state.settings = settings

    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(routes.router)
    app.include_router(doer_routes.router)
    app.include_router(task_routes.router)

    @app.get("/health", tags=["System"])
    async def health():
        return {"status": "ok", "service": SERVICE_NAME}

    @app.on_event("startup")
    async def startup():
        cfg = app.state.settings or load_settings()
        app.state.settings = cfg

        logging.basicConfig(
            level=cfg.log_level,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )

        app.state.engine = get_engine(cfg.database_url)
        app.state.session_factory = get_session(app.state.engine)
        if cfg.auto_create_schema:
            await create_schema(app.state.engine)

        app.state.match_engine = build_match_engine(cfg, app.state.session_factory)

        app.state.redis = await _connect_redis(cfg)
        app.state.cache = RecommendationCache(
            app.state.redis,
            ttl_seconds=cfg.cache_ttl_seconds,
            grid_deg=cfg.grid_deg,
            radius_km=cfg.outer_geofence_km,
        )

        app.state.publisher = RabbitPublisher(cfg.rabbit_url, SERVICE_NAME)
        try:
            await app.state.publisher.connect()
        except Exception:
            # publish() reconnects lazily; events are dropped until then
            pass

        logger.info(
            "%s started (cache=%s, events=%s)",
            SERVICE_NAME,
            app.state.cache.enabled,
            app.state.publisher.enabled,
        )

    @app.on_event("shutdown")
    async def shutdown():
        try:
            await app.state.publisher.close()
        except Exception as e:
            logger.warning("publisher close failed: %s", e)
        if app.state.redis is not None:
            await app.state.redis.aclose()
        await app.state.engine.dispose()

    return app


app = create_app()
