from fastapi import Request

from shared.rabbitmq import RabbitPublisher

from .cache import RecommendationCache
from .config import Settings
from .engine import MatchEngine


async def get_db(request: Request):
    async with request.app.state.session_factory() as session:
        yield session


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_match_engine(request: Request) -> MatchEngine:
    return request.app.state.match_engine


def get_cache(request: Request) -> RecommendationCache:
    return request.app.state.cache


def get_publisher(request: Request) -> RabbitPublisher:
    return request.app.state.publisher
