import os
from dataclasses import dataclass

SERVICE_NAME = "match-service"


def _flag(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: str
    redis_url: str | None = None
    rabbit_url: str | None = None

    # coarse pre-filter; per-doer service radius is checked afterwards
    outer_geofence_km: float = 50.0
    history_limit: int = 50
    max_concurrency: int = 10
    match_timeout_seconds: float = 5.0

    cache_ttl_seconds: int = 60
    # Grid size in degrees. 0.05 deg latitude ~ 5.55km.
    grid_deg: float = 0.05

    log_level: str = "INFO"
    auto_create_schema: bool = False


def load_settings() -> Settings:
    database_url = os.getenv("MATCH_DATABASE_URL")
    if not database_url:
        raise RuntimeError("MATCH_DATABASE_URL environment variable is not set")

    return Settings(
        database_url=database_url,
        redis_url=os.getenv("REDIS_URL") or None,
        rabbit_url=os.getenv("RABBIT_URL") or None,
        outer_geofence_km=float(os.getenv("MATCH_OUTER_GEOFENCE_KM") or "50"),
        history_limit=int(os.getenv("MATCH_HISTORY_LIMIT") or "50"),
        max_concurrency=int(os.getenv("MATCH_MAX_CONCURRENCY") or "10"),
        match_timeout_seconds=float(os.getenv("MATCH_TIMEOUT_SECONDS") or "5"),
        cache_ttl_seconds=int(os.getenv("MATCH_CACHE_TTL_SECONDS") or "60"),
        grid_deg=float(os.getenv("MATCH_GRID_DEG") or "0.05"),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        auto_create_schema=_flag(os.getenv("MATCH_AUTO_CREATE_SCHEMA")),
    )
