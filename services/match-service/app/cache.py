import json
import logging
import math

from redis.exceptions import RedisError

from .geo import bounding_box
from .records import MatchTask, RankedDoer, norm

logger = logging.getLogger(__name__)

KEY_PRECISION = 4  # ~11m; distances in a cached payload stay accurate


# ---- Cache key + bucket index helpers ----

def bucket_id(lat: float, lon: float, grid_deg: float) -> tuple[int, int]:
    """
    Convert lat/lon -> integer bucket coordinates so keys are stable.
    """
    b_lat = int(math.floor(lat / grid_deg))
    b_lon = int(math.floor(lon / grid_deg))
    return b_lat, b_lon


def cache_key(task: MatchTask, limit: int) -> str:
    lat = round(task.location.latitude, KEY_PRECISION)
    lon = round(task.location.longitude, KEY_PRECISION)
    at = task.scheduled_time.strftime("%Y%m%dT%H%M")
    return f"recommend:{norm(task.category)}:lat={lat}:lon={lon}:at={at}:n={limit}"


def bucket_set_key(category: str, b_lat: int, b_lon: int) -> str:
    return f"recommendkeys:{norm(category)}:lat={b_lat}:lon={b_lon}"


def buckets_in_radius(lat: float, lon: float, radius_km: float, grid_deg: float) -> list[tuple[int, int]]:
    """
    Conservative list of buckets that could intersect a circle around (lat,lon).

    Follows the geo bounding box, so circles crossing the antimeridian pick up
    columns on both sides and circles reaching a pole take every column.
    """
    box = bounding_box(lat, lon, radius_km)

    b_lat_min = int(math.floor(box.min_lat / grid_deg))
    b_lat_max = int(math.floor(box.max_lat / grid_deg))

    columns = set()
    for lo, hi in box.lon_ranges:
        columns.update(range(int(math.floor(lo / grid_deg)), int(math.floor(hi / grid_deg)) + 1))

    buckets = []
    for b_lat in range(b_lat_min, b_lat_max + 1):
        for b_lon in sorted(columns):
            buckets.append((b_lat, b_lon))
    return buckets


class RecommendationCache:
    """
    Redis cache of top-K recommendation results.

    Every stored key is also registered in a per-(category, bucket) set so a
    doer change can drop exactly the results it may have affected. With no
    redis client configured every call is a no-op; a redis outage degrades
    to uncached matching.
    """

    def __init__(self, redis_client, ttl_seconds: int = 60, grid_deg: float = 0.05, radius_km: float = 50.0):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds
        self.grid_deg = grid_deg
        self.radius_km = radius_km

    @property
    def enabled(self) -> bool:
        return self.redis is not None

    async def get(self, task: MatchTask, limit: int) -> list[RankedDoer] | None:
        if not self.enabled:
            return None
        try:
            raw = await self.redis.get(cache_key(task, limit))
        except RedisError as e:
            logger.warning("recommendation cache read failed: %s", e)
            return None
        if not raw:
            return None
        try:
            return [RankedDoer.model_validate(item) for item in json.loads(raw)]
        except ValueError as e:
            logger.warning("discarding unreadable cache entry: %s", e)
            return None

    async def set(self, task: MatchTask, limit: int, results: list[RankedDoer]):
        if not self.enabled:
            return
        key = cache_key(task, limit)
        b_lat, b_lon = bucket_id(task.location.latitude, task.location.longitude, self.grid_deg)
        set_key = bucket_set_key(task.category, b_lat, b_lon)
        value = json.dumps([r.model_dump(mode="json") for r in results])

        try:
            pipe = self.redis.pipeline()
            pipe.set(key, value, ex=self.ttl_seconds)
            pipe.sadd(set_key, key)
            pipe.expire(set_key, self.ttl_seconds + 5)  # keep index close to cache TTL
            await pipe.execute()
        except RedisError as e:
            logger.warning("recommendation cache write failed: %s", e)

    async def invalidate_doer(self, latitude: float | None, longitude: float | None, categories: list[str]) -> int:
        """
        Drop cached results for tasks the doer could have been matched to:
        any of its categories, any bucket within the outer geofence.
        Returns number of cache keys deleted (best effort).
        """
        if not self.enabled or latitude is None or longitude is None:
            return 0

        categories = sorted({norm(c) for c in categories if c})
        if not categories:
            return 0

        buckets = buckets_in_radius(latitude, longitude, self.radius_km, self.grid_deg)
        set_keys = [bucket_set_key(c, b_lat, b_lon) for c in categories for b_lat, b_lon in buckets]

        try:
            pipe = self.redis.pipeline()
            for set_key in set_keys:
                pipe.smembers(set_key)
            members = await pipe.execute()

            cached = set()
            for keys in members:
                cached.update(keys or ())

            pipe = self.redis.pipeline()
            if cached:
                pipe.delete(*sorted(cached))
            # still delete the index sets to avoid buildup
            pipe.delete(*set_keys)
            results = await pipe.execute()
        except RedisError as e:
            logger.warning("recommendation cache invalidation failed: %s", e)
            return 0

        if cached and results and isinstance(results[0], int):
            return results[0]
        return 0
