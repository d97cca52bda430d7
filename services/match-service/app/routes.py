import asyncio
import logging
import time
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from shared.events import build_event, to_json
from shared.rabbitmq import RabbitPublisher

from .cache import RecommendationCache
from .config import SERVICE_NAME, Settings
from .dependencies import get_cache, get_db, get_match_engine, get_publisher, get_settings
from .engine import MatchEngine
from .errors import StoreError, TaskValidationError
from .models import MatchLog
from .records import MatchResult, MatchTask, RankedDoer
from .schemas import RecommendRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recommendations", tags=["Recommendations"])


async def run_match(coro, timeout_seconds: float):
    """Await an engine call under the request timeout, mapping failures to HTTP."""
    try:
        return await asyncio.wait_for(coro, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        raise HTTPException(status_code=504, detail="Matching timed out")
    except TaskValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError as e:
        logger.error("matching failed on store access: %s", e)
        raise HTTPException(status_code=503, detail="Doer store unavailable")


def _match_log(task: MatchTask, mode: str, results: int, top_score: float | None, duration_ms: float) -> MatchLog:
    return MatchLog(
        task_latitude=task.location.latitude,
        task_longitude=task.location.longitude,
        category=task.category,
        mode=mode,
        results=results,
        top_score=top_score,
        duration_ms=round(duration_ms, 2),
    )


@router.post("/match", response_model=MatchResult)
async def match(
    data: MatchTask,
    db: AsyncSession = Depends(get_db),
    engine: MatchEngine = Depends(get_match_engine),
    publisher: RabbitPublisher = Depends(get_publisher),
    settings: Settings = Depends(get_settings),
):
    start = time.perf_counter()
    result = await run_match(engine.find_best_match(data), settings.match_timeout_seconds)
    duration_ms = (time.perf_counter() - start) * 1000

    db.add(
        _match_log(
            data,
            "best",
            results=0 if result is None else 1,
            top_score=None if result is None else result.score,
            duration_ms=duration_ms,
        )
    )
    await db.commit()

    if result is None:
        raise HTTPException(status_code=404, detail="No suitable doer found")

    event = build_event(
        "match.found",
        {
            "doer_id": result.doer.id,
            "category": data.category,
            "score": result.score,
            "distance_km": round(result.distance, 3),
        },
        source=SERVICE_NAME,
    )
    await publisher.publish("match.found", to_json(event))

    return result


@router.post("/recommend", response_model=List[RankedDoer])
async def recommend(
    data: RecommendRequest,
    db: AsyncSession = Depends(get_db),
    engine: MatchEngine = Depends(get_match_engine),
    cache: RecommendationCache = Depends(get_cache),
    settings: Settings = Depends(get_settings),
):
    cached = await cache.get(data.task, data.limit)
    if cached is not None:
        results = cached
    else:
        start = time.perf_counter()
        results = await run_match(
            engine.find_best_matches(data.task, data.limit),
            settings.match_timeout_seconds,
        )
        duration_ms = (time.perf_counter() - start) * 1000

        db.add(
            _match_log(
                data.task,
                "top_k",
                results=len(results),
                top_score=results[0].score if results else None,
                duration_ms=duration_ms,
            )
        )
        await db.commit()

        if results:
            await cache.set(data.task, data.limit, results)

    if not results:
        raise HTTPException(status_code=404, detail="No recommendations found")

    return results
