import math
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shared.events import build_event, to_json
from shared.rabbitmq import RabbitPublisher

from .cache import RecommendationCache
from .config import SERVICE_NAME, Settings
from .dependencies import get_cache, get_db, get_match_engine, get_publisher, get_settings
from .engine import MatchEngine
from .geo import bounding_box, haversine
from .models import DoerProfile, Task, User
from .records import GeoPoint, MatchTask, as_utc, norm
from .routes import run_match
from .schemas import AssignTask, CreateTask, RateTask, TaskPage, TaskResponse

router = APIRouter(prefix="/tasks", tags=["Tasks"])

OPEN_STATUSES = ("pending", "assigned", "in_progress")


def _task_response(task: Task) -> TaskResponse:
    return TaskResponse(
        id=task.id,
        title=task.title,
        description=task.description,
        category=task.category,
        creator_id=task.creator_id,
        doer_id=task.doer_id,
        status=task.status,
        location=GeoPoint(latitude=task.latitude, longitude=task.longitude),
        scheduled_time=as_utc(task.scheduled_at),
        completed_at=as_utc(task.completed_at) if task.completed_at else None,
        budget=task.budget,
        rating=task.rating,
    )


def _match_task(task: Task) -> MatchTask:
    return MatchTask(
        category=task.category,
        location=GeoPoint(latitude=task.latitude, longitude=task.longitude),
        scheduled_time=as_utc(task.scheduled_at),
    )


async def _load_task(db: AsyncSession, task_id: int) -> Task:
    res = await db.execute(
        select(Task).where(Task.id == task_id).execution_options(populate_existing=True)
    )
    task = res.scalar_one_or_none()
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


async def _transition(db: AsyncSession, task: Task, allowed: tuple[str, ...], **values):
    """
    Move a task out of one of the allowed statuses. The status check is part
    of the UPDATE so two concurrent requests cannot both win.
    """
    if task.status not in allowed:
        raise HTTPException(status_code=409, detail=f"Task status must be one of {list(allowed)}, got {task.status}")

    res = await db.execute(
        update(Task)
        .where(Task.id == task.id, Task.status.in_(allowed))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Task was modified concurrently")


async def _check_doer_can_take(db: AsyncSession, doer_id: int, task: Task):
    res = await db.execute(
        select(DoerProfile)
        .where(DoerProfile.user_id == doer_id)
        .options(selectinload(DoerProfile.services))
    )
    profile = res.scalar_one_or_none()
    if profile is None:
        raise HTTPException(status_code=404, detail="Doer not found")
    if profile.availability_status != "available":
        raise HTTPException(status_code=409, detail=f"Doer is {profile.availability_status}")
    if norm(task.category) not in {norm(s.category) for s in profile.services}:
        raise HTTPException(status_code=400, detail=f"Doer does not offer {task.category}")


async def _release_doer(db: AsyncSession, task: Task, completed: bool = False):
    if task.doer_id is None:
        return
    values = {"active_task_id": None}
    if completed:
        values["completed_tasks"] = DoerProfile.completed_tasks + 1
    await db.execute(
        update(DoerProfile)
        .where(DoerProfile.user_id == task.doer_id, DoerProfile.active_task_id == task.id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )


async def _invalidate_doer(db: AsyncSession, cache: RecommendationCache, doer_id: int | None):
    if doer_id is None or not cache.enabled:
        return
    res = await db.execute(
        select(DoerProfile)
        .where(DoerProfile.user_id == doer_id)
        .options(selectinload(DoerProfile.services))
    )
    profile = res.scalar_one_or_none()
    if profile is None:
        return
    await cache.invalidate_doer(profile.latitude, profile.longitude, [s.category for s in profile.services])


async def _publish(publisher: RabbitPublisher, event_type: str, task: Task, **extra):
    data = {"task_id": task.id, "doer_id": task.doer_id, "category": task.category, "status": task.status}
    data.update(extra)
    await publisher.publish(event_type, to_json(build_event(event_type, data, source=SERVICE_NAME)))


@router.post("", response_model=TaskResponse, status_code=201)
async def create_task(
    data: CreateTask,
    db: AsyncSession = Depends(get_db),
    publisher: RabbitPublisher = Depends(get_publisher),
):
    creator = await db.get(User, data.creator_id)
    if not creator:
        raise HTTPException(status_code=404, detail="Creator not found")

    task = Task(
        title=data.title,
        description=data.description,
        category=data.category,
        creator_id=data.creator_id,
        doer_id=None,
        status="pending",
        latitude=data.location.latitude,
        longitude=data.location.longitude,
        scheduled_at=data.scheduled_time,
        budget=data.budget,
    )
    db.add(task)
    await db.commit()

    await _publish(publisher, "task.created", task, scheduled_time=data.scheduled_time.isoformat())
    return _task_response(task)


@router.get("", response_model=TaskPage)
async def list_tasks(
    status: str | None = None,
    category: str | None = None,
    lat: float | None = Query(default=None, ge=-90, le=90),
    lng: float | None = Query(default=None, ge=-180, le=180),
    distance_km: float = Query(default=5.0, gt=0, alias="distanceKm"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """
    Page through tasks, newest first. Given lat and lng, only tasks within
    distanceKm are listed, nearest first.
    """
    if (lat is None) != (lng is None):
        raise HTTPException(status_code=400, detail="lat and lng must be given together")

    stmt = select(Task)
    if status:
        stmt = stmt.where(Task.status == status)
    if category:
        stmt = stmt.where(func.lower(func.trim(Task.category)) == norm(category))

    offset = (page - 1) * limit
    if lat is None:
        total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
        res = await db.execute(stmt.order_by(Task.id.desc()).offset(offset).limit(limit))
        tasks = list(res.scalars())
    else:
        # box prefilter in SQL, exact distance here
        box = bounding_box(lat, lng, distance_km)
        stmt = stmt.where(
            Task.latitude.between(box.min_lat, box.max_lat),
            or_(*[Task.longitude.between(lo, hi) for lo, hi in box.lon_ranges]),
        )
        nearby = []
        for task in (await db.execute(stmt)).scalars():
            d = haversine(lat, lng, task.latitude, task.longitude)
            if d <= distance_km:
                nearby.append((d, task))
        nearby.sort(key=lambda item: (item[0], item[1].id))
        total = len(nearby)
        tasks = [task for _, task in nearby[offset:offset + limit]]

    return TaskPage(
        items=[_task_response(t) for t in tasks],
        page=page,
        limit=limit,
        total=total,
        pages=math.ceil(total / limit),
    )


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(task_id: int, db: AsyncSession = Depends(get_db)):
    task = await _load_task(db, task_id)
    return _task_response(task)


@router.post("/{task_id}/assign", response_model=TaskResponse)
async def assign_task(
    task_id: int,
    data: AssignTask | None = None,
    db: AsyncSession = Depends(get_db),
    engine: MatchEngine = Depends(get_match_engine),
    cache: RecommendationCache = Depends(get_cache),
    publisher: RabbitPublisher = Depends(get_publisher),
    settings: Settings = Depends(get_settings),
):
    task = await _load_task(db, task_id)
    if task.status != "pending":
        raise HTTPException(status_code=409, detail=f"Task status must be pending, got {task.status}")

    doer_id = data.doer_id if data else None
    score = None
    if doer_id is None:
        match = await run_match(engine.find_best_match(_match_task(task)), settings.match_timeout_seconds)
        if match is None:
            raise HTTPException(status_code=404, detail="No suitable doer found")
        doer_id = match.doer.id
        score = match.score
    else:
        await _check_doer_can_take(db, doer_id, task)

    await _transition(db, task, ("pending",), status="assigned", doer_id=doer_id)

    res = await db.execute(
        update(DoerProfile)
        .where(DoerProfile.user_id == doer_id, DoerProfile.active_task_id.is_(None))
        .values(active_task_id=task.id)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Doer already has an active task")

    await db.commit()
    task = await _load_task(db, task_id)

    await _invalidate_doer(db, cache, doer_id)
    await _publish(publisher, "task.assigned", task, score=score)
    return _task_response(task)


@router.post("/{task_id}/start", response_model=TaskResponse)
async def start_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    publisher: RabbitPublisher = Depends(get_publisher),
):
    task = await _load_task(db, task_id)
    await _transition(db, task, ("assigned",), status="in_progress")
    await db.commit()

    task = await _load_task(db, task_id)
    await _publish(publisher, "task.started", task)
    return _task_response(task)


@router.post("/{task_id}/complete", response_model=TaskResponse)
async def complete_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    cache: RecommendationCache = Depends(get_cache),
    publisher: RabbitPublisher = Depends(get_publisher),
):
    task = await _load_task(db, task_id)
    completed_at = datetime.now(timezone.utc)

    await _transition(db, task, ("assigned", "in_progress"), status="completed", completed_at=completed_at)
    await _release_doer(db, task, completed=True)
    await db.commit()

    task = await _load_task(db, task_id)
    await _invalidate_doer(db, cache, task.doer_id)
    await _publish(publisher, "task.completed", task, completed_at=completed_at.isoformat())
    return _task_response(task)


@router.post("/{task_id}/cancel", response_model=TaskResponse)
async def cancel_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    cache: RecommendationCache = Depends(get_cache),
    publisher: RabbitPublisher = Depends(get_publisher),
):
    task = await _load_task(db, task_id)

    await _transition(db, task, OPEN_STATUSES, status="cancelled")
    await _release_doer(db, task)
    await db.commit()

    task = await _load_task(db, task_id)
    await _invalidate_doer(db, cache, task.doer_id)
    await _publish(publisher, "task.cancelled", task)
    return _task_response(task)


@router.post("/{task_id}/rate", response_model=TaskResponse)
async def rate_task(
    task_id: int,
    data: RateTask,
    db: AsyncSession = Depends(get_db),
    cache: RecommendationCache = Depends(get_cache),
    publisher: RabbitPublisher = Depends(get_publisher),
):
    task = await _load_task(db, task_id)
    if task.status != "completed":
        raise HTTPException(status_code=409, detail="Only completed tasks can be rated")
    if task.rating is not None:
        raise HTTPException(status_code=409, detail="Task already rated")

    res = await db.execute(
        update(Task)
        .where(Task.id == task.id, Task.status == "completed", Task.rating.is_(None))
        .values(rating=data.rating)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Task already rated")

    if task.doer_id is not None:
        # both right-hand sides see the pre-update row
        await db.execute(
            update(DoerProfile)
            .where(DoerProfile.user_id == task.doer_id)
            .values(
                rating_average=(DoerProfile.rating_average * DoerProfile.rating_count + data.rating)
                / (DoerProfile.rating_count + 1),
                rating_count=DoerProfile.rating_count + 1,
            )
            .execution_options(synchronize_session=False)
        )
    await db.commit()

    task = await _load_task(db, task_id)
    await _invalidate_doer(db, cache, task.doer_id)
    await _publish(publisher, "task.rated", task, rating=data.rating)
    return _task_response(task)
