from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shared.events import build_event, to_json
from shared.rabbitmq import RabbitPublisher

from .cache import RecommendationCache
from .config import SERVICE_NAME
from .dependencies import get_cache, get_db, get_publisher
from .models import DoerProfile, DoerService, User
from .records import Availability, GeoPoint, Ratings, ServiceOffering
from .schemas import CreateDoer, DoerResponse, UpdateAvailability, UpdateLocation, UpdateServices

router = APIRouter(prefix="/doers", tags=["Doers"])


async def _load_doer(db: AsyncSession, doer_id: int) -> User:
    res = await db.execute(
        select(User)
        .where(User.id == doer_id, User.role == "doer")
        .options(selectinload(User.doer_profile).selectinload(DoerProfile.services))
        .execution_options(populate_existing=True)
    )
    user = res.scalar_one_or_none()
    if not user or user.doer_profile is None:
        raise HTTPException(status_code=404, detail="Doer not found")
    return user


def _service_rows(services: list[ServiceOffering]) -> list[DoerService]:
    return [
        DoerService(
            position=i,
            category=s.category.strip(),
            name=s.name,
            description=s.description,
            base_price=s.base_price,
        )
        for i, s in enumerate(services)
    ]


def _doer_response(user: User) -> DoerResponse:
    profile = user.doer_profile
    location = None
    if profile.latitude is not None and profile.longitude is not None:
        location = GeoPoint(latitude=profile.latitude, longitude=profile.longitude)

    return DoerResponse(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        profile_photo_url=user.profile_photo_url,
        location=location,
        services=[
            ServiceOffering(category=s.category, name=s.name, description=s.description, base_price=s.base_price)
            for s in profile.services
        ],
        availability=Availability.model_validate(
            {"status": profile.availability_status, "schedule": profile.schedule or []}
        ),
        active_task_id=profile.active_task_id,
        ratings=Ratings(average=profile.rating_average or 0.0, count=profile.rating_count or 0),
        completed_tasks=profile.completed_tasks or 0,
        service_radius_km=profile.service_radius_km,
        hourly_rate=profile.hourly_rate,
    )


def _footprint(profile: DoerProfile) -> tuple[float | None, float | None, list[str]]:
    return profile.latitude, profile.longitude, [s.category for s in profile.services]


async def _doer_changed(
    user: User,
    before: tuple[float | None, float | None, list[str]],
    cache: RecommendationCache,
    publisher: RabbitPublisher,
    change: str,
):
    after = _footprint(user.doer_profile)
    await cache.invalidate_doer(*before)
    if after != before:
        await cache.invalidate_doer(*after)

    event = build_event(
        "doer.updated",
        {
            "doer_id": user.id,
            "change": change,
            "latitude": after[0],
            "longitude": after[1],
            "categories": after[2],
        },
        source=SERVICE_NAME,
    )
    await publisher.publish("doer.updated", to_json(event))


@router.post("", response_model=DoerResponse, status_code=201)
async def create_doer(
    data: CreateDoer,
    db: AsyncSession = Depends(get_db),
    cache: RecommendationCache = Depends(get_cache),
    publisher: RabbitPublisher = Depends(get_publisher),
):
    res = await db.execute(select(User).where(User.email == data.email))
    if res.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Doer already exists")

    user = User(
        email=data.email,
        full_name=data.full_name,
        role="doer",
        profile_photo_url=data.profile_photo_url,
        profile_photo_verified=False,
    )
    user.doer_profile = DoerProfile(
        latitude=data.location.latitude if data.location else None,
        longitude=data.location.longitude if data.location else None,
        availability_status=data.availability.status,
        schedule=[e.model_dump(by_alias=True) for e in data.availability.schedule],
        active_task_id=None,
        rating_average=0.0,
        rating_count=0,
        completed_tasks=0,
        service_radius_km=data.service_radius_km,
        hourly_rate=data.hourly_rate,
    )
    user.doer_profile.services = _service_rows(data.services)

    db.add(user)
    await db.commit()

    user = await _load_doer(db, user.id)
    await _doer_changed(user, (None, None, []), cache, publisher, change="created")
    return _doer_response(user)


@router.get("/{doer_id}", response_model=DoerResponse)
async def get_doer(doer_id: int, db: AsyncSession = Depends(get_db)):
    user = await _load_doer(db, doer_id)
    return _doer_response(user)


@router.put("/{doer_id}/location", response_model=DoerResponse)
async def update_location(
    doer_id: int,
    data: UpdateLocation,
    db: AsyncSession = Depends(get_db),
    cache: RecommendationCache = Depends(get_cache),
    publisher: RabbitPublisher = Depends(get_publisher),
):
    user = await _load_doer(db, doer_id)
    before = _footprint(user.doer_profile)

    user.doer_profile.latitude = data.latitude
    user.doer_profile.longitude = data.longitude
    await db.commit()

    await _doer_changed(user, before, cache, publisher, change="location")
    return _doer_response(user)


@router.put("/{doer_id}/availability", response_model=DoerResponse)
async def update_availability(
    doer_id: int,
    data: UpdateAvailability,
    db: AsyncSession = Depends(get_db),
    cache: RecommendationCache = Depends(get_cache),
    publisher: RabbitPublisher = Depends(get_publisher),
):
    if data.status is None and data.schedule is None:
        raise HTTPException(status_code=400, detail="Nothing to update")

    user = await _load_doer(db, doer_id)
    before = _footprint(user.doer_profile)

    if data.status is not None:
        user.doer_profile.availability_status = data.status
    if data.schedule is not None:
        user.doer_profile.schedule = [e.model_dump(by_alias=True) for e in data.schedule]
    await db.commit()

    await _doer_changed(user, before, cache, publisher, change="availability")
    return _doer_response(user)


@router.put("/{doer_id}/services", response_model=DoerResponse)
async def update_services(
    doer_id: int,
    data: UpdateServices,
    db: AsyncSession = Depends(get_db),
    cache: RecommendationCache = Depends(get_cache),
    publisher: RabbitPublisher = Depends(get_publisher),
):
    user = await _load_doer(db, doer_id)
    before = _footprint(user.doer_profile)

    user.doer_profile.services = _service_rows(data.services)
    await db.commit()

    user = await _load_doer(db, doer_id)
    await _doer_changed(user, before, cache, publisher, change="services")
    return _doer_response(user)
