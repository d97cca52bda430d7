"""
Validated domain records the matching core works on.

Store rows and request bodies are converted into these models at the
boundary, so the availability/scoring code never sees a partially-shaped
doer. Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime, timezone
from typing import List, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

DEFAULT_SERVICE_RADIUS_KM = 20.0

HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"

Weekday = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
AvailabilityStatus = Literal["available", "busy", "unavailable"]


def norm(s: str | None) -> str:
    return (s or "").strip().lower()


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GeoPoint(CamelModel):
    longitude: float = Field(ge=-180, le=180, allow_inf_nan=False)
    latitude: float = Field(ge=-90, le=90, allow_inf_nan=False)

    @model_validator(mode="before")
    @classmethod
    def _accept_geojson(cls, data):
        # {"type": "Point", "coordinates": [lon, lat]}
        if isinstance(data, dict) and "coordinates" in data:
            coords = data["coordinates"]
            if not isinstance(coords, (list, tuple)) or len(coords) != 2:
                raise ValueError("coordinates must be [longitude, latitude]")
            return {"longitude": coords[0], "latitude": coords[1]}
        return data


class HoursWindow(CamelModel):
    from_: str = Field(alias="from", pattern=HHMM_PATTERN)
    to: str = Field(pattern=HHMM_PATTERN)

    @property
    def crosses_midnight(self) -> bool:
        return self.from_ > self.to


class ScheduleEntry(CamelModel):
    day: Weekday
    available: bool = False
    hours: HoursWindow

    @field_validator("day", mode="before")
    @classmethod
    def _lower_day(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class Availability(CamelModel):
    status: AvailabilityStatus = "available"
    schedule: List[ScheduleEntry] = Field(default_factory=list)


class ServiceOffering(CamelModel):
    category: str = Field(min_length=1)
    name: str | None = None
    description: str | None = None
    base_price: float | None = None


class Ratings(CamelModel):
    average: float = Field(default=0.0, ge=0, le=5)
    count: int = Field(default=0, ge=0)


class ProfilePhoto(CamelModel):
    url: str | None = None
    verified: bool = False


class DoerProfile(CamelModel):
    current_location: GeoPoint
    services: List[ServiceOffering] = Field(default_factory=list)
    availability: Availability = Field(default_factory=Availability)
    active_task_id: int | None = None
    ratings: Ratings = Field(default_factory=Ratings)
    completed_tasks: int = Field(default=0, ge=0)
    service_radius_km: float = Field(default=DEFAULT_SERVICE_RADIUS_KM, gt=0)
    hourly_rate: float | None = None

    @field_validator("service_radius_km", mode="before")
    @classmethod
    def _default_radius(cls, v):
        # unset and zero both fall back to the platform default
        return v or DEFAULT_SERVICE_RADIUS_KM

    def offers(self, category: str) -> bool:
        wanted = norm(category)
        return any(norm(s.category) == wanted for s in self.services)


class DoerRecord(CamelModel):
    id: int
    full_name: str | None = None
    profile_photo: ProfilePhoto | None = None
    role: str = "doer"
    doer_profile: DoerProfile


class TaskHistoryRecord(CamelModel):
    category: str
    completed_at: datetime

    @field_validator("completed_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return as_utc(v)


class MatchTask(CamelModel):
    """What the engine needs to know about a task to place it."""

    category: str = Field(min_length=1)
    location: GeoPoint
    scheduled_time: datetime = Field(
        validation_alias=AliasChoices("scheduledTime", "scheduled_time", "scheduledDate"),
        serialization_alias="scheduledTime",
    )

    @field_validator("category", mode="before")
    @classmethod
    def _strip_category(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("scheduled_time")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return as_utc(v)


class MatchResult(CamelModel):
    doer: DoerRecord
    score: float
    distance: float


class DoerProfileSummary(CamelModel):
    ratings: Ratings
    completed_tasks: int
    hourly_rate: float | None = None


class DoerSummary(CamelModel):
    """Public projection of a doer; never carries contact or location data."""

    id: int
    full_name: str | None = None
    profile_photo: ProfilePhoto | None = None
    doer_profile: DoerProfileSummary

    @classmethod
    def from_record(cls, doer: DoerRecord) -> "DoerSummary":
        profile = doer.doer_profile
        return cls(
            id=doer.id,
            full_name=doer.full_name,
            profile_photo=doer.profile_photo,
            doer_profile=DoerProfileSummary(
                ratings=profile.ratings,
                completed_tasks=profile.completed_tasks,
                hourly_rate=profile.hourly_rate,
            ),
        )


class RankedDoer(CamelModel):
    doer: DoerSummary
    score: float
    distance: float
