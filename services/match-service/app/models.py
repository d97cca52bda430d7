from sqlalchemy import Column, Integer, Float, String, Boolean, DateTime, ForeignKey, JSON, Text
from sqlalchemy.orm import relationship

from shared.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    email = Column(String, unique=True, nullable=True)
    full_name = Column(String, nullable=True)
    role = Column(String, nullable=False, default="user", index=True)  # user/doer/admin
    profile_photo_url = Column(String, nullable=True)
    profile_photo_verified = Column(Boolean, nullable=False, default=False)

    doer_profile = relationship("DoerProfile", back_populates="user", uselist=False)


class DoerProfile(Base):
    __tablename__ = "doer_profiles"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    latitude = Column(Float, nullable=True, index=True)
    longitude = Column(Float, nullable=True, index=True)

    availability_status = Column(String, nullable=False, default="available", index=True)
    # [{"day": "monday", "available": true, "hours": {"from": "09:00", "to": "17:00"}}]
    schedule = Column(JSON, nullable=False, default=list)

    active_task_id = Column(Integer, ForeignKey("tasks.id"), nullable=True, index=True)
    rating_average = Column(Float, nullable=False, default=0.0)
    rating_count = Column(Integer, nullable=False, default=0)
    completed_tasks = Column(Integer, nullable=False, default=0)
    service_radius_km = Column(Float, nullable=True)
    hourly_rate = Column(Float, nullable=True)

    user = relationship("User", back_populates="doer_profile")
    services = relationship(
        "DoerService",
        order_by="DoerService.position",
        cascade="all, delete-orphan",
    )


class DoerService(Base):
    __tablename__ = "doer_services"

    id = Column(Integer, primary_key=True)
    doer_id = Column(Integer, ForeignKey("doer_profiles.user_id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    category = Column(String, nullable=False, index=True)
    name = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    base_price = Column(Float, nullable=True)


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=False, index=True)
    creator_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    doer_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    status = Column(String, nullable=False, default="pending", index=True)  # pending/assigned/in_progress/completed/cancelled
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True, index=True)

    budget = Column(Float, nullable=True)
    rating = Column(Integer, nullable=True)


class MatchLog(Base):
    __tablename__ = "match_logs"

    id = Column(Integer, primary_key=True)
    task_latitude = Column(Float, nullable=False)
    task_longitude = Column(Float, nullable=False)
    category = Column(String, nullable=False)
    mode = Column(String, nullable=False)  # best/top_k
    results = Column(Integer, nullable=False, default=0)
    top_score = Column(Float, nullable=True)
    duration_ms = Column(Float, nullable=True)
