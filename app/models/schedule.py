"""Schedule model: a recurring Notion database digest delivered by email."""

import enum
import uuid
from datetime import date

from sqlalchemy import Date, Enum, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class ScheduleStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"


class Frequency(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Schedule(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "schedules"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    db_id: Mapped[str] = mapped_column(String(64), nullable=False)  # Notion database id
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    frequency: Mapped[Frequency] = mapped_column(
        Enum(Frequency, name="schedule_frequency", values_callable=_enum_values),
        default=Frequency.DAILY,
        nullable=False,
    )
    time_of_day: Mapped[str] = mapped_column(String(8), nullable=False)  # "HH:MM"
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)  # inclusive
    status: Mapped[ScheduleStatus] = mapped_column(
        Enum(ScheduleStatus, name="schedule_status", values_callable=_enum_values),
        default=ScheduleStatus.ACTIVE,
        nullable=False,
        index=True,
    )

    # Relationships
    profile: Mapped["Profile"] = relationship("Profile", back_populates="schedules")

    @property
    def is_active(self) -> bool:
        return self.status == ScheduleStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Schedule {self.id} {self.frequency} at {self.time_of_day} status={self.status}>"
