"""Digest schedule CRUD with pause/resume and tier quota enforcement."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.dependencies import get_current_user_id, get_db
from app.models.schedule import Schedule, ScheduleStatus
from app.schemas.schedule import ScheduleCreate, ScheduleList, ScheduleResponse, ScheduleUpdate
from app.services.crypto_service import get_crypto_service
from app.services.quota_service import QuotaService, check_frequency
from app.services.stores import SqlScheduleStore, SqlUserStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/schedules", tags=["schedules"])


def _services(db: AsyncSession, settings: Settings) -> tuple[SqlUserStore, SqlScheduleStore, QuotaService]:
    users = SqlUserStore(db, get_crypto_service(settings))
    schedules = SqlScheduleStore(db)
    return users, schedules, QuotaService(db, schedules, users)


async def _get_owned(store: SqlScheduleStore, schedule_id: uuid.UUID, user_id: uuid.UUID) -> Schedule:
    schedule = await store.get(schedule_id, owner_id=user_id)
    if not schedule:
        raise HTTPException(status_code=404, detail="Schedule not found")
    return schedule


@router.post("", response_model=ScheduleResponse, status_code=201)
async def create_schedule(
    body: ScheduleCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Create a schedule. New schedules start active, so the quota applies."""
    users, schedules, quota = _services(db, settings)
    await users.get_or_create_profile(user_id)

    features = await quota.features_for(user_id)
    check_frequency(features, body.frequency.value)
    await quota.ensure_can_activate(user_id)

    schedule = await schedules.add(
        Schedule(
            user_id=user_id,
            db_id=body.db_id,
            email=body.email,
            frequency=body.frequency,
            time_of_day=body.time_of_day,
            timezone=body.timezone,
            start_date=body.start_date,
            end_date=body.end_date,
            status=ScheduleStatus.ACTIVE,
        )
    )
    logger.info("Created schedule %s for user %s", schedule.id, user_id)
    return ScheduleResponse.model_validate(schedule)


@router.get("", response_model=ScheduleList)
async def list_schedules(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """List the user's schedules, newest first."""
    schedules = await SqlScheduleStore(db).list_for_owner(user_id)
    return ScheduleList(
        schedules=[ScheduleResponse.model_validate(s) for s in schedules],
        total=len(schedules),
    )


@router.get("/{schedule_id}", response_model=ScheduleResponse)
async def get_schedule(
    schedule_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    schedule = await _get_owned(SqlScheduleStore(db), schedule_id, user_id)
    return ScheduleResponse.model_validate(schedule)


@router.patch("/{schedule_id}", response_model=ScheduleResponse)
async def update_schedule(
    schedule_id: uuid.UUID,
    body: ScheduleUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Edit a schedule's delivery settings. Status changes go through pause/resume."""
    _, schedules, quota = _services(db, settings)
    schedule = await _get_owned(schedules, schedule_id, user_id)

    changes = body.model_dump(exclude_unset=True)
    if changes.get("frequency") is not None:
        check_frequency(await quota.features_for(user_id), changes["frequency"].value)

    start_date = changes.get("start_date", schedule.start_date)
    end_date = changes.get("end_date", schedule.end_date)
    if start_date is None:
        raise HTTPException(status_code=422, detail="start_date cannot be cleared")
    if end_date is not None and end_date < start_date:
        raise HTTPException(status_code=422, detail="end_date must not be before start_date")

    for field_name, value in changes.items():
        if value is None and field_name != "end_date":
            continue
        setattr(schedule, field_name, value)
    await db.flush()
    await db.refresh(schedule)
    return ScheduleResponse.model_validate(schedule)


@router.post("/{schedule_id}/pause", response_model=ScheduleResponse)
async def pause_schedule(
    schedule_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Pause a schedule. Pausing a paused schedule is a no-op."""
    schedule = await _get_owned(SqlScheduleStore(db), schedule_id, user_id)
    if schedule.status != ScheduleStatus.PAUSED:
        schedule.status = ScheduleStatus.PAUSED
        await db.flush()
        logger.info("Paused schedule %s", schedule_id)
    return ScheduleResponse.model_validate(schedule)


@router.post("/{schedule_id}/resume", response_model=ScheduleResponse)
async def resume_schedule(
    schedule_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Resume a paused schedule, subject to the tier quota.

    Resuming an active schedule is a no-op and never consults the quota.
    """
    _, schedules, quota = _services(db, settings)
    schedule = await _get_owned(schedules, schedule_id, user_id)
    if schedule.status == ScheduleStatus.ACTIVE:
        return ScheduleResponse.model_validate(schedule)

    check_frequency(await quota.features_for(user_id), schedule.frequency.value)
    await quota.ensure_can_activate(user_id, exclude_schedule_id=schedule.id)

    schedule.status = ScheduleStatus.ACTIVE
    await db.flush()
    logger.info("Resumed schedule %s", schedule_id)
    return ScheduleResponse.model_validate(schedule)


@router.delete("/{schedule_id}", status_code=204)
async def delete_schedule(
    schedule_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    store = SqlScheduleStore(db)
    schedule = await _get_owned(store, schedule_id, user_id)
    await store.delete(schedule)
    logger.info("Deleted schedule %s", schedule_id)
