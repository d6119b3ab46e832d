"""SQLAlchemy-backed user and schedule stores."""

import logging
import uuid
from typing import Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.profile import Profile
from app.models.schedule import Schedule, ScheduleStatus
from app.models.subscription import Subscription
from app.services.crypto_service import CryptoService, TokenDecryptionError
from app.services.interfaces import ScheduleStore, UserStore
from app.services.tiers import DEFAULT_TIER

logger = logging.getLogger(__name__)


class SqlUserStore(UserStore):
    def __init__(self, db: AsyncSession, crypto: CryptoService) -> None:
        self._db = db
        self._crypto = crypto

    async def get_profile(self, owner_id: uuid.UUID) -> Profile | None:
        result = await self._db.execute(select(Profile).where(Profile.id == owner_id))
        return result.scalar_one_or_none()

    async def get_or_create_profile(self, owner_id: uuid.UUID) -> Profile:
        profile = await self.get_profile(owner_id)
        if profile is None:
            profile = Profile(id=owner_id)
            self._db.add(profile)
            await self._db.flush()
        return profile

    async def get_credential(self, owner_id: uuid.UUID) -> str | None:
        # Savepoint keeps a failed read from aborting the caller's transaction
        async with self._db.begin_nested():
            profile = await self.get_profile(owner_id)
        if profile is None or profile.encrypted_notion_token is None:
            return None
        try:
            return self._crypto.decrypt(profile.encrypted_notion_token)
        except TokenDecryptionError:
            # Key rotated or lost: behave as disconnected until the user reconnects
            logger.warning("Stored Notion token for user %s could not be decrypted", owner_id)
            return None

    async def set_credential(
        self,
        owner_id: uuid.UUID,
        token: str | None,
        workspace_id: str | None = None,
        workspace_name: str | None = None,
    ) -> Profile:
        profile = await self.get_or_create_profile(owner_id)
        profile.encrypted_notion_token = self._crypto.encrypt(token) if token else None
        profile.notion_workspace_id = workspace_id
        profile.notion_workspace_name = workspace_name
        await self._db.flush()
        return profile

    async def get_subscription(self, owner_id: uuid.UUID) -> Subscription | None:
        result = await self._db.execute(select(Subscription).where(Subscription.user_id == owner_id))
        return result.scalar_one_or_none()

    async def get_tier(self, owner_id: uuid.UUID) -> str:
        subscription = await self.get_subscription(owner_id)
        if subscription is None:
            return DEFAULT_TIER
        return subscription.effective_tier


class SqlScheduleStore(ScheduleStore):
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def get(self, schedule_id: uuid.UUID, owner_id: uuid.UUID | None = None) -> Schedule | None:
        query = select(Schedule).where(Schedule.id == schedule_id)
        if owner_id is not None:
            query = query.where(Schedule.user_id == owner_id)
        result = await self._db.execute(query)
        return result.scalar_one_or_none()

    async def list_for_owner(self, owner_id: uuid.UUID) -> Sequence[Schedule]:
        result = await self._db.execute(
            select(Schedule).where(Schedule.user_id == owner_id).order_by(Schedule.created_at.desc())
        )
        return result.scalars().all()

    async def list_active(self, owner_id: uuid.UUID) -> Sequence[Schedule]:
        result = await self._db.execute(
            select(Schedule)
            .where(Schedule.user_id == owner_id, Schedule.status == ScheduleStatus.ACTIVE)
            .order_by(Schedule.created_at.asc(), Schedule.id.asc())
        )
        return result.scalars().all()

    async def list_due_candidates(self) -> Sequence[Schedule]:
        result = await self._db.execute(select(Schedule).where(Schedule.status == ScheduleStatus.ACTIVE))
        return result.scalars().all()

    async def list_owners_with_active(self) -> Sequence[uuid.UUID]:
        result = await self._db.execute(
            select(Schedule.user_id).where(Schedule.status == ScheduleStatus.ACTIVE).distinct()
        )
        return result.scalars().all()

    async def add(self, schedule: Schedule) -> Schedule:
        self._db.add(schedule)
        await self._db.flush()
        await self._db.refresh(schedule)
        return schedule

    async def delete(self, schedule: Schedule) -> None:
        await self._db.delete(schedule)
        await self._db.flush()

    async def set_status(self, schedule_id: uuid.UUID, status: ScheduleStatus) -> bool:
        result = await self._db.execute(
            update(Schedule)
            .where(Schedule.id == schedule_id)
            .values(status=status)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount > 0
