"""Tier-based admission control for active schedules.

``can_activate`` and ``reconcile_after_tier_change`` are pure and hold the
rules; ``QuotaService`` applies them against the database.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.metrics import quota_rejections_total, schedules_auto_paused_total
from app.models.profile import Profile
from app.models.schedule import Schedule, ScheduleStatus
from app.services.interfaces import ScheduleStore, UserStore
from app.services.tiers import TierFeatures, get_tier_features

logger = logging.getLogger(__name__)


class QuotaExceededError(Exception):
    """Activating one more schedule would exceed the tier's limit."""

    def __init__(self, limit: int, tier: str) -> None:
        super().__init__(f"Your {tier} plan allows at most {limit} active digests")
        self.limit = limit
        self.tier = tier


class FrequencyNotAllowedError(Exception):
    """The requested frequency is not part of the tier's plan."""

    def __init__(self, frequency: str, tier: str, allowed: Sequence[str]) -> None:
        super().__init__(f"The {frequency} frequency is not available on the {tier} plan")
        self.frequency = frequency
        self.tier = tier
        self.allowed = sorted(allowed)


@dataclass
class ReconcileResult:
    to_pause: list[uuid.UUID] = field(default_factory=list)


def can_activate(features: TierFeatures, active_count_excluding_target: int) -> bool:
    if features.unlimited:
        return True
    return active_count_excluding_target < features.max_digests


def check_frequency(features: TierFeatures, frequency: str) -> None:
    if frequency not in features.allowed_frequencies:
        raise FrequencyNotAllowedError(frequency, features.tier, features.allowed_frequencies)


def _age_key(schedule: Schedule) -> tuple:
    # (created_at, id) so equal timestamps still sort the same way every run
    return (schedule.created_at, str(schedule.id))


def reconcile_after_tier_change(
    features: TierFeatures,
    active_schedules: Sequence[Schedule],
) -> ReconcileResult:
    """Pick the newest active schedules beyond the tier limit for pausing.

    The oldest ``max_digests`` schedules stay active. Paused schedules in the
    input are ignored.
    """
    if features.unlimited:
        return ReconcileResult()
    active = sorted(
        (s for s in active_schedules if s.status == ScheduleStatus.ACTIVE),
        key=_age_key,
    )
    return ReconcileResult(to_pause=[s.id for s in active[features.max_digests:]])


class QuotaService:
    """Runs quota decisions against fresh store reads."""

    def __init__(self, db: AsyncSession, schedules: ScheduleStore, users: UserStore) -> None:
        self._db = db
        self._schedules = schedules
        self._users = users

    async def features_for(self, owner_id: uuid.UUID) -> TierFeatures:
        return get_tier_features(await self._users.get_tier(owner_id))

    async def _lock_owner(self, owner_id: uuid.UUID) -> None:
        """Row-lock the owner's profile for the rest of the transaction.

        Concurrent activations for the same owner serialize here, so two
        requests cannot both pass the count check.
        """
        await self._db.execute(select(Profile.id).where(Profile.id == owner_id).with_for_update())

    async def ensure_can_activate(
        self,
        owner_id: uuid.UUID,
        exclude_schedule_id: uuid.UUID | None = None,
    ) -> TierFeatures:
        """Raise QuotaExceededError unless one more active schedule fits.

        An owner already over the limit (e.g. after a downgrade) is brought
        back within it before deciding. Healing always leaves the owner at the
        limit, so the request is then rejected; the pauses are committed first
        so the rollback of the failed request does not undo them.
        """
        await self._lock_owner(owner_id)
        features = await self.features_for(owner_id)
        active = list(await self._schedules.list_active(owner_id))

        healed = False
        plan = reconcile_after_tier_change(features, active)
        if plan.to_pause:
            paused = await self._pause(plan.to_pause, reason="over_limit")
            active = [s for s in active if s.id not in paused]
            healed = bool(paused)

        count = sum(1 for s in active if s.id != exclude_schedule_id)
        if not can_activate(features, count):
            if healed:
                await self._db.commit()
            quota_rejections_total.labels(tier=features.tier).inc()
            logger.info("Quota rejected activation for user %s (%d/%s)", owner_id, count, features.max_digests)
            raise QuotaExceededError(limit=features.max_digests, tier=features.tier)
        return features

    async def reconcile_owner(self, owner_id: uuid.UUID, reason: str = "downgrade") -> list[uuid.UUID]:
        """Pause the owner's newest active schedules beyond the current limit."""
        await self._lock_owner(owner_id)
        features = await self.features_for(owner_id)
        active = await self._schedules.list_active(owner_id)
        plan = reconcile_after_tier_change(features, active)
        if not plan.to_pause:
            return []
        return sorted(await self._pause(plan.to_pause, reason=reason), key=plan.to_pause.index)

    async def pause_all(self, owner_id: uuid.UUID, reason: str = "disconnect") -> list[uuid.UUID]:
        active = await self._schedules.list_active(owner_id)
        return sorted(await self._pause([s.id for s in active], reason=reason), key=str)

    async def _pause(self, schedule_ids: Sequence[uuid.UUID], reason: str) -> set[uuid.UUID]:
        """Best-effort: a schedule that fails to pause is logged and skipped."""
        paused: set[uuid.UUID] = set()
        for schedule_id in schedule_ids:
            try:
                if await self._schedules.set_status(schedule_id, ScheduleStatus.PAUSED):
                    paused.add(schedule_id)
            except Exception as e:
                logger.error("Failed to auto-pause schedule %s: %s", schedule_id, e)
        if paused:
            schedules_auto_paused_total.labels(reason=reason).inc(len(paused))
            logger.info("Auto-paused %d schedule(s) (%s)", len(paused), reason)
        return paused
