"""Unit tests for tier quota rules and the QuotaService."""

import random
import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.models.schedule import ScheduleStatus
from app.services.quota_service import (
    FrequencyNotAllowedError,
    QuotaExceededError,
    QuotaService,
    can_activate,
    check_frequency,
    reconcile_after_tier_change,
)
from app.services.tiers import TIER_FEATURES, get_tier_features, is_valid_tier

FREE = TIER_FEATURES["free"]
PRO = TIER_FEATURES["pro"]
ENTERPRISE = TIER_FEATURES["enterprise"]


class TestTierTable:
    def test_free_limits(self):
        assert FREE.max_digests == 3
        assert FREE.allowed_frequencies == {"daily", "weekly"}

    def test_enterprise_is_unlimited(self):
        assert ENTERPRISE.unlimited
        assert "custom" in ENTERPRISE.allowed_frequencies

    def test_unknown_tier_falls_back_to_free(self):
        assert get_tier_features("platinum") is FREE
        assert get_tier_features(None) is FREE

    def test_is_valid_tier(self):
        assert is_valid_tier("pro")
        assert not is_valid_tier("platinum")


class TestCanActivate:
    @pytest.mark.parametrize("count", range(0, 3))
    def test_below_limit(self, count):
        assert can_activate(FREE, count)

    @pytest.mark.parametrize("count", [3, 4, 100])
    def test_at_or_over_limit(self, count):
        assert not can_activate(FREE, count)

    def test_unlimited_tier(self):
        assert can_activate(ENTERPRISE, 10_000)


class TestCheckFrequency:
    def test_allowed_frequency_passes(self):
        check_frequency(FREE, "weekly")

    def test_disallowed_frequency_raises(self):
        with pytest.raises(FrequencyNotAllowedError) as exc_info:
            check_frequency(FREE, "monthly")
        assert exc_info.value.allowed == ["daily", "weekly"]
        assert exc_info.value.tier == "free"


class TestReconcileAfterTierChange:
    def test_keeps_oldest_and_pauses_newest(self, make_schedule):
        schedules = [make_schedule() for _ in range(5)]
        result = reconcile_after_tier_change(FREE, list(reversed(schedules)))
        assert result.to_pause == [schedules[3].id, schedules[4].id]

    def test_within_limit_pauses_nothing(self, make_schedule):
        schedules = [make_schedule() for _ in range(3)]
        assert reconcile_after_tier_change(FREE, schedules).to_pause == []

    def test_unlimited_pauses_nothing(self, make_schedule):
        schedules = [make_schedule() for _ in range(50)]
        assert reconcile_after_tier_change(ENTERPRISE, schedules).to_pause == []

    def test_paused_inputs_are_ignored(self, make_schedule):
        active = [make_schedule() for _ in range(3)]
        paused = make_schedule(status=ScheduleStatus.PAUSED)
        assert reconcile_after_tier_change(FREE, active + [paused]).to_pause == []

    def test_equal_created_at_broken_by_id(self, make_schedule):
        same_time = datetime(2024, 1, 1, tzinfo=timezone.utc)
        ids = sorted([uuid.uuid4() for _ in range(4)], key=str)
        schedules = [make_schedule(id=i, created_at=same_time) for i in reversed(ids)]

        result = reconcile_after_tier_change(FREE, schedules)

        assert result.to_pause == [ids[3]]

    def test_idempotent_once_applied(self, make_schedule):
        schedules = [make_schedule() for _ in range(4)]
        first = reconcile_after_tier_change(FREE, schedules)
        for s in schedules:
            if s.id in first.to_pause:
                s.status = ScheduleStatus.PAUSED
        assert reconcile_after_tier_change(FREE, schedules).to_pause == []

    def test_same_input_same_result(self, make_schedule):
        schedules = [make_schedule() for _ in range(7)]
        random.Random(7).shuffle(schedules)

        assert reconcile_after_tier_change(FREE, schedules) == reconcile_after_tier_change(FREE, schedules)
        assert reconcile_after_tier_change(PRO, schedules) == reconcile_after_tier_change(PRO, schedules)

def _mock_db():
    db = MagicMock()
    db.execute = AsyncMock()
    db.commit = AsyncMock()
    return db


def _service(active, tier="free", set_status=True):
    schedules = AsyncMock()
    schedules.list_active.return_value = active
    schedules.set_status.return_value = set_status
    users = AsyncMock()
    users.get_tier.return_value = tier
    return QuotaService(_mock_db(), schedules, users), schedules


class TestQuotaServiceEnsureCanActivate:
    @pytest.mark.asyncio
    async def test_allows_when_below_limit(self, make_schedule, sample_user_id):
        quota, _ = _service([make_schedule(), make_schedule()])
        features = await quota.ensure_can_activate(sample_user_id)
        assert features.tier == "free"

    @pytest.mark.asyncio
    async def test_rejects_at_limit(self, make_schedule, sample_user_id):
        quota, schedules = _service([make_schedule() for _ in range(3)])
        with pytest.raises(QuotaExceededError) as exc_info:
            await quota.ensure_can_activate(sample_user_id)
        assert exc_info.value.limit == 3
        schedules.set_status.assert_not_called()
        quota._db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_excluded_schedule_not_counted(self, make_schedule, sample_user_id):
        active = [make_schedule() for _ in range(3)]
        quota, _ = _service(active)
        await quota.ensure_can_activate(sample_user_id, exclude_schedule_id=active[2].id)

    @pytest.mark.asyncio
    async def test_over_limit_owner_is_reconciled_first(self, make_schedule, sample_user_id):
        active = [make_schedule() for _ in range(5)]
        quota, schedules = _service(active)

        with pytest.raises(QuotaExceededError):
            await quota.ensure_can_activate(sample_user_id)

        paused_ids = [c.args[0] for c in schedules.set_status.call_args_list]
        assert paused_ids == [active[3].id, active[4].id]
        quota._db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unlimited_tier_never_rejects(self, make_schedule, sample_user_id):
        quota, _ = _service([make_schedule() for _ in range(100)], tier="enterprise")
        features = await quota.ensure_can_activate(sample_user_id)
        assert features.unlimited

    @pytest.mark.asyncio
    async def test_locks_owner_row(self, sample_user_id):
        quota, _ = _service([])
        await quota.ensure_can_activate(sample_user_id)
        statement = quota._db.execute.call_args[0][0]
        assert "FOR UPDATE" in str(statement.compile())


class TestQuotaServiceReconcile:
    @pytest.mark.asyncio
    async def test_reconcile_owner_returns_paused_in_age_order(self, make_schedule, sample_user_id):
        active = [make_schedule() for _ in range(6)]
        quota, _ = _service(active)
        paused = await quota.reconcile_owner(sample_user_id)
        assert paused == [active[3].id, active[4].id, active[5].id]

    @pytest.mark.asyncio
    async def test_pause_failure_is_skipped(self, make_schedule, sample_user_id):
        active = [make_schedule() for _ in range(5)]
        quota, schedules = _service(active)
        schedules.set_status.side_effect = [RuntimeError("db gone"), True]

        paused = await quota.reconcile_owner(sample_user_id)

        assert paused == [active[4].id]

    @pytest.mark.asyncio
    async def test_pause_all(self, make_schedule, sample_user_id):
        active = [make_schedule() for _ in range(2)]
        quota, schedules = _service(active, tier="pro")
        paused = await quota.pause_all(sample_user_id)
        assert set(paused) == {s.id for s in active}
        schedules.set_status.assert_any_call(active[0].id, ScheduleStatus.PAUSED)
