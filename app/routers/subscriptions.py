"""Subscription tier lookup and changes (payment processing is external)."""

import logging
import uuid
from datetime import datetime, timezone

from dateutil.relativedelta import relativedelta
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.dependencies import get_current_user_id, get_db
from app.models.schedule import Schedule, ScheduleStatus
from app.models.subscription import Subscription, SubscriptionStatus
from app.schemas.subscription import SubscriptionResponse, SubscriptionUpdateRequest, SubscriptionUpdateResponse
from app.services.crypto_service import get_crypto_service
from app.services.quota_service import QuotaService
from app.services.stores import SqlScheduleStore, SqlUserStore
from app.services.tiers import DEFAULT_TIER, get_tier_features, is_valid_tier

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


async def _count_schedules(db: AsyncSession, user_id: uuid.UUID, status: ScheduleStatus | None = None) -> int:
    query = select(func.count(Schedule.id)).where(Schedule.user_id == user_id)
    if status is not None:
        query = query.where(Schedule.status == status)
    result = await db.execute(query)
    return result.scalar_one() or 0


@router.get("", response_model=SubscriptionResponse)
async def get_subscription(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Current tier, its features and the user's schedule counts."""
    users = SqlUserStore(db, get_crypto_service(settings))
    subscription = await users.get_subscription(user_id)

    tier = subscription.effective_tier if subscription else DEFAULT_TIER
    features = get_tier_features(tier)

    return SubscriptionResponse(
        tier=features.tier,
        status=subscription.status.value if subscription else SubscriptionStatus.ACTIVE.value,
        current_period_end=subscription.current_period_end if subscription else None,
        payment_provider=subscription.payment_provider if subscription else None,
        payment_customer_id=subscription.payment_customer_id if subscription else None,
        payment_subscription_id=subscription.payment_subscription_id if subscription else None,
        max_digests=features.max_digests,
        allowed_frequencies=sorted(features.allowed_frequencies),
        custom_templates=features.custom_templates,
        priority_support=features.priority_support,
        current_count=await _count_schedules(db, user_id),
        active_count=await _count_schedules(db, user_id, ScheduleStatus.ACTIVE),
    )


@router.post("/update", response_model=SubscriptionUpdateResponse)
async def update_subscription(
    body: SubscriptionUpdateRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Switch tiers and pause any schedules beyond the new tier's limit."""
    if not is_valid_tier(body.tier):
        raise HTTPException(status_code=400, detail="Invalid subscription tier")

    users = SqlUserStore(db, get_crypto_service(settings))
    await users.get_or_create_profile(user_id)

    now = datetime.now(timezone.utc)
    subscription = await users.get_subscription(user_id)
    if subscription is None:
        subscription = Subscription(user_id=user_id)
        db.add(subscription)

    subscription.tier = body.tier
    subscription.status = SubscriptionStatus.ACTIVE
    subscription.current_period_start = now
    subscription.current_period_end = now + relativedelta(months=1)
    if body.payment_provider:
        subscription.payment_provider = body.payment_provider
    if body.payment_customer_id:
        subscription.payment_customer_id = body.payment_customer_id
    if body.payment_subscription_id:
        subscription.payment_subscription_id = body.payment_subscription_id
    await db.flush()

    quota = QuotaService(db, SqlScheduleStore(db), users)
    paused = await quota.reconcile_owner(user_id, reason="downgrade")
    if paused:
        logger.info("Tier change to %s paused %d schedule(s) for user %s", body.tier, len(paused), user_id)

    return SubscriptionUpdateResponse(
        message=f"Successfully updated subscription to {body.tier} tier",
        tier=body.tier,
        paused_schedule_ids=paused,
    )
