"""Subscription request/response schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class SubscriptionResponse(BaseModel):
    tier: str
    status: str
    current_period_end: datetime | None = None
    payment_provider: str | None = None
    payment_customer_id: str | None = None
    payment_subscription_id: str | None = None
    max_digests: int | None  # None means unlimited
    allowed_frequencies: list[str]
    custom_templates: bool
    priority_support: bool
    current_count: int
    active_count: int


class SubscriptionUpdateRequest(BaseModel):
    tier: str = Field(..., max_length=20)
    payment_provider: str | None = Field(None, max_length=50)
    payment_customer_id: str | None = Field(None, max_length=255)
    payment_subscription_id: str | None = Field(None, max_length=255)


class SubscriptionUpdateResponse(BaseModel):
    success: bool = True
    message: str
    tier: str
    paused_schedule_ids: list[uuid.UUID] = []
