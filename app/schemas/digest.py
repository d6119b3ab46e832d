"""Digest sending and cron run schemas."""

from pydantic import BaseModel, Field, field_validator

from app.schemas.schedule import EMAIL_PATTERN


class SendDigestRequest(BaseModel):
    db_id: str = Field(..., min_length=1, max_length=64)
    email: str = Field(..., max_length=320)

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        v = v.strip()
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Invalid email address")
        return v


class SendDigestResponse(BaseModel):
    success: bool = True
    row_count: int


class DueWindowResponse(BaseModel):
    start: str
    end: str


class CronRunResponse(BaseModel):
    message: str = "Scheduled digests processed"
    processed: int
    sent: int
    skipped: int
    failed: int
    window: DueWindowResponse
