"""Shared test fixtures."""

import uuid
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.models.schedule import Frequency, Schedule, ScheduleStatus


@pytest.fixture
def sample_user_id() -> uuid.UUID:
    return uuid.UUID("12345678-1234-1234-1234-123456789abc")


@pytest.fixture
def make_schedule(sample_user_id):
    """Build transient Schedule rows; later calls get later created_at values."""
    base_created = datetime(2024, 1, 1, tzinfo=timezone.utc)
    counter = {"n": 0}

    def _make(**overrides) -> Schedule:
        counter["n"] += 1
        fields = {
            "id": uuid.uuid4(),
            "user_id": sample_user_id,
            "db_id": "a1b2c3d4e5f60718293a4b5c6d7e8f90",
            "email": "reader@example.com",
            "frequency": Frequency.DAILY,
            "time_of_day": "09:00",
            "timezone": "UTC",
            "start_date": date(2024, 1, 1),
            "end_date": None,
            "status": ScheduleStatus.ACTIVE,
            "created_at": base_created + timedelta(minutes=counter["n"]),
            "updated_at": base_created + timedelta(minutes=counter["n"]),
        }
        fields.update(overrides)
        return Schedule(**fields)

    return _make


@pytest.fixture
def sample_rows() -> list[dict]:
    """Flattened Notion rows as the row source returns them."""
    return [
        {"Name": "Write launch post", "Status": "In progress", "Due": "2024-03-01", "Done": "No"},
        {"Name": "Review budget", "Status": "Done", "Due": "2024-02-20", "Done": "Yes"},
    ]


@pytest.fixture
def sample_notion_page() -> dict:
    """A Notion database query result page with one property of each supported type."""
    return {
        "object": "page",
        "id": "page_001",
        "properties": {
            "Name": {"type": "title", "title": [{"plain_text": "Write launch post"}, {"plain_text": " (draft)"}]},
            "Notes": {"type": "rich_text", "rich_text": [{"plain_text": "First pass"}]},
            "Status": {"type": "select", "select": {"name": "In progress"}},
            "Tags": {"type": "multi_select", "multi_select": [{"name": "marketing"}, {"name": "q1"}]},
            "Estimate": {"type": "number", "number": 3.5},
            "Done": {"type": "checkbox", "checkbox": False},
            "Due": {"type": "date", "date": {"start": "2024-03-01", "end": None}},
            "Owner": {"type": "people", "people": [{"id": "u1", "name": "Ada"}, {"id": "u2"}]},
            "Contact": {"type": "email", "email": "ada@example.com"},
            "Link": {"type": "url", "url": "https://example.com"},
            "Phone": {"type": "phone_number", "phone_number": "+1 555 0100"},
            "Formula": {"type": "formula", "formula": {"type": "string", "string": "x"}},
        },
    }


@pytest.fixture
def mock_db():
    """AsyncSession stand-in for router tests; stores are patched separately."""
    db = MagicMock()
    db.execute = AsyncMock()
    db.flush = AsyncMock()
    db.refresh = AsyncMock()
    db.delete = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    return db
