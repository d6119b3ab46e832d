"""Collaborator interfaces consumed by the digest engine.

The engine never builds its own clients: the Notion row source, the email
sender and the stores are injected so the selector, quota checks and
dispatcher can run without network or database access.
"""

import uuid
from abc import ABC, abstractmethod
from typing import Any, Sequence

from app.models.schedule import Schedule, ScheduleStatus

Row = dict[str, Any]


class CredentialInvalidError(Exception):
    """The external service rejected the user's credential."""


class SourceUnavailableError(Exception):
    """The row source could not be reached or returned an error."""


class SendFailureError(Exception):
    """The email provider refused or failed to deliver a message."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class RowSource(ABC):
    @abstractmethod
    async def fetch_rows(self, source_id: str, credential: str, limit: int) -> list[Row]:
        """Return up to ``limit`` flattened rows of the external database."""
        ...


class UserStore(ABC):
    @abstractmethod
    async def get_credential(self, owner_id: uuid.UUID) -> str | None:
        """Decrypted external-service token, or None when disconnected."""
        ...

    @abstractmethod
    async def get_tier(self, owner_id: uuid.UUID) -> str:
        """Effective subscription tier name ("free" when unset)."""
        ...


class EmailSender(ABC):
    @abstractmethod
    async def send(self, to: str, subject: str, html_body: str) -> None:
        """Deliver one message. Raises SendFailureError on failure."""
        ...


class ScheduleStore(ABC):
    @abstractmethod
    async def get(self, schedule_id: uuid.UUID, owner_id: uuid.UUID | None = None) -> Schedule | None: ...

    @abstractmethod
    async def list_for_owner(self, owner_id: uuid.UUID) -> Sequence[Schedule]: ...

    @abstractmethod
    async def list_active(self, owner_id: uuid.UUID) -> Sequence[Schedule]:
        """Owner's active schedules, oldest first."""
        ...

    @abstractmethod
    async def list_due_candidates(self) -> Sequence[Schedule]:
        """Every active schedule; time filtering is left to the selector."""
        ...

    @abstractmethod
    async def add(self, schedule: Schedule) -> Schedule: ...

    @abstractmethod
    async def delete(self, schedule: Schedule) -> None: ...

    @abstractmethod
    async def set_status(self, schedule_id: uuid.UUID, status: ScheduleStatus) -> bool:
        """Set one schedule's status. Returns False when it does not exist."""
        ...
