"""Digest dispatch: rows -> HTML table -> email, per schedule."""

import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Iterable, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.metrics import digests_dispatched_total
from app.middleware.logging import redact_pii
from app.models.schedule import Schedule
from app.services.digest_renderer import render_rows_as_html_table
from app.services.due_selector import DueWindow
from app.services.interfaces import (
    CredentialInvalidError,
    EmailSender,
    RowSource,
    SendFailureError,
    SourceUnavailableError,
    UserStore,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ROW_LIMIT = 20
DEFAULT_SUBJECT = "Your Notion Database Digest"


class DispatchStatus(str, enum.Enum):
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class DispatchResult:
    schedule_id: uuid.UUID | None
    status: DispatchStatus
    reason: str | None = None

    @classmethod
    def sent(cls, schedule_id) -> "DispatchResult":
        return cls(schedule_id, DispatchStatus.SENT)

    @classmethod
    def skipped(cls, schedule_id, reason: str) -> "DispatchResult":
        return cls(schedule_id, DispatchStatus.SKIPPED, reason)

    @classmethod
    def failed(cls, schedule_id, reason: str) -> "DispatchResult":
        return cls(schedule_id, DispatchStatus.FAILED, reason)


@dataclass
class BatchSummary:
    results: list[DispatchResult] = field(default_factory=list)
    window: DueWindow | None = None

    @property
    def processed(self) -> int:
        return len(self.results)

    def _count(self, status: DispatchStatus) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def sent(self) -> int:
        return self._count(DispatchStatus.SENT)

    @property
    def skipped(self) -> int:
        return self._count(DispatchStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(DispatchStatus.FAILED)

    def as_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "sent": self.sent,
            "skipped": self.skipped,
            "failed": self.failed,
            "window": self.window.as_dict() if self.window else None,
        }


class DigestDispatcher:
    """Sends one digest per schedule; never lets one schedule break the batch."""

    def __init__(
        self,
        row_source: RowSource,
        user_store: UserStore,
        email_sender: EmailSender,
        row_limit: int = DEFAULT_ROW_LIMIT,
        call_timeout: float | None = 10.0,
        subject: str = DEFAULT_SUBJECT,
    ) -> None:
        self._rows = row_source
        self._users = user_store
        self._email = email_sender
        self._row_limit = row_limit
        self._timeout = call_timeout
        self._subject = subject

    async def _bounded(self, call: Awaitable[T]) -> T:
        if self._timeout is None:
            return await call
        return await asyncio.wait_for(call, timeout=self._timeout)

    async def dispatch(self, schedule: Schedule) -> DispatchResult:
        """Fetch, render and send the digest for one schedule.

        Missing or rejected credentials are a skip, not a failure: the user
        has disconnected Notion and the dashboard already shows that. The
        credential read shares the batch's session and is never cancelled by
        the call timeout.
        """
        sid = schedule.id
        try:
            credential = await self._users.get_credential(schedule.user_id)
        except Exception as e:
            logger.error("Credential lookup failed for schedule %s: %s", sid, e)
            return DispatchResult.failed(sid, f"credential lookup failed: {type(e).__name__}")

        if not credential:
            return DispatchResult.skipped(sid, "no credential")

        try:
            rows = await self._bounded(self._rows.fetch_rows(schedule.db_id, credential, self._row_limit))
            html = render_rows_as_html_table(rows)
            await self._bounded(self._email.send(schedule.email, self._subject, html))
        except asyncio.TimeoutError:
            logger.warning("Digest for schedule %s timed out", sid)
            return DispatchResult.failed(sid, "timeout")
        except CredentialInvalidError:
            logger.info("Notion credential rejected for schedule %s; skipping", sid)
            return DispatchResult.skipped(sid, "credential invalid")
        except SourceUnavailableError as e:
            logger.warning("Row source unavailable for schedule %s: %s", sid, e)
            return DispatchResult.failed(sid, f"source unavailable: {e}")
        except SendFailureError as e:
            logger.warning("Email send failed for schedule %s: %s", sid, redact_pii(e.reason))
            return DispatchResult.failed(sid, f"send failed: {e.reason}")
        except Exception as e:
            logger.error("Unexpected error dispatching schedule %s: %s", sid, redact_pii(str(e)))
            return DispatchResult.failed(sid, f"error: {type(e).__name__}")

        logger.info("Sent digest for schedule %s to %s (%d rows)", sid, redact_pii(schedule.email), len(rows))
        return DispatchResult.sent(sid)

    async def run_batch(self, schedules: Iterable[Schedule], window: DueWindow | None = None) -> BatchSummary:
        """Dispatch every schedule in turn. No retries within a run."""
        summary = BatchSummary(window=window)
        for schedule in schedules:
            result = await self.dispatch(schedule)
            digests_dispatched_total.labels(result=result.status.value).inc()
            summary.results.append(result)
        logger.info(
            "Digest batch finished: processed=%d sent=%d skipped=%d failed=%d",
            summary.processed, summary.sent, summary.skipped, summary.failed,
        )
        return summary

    async def send_now(self, source_id: str, recipient: str, credential: str) -> int:
        """Send an immediate digest. Unlike dispatch(), errors propagate.

        Returns the number of rows included.
        """
        rows = await self._bounded(self._rows.fetch_rows(source_id, credential, self._row_limit))
        await self._bounded(self._email.send(recipient, self._subject, render_rows_as_html_table(rows)))
        return len(rows)


def get_digest_dispatcher(settings: Settings, db: AsyncSession) -> DigestDispatcher:
    """Factory that wires a DigestDispatcher to Notion, Resend and the database."""
    from app.services.crypto_service import get_crypto_service
    from app.services.email_service import get_email_sender
    from app.services.notion_service import get_notion_client
    from app.services.stores import SqlUserStore

    return DigestDispatcher(
        row_source=get_notion_client(settings),
        user_store=SqlUserStore(db, get_crypto_service(settings)),
        email_sender=get_email_sender(settings),
        row_limit=settings.digest_row_limit,
        call_timeout=settings.external_call_timeout_seconds,
        subject=settings.digest_subject,
    )
