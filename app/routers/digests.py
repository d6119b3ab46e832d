"""Digest sending: on-demand sends and the cron-triggered batch run."""

import asyncio
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.dependencies import get_current_user_id, get_db, verify_cron_key
from app.schemas.digest import CronRunResponse, DueWindowResponse, SendDigestRequest, SendDigestResponse
from app.services.crypto_service import get_crypto_service
from app.services.digest_dispatcher import get_digest_dispatcher
from app.services.digest_runner import run_scheduled_digests
from app.services.interfaces import CredentialInvalidError, SendFailureError, SourceUnavailableError
from app.services.stores import SqlUserStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/digests", tags=["digests"])


@router.post("/send", response_model=SendDigestResponse)
async def send_digest(
    body: SendDigestRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Send a digest of a Notion database right now."""
    credential = await SqlUserStore(db, get_crypto_service(settings)).get_credential(user_id)
    if not credential:
        raise HTTPException(status_code=401, detail="No Notion account connected")

    dispatcher = get_digest_dispatcher(settings, db)
    try:
        row_count = await dispatcher.send_now(body.db_id, body.email, credential)
    except CredentialInvalidError as e:
        raise HTTPException(status_code=401, detail="Notion access was revoked; reconnect Notion") from e
    except SourceUnavailableError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e
    except SendFailureError as e:
        raise HTTPException(status_code=502, detail=e.reason) from e
    except asyncio.TimeoutError as e:
        raise HTTPException(status_code=504, detail="Timed out sending digest") from e
    return SendDigestResponse(row_count=row_count)


@router.get("/cron", response_model=CronRunResponse, dependencies=[Depends(verify_cron_key)])
async def cron_digests(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Run the scheduled-digest batch. Called by an external scheduler."""
    summary = await run_scheduled_digests(db, settings, trigger="http")
    return CronRunResponse(
        processed=summary.processed,
        sent=summary.sent,
        skipped=summary.skipped,
        failed=summary.failed,
        window=DueWindowResponse(**summary.window.as_dict()),
    )
