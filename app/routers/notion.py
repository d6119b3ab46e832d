"""Notion integration: OAuth connect/disconnect, database listing and preview."""

import json
import logging
import secrets
import uuid
from datetime import datetime, timezone

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.dependencies import get_current_user_id, get_db
from app.schemas.notion import (
    NotionConnectRequest,
    NotionConnectResponse,
    NotionConnectStartResponse,
    NotionDatabase,
    NotionDatabaseList,
    NotionDisconnectResponse,
    NotionPreviewResponse,
    NotionStatusResponse,
)
from app.services.crypto_service import get_crypto_service
from app.services.interfaces import CredentialInvalidError, SourceUnavailableError
from app.services.notion_service import NotionOAuthError, get_notion_client
from app.services.quota_service import QuotaService
from app.services.stores import SqlScheduleStore, SqlUserStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/notion", tags=["notion"])

# OAuth state TTL: 10 minutes
_OAUTH_STATE_TTL = 600
_redis_client: aioredis.Redis | None = None


async def _get_redis(settings: Settings) -> aioredis.Redis:
    global _redis_client
    if _redis_client is None:
        _redis_client = aioredis.from_url(settings.redis_url, decode_responses=True)
    return _redis_client


async def _store_oauth_state(state: str, data: dict, settings: Settings) -> None:
    r = await _get_redis(settings)
    await r.set(f"notion_oauth:{state}", json.dumps(data), ex=_OAUTH_STATE_TTL)


async def _pop_oauth_state(state: str, settings: Settings) -> dict | None:
    """Atomically retrieve and delete OAuth state from Redis."""
    r = await _get_redis(settings)
    key = f"notion_oauth:{state}"
    pipe = r.pipeline()
    pipe.get(key)
    pipe.delete(key)
    results = await pipe.execute()
    raw = results[0]
    if raw is None:
        return None
    return json.loads(raw)


async def _require_credential(users: SqlUserStore, user_id: uuid.UUID) -> str:
    credential = await users.get_credential(user_id)
    if not credential:
        raise HTTPException(status_code=401, detail="No Notion account connected")
    return credential


def _database_title(db: dict) -> str:
    title = db.get("title") or []
    return "".join(t.get("plain_text", "") for t in title if isinstance(t, dict)) or "Untitled"


@router.post("/connect/start", response_model=NotionConnectStartResponse)
async def notion_connect_start(
    user_id: uuid.UUID = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
):
    """Begin the Notion OAuth flow. Returns the authorize URL and state."""
    state = secrets.token_urlsafe(32)
    await _store_oauth_state(
        state,
        {"user_id": str(user_id), "created_at": datetime.now(timezone.utc).isoformat()},
        settings,
    )
    return NotionConnectStartResponse(auth_url=get_notion_client(settings).authorize_url(state), state=state)


@router.post("/connect", response_model=NotionConnectResponse)
async def notion_connect(
    body: NotionConnectRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Exchange the OAuth code and store the encrypted Notion token."""
    pending = await _pop_oauth_state(body.state, settings)
    if not pending or pending.get("user_id") != str(user_id):
        raise HTTPException(status_code=400, detail="Invalid or expired state")

    try:
        token_data = await get_notion_client(settings).exchange_code(body.code)
    except NotionOAuthError as e:
        raise HTTPException(status_code=400, detail="Failed to exchange code") from e

    users = SqlUserStore(db, get_crypto_service(settings))
    profile = await users.set_credential(
        user_id,
        token_data["access_token"],
        workspace_id=token_data.get("workspace_id"),
        workspace_name=token_data.get("workspace_name"),
    )
    logger.info("Stored Notion token for user %s", user_id)
    return NotionConnectResponse(workspace_name=profile.notion_workspace_name)


@router.delete("/connect", response_model=NotionDisconnectResponse)
async def notion_disconnect(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Remove the Notion token and pause every active schedule."""
    users = SqlUserStore(db, get_crypto_service(settings))
    await users.set_credential(user_id, None)
    paused = await QuotaService(db, SqlScheduleStore(db), users).pause_all(user_id, reason="disconnect")
    logger.info("Disconnected Notion for user %s; paused %d schedule(s)", user_id, len(paused))
    return NotionDisconnectResponse(paused_schedule_ids=paused)


@router.get("/status", response_model=NotionStatusResponse)
async def notion_status(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    users = SqlUserStore(db, get_crypto_service(settings))
    profile = await users.get_profile(user_id)
    if profile is None or not profile.notion_connected:
        return NotionStatusResponse(notion_connected=False)
    return NotionStatusResponse(notion_connected=True, workspace_name=profile.notion_workspace_name)


@router.get("/databases", response_model=NotionDatabaseList)
async def list_databases(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Databases shared with the integration (first 10)."""
    credential = await _require_credential(SqlUserStore(db, get_crypto_service(settings)), user_id)
    try:
        results = await get_notion_client(settings).search_databases(credential)
    except CredentialInvalidError as e:
        raise HTTPException(status_code=401, detail="Notion access was revoked; reconnect Notion") from e
    except SourceUnavailableError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e
    return NotionDatabaseList(
        results=[NotionDatabase(id=d["id"], title=_database_title(d), url=d.get("url")) for d in results]
    )


@router.get("/databases/{db_id}/preview", response_model=NotionPreviewResponse)
async def preview_database(
    db_id: str,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """First few flattened rows of a database, as they would appear in a digest."""
    credential = await _require_credential(SqlUserStore(db, get_crypto_service(settings)), user_id)
    try:
        rows = await get_notion_client(settings).fetch_rows(db_id, credential, settings.digest_preview_row_limit)
    except CredentialInvalidError as e:
        raise HTTPException(status_code=401, detail="Notion access was revoked; reconnect Notion") from e
    except SourceUnavailableError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e
    return NotionPreviewResponse(rows=rows)
