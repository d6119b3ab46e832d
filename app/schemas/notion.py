"""Notion connection and database schemas."""

import uuid
from typing import Any

from pydantic import BaseModel


class NotionConnectStartResponse(BaseModel):
    auth_url: str
    state: str


class NotionConnectRequest(BaseModel):
    code: str
    state: str


class NotionConnectResponse(BaseModel):
    success: bool = True
    workspace_name: str | None = None


class NotionDisconnectResponse(BaseModel):
    success: bool = True
    paused_schedule_ids: list[uuid.UUID] = []


class NotionStatusResponse(BaseModel):
    notion_connected: bool
    workspace_name: str | None = None


class NotionDatabase(BaseModel):
    id: str
    title: str
    url: str | None = None


class NotionDatabaseList(BaseModel):
    results: list[NotionDatabase]


class NotionPreviewResponse(BaseModel):
    rows: list[dict[str, Any]]
