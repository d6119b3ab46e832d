"""Notion API client: OAuth code exchange, database search and row fetching."""

import logging
from typing import Any, Callable

import httpx

from app.config import Settings
from app.services.interfaces import CredentialInvalidError, Row, RowSource, SourceUnavailableError

logger = logging.getLogger(__name__)

NOTION_API_URL = "https://api.notion.com/v1"
NOTION_AUTH_URL = f"{NOTION_API_URL}/oauth/authorize"
NOTION_TOKEN_URL = f"{NOTION_API_URL}/oauth/token"


class NotionOAuthError(Exception):
    """The OAuth code could not be exchanged for an access token."""


# --- Property flattening ---


def _first_plain_text(fragments: Any) -> str:
    if isinstance(fragments, list) and fragments:
        text = fragments[0].get("plain_text") if isinstance(fragments[0], dict) else None
        if isinstance(text, str):
            return text
    return ""


def _named(value: Any) -> str:
    if isinstance(value, dict) and isinstance(value.get("name"), str):
        return value["name"]
    return ""


def _join_names(items: Any, fallback_key: str | None = None) -> str:
    if not isinstance(items, list):
        return ""
    names = []
    for item in items:
        if not isinstance(item, dict):
            continue
        name = item.get("name") or (item.get(fallback_key) if fallback_key else None)
        if name:
            names.append(str(name))
    return ", ".join(names)


def _number(value: Any) -> int | float | None | str:
    if value is None or (isinstance(value, (int, float)) and not isinstance(value, bool)):
        return value
    return ""


def _checkbox(value: Any) -> str:
    if isinstance(value, bool):
        return "Yes" if value else "No"
    return ""


def _date_start(value: Any) -> str:
    if isinstance(value, dict) and isinstance(value.get("start"), str):
        return value["start"]
    return ""


def _plain_string(value: Any) -> str:
    return value if isinstance(value, str) else ""


_FLATTENERS: dict[str, Callable[[Any], Any]] = {
    "title": _first_plain_text,
    "rich_text": _first_plain_text,
    "select": _named,
    "multi_select": _join_names,
    "number": _number,
    "checkbox": _checkbox,
    "date": _date_start,
    "people": lambda v: _join_names(v, fallback_key="id"),
    "email": _plain_string,
    "url": _plain_string,
    "phone_number": _plain_string,
}


def flatten_property(prop: Any) -> Any:
    """Reduce one Notion property value to a scalar; unknown shapes become ""."""
    if not isinstance(prop, dict) or not isinstance(prop.get("type"), str):
        return ""
    flattener = _FLATTENERS.get(prop["type"])
    if flattener is None:
        return ""
    return flattener(prop.get(prop["type"]))


def flatten_properties(properties: dict[str, Any]) -> Row:
    return {key: flatten_property(prop) for key, prop in (properties or {}).items()}


# --- API client ---


class NotionClient(RowSource):
    """Thin async wrapper over the Notion REST API."""

    def __init__(self, settings: Settings, timeout: float = 10.0) -> None:
        self._settings = settings
        self._timeout = timeout

    def _headers(self, credential: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {credential}",
            "Notion-Version": self._settings.notion_api_version,
            "Content-Type": "application/json",
        }

    async def _post(self, path: str, credential: str, payload: dict) -> dict:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    f"{NOTION_API_URL}{path}", json=payload, headers=self._headers(credential)
                )
        except httpx.TimeoutException as e:
            raise SourceUnavailableError("Notion request timed out") from e
        except httpx.HTTPError as e:
            raise SourceUnavailableError(f"Notion request failed: {type(e).__name__}") from e

        if response.status_code in (401, 403):
            raise CredentialInvalidError("Notion rejected the access token")
        if response.status_code != 200:
            logger.warning("Notion %s returned %d: %s", path, response.status_code, response.text[:200])
            raise SourceUnavailableError(f"Notion returned {response.status_code}")
        return response.json()

    async def fetch_rows(self, source_id: str, credential: str, limit: int) -> list[Row]:
        data = await self._post(f"/databases/{source_id}/query", credential, {"page_size": limit})
        return [flatten_properties(page.get("properties", {})) for page in data.get("results", [])]

    async def search_databases(self, credential: str, page_size: int = 10) -> list[dict]:
        data = await self._post(
            "/search",
            credential,
            {"filter": {"property": "object", "value": "database"}, "page_size": page_size},
        )
        return data.get("results", [])

    def authorize_url(self, state: str) -> str:
        params = httpx.QueryParams(
            client_id=self._settings.notion_client_id,
            redirect_uri=self._settings.notion_redirect_uri,
            response_type="code",
            owner="user",
            state=state,
        )
        return f"{NOTION_AUTH_URL}?{params}"

    async def exchange_code(self, code: str) -> dict:
        """Exchange an OAuth authorization code for an access token payload."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    NOTION_TOKEN_URL,
                    json={
                        "grant_type": "authorization_code",
                        "code": code,
                        "redirect_uri": self._settings.notion_redirect_uri,
                    },
                    auth=(
                        self._settings.notion_client_id,
                        self._settings.notion_client_secret.get_secret_value(),
                    ),
                )
        except httpx.HTTPError as e:
            raise NotionOAuthError(f"Token exchange request failed: {type(e).__name__}") from e

        if response.status_code != 200:
            logger.error("Notion token exchange failed (%d): %s", response.status_code, response.text[:200])
            raise NotionOAuthError("Failed to exchange code")
        data = response.json()
        if not data.get("access_token"):
            raise NotionOAuthError("Token response missing access_token")
        return data


def get_notion_client(settings: Settings) -> NotionClient:
    return NotionClient(settings, timeout=settings.external_call_timeout_seconds)
