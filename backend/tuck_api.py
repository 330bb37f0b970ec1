"""Client for the Tuck server API (auth, folders, bookmarks, smart sort)."""

import logging
from typing import Any, Optional
from uuid import UUID

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from models import (
    AIAnalysisResult,
    AuthResponse,
    Bookmark,
    ErrorResponse,
    Folder,
    FolderCreate,
    FolderUpdate,
    LoginRequest,
    RegisterRequest,
    SmartSaveRequest,
    SmartSaveResponse,
    SmartSortRequest,
)
from shared_store import SharedDefaults

log = logging.getLogger(__name__)

TOKEN_KEY = "authToken"

_folder_list = TypeAdapter(list[Folder])
_bookmark_list = TypeAdapter(list[Bookmark])


# ── Errors ───────────────────────────────────────────────────

class APIError(Exception):
    message = "Unknown API error"

    def __str__(self):
        return self.message


class InvalidURLError(APIError):
    message = "Invalid server URL"


class InvalidResponseError(APIError):
    message = "Invalid response from server"


class NotAuthenticatedError(APIError):
    message = "You must be logged in to perform this action"


class NetworkError(APIError):
    def __init__(self, cause: Exception):
        super().__init__(cause)
        self.message = f"Network error: {cause}"


class DecodingError(APIError):
    def __init__(self, detail: str):
        super().__init__(detail)
        self.message = f"Could not read server response: {detail}"


class StatusCodeError(APIError):
    def __init__(self, status_code: int):
        super().__init__(status_code)
        self.status_code = status_code
        self.message = f"Server error (code: {status_code})"


class ServerError(APIError):
    def __init__(self, reason: str, status_code: int | None = None):
        super().__init__(reason)
        self.status_code = status_code
        self.message = reason


# ── Client ───────────────────────────────────────────────────

class TuckServerAPI:
    """Async client; the bearer token is read from the shared namespace on every call."""

    def __init__(self, base_url: str, defaults: SharedDefaults, timeout: float = 30,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.defaults = defaults
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def aclose(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    # Token storage

    @property
    def token(self) -> str | None:
        return self.defaults.get_string(TOKEN_KEY)

    @token.setter
    def token(self, value: str | None):
        self.defaults.set_string(TOKEN_KEY, value)

    @property
    def is_logged_in(self) -> bool:
        return self.token is not None

    # Authentication

    async def register(self, email: str, password: str) -> AuthResponse:
        data = await self._request("POST", "/auth/register", RegisterRequest(email=email, password=password))
        response = _decode(AuthResponse, data)
        self.token = response.token
        return response

    async def login(self, email: str, password: str) -> AuthResponse:
        data = await self._request("POST", "/auth/login", LoginRequest(email=email, password=password))
        response = _decode(AuthResponse, data)
        self.token = response.token
        return response

    def logout(self):
        self.token = None

    # Folders

    async def get_folders(self) -> list[Folder]:
        return _decode(_folder_list, await self._request("GET", "/folders", requires_auth=True))

    async def create_folder(self, name: str, color: str | None = None) -> Folder:
        data = await self._request("POST", "/folders", FolderCreate(name=name, color=color), requires_auth=True)
        return _decode(Folder, data)

    async def update_folder(self, folder: Folder) -> Folder:
        body = FolderUpdate(
            name=folder.name,
            description=folder.description,
            is_public=folder.is_public,
            color=folder.color,
            icon=folder.icon,
            outcome=folder.outcome,
        )
        data = await self._request("PUT", f"/folders/{folder.id}", body, requires_auth=True)
        return _decode(Folder, data)

    async def delete_folder(self, folder_id: UUID) -> None:
        await self._request("DELETE", f"/folders/{folder_id}", requires_auth=True)

    # Bookmarks

    async def get_bookmarks(self, folder_id: UUID | None = None) -> list[Bookmark]:
        path = f"/folders/{folder_id}/bookmarks" if folder_id else "/bookmarks"
        return _decode(_bookmark_list, await self._request("GET", path, requires_auth=True))

    async def delete_bookmark(self, bookmark_id: UUID) -> None:
        await self._request("DELETE", f"/bookmarks/{bookmark_id}", requires_auth=True)

    # Smart sort

    async def smart_sort(self, text: str, user_examples: str | None = None) -> AIAnalysisResult:
        body = SmartSortRequest(text=text, user_examples=user_examples)
        return _decode(AIAnalysisResult, await self._request("POST", "/smart-sort", body, requires_auth=True))

    async def analyze_bookmark(self, url: str, title: str | None = None,
                               notes: str | None = None) -> AIAnalysisResult:
        """Preview-only classification of a URL; nothing is saved."""
        text = f"{title}\n{url}" if title else url
        return await self.smart_sort(text, user_examples=notes)

    async def analyze_and_save_bookmark(self, url: str, title: str | None = None,
                                        notes: str | None = None) -> SmartSaveResponse:
        """Classify and persist server-side in one call."""
        body = SmartSaveRequest(url=url, title=title, notes=notes)
        data = await self._request("POST", "/bookmarks/smart-save", body, requires_auth=True)
        return _decode(SmartSaveResponse, data)

    # Request plumbing

    async def _request(self, method: str, path: str, body: Optional[BaseModel] = None,
                       requires_auth: bool = False) -> bytes:
        headers = {"Content-Type": "application/json"}
        if requires_auth:
            token = self.token
            if token is None:
                raise NotAuthenticatedError()
            headers["Authorization"] = f"Bearer {token}"

        url = self._url(path)
        content = body.model_dump_json(by_alias=True) if body is not None else None

        try:
            resp = await self._client.request(method, url, headers=headers, content=content)
        except httpx.HTTPError as e:
            log.warning("%s %s failed: %s", method, path, e)
            raise NetworkError(e) from e

        if not resp.is_success:
            log.warning("%s %s returned %d: %s", method, path, resp.status_code, resp.text[:300])
            try:
                envelope = ErrorResponse.model_validate_json(resp.content)
            except ValidationError:
                raise StatusCodeError(resp.status_code) from None
            raise ServerError(envelope.reason, resp.status_code)

        return resp.content

    def _url(self, path: str) -> httpx.URL:
        try:
            url = httpx.URL(self.base_url + path)
        except httpx.InvalidURL as e:
            raise InvalidURLError() from e
        if url.scheme not in ("http", "https") or not url.host:
            raise InvalidURLError()
        return url


def _decode(target: Any, data: bytes):
    if not data.strip():
        raise InvalidResponseError()
    adapter = target if isinstance(target, TypeAdapter) else TypeAdapter(target)
    try:
        return adapter.validate_json(data)
    except ValidationError as e:
        raise DecodingError(f"{e.error_count()} invalid field(s)") from e
