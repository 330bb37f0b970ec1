"""Tuck local backend: share capture, pending sync and library over FastAPI."""

import base64
import binascii
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Literal, Optional
from uuid import UUID

import httpx
import uvicorn
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from app_config import load_config
from auth_store import AuthError, AuthStore
from library import BookmarkLibrary
from media_store import SharedMediaStore
from models import FolderUpdate
from pending_store import PendingStore
from share_capture import (
    PRESET_FOLDERS,
    ItemProvider,
    ShareError,
    ShareSession,
    determine_bookmark_type,
    extract_title,
    suggest_folder,
)
from shared_store import SharedDefaults
from sync import sync_pending_bookmarks
from tuck_api import APIError, NotAuthenticatedError, TuckServerAPI

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
log = logging.getLogger(__name__)

config = load_config()

defaults: SharedDefaults
pending: PendingStore
media: SharedMediaStore
api: TuckServerAPI
library: BookmarkLibrary
auth: AuthStore


def configure(container: str | Path, api_base_url: str, suite: Optional[str] = None,
              transport: httpx.AsyncBaseTransport | None = None):
    """(Re)build the shared-container stores and the server client."""
    global defaults, pending, media, api, library, auth
    defaults = SharedDefaults(container, suite or config["app_group"])
    pending = PendingStore(defaults)
    media = SharedMediaStore(container)
    api = TuckServerAPI(api_base_url, defaults, timeout=config["request_timeout"], transport=transport)
    library = BookmarkLibrary(api, max_concurrent_fetches=config["max_concurrent_fetches"])
    auth = AuthStore(api, defaults)


def _init_container():
    container = Path(config["shared_container"])
    container.mkdir(parents=True, exist_ok=True)
    configure(container, config["api_base_url"])


_init_container()


async def _foreground_sync():
    """What the app does when it comes to the foreground signed in."""
    await library.load_folders()
    return await sync_pending_bookmarks(pending, api, library)


@asynccontextmanager
async def lifespan(app: FastAPI):
    auth.restore_session()
    if api.is_logged_in:
        await _foreground_sync()
    yield
    await api.aclose()


app = FastAPI(title="Tuck", version="1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def _api_error(e: APIError) -> HTTPException:
    if isinstance(e, NotAuthenticatedError):
        return HTTPException(401, str(e))
    return HTTPException(502, str(e))


def _check_library():
    if library.error_message:
        raise HTTPException(502, library.error_message)


# ── Models ───────────────────────────────────────────────────

class ProviderIn(BaseModel):
    type_identifiers: list[str]
    item: Optional[str] = None  # URL, text or file path
    data_base64: Optional[str] = None  # raw bytes for images/attachments
    filename: Optional[str] = None

class ShareRequest(BaseModel):
    providers: list[ProviderIn]
    action: Literal["save", "auto-sort"] = "save"
    folder: Optional[str] = None

class BookmarkRequest(BaseModel):
    url: str
    title: Optional[str] = None
    notes: Optional[str] = None

class SmartSortIn(BaseModel):
    text: str
    user_examples: Optional[str] = None

class FolderIn(BaseModel):
    name: str
    color: Optional[str] = None

class Credentials(BaseModel):
    email: str
    password: str


def _to_provider(p: ProviderIn) -> ItemProvider:
    item = p.item
    if p.data_base64 is not None:
        try:
            item = base64.b64decode(p.data_base64, validate=True)
        except binascii.Error:
            raise HTTPException(400, "data_base64 is not valid base64")
    return ItemProvider(type_identifiers=p.type_identifiers, item=item, filename=p.filename)


# ── Share ────────────────────────────────────────────────────

@app.post("/api/share")
async def share(req: ShareRequest):
    """Receive one share-sheet invocation and save it."""
    session = ShareSession(pending, media, api)
    content = session.load([_to_provider(p) for p in req.providers])
    if content is None:
        raise HTTPException(400, "Nothing to save")

    try:
        if req.folder:
            session.select_folder(req.folder)
        if req.action == "auto-sort":
            result = await session.auto_sort_and_save()
        else:
            result = session.save_to_selected_folder()
    except ShareError as e:
        status = 502 if isinstance(e.__cause__, APIError) else 400
        raise HTTPException(status, str(e))

    return {
        **result.model_dump(mode="json", by_alias=True),
        "state": session.state.value,
        "label": content.label,
        "preview": content.preview,
    }


@app.get("/api/share/suggest-folder")
def share_suggest_folder(url: str = Query(...)):
    rule = suggest_folder(url)
    return {
        "folder": rule.name,
        "icon": rule.icon,
        "type": determine_bookmark_type(url).capitalize(),
        "title": extract_title(url),
    }


@app.get("/api/share/folders")
def share_folders():
    return [{"name": name, "icon": icon} for name, icon in PRESET_FOLDERS]


# ── Pending queue ────────────────────────────────────────────

@app.get("/api/pending")
def list_pending():
    return [item.to_json_dict() for item in pending.load()]


@app.delete("/api/pending")
def clear_pending():
    pending.clear()
    return {"status": "cleared"}


@app.post("/api/sync")
async def sync():
    if not api.is_logged_in:
        # Queue stays put until there is a session to sync it with
        raise _api_error(NotAuthenticatedError())
    report = await sync_pending_bookmarks(pending, api, library)
    return report.model_dump()


# ── Folders ──────────────────────────────────────────────────

@app.get("/api/folders")
async def list_folders():
    folders = await library.load_folders()
    _check_library()
    return {
        "folders": [f.to_json_dict() for f in folders],
        "total_saves": library.total_saves,
    }


@app.post("/api/folders")
async def create_folder(req: FolderIn):
    folder = await library.create_folder(req.name, req.color)
    if folder is None:
        _check_library()
    return folder.to_json_dict()


@app.put("/api/folders/{folder_id}")
async def update_folder(folder_id: UUID, req: FolderUpdate):
    folder = library.find_folder(folder_id)
    if folder is None:
        raise HTTPException(404, "Folder not found")
    updated = folder.model_copy(update=req.model_dump(exclude_unset=True))
    await library.update_folder(updated)
    _check_library()
    return updated.to_json_dict()


@app.delete("/api/folders/{folder_id}")
async def delete_folder(folder_id: UUID):
    await library.delete_folder(folder_id)
    _check_library()
    return {"id": str(folder_id), "status": "deleted"}


@app.post("/api/folders/{folder_id}/copy")
def copy_folder(folder_id: UUID):
    if library.find_folder(folder_id) is None:
        raise HTTPException(404, "Folder not found")
    return library.copy_folder(folder_id).to_json_dict()


# ── Bookmarks ────────────────────────────────────────────────
# Static routes before /api/bookmarks/{bookmark_id}

@app.get("/api/bookmarks")
async def list_bookmarks(folder_id: Optional[UUID] = None):
    bookmarks = await library.load_bookmarks(folder_id)
    _check_library()
    return [b.to_json_dict() for b in bookmarks]


@app.get("/api/bookmarks/stale")
def stale_bookmarks():
    return [b.to_json_dict() for b in library.stale_bookmarks()]


@app.post("/api/bookmarks/analyze")
async def analyze_bookmark(req: BookmarkRequest):
    try:
        result = await api.analyze_bookmark(req.url, req.title, req.notes)
    except APIError as e:
        raise _api_error(e)
    return result.to_json_dict()


@app.post("/api/bookmarks/smart-save")
async def smart_save(req: BookmarkRequest):
    try:
        saved = await api.analyze_and_save_bookmark(req.url, req.title, req.notes)
    except APIError as e:
        raise _api_error(e)
    library.apply_saved(saved)
    return saved.to_json_dict()


@app.delete("/api/bookmarks/{bookmark_id}")
async def delete_bookmark(bookmark_id: UUID):
    await library.delete_bookmark(bookmark_id)
    _check_library()
    return {"id": str(bookmark_id), "status": "deleted"}


@app.post("/api/bookmarks/{bookmark_id}/complete")
def toggle_complete(bookmark_id: UUID):
    bookmark = library.toggle_bookmark_complete(bookmark_id)
    if bookmark is None:
        raise HTTPException(404, "Bookmark not found")
    return {"id": str(bookmark_id), "is_completed": bookmark.is_completed}


@app.post("/api/smart-sort")
async def smart_sort(req: SmartSortIn):
    try:
        result = await api.smart_sort(req.text, req.user_examples)
    except APIError as e:
        raise _api_error(e)
    return result.to_json_dict()


# ── Auth ─────────────────────────────────────────────────────

@app.post("/api/auth/login")
async def login(req: Credentials):
    try:
        user = await auth.sign_in(req.email, req.password)
    except APIError as e:
        raise _api_error(e)
    report = await _foreground_sync()
    return {"user": user.to_json_dict(), "sync": report.model_dump()}


@app.post("/api/auth/register")
async def register(req: Credentials):
    try:
        user = await auth.sign_up(req.email, req.password)
    except AuthError as e:
        raise HTTPException(400, str(e))
    except APIError as e:
        raise _api_error(e)
    return {"user": user.to_json_dict()}


@app.post("/api/auth/logout")
def logout():
    auth.sign_out()
    return {"status": "signed_out"}


@app.get("/api/auth/session")
def session():
    user = auth.user or auth.restore_session()
    return {
        "logged_in": auth.is_logged_in,
        "user": user.to_json_dict() if user else None,
    }


if __name__ == "__main__":
    log.info("Starting Tuck backend on port %d", config["backend_port"])
    uvicorn.run(app, host=config["backend_host"], port=config["backend_port"])
