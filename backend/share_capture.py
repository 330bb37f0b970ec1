"""Share-surface capture: pick one shared attachment, classify it, save it.

A share carries a list of item providers. Exactly one is used, chosen by a
fixed priority (URL > image > movie > file URL > email > data > plain text).
From there the user either lets the server AI sort and save the link, or
saves to a folder of their choice, which only queues a pending record for the
main app to pick up.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import NamedTuple, Optional, Union
from urllib.parse import unquote, urlparse

from pydantic import BaseModel, Field

from media_store import SharedMediaStore, extension_for_uti
from models import PendingBookmarkPayload, SmartSaveResponse
from pending_store import PendingStore
from tuck_api import APIError, TuckServerAPI

log = logging.getLogger(__name__)

DISMISS_DELAY = 1.2  # seconds the confirmation stays up before the share closes
AI_SORTED_FOLDER = "AI Sorted"
DEFAULT_FOLDER = "Bookmarks"


class ShareError(Exception):
    """Something the user has to fix (or retry) before the share can finish."""


# ── Providers ────────────────────────────────────────────────

class ContentCategory(str, Enum):
    URL = "url"
    IMAGE = "image"
    MOVIE = "movie"
    FILE_URL = "file-url"
    MESSAGE = "message"
    DATA = "data"
    TEXT = "text"


CATEGORY_PRIORITY = [
    ContentCategory.URL,
    ContentCategory.IMAGE,
    ContentCategory.MOVIE,
    ContentCategory.FILE_URL,
    ContentCategory.MESSAGE,
    ContentCategory.DATA,
    ContentCategory.TEXT,
]

CATEGORY_IDENTIFIERS = {
    ContentCategory.URL: {"public.url"},
    ContentCategory.IMAGE: {"public.image", "public.jpeg", "public.png", "public.heic", "com.compuserve.gif",
                             "public.tiff", "com.microsoft.bmp", "org.webmproject.webp"},
    ContentCategory.MOVIE: {"public.movie", "public.video", "public.mpeg-4", "com.apple.quicktime-movie",
                             "public.avi", "public.mpeg"},
    ContentCategory.FILE_URL: {"public.file-url"},
    ContentCategory.MESSAGE: {"public.message", "public.email-message", "com.apple.mail.email"},
    ContentCategory.DATA: {"public.data", "public.content", "public.item"},
    ContentCategory.TEXT: {"public.plain-text", "public.utf8-plain-text", "public.text"},
}


def category_of(identifier: str) -> ContentCategory:
    for category in CATEGORY_PRIORITY:
        if identifier in CATEGORY_IDENTIFIERS[category]:
            return category
    # Every concrete file type (com.adobe.pdf, public.mp3, dyn.*) conforms to public.data
    return ContentCategory.DATA


class ItemProvider(BaseModel):
    """One shared attachment: its type identifiers and the loaded item."""

    type_identifiers: list[str]
    item: Optional[Union[bytes, str]] = None  # URL/text/path string, or raw bytes
    filename: Optional[str] = None

    def matching_identifier(self, category: ContentCategory) -> Optional[str]:
        return next((t for t in self.type_identifiers if category_of(t) == category), None)


def select_provider(providers: list[ItemProvider]) -> Optional[tuple[ContentCategory, ItemProvider]]:
    """First provider of the highest-priority category present, if any."""
    for category in CATEGORY_PRIORITY:
        for provider in providers:
            if provider.matching_identifier(category):
                return category, provider
    return None


# ── URL heuristics ───────────────────────────────────────────

class FolderRule(NamedTuple):
    name: str
    icon: str
    hosts: tuple[str, ...] = ()
    url_words: tuple[str, ...] = ()


FOLDER_RULES = [
    FolderRule("Videos to Watch", "play.rectangle.fill", hosts=("youtube", "vimeo", "tiktok")),
    FolderRule("Buy Later", "cart.fill", hosts=("amazon", "ebay"), url_words=("shop",)),
    FolderRule("Learn to Code", "chevron.left.forwardslash.chevron.right",
               hosts=("github", "stackoverflow"), url_words=("tutorial", "guide")),
    FolderRule("Articles to Read", "doc.text.fill", url_words=("article", "blog")),
]

DEFAULT_RULE = FolderRule(DEFAULT_FOLDER, "folder.fill")

PRESET_FOLDERS = [
    ("Learn to Code", "chevron.left.forwardslash.chevron.right"),
    ("Buy Later", "cart.fill"),
    ("Videos to Watch", "play.rectangle.fill"),
    ("Startup Ideas", "lightbulb.fill"),
    ("Design Inspiration", "paintbrush.fill"),
    ("Articles to Read", "doc.text.fill"),
]


def _host(url: str) -> str:
    if "://" not in url:
        url = "https://" + url
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def suggest_folder(url: str) -> FolderRule:
    """Match the URL's host and path against FOLDER_RULES."""
    host = _host(url)
    lowered = url.lower()
    for rule in FOLDER_RULES:
        if any(h in host for h in rule.hosts) or any(w in lowered for w in rule.url_words):
            return rule
    return DEFAULT_RULE


def determine_bookmark_type(url: str) -> str:
    lowered = url.lower()
    if any(k in lowered for k in ("youtube", "vimeo", "tiktok")):
        return "video"
    if "amazon" in lowered or "shop" in lowered:
        return "product"
    if "twitter" in lowered or "tweet" in lowered:
        return "tweet"
    return "article"


def extract_title(url: str) -> str:
    """Readable title from the host: 'www.github.com' -> 'Github'."""
    host = _host(url) if "://" in url else ""
    if not host:
        return url
    return host.replace("www.", "").replace(".com", "").title()


# ── Extraction ───────────────────────────────────────────────

class SharedContent(BaseModel):
    category: ContentCategory
    label: str  # what the share sheet shows under the preview
    preview: str = "doc"
    url: Optional[str] = None
    title: Optional[str] = None
    type_raw: str = "Other"
    suggestion: Optional[FolderRule] = None
    text: Optional[str] = None
    image: Optional[bytes] = None
    file_path: Optional[str] = None
    file_data: Optional[bytes] = None
    uti: Optional[str] = None
    filename: Optional[str] = None


def _local_path(item: str) -> Optional[Path]:
    if item.startswith("file://"):
        return Path(unquote(urlparse(item).path))
    if "://" in item:
        return None
    return Path(item)


def _read_bytes(item: Union[bytes, str, None]) -> Optional[bytes]:
    if isinstance(item, bytes):
        return item or None
    if not item:
        return None
    path = _local_path(item)
    if path is None:
        return None
    try:
        return path.read_bytes() or None
    except OSError as e:
        log.warning("Could not read shared file %s: %s", path, e)
        return None


def extract_content(category: ContentCategory, provider: ItemProvider) -> SharedContent:
    item = provider.item
    uti = provider.matching_identifier(category)

    if category == ContentCategory.URL:
        url = item.strip() if isinstance(item, str) else ""
        if not url:
            return SharedContent(category=category, label="Link")
        kind = determine_bookmark_type(url)
        return SharedContent(
            category=category,
            label=url,
            preview=_host(url) or "Link",
            url=url,
            title=extract_title(url),
            type_raw=kind.capitalize(),
            suggestion=suggest_folder(url),
        )

    if category == ContentCategory.IMAGE:
        image = _read_bytes(item)
        return SharedContent(
            category=category,
            label="Image" if image else "Image (unreadable)",
            preview="photo",
            image=image,
            type_raw="Photo",
            uti=uti,
        )

    if category == ContentCategory.FILE_URL:
        path = _local_path(item) if isinstance(item, str) else None
        return SharedContent(
            category=category,
            label=path.name if path else "File",
            file_path=str(path) if path else None,
            type_raw="Document",
            filename=provider.filename or (path.name if path else None),
        )

    if category == ContentCategory.TEXT:
        text = item.decode("utf-8", errors="replace") if isinstance(item, bytes) else item
        return SharedContent(category=category, label=text or "", preview="note.text", text=text, type_raw="Quote")

    # Movie, message and generic data are only persisted at save time
    content = SharedContent(
        category=category,
        label="Email" if category == ContentCategory.MESSAGE else "File",
        type_raw={ContentCategory.MOVIE: "Video", ContentCategory.MESSAGE: "Email"}.get(category, "Document"),
        uti=uti,
        filename=provider.filename,
    )
    if isinstance(item, bytes):
        content.file_data = item
    elif isinstance(item, str):
        path = _local_path(item)
        if path:
            content.file_path = str(path)
            content.filename = content.filename or path.name
            if category != ContentCategory.MESSAGE:
                content.label = path.name
    return content


# ── Session ──────────────────────────────────────────────────

class ShareState(str, Enum):
    IDLE = "idle"
    CONTENT_LOADED = "content_loaded"
    ANALYZING = "analyzing"
    FOLDER_SELECTED = "folder_selected"
    SAVED = "saved"
    CANCELLED = "cancelled"
    FAILED = "failed"


_ACTIONABLE = (ShareState.CONTENT_LOADED, ShareState.FOLDER_SELECTED, ShareState.FAILED)


class ShareResult(BaseModel):
    status: str = "saved"
    folder: str
    payload: PendingBookmarkPayload
    saved: Optional[SmartSaveResponse] = None
    dismiss_after: float = Field(default=DISMISS_DELAY)


class ShareSession:
    """One share-sheet invocation."""

    def __init__(self, pending: PendingStore, media: SharedMediaStore, api: TuckServerAPI):
        self.pending = pending
        self.media = media
        self.api = api
        self.state = ShareState.IDLE
        self.content: Optional[SharedContent] = None
        self.selected_folder: Optional[str] = None
        self.error_message: Optional[str] = None

    @property
    def folder_name(self) -> str:
        if self.selected_folder:
            return self.selected_folder
        if self.content and self.content.suggestion:
            return self.content.suggestion.name
        return DEFAULT_FOLDER

    def load(self, providers: list[ItemProvider]) -> Optional[SharedContent]:
        self._require(ShareState.IDLE)
        picked = select_provider(providers)
        if picked is None:
            log.info("Share had no usable attachment (%d providers)", len(providers))
            return None
        self.content = extract_content(*picked)
        self.state = ShareState.CONTENT_LOADED
        return self.content

    def select_folder(self, name: str) -> None:
        self._require(*_ACTIONABLE)
        name = (name or "").strip()
        if not name:
            raise ShareError("Folder name is required")
        self.selected_folder = name
        self.state = ShareState.FOLDER_SELECTED

    async def auto_sort_and_save(self) -> ShareResult:
        """Let the server classify and save the URL, then queue a local copy."""
        self._require(*_ACTIONABLE)
        url = self.content.url if self.content else None
        if not url:
            self.error_message = "Please share a valid URL for AI sorting"
            raise ShareError(self.error_message)

        self.state = ShareState.ANALYZING
        self.error_message = None
        try:
            saved = await self.api.analyze_and_save_bookmark(url, title=self.content.title)
        except APIError as e:
            self.state = ShareState.FAILED
            self.error_message = f"AI sorting failed: {e}"
            log.warning("AI auto-sort failed for %s: %s", url, e)
            raise ShareError(self.error_message) from e

        payload = PendingBookmarkPayload.for_url(url, self.content.title, AI_SORTED_FOLDER, self.content.type_raw)
        self.pending.append(payload)
        self.state = ShareState.SAVED
        return ShareResult(folder=AI_SORTED_FOLDER, payload=payload, saved=saved)

    def save_to_selected_folder(self) -> ShareResult:
        """Queue the capture for the main app; no network involved."""
        self._require(*_ACTIONABLE)
        folder = self.folder_name
        payload = self._build_payload(folder)
        self.pending.append(payload)
        self.state = ShareState.SAVED
        self.error_message = None
        return ShareResult(folder=folder, payload=payload)

    def cancel(self) -> None:
        self.state = ShareState.CANCELLED

    def _build_payload(self, folder: str) -> PendingBookmarkPayload:
        c = self.content
        if c is None:
            raise ShareError("Nothing to save")

        if c.url:
            return PendingBookmarkPayload.for_url(c.url, c.title, folder, c.type_raw)

        if c.image:
            try:
                asset = self.media.save_image(c.image)
            except OSError as e:
                log.error("Failed to store shared image: %s", e)
                raise self._fail("Failed to save image") from e
            return PendingBookmarkPayload.for_asset(asset, "Photo", folder, "Photo")

        if c.file_path or c.file_data:
            try:
                if c.file_path:
                    asset = self.media.copy_in(c.file_path, uti=c.uti)
                else:
                    ext = Path(c.filename).suffix.lstrip(".") if c.filename else ""
                    asset = self.media.write_data(
                        c.file_data, ext=ext or extension_for_uti(c.uti), uti=c.uti, original_filename=c.filename
                    )
            except OSError as e:
                log.error("Failed to store shared file: %s", e)
                raise self._fail("Failed to save file") from e
            return PendingBookmarkPayload.for_asset(asset, c.filename or asset.original_filename or c.label,
                                                    folder, c.type_raw)

        if c.text:
            return PendingBookmarkPayload.for_text(c.text, folder)

        raise ShareError("Nothing to save")

    def _fail(self, message: str) -> ShareError:
        self.state = ShareState.FAILED
        self.error_message = message
        return ShareError(message)

    def _require(self, *states: ShareState):
        if self.state not in states:
            raise ShareError(f"Share is {self.state.value}")
