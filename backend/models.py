"""Pydantic models for Tuck: server DTOs and shared-container records.

Wire and on-disk JSON uses camelCase keys; snake_case is accepted on input.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


def _relaxed(cls, value, handler, info: ValidationInfo):
    """Fall back to the field's declared default when a value doesn't parse."""
    try:
        return handler(value)
    except ValidationError:
        field = cls.model_fields[info.field_name]
        return field.get_default(call_default_factory=True)


# ── Enums ────────────────────────────────────────────────────

class BookmarkType(str, Enum):
    ARTICLE = "Article"
    VIDEO = "Video"
    PRODUCT = "Product"
    TWEET = "Tweet"
    QUOTE = "Quote"
    DOCUMENT = "Document"
    PHOTO = "Photo"
    SCREENSHOT = "Screenshot"
    EMAIL = "Email"
    OTHER = "Other"

    @classmethod
    def from_raw(cls, raw: str | None) -> "BookmarkType":
        """Case-insensitive lookup; unknown labels map to OTHER."""
        for member in cls:
            if raw and member.value.lower() == raw.strip().lower():
                return member
        return cls.OTHER

    @property
    def estimated_read_time(self) -> int:
        return _READ_TIMES.get(self, 5)


_READ_TIMES = {
    BookmarkType.ARTICLE: 8,
    BookmarkType.VIDEO: 15,
    BookmarkType.PRODUCT: 5,
    BookmarkType.TWEET: 1,
    BookmarkType.QUOTE: 1,
    BookmarkType.DOCUMENT: 20,
}


class FolderOutcome(str, Enum):
    LEARN = "Learn"
    BUY = "Buy"
    WATCH = "Watch"
    READ = "Read"
    RESEARCH = "Research"
    INSPIRATION = "Inspiration"
    REFERENCE = "Reference"


class ReminderContext(str, Enum):
    AT_HOME = "At Home"
    AT_SCHOOL = "At School"
    OPEN_YOUTUBE = "When opening YouTube"
    OPEN_CHROME = "When opening Chrome"
    TWO_WEEKS = "In 2 weeks if not opened"
    WEEKEND = "This weekend"
    CUSTOM = "Custom"


# ── Library ──────────────────────────────────────────────────

class BookmarkAsset(CamelModel):
    id: UUID = Field(default_factory=uuid4)
    relative_path: str  # path inside the shared Media/ dir ("A1B2C3.jpg")
    thumbnail_relative_path: Optional[str] = None
    uti: str
    original_filename: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class OpposingView(CamelModel):
    id: UUID = Field(default_factory=uuid4)
    title: str
    url: str
    summary: str


class Bookmark(CamelModel):
    """Server bookmark. Everything except id and title is relaxed."""

    id: UUID = Field(default_factory=uuid4)
    title: str
    type: BookmarkType = BookmarkType.OTHER
    url: Optional[str] = None  # whitespace-only -> None
    image_url: Optional[str] = Field(default=None, alias="imageURL")
    assets: list[BookmarkAsset] = Field(default_factory=list)
    estimated_read_time: int = 0
    estimated_skim_time: int = 0
    notes: str = ""
    ai_summary: str = ""
    saved_date: datetime = Field(default_factory=utcnow)
    last_viewed: Optional[datetime] = None
    tags: list[str] = Field(default_factory=list)
    is_completed: bool = False
    reminder_date: Optional[datetime] = None
    reminder_context: Optional[ReminderContext] = None
    saved_by_count: int = 0
    key_quote: Optional[str] = None
    opposing_views: list[OpposingView] = Field(default_factory=list)

    @field_validator(
        "type", "image_url", "assets", "estimated_read_time", "estimated_skim_time",
        "notes", "ai_summary", "saved_date", "last_viewed", "tags", "is_completed",
        "reminder_date", "reminder_context", "saved_by_count", "key_quote", "opposing_views",
        mode="wrap",
    )
    @classmethod
    def fall_back_to_default(cls, value, handler, info: ValidationInfo):
        return _relaxed(cls, value, handler, info)

    @field_validator("url", mode="before")
    @classmethod
    def blank_url_to_none(cls, value):
        if not isinstance(value, str):
            return None
        value = value.strip()
        return value or None


class Folder(CamelModel):
    """Server folder. Only id and name are required to parse."""

    id: UUID = Field(default_factory=uuid4)
    name: str
    description: str = ""
    bookmarks: list[Bookmark] = Field(default_factory=list)
    is_public: bool = False
    color: str = "blue"
    icon: str = "folder"
    created_by: str = "You"
    saved_by_count: int = 0
    is_popular: bool = False
    collaborators: list[str] = Field(default_factory=list)
    outcome: FolderOutcome = FolderOutcome.LEARN

    @field_validator(
        "description", "bookmarks", "is_public", "color", "icon", "created_by",
        "saved_by_count", "is_popular", "collaborators", "outcome",
        mode="wrap",
    )
    @classmethod
    def fall_back_to_default(cls, value, handler, info: ValidationInfo):
        return _relaxed(cls, value, handler, info)

    @property
    def completed_count(self) -> int:
        return sum(1 for b in self.bookmarks if b.is_completed)

    @property
    def progress_percentage(self) -> float:
        if not self.bookmarks:
            return 0.0
        return self.completed_count / len(self.bookmarks) * 100

    @property
    def total_estimated_time(self) -> int:
        return sum(b.estimated_read_time for b in self.bookmarks)


# ── Pending queue ────────────────────────────────────────────

PendingKind = Literal["url", "text", "asset"]

_CONTENT_FIELD = {"url": "url", "text": "text", "asset": "asset_relative_path"}


class PendingBookmarkPayload(CamelModel):
    """A capture from the share surface waiting for the main app."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    kind: PendingKind
    title: str
    folder: str
    type_raw: str

    url: Optional[str] = None
    text: Optional[str] = None

    asset_relative_path: Optional[str] = None
    asset_uti: Optional[str] = Field(default=None, alias="assetUTI")
    asset_filename: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def check_content_matches_kind(self):
        populated = [name for name in _CONTENT_FIELD.values() if getattr(self, name) is not None]
        if populated != [_CONTENT_FIELD[self.kind]]:
            raise ValueError(f"kind={self.kind} requires exactly {_CONTENT_FIELD[self.kind]}, got {populated}")
        return self

    @classmethod
    def for_url(cls, url: str, title: str, folder: str, type_raw: str) -> "PendingBookmarkPayload":
        return cls(kind="url", title=title, folder=folder, type_raw=type_raw, url=url)

    @classmethod
    def for_text(cls, text: str, folder: str, title: str = "Text", type_raw: str = "Quote") -> "PendingBookmarkPayload":
        return cls(kind="text", title=title, folder=folder, type_raw=type_raw, text=text)

    @classmethod
    def for_asset(cls, asset: BookmarkAsset, title: str, folder: str, type_raw: str) -> "PendingBookmarkPayload":
        return cls(
            kind="asset",
            title=title,
            folder=folder,
            type_raw=type_raw,
            asset_relative_path=asset.relative_path,
            asset_uti=asset.uti,
            asset_filename=asset.original_filename,
        )


# ── Server API DTOs ──────────────────────────────────────────

class AIAnalysisResult(CamelModel):
    folders: list[str]
    deadline: Optional[str] = None  # ISO 8601
    price: Optional[float] = None
    summary: str


class SmartSaveResponse(CamelModel):
    bookmark: Bookmark
    folder: Optional[Folder] = None
    analysis: Optional[AIAnalysisResult] = None


class RegisterRequest(CamelModel):
    email: str
    password: str


class LoginRequest(CamelModel):
    email: str
    password: str


class PublicUser(CamelModel):
    id: UUID
    email: str


class AuthResponse(CamelModel):
    token: str
    user: PublicUser


class AppUser(CamelModel):
    id: str
    email: str


class SmartSortRequest(CamelModel):
    text: str
    user_examples: Optional[str] = None


class SmartSaveRequest(CamelModel):
    url: str
    title: Optional[str] = None
    notes: Optional[str] = None


class FolderCreate(CamelModel):
    name: str
    color: Optional[str] = None


class FolderUpdate(CamelModel):
    name: str
    description: str = ""
    is_public: bool = False
    color: str = "blue"
    icon: str = "folder"
    outcome: FolderOutcome = FolderOutcome.LEARN


class ErrorResponse(CamelModel):
    error: bool
    reason: str
