"""In-memory folder/bookmark cache backed by the Tuck server.

Only the owning event loop mutates the cache, so there is no locking here.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID, uuid4

from models import Bookmark, Folder, SmartSaveResponse
from tuck_api import APIError, TuckServerAPI

log = logging.getLogger(__name__)

STALE_AFTER = timedelta(days=14)
STALE_LIMIT = 5


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


class BookmarkLibrary:
    def __init__(self, api: TuckServerAPI, max_concurrent_fetches: int = 8):
        self.api = api
        self.max_concurrent_fetches = max_concurrent_fetches
        self.folders: list[Folder] = []
        self.selected_folder: Optional[Folder] = None
        self.bookmarks: list[Bookmark] = []
        self.error_message: Optional[str] = None
        self.is_loading = False

    # ── Loaders ──────────────────────────────────────────────

    async def load_folders(self) -> list[Folder]:
        """List folders, then fetch every folder's bookmarks concurrently.

        A folder whose bookmarks fail to load keeps an empty list; only a
        failure of the folder listing itself is reported.
        """
        self.is_loading = True
        self.error_message = None
        try:
            folders = await self.api.get_folders()
        except APIError as e:
            self.error_message = str(e)
            return self.folders
        finally:
            self.is_loading = False

        semaphore = asyncio.Semaphore(self.max_concurrent_fetches)

        async def fetch(folder: Folder) -> Folder:
            async with semaphore:
                try:
                    bookmarks = await self.api.get_bookmarks(folder.id)
                except APIError as e:
                    log.warning("Loading bookmarks for folder %s failed: %s", folder.name, e)
                    bookmarks = []
            return folder.model_copy(update={"bookmarks": bookmarks})

        self.folders = list(await asyncio.gather(*(fetch(f) for f in folders)))
        return self.folders

    async def select_folder(self, folder_id: Optional[UUID]) -> list[Bookmark]:
        self.selected_folder = self.find_folder(folder_id) if folder_id else None
        if self.selected_folder is None:
            self.bookmarks = []
            return self.bookmarks
        return await self.load_bookmarks(self.selected_folder.id)

    async def load_bookmarks(self, folder_id: Optional[UUID] = None) -> list[Bookmark]:
        self.is_loading = True
        self.error_message = None
        try:
            self.bookmarks = await self.api.get_bookmarks(folder_id)
        except APIError as e:
            self.error_message = str(e)
        finally:
            self.is_loading = False
        return self.bookmarks

    # ── Lookups ──────────────────────────────────────────────

    def find_folder(self, folder_id: UUID) -> Optional[Folder]:
        return next((f for f in self.folders if f.id == folder_id), None)

    def find_folder_by_name(self, name: str) -> Optional[Folder]:
        return next((f for f in self.folders if f.name == name), None)

    def _index(self, folder_id: UUID) -> int:
        for i, folder in enumerate(self.folders):
            if folder.id == folder_id:
                return i
        raise KeyError(folder_id)

    @property
    def total_saves(self) -> int:
        return sum(len(f.bookmarks) for f in self.folders)

    def stale_bookmarks(self, now: Optional[datetime] = None) -> list[Bookmark]:
        """Up to five bookmarks not looked at for two weeks."""
        cutoff = (now or datetime.now(timezone.utc)) - STALE_AFTER
        stale = [
            b for f in self.folders for b in f.bookmarks
            if _aware(b.last_viewed or b.saved_date) < cutoff
        ]
        return stale[:STALE_LIMIT]

    # ── Mutations ────────────────────────────────────────────

    async def create_folder(self, name: str, color: Optional[str] = None) -> Optional[Folder]:
        self.error_message = None
        try:
            folder = await self.api.create_folder(name, color)
        except APIError as e:
            self.error_message = str(e)
            return None
        await self.load_folders()
        return self.find_folder(folder.id) or folder

    def add_local_folder(self, name: str, color: str = "blue", icon: str = "folder") -> Folder:
        folder = Folder(name=name, color=color, icon=icon)
        self.folders.append(folder)
        return folder

    async def update_folder(self, folder: Folder) -> None:
        self.error_message = None
        try:
            i = self._index(folder.id)
        except KeyError:
            return
        self.folders[i] = folder
        try:
            await self.api.update_folder(folder)
        except APIError as e:
            self.error_message = str(e)

    async def delete_folder(self, folder_id: UUID) -> None:
        self.error_message = None
        self.folders = [f for f in self.folders if f.id != folder_id]
        if self.selected_folder and self.selected_folder.id == folder_id:
            self.selected_folder = None
            self.bookmarks = []
        try:
            await self.api.delete_folder(folder_id)
        except APIError as e:
            self.error_message = str(e)

    def copy_folder(self, folder_id: UUID) -> Folder:
        source = self.folders[self._index(folder_id)]
        copy = source.model_copy(
            update={"id": uuid4(), "created_by": f"You (copied from {source.created_by})"}, deep=True
        )
        self.folders.append(copy)
        return copy

    def add_bookmark(self, bookmark: Bookmark, folder_id: UUID) -> None:
        i = self._index(folder_id)
        folder = self.folders[i]
        self.folders[i] = folder.model_copy(update={"bookmarks": [*folder.bookmarks, bookmark]})

    def add_to_folder_named(self, bookmark: Bookmark, name: str) -> Folder:
        """Append to the folder with this name, creating it locally if unknown."""
        folder = self.find_folder_by_name(name) or self.add_local_folder(name)
        self.add_bookmark(bookmark, folder.id)
        return self.find_folder(folder.id)

    def remove_bookmark(self, bookmark_id: UUID) -> None:
        self.folders = [
            f.model_copy(update={"bookmarks": [b for b in f.bookmarks if b.id != bookmark_id]})
            for f in self.folders
        ]
        self.bookmarks = [b for b in self.bookmarks if b.id != bookmark_id]

    async def delete_bookmark(self, bookmark_id: UUID) -> None:
        self.error_message = None
        # Asset files in Media/ are left alone; other bookmarks may share them.
        try:
            await self.api.delete_bookmark(bookmark_id)
        except APIError as e:
            self.error_message = str(e)
            return
        self.remove_bookmark(bookmark_id)

    def toggle_bookmark_complete(self, bookmark_id: UUID) -> Optional[Bookmark]:
        for i, folder in enumerate(self.folders):
            for j, bookmark in enumerate(folder.bookmarks):
                if bookmark.id == bookmark_id:
                    toggled = bookmark.model_copy(update={"is_completed": not bookmark.is_completed})
                    bookmarks = list(folder.bookmarks)
                    bookmarks[j] = toggled
                    self.folders[i] = folder.model_copy(update={"bookmarks": bookmarks})
                    return toggled
        return None

    def apply_saved(self, saved: SmartSaveResponse) -> None:
        """Merge a smart-save result into the cache."""
        if saved.folder is None:
            self.bookmarks.append(saved.bookmark)
            return
        if self.find_folder(saved.folder.id) is None:
            self.folders.append(saved.folder.model_copy(update={"bookmarks": []}))
        self.add_bookmark(saved.bookmark, saved.folder.id)
