"""Tests for the in-memory library: concurrent folder loading and local edits."""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import httpx

from conftest import bookmark_json, folder_json, run
from library import STALE_LIMIT, BookmarkLibrary
from models import Bookmark, Folder, SmartSaveResponse

READING = "11111111-1111-1111-1111-111111111111"
VIDEOS = "44444444-4444-4444-4444-444444444444"
BROKEN = "55555555-5555-5555-5555-555555555555"


def _library(api, **kwargs):
    return BookmarkLibrary(api, **kwargs)


class TestLoadFolders:
    def test_fetches_bookmarks_per_folder(self, logged_in_api, server):
        server.on("GET", "/folders", (200, [folder_json("Reading", READING), folder_json("Videos", VIDEOS)]))
        server.on("GET", f"/folders/{READING}/bookmarks", (200, [bookmark_json("one")]))
        server.on("GET", f"/folders/{VIDEOS}/bookmarks", (200, [
            bookmark_json("two", str(uuid.uuid4())), bookmark_json("three", str(uuid.uuid4())),
        ]))
        lib = _library(logged_in_api)
        folders = run(lib.load_folders())
        assert [len(f.bookmarks) for f in folders] == [1, 2]
        assert lib.total_saves == 3
        assert lib.error_message is None
        assert not lib.is_loading

    def test_one_failing_folder_degrades_to_empty(self, logged_in_api, server):
        server.on("GET", "/folders", (200, [folder_json("Reading", READING), folder_json("Broken", BROKEN)]))
        server.on("GET", f"/folders/{READING}/bookmarks", (200, [bookmark_json()]))
        server.on("GET", f"/folders/{BROKEN}/bookmarks", (500, {"error": True, "reason": "db down"}))
        lib = _library(logged_in_api)
        folders = run(lib.load_folders())
        assert [f.name for f in folders] == ["Reading", "Broken"]
        assert len(folders[0].bookmarks) == 1
        assert folders[1].bookmarks == []
        assert lib.error_message is None

    def test_listing_failure_keeps_cache(self, logged_in_api, server):
        lib = _library(logged_in_api)
        lib.folders = [Folder(name="Cached")]
        server.on("GET", "/folders", httpx.ConnectError("offline"))
        folders = run(lib.load_folders())
        assert [f.name for f in folders] == ["Cached"]
        assert lib.error_message.startswith("Network error")

    def test_fetches_bounded_by_semaphore(self, logged_in_api, server):
        ids = [str(uuid.uuid4()) for _ in range(6)]
        server.on("GET", "/folders", (200, [folder_json(f"F{i}", fid) for i, fid in enumerate(ids)]))
        in_flight = {"now": 0, "peak": 0}

        async def slow_get_bookmarks(folder_id=None):
            in_flight["now"] += 1
            in_flight["peak"] = max(in_flight["peak"], in_flight["now"])
            await asyncio.sleep(0.01)
            in_flight["now"] -= 1
            return []

        lib = _library(logged_in_api, max_concurrent_fetches=2)
        with patch.object(logged_in_api, "get_bookmarks", new=slow_get_bookmarks):
            run(lib.load_folders())
        assert in_flight["peak"] == 2


class TestLocalEdits:
    def _loaded(self, api):
        lib = _library(api)
        lib.folders = [
            Folder(id=uuid.UUID(READING), name="Reading", bookmarks=[Bookmark(title="a"), Bookmark(title="b")]),
        ]
        return lib

    def test_toggle_complete(self, api):
        lib = self._loaded(api)
        target = lib.folders[0].bookmarks[1]
        toggled = lib.toggle_bookmark_complete(target.id)
        assert toggled.is_completed
        assert lib.folders[0].bookmarks[1].is_completed
        assert lib.folders[0].completed_count == 1
        assert not lib.toggle_bookmark_complete(target.id).is_completed

    def test_toggle_unknown(self, api):
        assert self._loaded(api).toggle_bookmark_complete(uuid.uuid4()) is None

    def test_copy_folder(self, api):
        lib = self._loaded(api)
        copy = lib.copy_folder(uuid.UUID(READING))
        assert copy.id != lib.folders[0].id
        assert copy.created_by == "You (copied from You)"
        assert len(copy.bookmarks) == 2
        assert len(lib.folders) == 2

    def test_add_to_folder_named_creates_folder(self, api):
        lib = self._loaded(api)
        folder = lib.add_to_folder_named(Bookmark(title="quote"), "Quotes")
        assert folder.name == "Quotes"
        assert [b.title for b in folder.bookmarks] == ["quote"]
        lib.add_to_folder_named(Bookmark(title="c"), "Reading")
        assert len(lib.find_folder_by_name("Reading").bookmarks) == 3

    def test_stale_bookmarks(self, api):
        now = datetime(2026, 10, 1, tzinfo=timezone.utc)
        old = now - timedelta(days=30)
        lib = _library(api)
        lib.folders = [Folder(name="Old", bookmarks=[
            Bookmark(title=f"old{i}", saved_date=old) for i in range(7)
        ] + [
            Bookmark(title="seen", saved_date=old, last_viewed=now - timedelta(days=1)),
            Bookmark(title="naive", saved_date=datetime(2026, 9, 30)),
        ])]
        stale = lib.stale_bookmarks(now)
        assert len(stale) == STALE_LIMIT
        assert all(b.title.startswith("old") for b in stale)

    def test_apply_saved_into_new_folder(self, api):
        lib = self._loaded(api)
        saved = SmartSaveResponse.model_validate({
            "bookmark": bookmark_json("new one"),
            "folder": folder_json("Videos", VIDEOS),
        })
        lib.apply_saved(saved)
        videos = lib.find_folder(uuid.UUID(VIDEOS))
        assert [b.title for b in videos.bookmarks] == ["new one"]

    def test_apply_saved_without_folder(self, api):
        lib = self._loaded(api)
        lib.apply_saved(SmartSaveResponse.model_validate({"bookmark": bookmark_json("loose")}))
        assert [b.title for b in lib.bookmarks] == ["loose"]


class TestRemoteEdits:
    def test_delete_bookmark(self, logged_in_api, server):
        lib = _library(logged_in_api)
        bookmark = Bookmark(title="gone")
        lib.folders = [Folder(name="f", bookmarks=[bookmark])]
        server.on("DELETE", f"/bookmarks/{bookmark.id}", (204, None))
        run(lib.delete_bookmark(bookmark.id))
        assert lib.folders[0].bookmarks == []

    def test_delete_bookmark_failure_keeps_it(self, logged_in_api, server):
        lib = _library(logged_in_api)
        bookmark = Bookmark(title="kept")
        lib.folders = [Folder(name="f", bookmarks=[bookmark])]
        server.on("DELETE", f"/bookmarks/{bookmark.id}", (404, {"error": True, "reason": "Not found"}))
        run(lib.delete_bookmark(bookmark.id))
        assert len(lib.folders[0].bookmarks) == 1
        assert lib.error_message == "Not found"

    def test_create_folder_reloads(self, logged_in_api, server):
        server.on("POST", "/folders", (200, folder_json("New", VIDEOS)))
        server.on("GET", "/folders", (200, [folder_json("New", VIDEOS)]))
        server.on("GET", f"/folders/{VIDEOS}/bookmarks", (200, []))
        lib = _library(logged_in_api)
        folder = run(lib.create_folder("New"))
        assert folder.name == "New"
        assert [f.name for f in lib.folders] == ["New"]

    def test_delete_selected_folder(self, logged_in_api, server):
        folder = Folder(id=uuid.UUID(READING), name="Reading")
        server.on("DELETE", f"/folders/{READING}", (204, None))
        lib = _library(logged_in_api)
        lib.folders = [folder]
        lib.selected_folder = folder
        lib.bookmarks = [Bookmark(title="x")]
        run(lib.delete_folder(folder.id))
        assert lib.folders == [] and lib.bookmarks == []
        assert lib.selected_folder is None
