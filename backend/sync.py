"""Drain the pending queue into the library when the main app starts.

Delivery is at-most-once: every record gets one attempt and is removed from
the queue afterwards whether or not the attempt succeeded. Records queued
while the sync runs stay for the next one.
"""

import logging

from pydantic import BaseModel

from library import BookmarkLibrary
from models import Bookmark, BookmarkAsset, BookmarkType, PendingBookmarkPayload
from pending_store import PendingStore
from tuck_api import TuckServerAPI

log = logging.getLogger(__name__)

SHARE_SHEET_SUMMARY = "Added from share sheet"


class SyncReport(BaseModel):
    total: int = 0
    saved: int = 0
    added_locally: int = 0
    failed: int = 0


def bookmark_from_pending(item: PendingBookmarkPayload) -> Bookmark:
    kind = BookmarkType.from_raw(item.type_raw)
    assets = []
    if item.asset_relative_path and item.asset_uti:
        assets.append(BookmarkAsset(
            relative_path=item.asset_relative_path,
            uti=item.asset_uti,
            original_filename=item.asset_filename,
        ))
    read_time = kind.estimated_read_time
    return Bookmark(
        id=item.id,
        title=item.title,
        type=kind,
        url=item.url,
        assets=assets,
        notes=item.text or "",
        estimated_read_time=read_time,
        estimated_skim_time=max(1, read_time // 3),
        ai_summary=SHARE_SHEET_SUMMARY,
        saved_date=item.created_at,
    )


async def sync_pending_bookmarks(store: PendingStore, api: TuckServerAPI, library: BookmarkLibrary) -> SyncReport:
    items = store.load()
    report = SyncReport(total=len(items))
    if not items:
        return report

    log.info("Syncing %d pending bookmark(s)", len(items))
    for item in items:
        try:
            if item.kind == "url":
                saved = await api.analyze_and_save_bookmark(item.url, title=item.title)
                library.apply_saved(saved)
                report.saved += 1
            else:
                library.add_to_folder_named(bookmark_from_pending(item), item.folder)
                report.added_locally += 1
        except Exception as e:
            # One bad record must not block the rest of the batch
            log.warning("Dropping pending %s bookmark %s: %s", item.kind, item.id, e)
            report.failed += 1

    store.remove(item.id for item in items)
    log.info("Pending sync done: %d saved, %d local, %d dropped",
             report.saved, report.added_locally, report.failed)
    return report
