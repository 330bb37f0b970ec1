"""Pending-bookmark queue handed from the share surface to the main app."""

import json
import logging

from pydantic import TypeAdapter, ValidationError

from models import PendingBookmarkPayload
from shared_store import SharedDefaults

log = logging.getLogger(__name__)

PENDING_KEY = "pendingBookmarksV2"

_payload_list = TypeAdapter(list[PendingBookmarkPayload])


class PendingStore:
    """One JSON array of PendingBookmarkPayload under a fixed key."""

    def __init__(self, defaults: SharedDefaults, key: str = PENDING_KEY):
        self.defaults = defaults
        self.key = key

    def load(self) -> list[PendingBookmarkPayload]:
        """Return queued items; absent or corrupt data reads as empty."""
        return _decode(self.defaults.get_data(self.key), self.key)

    def save(self, items: list[PendingBookmarkPayload]) -> None:
        self.defaults.set_data(self.key, _encode(items))

    def append(self, item: PendingBookmarkPayload) -> None:
        # Whole read-modify-write holds the write lock, so appends from the
        # share surface and the main app can't overwrite each other.
        with self.defaults.transaction() as tx:
            items = _decode(tx.get(self.key), self.key)
            items.append(item)
            tx.set(self.key, _encode(items))
        log.info("Queued pending %s bookmark %s for folder %r", item.kind, item.id, item.folder)

    def clear(self) -> None:
        self.defaults.remove(self.key)

    def remove(self, ids) -> None:
        """Drop the given ids, keeping anything appended since they were loaded."""
        ids = set(ids)
        with self.defaults.transaction() as tx:
            items = [i for i in _decode(tx.get(self.key), self.key) if i.id not in ids]
            if items:
                tx.set(self.key, _encode(items))
            else:
                tx.remove(self.key)


def _encode(items: list[PendingBookmarkPayload]) -> bytes:
    return json.dumps([item.to_json_dict() for item in items]).encode("utf-8")


def _decode(data: bytes | None, key: str) -> list[PendingBookmarkPayload]:
    if not data:
        return []
    try:
        return _payload_list.validate_json(data)
    except ValidationError as e:
        log.warning("Discarding unreadable pending queue %s: %s", key, e.error_count())
        return []
