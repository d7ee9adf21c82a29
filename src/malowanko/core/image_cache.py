"""Bounded in-process cache of coloring image data URLs.

Colorings are immutable, so a cached image never goes stale.  The cache only
saves a database round-trip; every instance of the application keeps its own
copy and nothing relies on it for correctness.
"""

from __future__ import annotations

import threading
from collections import OrderedDict


class ImageCache:
    """Least-recently-used mapping of coloring id to image data URL.

    Attributes:
        maxsize: Maximum number of cached images.  0 disables caching.
    """

    def __init__(self, maxsize: int = 256):
        if maxsize < 0:
            raise ValueError("maxsize must not be negative")
        self.maxsize = maxsize
        self._entries: OrderedDict[str, str] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, coloring_id: str) -> str | None:
        """Return the cached data URL and mark it as recently used."""
        with self._lock:
            image_url = self._entries.get(coloring_id)
            if image_url is not None:
                self._entries.move_to_end(coloring_id)
            return image_url

    def put(self, coloring_id: str, image_url: str) -> None:
        """Cache a data URL, evicting the least recently used entry if full."""
        if self.maxsize == 0:
            return
        with self._lock:
            self._entries[coloring_id] = image_url
            self._entries.move_to_end(coloring_id)
            while len(self._entries) > self.maxsize:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, coloring_id: object) -> bool:
        return coloring_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
