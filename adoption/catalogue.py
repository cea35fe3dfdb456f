"""Tool catalogue: caches active tools read from the storage boundary."""

from __future__ import annotations

import logging
import threading
import time

from adoption.models import Tool
from adoption.store import EngagementStore

logger = logging.getLogger(__name__)


class ToolCatalogue:
    """Read-through cache of the active tool catalogue.

    The catalogue is loaded on the first call to :meth:`refresh` and can be
    kept fresh by a background daemon thread started with
    :meth:`start_refresh_loop`.  A failed refresh keeps the previous cache
    so recommendation cycles continue to work.

    All public methods are thread-safe.

    Args:
        store: Storage boundary exposing ``active_tools()``.
        refresh_interval_seconds: How often the background thread refreshes
            the cache. Defaults to 300 (5 minutes).
    """

    def __init__(self, store: EngagementStore, refresh_interval_seconds: int = 300) -> None:
        self._store = store
        self._refresh_interval = refresh_interval_seconds
        self._lock = threading.RLock()
        self._tools: dict[str, Tool] = {}
        self._refresh_thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def refresh(self) -> None:
        """Reload active tools from the store and replace the cache.

        On failure, logs the error and preserves the existing cache.
        """
        try:
            new_tools = {t.tool_id: t for t in self._store.active_tools() if t.status == "active"}
            with self._lock:
                self._tools = new_tools
            logger.info("Tool catalogue refreshed: %d active tools loaded.", len(new_tools))
        except Exception:
            logger.exception(
                "Failed to refresh tool catalogue; keeping existing %d tools.",
                len(self._tools),
            )

    def start_refresh_loop(self) -> None:
        """Start a background daemon thread that periodically calls :meth:`refresh`.

        Safe to call multiple times; only one refresh thread is started.
        """
        if self._refresh_thread is not None and self._refresh_thread.is_alive():
            return
        self._refresh_thread = threading.Thread(
            target=self._refresh_loop,
            name="catalogue-refresh",
            daemon=True,
        )
        self._refresh_thread.start()
        logger.debug("Catalogue refresh loop started (interval=%ds).", self._refresh_interval)

    def get_active_tools(self) -> list[Tool]:
        """Return a snapshot list of all cached active tools."""
        with self._lock:
            return list(self._tools.values())

    def get_tool(self, tool_id: str) -> Tool | None:
        with self._lock:
            return self._tools.get(tool_id)

    def get_all_categories(self) -> list[str]:
        """Return the sorted unique categories across cached tools."""
        with self._lock:
            return sorted({t.category for t in self._tools.values()})

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _refresh_loop(self) -> None:
        """Periodically refresh the catalogue. Runs in a daemon thread."""
        while True:
            time.sleep(self._refresh_interval)
            self.refresh()
