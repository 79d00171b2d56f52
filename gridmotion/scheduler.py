"""
GLib-backed tick scheduling.

One-shot timers on the default GLib main context. Callbacks run on the
thread that iterates the main loop, so ticks for a watcher never overlap.
"""

from typing import Callable

import gi
gi.require_version('GLib', '2.0')
from gi.repository import GLib


class GLibScheduler:
    """Schedules one-shot callbacks with GLib.timeout_add."""

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> int:
        """
        Run callback once after delay_ms.

        Returns:
            GLib source id, usable with cancel()
        """
        def _fire():
            callback()
            return GLib.SOURCE_REMOVE

        return GLib.timeout_add(max(0, int(delay_ms)), _fire)

    def cancel(self, handle: int):
        """Cancel a pending callback; already-fired handles are ignored."""
        source = GLib.main_context_default().find_source_by_id(handle)
        if source is not None and not source.is_destroyed():
            GLib.source_remove(handle)
