"""Refresh triggers for ccusage-monitor.

Both triggers only call a refresh callback; coalescing and serialization
happen in UsageService.request_refresh.
"""

import logging
import threading
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

import watchfiles

logger = logging.getLogger(__name__)

RefreshCallback = Callable[[], object]


class PeriodicTicker:
    """Calls a refresh callback every ``interval`` seconds on a daemon thread."""

    def __init__(self, callback: RefreshCallback, interval: float):
        self.callback = callback
        self.interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="ccusage-ticker", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float = 1.0) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.callback()
            except RuntimeError as e:
                # Service shut down underneath the ticker
                logger.debug("Ticker stopping: %s", e)
                break


def jsonl_filter(change: watchfiles.Change, path: str) -> bool:
    """Only conversation log files trigger refreshes."""
    return path.endswith(".jsonl")


class LogWatcher:
    """Watches the log roots and requests a refresh when logs change.

    Bursts of writes within ``debounce_ms`` produce a single callback.
    """

    def __init__(
        self,
        roots: Sequence[Union[str, Path]],
        callback: RefreshCallback,
        debounce_ms: int = 500,
    ):
        self.roots = [Path(root).expanduser() for root in roots]
        self.callback = callback
        self.debounce_ms = debounce_ms
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def watched_roots(self) -> List[Path]:
        """Roots that exist now; watchfiles cannot watch missing paths."""
        return [root for root in self.roots if root.is_dir()]

    def start(self) -> bool:
        """Start watching in the background.

        Returns:
            False when no root exists (the ticker alone drives refreshes)
        """
        roots = self.watched_roots()
        if not roots:
            logger.info("No log directories to watch; relying on periodic refresh")
            return False

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._watch_loop, args=(roots,), name="ccusage-watcher", daemon=True
        )
        self._thread.start()
        return True

    def stop(self, timeout: float = 1.0) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _watch_loop(self, roots: List[Path]) -> None:
        try:
            for changes in watchfiles.watch(
                *roots,
                watch_filter=jsonl_filter,
                debounce=self.debounce_ms,
                stop_event=self._stop_event,
                recursive=True,
                raise_interrupt=False,
            ):
                logger.debug("%d log file changes", len(changes))
                self.callback()
        except (OSError, RuntimeError) as e:
            logger.warning("Log watcher stopped: %s", e)
