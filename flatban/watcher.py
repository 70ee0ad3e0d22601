"""
Board watcher: turns raw filesystem activity under .flatban/ into
debounced change events for the broadcaster.

A single CLI move touches several entries in quick succession (rename,
temp file, replace), so raw events are coalesced: one ChangeEvent is
produced once the board has been quiet for `quiet_ms`. Writes to the
index file are ignored, otherwise every rebuild would announce itself.

    watchdog Observer -> BoardChangeHandler -> DebouncedChanges -> pump thread -> ChangeBroadcaster
"""
import logging
import threading
import time
from pathlib import Path
from typing import Iterator, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .config import load_config
from .errors import FlatbanError
from .events import ChangeBroadcaster, ChangeEvent
from .paths import INDEX_FILE, TMP_SUFFIX, PathLike, board_dir

logger = logging.getLogger(__name__)

WATCHED_EVENT_TYPES = {"created", "modified", "moved", "deleted"}


def is_ignored(path: str) -> bool:
    """The index file and atomic-write temp files never count as board changes."""
    name = Path(path).name
    return name == INDEX_FILE or name.endswith(TMP_SUFFIX)


class DebouncedChanges:
    """Event source: raw paths in, one coalesced ChangeEvent per burst out."""

    def __init__(self, quiet_ms: int = 100):
        self.quiet_secs = quiet_ms / 1000
        self._cond = threading.Condition()
        self._pending = 0
        self._last_change = 0.0
        self._closed = False

    def observe(self, path: str) -> bool:
        """Record a raw change. Returns False if the path is ignored."""
        if is_ignored(path):
            return False
        with self._cond:
            self._pending += 1
            self._last_change = time.monotonic()
            self._cond.notify_all()
        return True

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        return self._closed

    def events(self) -> Iterator[ChangeEvent]:
        """Lazily yield one event per burst, until close()."""
        while True:
            with self._cond:
                while not self._pending and not self._closed:
                    self._cond.wait()
                if self._closed:
                    return
                while not self._closed:
                    remaining = self._last_change + self.quiet_secs - time.monotonic()
                    if remaining <= 0:
                        break
                    self._cond.wait(timeout=remaining)
                if self._closed:
                    return
                burst, self._pending = self._pending, 0
            logger.debug(f"Coalesced {burst} filesystem change(s)")
            yield ChangeEvent.filesystem()


class BoardChangeHandler(FileSystemEventHandler):
    """Feeds watchdog file events into a DebouncedChanges source."""

    def __init__(self, changes: DebouncedChanges):
        self.changes = changes

    def on_any_event(self, fs_event: FileSystemEvent):
        if fs_event.is_directory or fs_event.event_type not in WATCHED_EVENT_TYPES:
            return
        paths = [fs_event.src_path, getattr(fs_event, "dest_path", "")]
        for path in filter(None, paths):
            if not self.changes.observe(str(path)):
                logger.debug(f"Ignoring change to {path}")


class BoardWatcher:
    """Watches one board and broadcasts a change event after each quiet burst."""

    def __init__(self, board_root: PathLike, broadcaster: ChangeBroadcaster, debounce_ms: int = 100):
        self.board_root = Path(board_root)
        self.broadcaster = broadcaster
        self.changes = DebouncedChanges(debounce_ms)
        self._observer: Optional[Observer] = None
        self._pump_thread: Optional[threading.Thread] = None

    def start(self) -> bool:
        """Start watching. Returns False (and logs) if the board dir can't be watched."""
        watch_path = board_dir(self.board_root)
        observer = Observer()
        try:
            observer.schedule(BoardChangeHandler(self.changes), str(watch_path), recursive=True)
            observer.start()
        except OSError as e:
            logger.warning(f"Could not watch {watch_path}: {e}")
            return False

        self._observer = observer
        self._pump_thread = threading.Thread(target=self._pump, name="flatban-watch", daemon=True)
        self._pump_thread.start()
        logger.info(f"Watching {watch_path} for changes")
        return True

    def stop(self) -> None:
        self.changes.close()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
        if self._pump_thread is not None:
            self._pump_thread.join(timeout=5)
            self._pump_thread = None
        logger.info("Watcher stopped")

    def _pump(self) -> None:
        for event in self.changes.events():
            try:
                config = load_config(self.board_root)
                event.notify = config.notifications.should_notify(None, None)
            except FlatbanError as e:
                logger.warning(f"Broadcasting without notification rules: {e}")
            logger.info("Filesystem change detected, broadcasting update")
            self.broadcaster.broadcast(event)
