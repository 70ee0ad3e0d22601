"""
Board operations: the unit-of-work layer over config, index and task files.

Every mutation has the same shape:

    read config + read index -> change the filesystem -> change the index -> save the index

Board.unit_of_work() owns that flow. The filesystem change always finishes
before the index is touched, and the index is only saved when the
operation marked it changed, so a failed or no-op operation leaves the
cache file alone.

Within one process a Board runs its operations one at a time: every
operation holds the board's lock from loading the index to saving it, so
the server's request threads never interleave their read-modify-write.

There is no cross-process lock. Two processes moving the same task at once
race on the rename and the index save; the loser's update is lost and
`flatban sync` repairs the counts.
"""
import logging
import random
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional

from .codec import (
    DEFAULT_TEMPLATE,
    append_history,
    decode,
    is_quoted,
    render_template,
    task_filename,
)
from .config import load_config, save_config
from .errors import NotFoundError, ValidationError
from .ids import generate_task_id
from .paths import (
    PathLike,
    board_dir,
    column_dir,
    config_path,
    relative_task_path,
    template_path,
    write_text_atomic,
)
from .schema import BoardConfig, TaskEntry, TaskRecord, format_timestamp, utc_now
from .store import BoardIndex, IndexStore
from .sync import SyncResult, ensure_fresh, rebuild_index

logger = logging.getLogger(__name__)

TAG_FORBIDDEN = set(",[]")


@dataclass
class UnitOfWork:
    """Config and index loaded for one operation."""
    config: BoardConfig
    index: BoardIndex
    dirty: bool = False

    def mark_dirty(self) -> None:
        self.dirty = True


@dataclass
class MoveResult:
    task_id: str
    title: str
    from_column: str
    to_column: str
    to_column_name: str
    moved: bool
    last_sync: Optional[str] = None


@dataclass
class DeleteResult:
    task_id: str
    title: str
    column: str
    last_sync: Optional[str] = None


@dataclass
class TaskDetail:
    task_id: str
    entry: TaskEntry
    record: TaskRecord


def _mtime(path: Path) -> str:
    return format_timestamp(datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc))


def clean_assigned(assigned: Optional[str]) -> str:
    assigned = " ".join((assigned or "").split())
    if is_quoted(assigned):
        raise ValidationError(f"Invalid assignee: {assigned!r} (may not be wrapped in quotes)")
    return assigned


def clean_tags(tags: Optional[Iterable[str]]) -> List[str]:
    cleaned: List[str] = []
    for tag in tags or []:
        tag = " ".join(tag.split())
        if not tag:
            continue
        if TAG_FORBIDDEN & set(tag):
            raise ValidationError(f"Invalid tag: {tag!r} (tags may not contain , [ or ])")
        if is_quoted(tag):
            raise ValidationError(f"Invalid tag: {tag!r} (tags may not be wrapped in quotes)")
        if tag not in cleaned:
            cleaned.append(tag)
    return cleaned


class Board:
    """All operations on one board root."""

    def __init__(
        self,
        root: PathLike = ".",
        store: Optional[IndexStore] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.root = Path(root)
        self.store = store or IndexStore(self.root)
        self.rng = rng
        self.clock = clock
        # Reentrant: show() calls snapshot() while holding it
        self._lock = threading.RLock()

    # ── Shared flow ──────────────────────────────────────────────────────

    @contextmanager
    def unit_of_work(self) -> Iterator[UnitOfWork]:
        """Load config and index, run the caller's change, save the index if it changed.

        A never-synced index is rebuilt first rather than trusted. The board
        lock is held throughout.
        """
        with self._lock:
            config = load_config(self.root)
            index = self.store.load()
            if index.last_sync is None:
                index = rebuild_index(config, self.root).index
            uow = UnitOfWork(config=config, index=index)
            yield uow
            if uow.dirty:
                self.store.save(uow.index)

    def _template(self) -> str:
        path = template_path(self.root)
        if path.exists():
            return path.read_text(encoding="utf-8")
        logger.warning(f"{path} missing, using the built-in template")
        return DEFAULT_TEMPLATE

    # ── Setup ────────────────────────────────────────────────────────────

    def init(self, name: Optional[str] = None) -> BoardConfig:
        """Create the board skeleton: column dirs, config, template, empty index."""
        with self._lock:
            if config_path(self.root).exists():
                raise ValidationError("Flatban board already initialized in this directory")

            config = BoardConfig.default(name) if name else BoardConfig.default()
            for cid in config.column_ids:
                column_dir(self.root, cid).mkdir(parents=True, exist_ok=True)
            save_config(config, self.root)
            write_text_atomic(template_path(self.root), DEFAULT_TEMPLATE)
            self.store.save(BoardIndex.empty(config.name, config.column_ids))

        logger.info(f"Initialized board {config.name!r} at {board_dir(self.root)}")
        return config

    # ── Mutations ────────────────────────────────────────────────────────

    def create(
        self,
        title: str,
        column: Optional[str] = None,
        priority: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        assigned: str = "",
        description: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> str:
        """Write a new task file and index it. Returns the new id."""
        title = " ".join((title or "").split())
        if not title:
            raise ValidationError("Task title required")
        tags = clean_tags(tags)
        assigned = clean_assigned(assigned)

        with self.unit_of_work() as uow:
            config, index = uow.config, uow.index
            column = column or config.default_column
            priority = priority or config.default_priority
            if column not in config.column_ids:
                raise ValidationError(f"Invalid column: {column}", config.column_ids)
            if priority not in config.priorities:
                raise ValidationError(f"Invalid priority: {priority}", config.priorities)

            now = self.clock()
            task_id = generate_task_id(index.tasks, rng=self.rng, clock=now.timestamp)
            filename = task_filename(task_id, title)
            path = column_dir(self.root, column) / filename

            write_text_atomic(path, render_template(
                self._template(),
                task_id=task_id,
                title=title,
                priority=priority,
                tags=tags,
                assigned=assigned,
                created=now,
                description=description,
                notes=notes,
            ))

            index.add(task_id, TaskEntry(
                file=relative_task_path(column, filename),
                title=title,
                status=column,
                priority=priority,
                tags=tags,
                assigned=assigned,
                created=format_timestamp(now.replace(second=0, microsecond=0)),
                modified=_mtime(path),
            ))
            uow.mark_dirty()

        logger.info(f"Created task {task_id} in {column}")
        return task_id

    def move(self, task_ref: str, target: str) -> MoveResult:
        """Move a task's file to another column and record it in History.

        Moving to the column the task is already in succeeds without touching
        the file, the counts or the index file.
        """
        with self.unit_of_work() as uow:
            config, index = uow.config, uow.index
            task_id = index.resolve(task_ref)
            if target not in config.column_ids:
                raise ValidationError(f"Invalid column: {target}", config.column_ids)

            entry = index.get(task_id)
            from_column = entry.status
            target_name = config.column_name(target)
            if from_column == target:
                return MoveResult(task_id, entry.title, from_column, target, target_name,
                                  moved=False, last_sync=index.last_sync)

            old_path = self.root / entry.file
            if not old_path.exists():
                raise NotFoundError(
                    f"Task file not found: {entry.file}. Run 'flatban sync' to rebuild index."
                )
            new_path = column_dir(self.root, target) / old_path.name
            new_path.parent.mkdir(parents=True, exist_ok=True)
            old_path.rename(new_path)
            write_text_atomic(new_path, append_history(
                new_path.read_text(encoding="utf-8"), f"Moved to {target_name}", self.clock()
            ))

            index.relocate(task_id, target, relative_task_path(target, new_path.name), _mtime(new_path))
            uow.mark_dirty()

        logger.info(f"Moved {task_id} from {from_column} to {target}")
        return MoveResult(task_id, entry.title, from_column, target, target_name,
                          moved=True, last_sync=uow.index.last_sync)

    def delete(self, task_ref: str) -> DeleteResult:
        """Remove a task's file (already gone is fine) and its index entry."""
        with self.unit_of_work() as uow:
            index = uow.index
            task_id = index.resolve(task_ref)
            entry = index.get(task_id)
            (self.root / entry.file).unlink(missing_ok=True)
            index.remove(task_id)
            uow.mark_dirty()

        logger.info(f"Deleted task {task_id} from {entry.status}")
        return DeleteResult(task_id, entry.title, entry.status, last_sync=uow.index.last_sync)

    # ── Reads ────────────────────────────────────────────────────────────

    def sync(self) -> SyncResult:
        """Full rebuild from the task files, persisted."""
        with self._lock:
            config = load_config(self.root)
            result = rebuild_index(config, self.root)
            self.store.save(result.index)
        return result

    def snapshot(self) -> tuple:
        """(config, index) with the index re-validated against the files."""
        with self._lock:
            config = load_config(self.root)
            return config, ensure_fresh(self.root, config, self.store)

    def list_tasks(
        self,
        column: Optional[str] = None,
        priority: Optional[str] = None,
        tag: Optional[str] = None,
        assigned: Optional[str] = None,
    ) -> List[tuple]:
        config, index = self.snapshot()
        if column and column not in config.column_ids:
            raise ValidationError(f"Invalid column: {column}", config.column_ids)
        return index.filter(column=column, priority=priority, tag=tag, assigned=assigned)

    def show(self, task_ref: str) -> TaskDetail:
        """Index entry plus the decoded file. A bad file is an error here, not a warning."""
        with self._lock:
            config, index = self.snapshot()
            task_id = index.resolve(task_ref)
            entry = index.get(task_id)
            path = self.root / entry.file
            if not path.exists():
                raise NotFoundError(f"Task file not found: {entry.file}. Run 'flatban sync' to rebuild index.")
            record = decode(path.read_text(encoding="utf-8"), config.default_priority)
        return TaskDetail(task_id=task_id, entry=entry, record=record)
