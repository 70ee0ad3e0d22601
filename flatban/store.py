"""
Index cache storage (.flatban/index.json).

The index is a derived, disposable view of the task files: which tasks
exist, what their headers say, and how many sit in each column. It can
always be rebuilt from a directory scan (see sync.py), so a missing or
corrupted file is never an error here.
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .errors import AmbiguousError, NotFoundError
from .paths import PathLike, index_path, write_text_atomic
from .schema import (
    INDEX_VERSION,
    UNTITLED_BOARD,
    BoardConfig,
    TaskEntry,
    format_timestamp,
    parse_timestamp,
    utc_now,
)

logger = logging.getLogger(__name__)


@dataclass
class BoardIndex:
    """In-memory index: id -> entry, plus per-column counts."""
    version: str = INDEX_VERSION
    board_name: str = UNTITLED_BOARD
    last_sync: Optional[str] = None
    tasks: Dict[str, TaskEntry] = field(default_factory=dict)
    columns: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def empty(cls, board_name: str = UNTITLED_BOARD, column_ids: Iterable[str] = ()) -> "BoardIndex":
        return cls(board_name=board_name, columns={cid: 0 for cid in column_ids})

    # ── Lookup ───────────────────────────────────────────────────────────

    @property
    def last_sync_at(self) -> Optional[datetime]:
        return parse_timestamp(self.last_sync)

    def get(self, task_id: str) -> Optional[TaskEntry]:
        return self.tasks.get(task_id)

    def resolve(self, partial_id: str) -> str:
        """Full id for a unique prefix.

        An exact id is not preferred over longer ids sharing it as a prefix;
        that case is ambiguous like any other.
        """
        matches = [tid for tid in self.tasks if tid.startswith(partial_id)]
        if not matches:
            raise NotFoundError(f"No task found matching: {partial_id}")
        if len(matches) > 1:
            raise AmbiguousError(partial_id, matches)
        return matches[0]

    # ── Entry maintenance (counts follow entries) ────────────────────────

    def add(self, task_id: str, entry: TaskEntry) -> None:
        self.tasks[task_id] = entry
        self.columns[entry.status] = self.columns.get(entry.status, 0) + 1

    def relocate(self, task_id: str, to_column: str, file: str, modified: str) -> str:
        """Point an entry at a new column; returns the column it left."""
        entry = self.tasks[task_id]
        from_column = entry.status
        entry.status = to_column
        entry.file = file
        entry.modified = modified
        self._decrement(from_column)
        self.columns[to_column] = self.columns.get(to_column, 0) + 1
        return from_column

    def remove(self, task_id: str) -> TaskEntry:
        entry = self.tasks.pop(task_id)
        self._decrement(entry.status)
        return entry

    def _decrement(self, column_id: str) -> None:
        self.columns[column_id] = max(0, self.columns.get(column_id, 0) - 1)

    # ── Queries ──────────────────────────────────────────────────────────

    def filter(
        self,
        column: Optional[str] = None,
        priority: Optional[str] = None,
        tag: Optional[str] = None,
        assigned: Optional[str] = None,
    ) -> List[tuple]:
        """(id, entry) pairs matching every given filter, newest-modified first."""
        rows = list(self.tasks.items())
        if column:
            rows = [r for r in rows if r[1].status == column]
        if priority:
            rows = [r for r in rows if r[1].priority == priority]
        if tag:
            rows = [r for r in rows if tag in r[1].tags]
        if assigned:
            rows = [r for r in rows if r[1].assigned == assigned]
        rows.sort(key=lambda r: r[1].modified, reverse=True)
        return rows

    def by_column(self, config: BoardConfig, newest_first: bool = False) -> Dict[str, List[tuple]]:
        """Configured column id -> (id, entry) pairs, in index order or newest-modified first."""
        grouped: Dict[str, List[tuple]] = {cid: [] for cid in config.column_ids}
        for task_id, entry in self.tasks.items():
            if entry.status in grouped:
                grouped[entry.status].append((task_id, entry))
        if newest_first:
            for rows in grouped.values():
                rows.sort(key=lambda r: r[1].modified, reverse=True)
        return grouped

    # ── Serialization ────────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "board_name": self.board_name,
            "last_sync": self.last_sync,
            "tasks": {tid: e.to_dict() for tid, e in self.tasks.items()},
            "columns": dict(self.columns),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BoardIndex":
        tasks = data.get("tasks") or {}
        columns = data.get("columns") or {}
        return cls(
            version=str(data.get("version") or INDEX_VERSION),
            board_name=str(data.get("board_name") or UNTITLED_BOARD),
            last_sync=data.get("last_sync") or None,
            tasks={str(tid): TaskEntry.from_dict(e) for tid, e in tasks.items() if isinstance(e, dict)},
            columns={str(cid): int(n) for cid, n in columns.items()},
        )


class IndexStore:
    """Loads and persists the index cache for one board root."""

    def __init__(self, board_root: PathLike):
        self.board_root = board_root
        self.path = index_path(board_root)

    def load(self) -> BoardIndex:
        """Read the index. Missing or unreadable files give an empty, never-synced index."""
        if not self.path.exists():
            return BoardIndex.empty()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("top level is not an object")
            return BoardIndex.from_dict(data)
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"index.json is corrupted ({e}), will rebuild")
            return BoardIndex.empty()

    def save(self, index: BoardIndex) -> None:
        """Persist the index, stamping last_sync.

        Saving claims the index matches the filesystem as of now, so call it
        only after the file change it reflects has completed.
        """
        index.last_sync = format_timestamp(utc_now())
        write_text_atomic(self.path, self.dumps(index))

    @staticmethod
    def dumps(index: BoardIndex) -> str:
        return json.dumps(index.to_dict(), indent=2, ensure_ascii=False)
