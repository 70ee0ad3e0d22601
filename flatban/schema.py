"""
Typed documents for the task board.

The on-disk config and index are loose, hand-editable documents. They are
turned into these dataclasses once, at load time, with every default
applied here rather than at each access site.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

INDEX_VERSION = "1.0"
DEFAULT_BOARD_NAME = "My Project Board"
UNTITLED_BOARD = "Untitled Board"
FALLBACK_PRIORITY = "medium"

DEFAULT_COLUMNS = [
    ("backlog", "Backlog"),
    ("todo", "To Do"),
    ("in-progress", "In Progress"),
    ("review", "Review"),
    ("done", "Done"),
]
DEFAULT_PRIORITIES = ["low", "medium", "high", "critical"]


# ── Timestamps ───────────────────────────────────────────────────────────────


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """ISO-8601 UTC with milliseconds and a Z suffix (2024-05-01T09:30:00.000Z)."""
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an index timestamp. Returns None for null or garbage."""
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def timestamp_ms(dt: datetime) -> int:
    """Whole milliseconds since the epoch, the resolution last_sync is stored at."""
    return int(dt.timestamp() * 1000)


def history_stamp(dt: datetime) -> str:
    """Minute-resolution stamp used in task History lines."""
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M")


# ── Board configuration ──────────────────────────────────────────────────────


@dataclass
class Column:
    id: str
    name: str

    @staticmethod
    def default_name(column_id: str) -> str:
        """in-progress -> In Progress"""
        return " ".join(w.capitalize() for w in column_id.split("-"))


@dataclass
class NotificationSettings:
    """Viewer notification rules. Unknown keys ride along in `extra`."""
    enabled: bool = False
    all_changes: bool = False
    notify_columns: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    def should_notify(self, action: Optional[str], to_column: Optional[str]) -> bool:
        if not self.enabled:
            return False
        if self.all_changes:
            return True
        if action == "move" and to_column:
            return to_column in self.notify_columns
        return False

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "enabled": self.enabled,
            "all_changes": self.all_changes,
            "notify_columns": list(self.notify_columns),
        }
        data.update(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "NotificationSettings":
        data = dict(data or {})
        columns = data.pop("notify_columns", [])
        if isinstance(columns, str):
            columns = [c.strip() for c in columns.split(",") if c.strip()]
        return cls(
            enabled=bool(data.pop("enabled", False)),
            all_changes=bool(data.pop("all_changes", False)),
            notify_columns=list(columns or []),
            extra=data,
        )


@dataclass
class BoardConfig:
    """Board-level settings from .flatban/config.yaml."""
    name: str = DEFAULT_BOARD_NAME
    columns: List[Column] = field(default_factory=list)
    priorities: List[str] = field(default_factory=list)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def default(cls, name: str = DEFAULT_BOARD_NAME) -> "BoardConfig":
        return cls(
            name=name,
            columns=[Column(cid, cname) for cid, cname in DEFAULT_COLUMNS],
            priorities=list(DEFAULT_PRIORITIES),
        )

    @property
    def column_ids(self) -> List[str]:
        return [c.id for c in self.columns]

    @property
    def default_priority(self) -> str:
        """'medium' when the vocabulary has it, else the first entry."""
        if FALLBACK_PRIORITY in self.priorities or not self.priorities:
            return FALLBACK_PRIORITY
        return self.priorities[0]

    @property
    def default_column(self) -> str:
        if "todo" in self.column_ids or not self.columns:
            return "todo"
        return self.columns[0].id

    def column(self, column_id: str) -> Optional[Column]:
        for c in self.columns:
            if c.id == column_id:
                return c
        return None

    def column_name(self, column_id: str) -> str:
        c = self.column(column_id)
        return c.name if c else "unknown"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name}
        data.update(self.extra)
        data["columns"] = [{"id": c.id, "name": c.name} for c in self.columns]
        data["priorities"] = list(self.priorities)
        data["notifications"] = self.notifications.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BoardConfig":
        data = dict(data)
        columns = []
        for raw in data.pop("columns", None) or []:
            if isinstance(raw, dict) and raw.get("id"):
                cid = str(raw["id"])
                columns.append(Column(cid, str(raw.get("name") or Column.default_name(cid))))
            elif isinstance(raw, str) and raw:
                columns.append(Column(raw, Column.default_name(raw)))
        return cls(
            name=str(data.pop("name", None) or DEFAULT_BOARD_NAME),
            columns=columns,
            priorities=[str(p) for p in data.pop("priorities", None) or []],
            notifications=NotificationSettings.from_dict(data.pop("notifications", None)),
            extra=data,
        )


# ── Tasks ────────────────────────────────────────────────────────────────────


@dataclass
class TaskRecord:
    """A decoded task file: metadata header plus free-form body."""
    id: str
    title: str
    priority: str
    tags: List[str] = field(default_factory=list)
    assigned: str = ""
    body: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TaskEntry:
    """One task's row in the index cache."""
    file: str
    title: str
    status: str
    priority: str
    tags: List[str] = field(default_factory=list)
    assigned: str = ""
    created: str = ""
    modified: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file": self.file,
            "title": self.title,
            "status": self.status,
            "priority": self.priority,
            "tags": list(self.tags),
            "assigned": self.assigned,
            "created": self.created,
            "modified": self.modified,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskEntry":
        tags = data.get("tags") or []
        if isinstance(tags, str):
            tags = [t.strip() for t in tags.split(",") if t.strip()]
        return cls(
            file=str(data.get("file", "")),
            title=str(data.get("title") or "Untitled"),
            status=str(data.get("status", "")),
            priority=str(data.get("priority") or FALLBACK_PRIORITY),
            tags=[str(t) for t in tags],
            assigned=str(data.get("assigned") or ""),
            created=str(data.get("created") or ""),
            modified=str(data.get("modified") or ""),
        )
