"""
Task file codec.

A task file is a `---` delimited metadata header followed by free markdown:

    ---
    id: k3f1x2abc
    title: "Fix login bug"
    priority: high
    tags: [auth, web]
    assigned: alice
    ---

    ## Description
    ...
    ## History
    - 2024-05-01 09:30: Task created

Everything here is a pure text transformation; callers do the file I/O.
"""
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .errors import ParseError
from .schema import FALLBACK_PRIORITY, TaskRecord, history_stamp

FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)(.*)\Z", re.DOTALL)
FIELD_RE = re.compile(r"^(\w+):\s*(.+)$")
CREATED_RE = re.compile(r"^- (\d{4}-\d{2}-\d{2} \d{2}:\d{2}): Task created", re.MULTILINE)
PLACEHOLDER_RE = re.compile(r"\{(id|title|priority|tags|assigned|datetime)\}")

LIST_FIELDS = ("tags",)

DEFAULT_TEMPLATE = """---
id: {id}
title: "{title}"
priority: {priority}
tags: {tags}
assigned: {assigned}
---

## Description



## Notes



## History
- {datetime}: Task created
"""


# ── Header values ────────────────────────────────────────────────────────────


def is_quoted(value: str) -> bool:
    """True for a value wrapped in one matching pair of quotes."""
    return len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'"


def _unquote(value: str) -> str:
    return value[1:-1] if is_quoted(value) else value


def parse_list(value: str) -> List[str]:
    """`[a, b]` -> ['a', 'b'], dropping blanks and repeats."""
    value = value.strip()
    if value.startswith("["):
        value = re.sub(r"^\[|\]$", "", value)
    items: List[str] = []
    for raw in value.split(","):
        item = _unquote(raw.strip())
        if item and item not in items:
            items.append(item)
    return items


def format_list(items: Iterable[str]) -> str:
    items = list(items)
    return f"[{', '.join(items)}]" if items else "[]"


def parse_header(text: str) -> Dict[str, Any]:
    """Parse the lines between the `---` markers into a flat dict."""
    parsed: Dict[str, Any] = {}
    for line in text.splitlines():
        m = FIELD_RE.match(line.strip())
        if not m:
            continue
        key, value = m.group(1), m.group(2).strip()
        if key in LIST_FIELDS:
            parsed[key] = parse_list(value)
        else:
            parsed[key] = _unquote(value)
    return parsed


# ── Encode / decode ──────────────────────────────────────────────────────────


def decode(text: str, default_priority: str = FALLBACK_PRIORITY) -> TaskRecord:
    """Split a task file into its header fields and body.

    Raises ParseError if there is no metadata block. Missing fields get
    explicit defaults rather than None.
    """
    m = FRONTMATTER_RE.match(text)
    if not m:
        raise ParseError("No valid frontmatter found")

    header = parse_header(m.group(1))
    tags = header.pop("tags", [])
    if isinstance(tags, str):
        tags = parse_list(tags)

    return TaskRecord(
        id=str(header.pop("id", "") or ""),
        title=str(header.pop("title", "") or "Untitled"),
        priority=str(header.pop("priority", "") or default_priority),
        tags=tags,
        assigned=str(header.pop("assigned", "") or ""),
        body=m.group(2),
        extra=header,
    )


def encode(record: TaskRecord) -> str:
    lines = [
        "---",
        f"id: {record.id}",
        f'title: "{record.title}"',
        f"priority: {record.priority}",
        f"tags: {format_list(record.tags)}",
        f"assigned: {record.assigned}",
    ]
    for key, value in record.extra.items():
        if isinstance(value, list):
            value = format_list(value)
        lines.append(f"{key}: {value}")
    lines.append("---")
    return "\n".join(lines) + "\n" + record.body


# ── Templates and history ────────────────────────────────────────────────────


def slugify(text: str) -> str:
    """Filename-safe slug: lowercase ASCII words joined by hyphens, max 50 chars."""
    slug = text.lower()
    slug = re.sub(r"[^\w\s-]", "", slug, flags=re.ASCII)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug[:50]


def task_filename(task_id: str, title: str) -> str:
    return f"{task_id}-{slugify(title)}.md"


def render_template(
    template: str,
    task_id: str,
    title: str,
    priority: str,
    tags: Iterable[str],
    assigned: str,
    created: datetime,
    description: Optional[str] = None,
    notes: Optional[str] = None,
) -> str:
    """Fill a task template's placeholders and optional Description/Notes text."""
    values = {
        "id": task_id,
        "title": title,
        "priority": priority,
        "tags": format_list(tags),
        "assigned": assigned,
        "datetime": history_stamp(created),
    }
    text = PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], template)

    if description:
        text = text.replace("## Description\n\n\n", f"## Description\n\n{description}\n", 1)
    if notes:
        text = text.replace("## Notes\n\n\n", f"## Notes\n\n{notes}\n", 1)
    return text


def append_history(text: str, message: str, when: datetime) -> str:
    """Append `- YYYY-MM-DD HH:MM: message` to the end of a task file."""
    if text and not text.endswith("\n"):
        text += "\n"
    return f"{text}- {history_stamp(when)}: {message}\n"


def history_created_at(body: str) -> Optional[datetime]:
    """Creation time recorded by the `Task created` history line, if any."""
    m = CREATED_RE.search(body)
    if not m:
        return None
    return datetime.strptime(m.group(1), "%Y-%m-%d %H:%M").replace(tzinfo=timezone.utc)
