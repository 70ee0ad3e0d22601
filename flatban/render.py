"""Plain-text views for the CLI: task table, board columns, task detail."""
from typing import List

from .schema import BoardConfig, TaskEntry, parse_timestamp
from .store import BoardIndex

COLUMN_WIDTH = 22
RULE = "═"


def format_datetime(value: str) -> str:
    """Index timestamp -> 'YYYY-MM-DD HH:MM' (UTC), or '' if unparseable."""
    dt = parse_timestamp(value)
    return dt.strftime("%Y-%m-%d %H:%M") if dt else ""


def format_task_table(rows: List[tuple]) -> str:
    lines = [
        f"{'ID':<9}  {'Title':<30} {'Column':<13} {'Priority':<10} {'Created':<16}  Modified",
        "-" * 110,
    ]
    for task_id, entry in rows:
        lines.append(
            f"{task_id:<9}  {entry.title[:30]:<30} {entry.status[:13]:<13} {entry.priority:<10} "
            f"{format_datetime(entry.created):<16}  {format_datetime(entry.modified)}"
        )
    lines.append("")
    lines.append(f"Total: {len(rows)} task(s)")
    return "\n".join(lines)


def format_board(config: BoardConfig, index: BoardIndex, compact: bool = False) -> str:
    """Columns side by side. Spacious mode puts the id above the title."""
    grouped = index.by_column(config)
    width = COLUMN_WIDTH * len(config.columns)

    header = "".join(
        f"{c.name} ({index.columns.get(c.id, 0)})".ljust(COLUMN_WIDTH) for c in config.columns
    )
    lines = [header.rstrip(), RULE * width]

    depth = max((len(tasks) for tasks in grouped.values()), default=0)
    for i in range(depth):
        cells = [grouped[c.id][i] if i < len(grouped[c.id]) else None for c in config.columns]
        if compact:
            row = ""
            for cell in cells:
                text = f"{cell[0][:7]} {cell[1].title[:12]}" if cell else ""
                row += text[: COLUMN_WIDTH - 1].ljust(COLUMN_WIDTH)
            lines.append(row.rstrip())
        else:
            lines.append("".join((cell[0] if cell else "").ljust(COLUMN_WIDTH) for cell in cells).rstrip())
            lines.append("".join(
                (cell[1].title[: COLUMN_WIDTH - 1] if cell else "").ljust(COLUMN_WIDTH) for cell in cells
            ).rstrip())
            lines.append("")

    lines.append(RULE * width)
    lines.append(f"Total: {len(index.tasks)} task(s)")
    return "\n".join(lines)


def format_task_detail(task_id: str, entry: TaskEntry, body: str) -> str:
    lines = [
        f"Task: {task_id}",
        f"Title: {entry.title}",
        f"Status: {entry.status}",
        f"Priority: {entry.priority}",
    ]
    if entry.tags:
        lines.append(f"Tags: {', '.join(entry.tags)}")
    if entry.assigned:
        lines.append(f"Assigned: {entry.assigned}")
    lines += [
        f"Created: {format_datetime(entry.created)}",
        f"Modified: {format_datetime(entry.modified)}",
        "",
        "─" * 60,
        "",
        body.strip(),
    ]
    return "\n".join(lines)
