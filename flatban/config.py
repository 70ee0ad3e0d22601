"""
Board config store (.flatban/config.yaml).

The file is hand-edited, so it is read with a small line-oriented parser
that understands exactly what the board writes: flat `key: value` pairs,
`- ` list items, column entries (`- id:` + `name:`) and one level of
nested mapping such as `notifications:`. Anything else is skipped.
Keys the board doesn't know about are kept and written back on save.
"""
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import NotFoundError, NotInitializedError, ValidationError
from .paths import PathLike, config_path, write_text_atomic
from .schema import BoardConfig, Column

logger = logging.getLogger(__name__)

KEY_RE = re.compile(r"^([\w.-]+):(?:\s*(.*))?$")
ITEM_RE = re.compile(r"^-\s+(.*)$")
INT_RE = re.compile(r"^-?\d+$")

NOTIFY_COMMENTS = {
    "enabled": "# Enable/disable browser notifications",
    "all_changes": "# Notify on all task changes (moves, creates, deletes)",
}


# ── Scalars ──────────────────────────────────────────────────────────────────


def _strip_comment(raw: str) -> str:
    raw = raw.strip()
    if raw.startswith(("\"", "'")):
        quote = raw[0]
        end = raw.find(quote, 1)
        if end != -1:
            return raw[: end + 1]
        return raw
    if raw.startswith("#"):
        return ""
    return re.split(r"\s+#", raw, maxsplit=1)[0].strip()


def parse_scalar(raw: str) -> Any:
    value = _strip_comment(raw)
    if value.startswith(("\"", "'")):
        return value.strip("\"'")
    if value.startswith("[") and value.endswith("]"):
        inner = value[1:-1]
        return [v.strip().strip("\"'") for v in inner.split(",") if v.strip()]
    if value in ("true", "false"):
        return value == "true"
    if INT_RE.match(value):
        return int(value)
    return value


def format_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return f"[{', '.join(str(v) for v in value)}]"
    if isinstance(value, int):
        return str(value)
    text = str(value)
    if text == "" or "#" in text or ":" in text or text != text.strip():
        return f'"{text}"'
    return text


# ── Parse ────────────────────────────────────────────────────────────────────


def parse_config_text(content: str) -> Dict[str, Any]:
    """Parse the restricted config format into a plain dict. Never raises."""
    data: Dict[str, Any] = {}
    section: Optional[str] = None
    subkey: Optional[str] = None
    subkey_indent = 0

    for line in content.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        indent = len(line) - len(line.lstrip())

        if indent == 0:
            subkey = None
            m = KEY_RE.match(stripped)
            if not m:
                section = None
                logger.debug(f"config: skipping line {stripped!r}")
                continue
            key, raw = m.group(1), _strip_comment(m.group(2) or "")
            if raw:
                data[key] = parse_scalar(raw)
                section = None
            else:
                section = key
            continue

        if section is None:
            continue

        item = ITEM_RE.match(stripped)

        if section == "columns":
            columns = data.setdefault("columns", [])
            if item:
                m = KEY_RE.match(item.group(1))
                if m and m.group(1) == "id" and m.group(2):
                    cid = str(parse_scalar(m.group(2)))
                    columns.append({"id": cid, "name": Column.default_name(cid)})
                elif not m:
                    cid = str(parse_scalar(item.group(1)))
                    columns.append({"id": cid, "name": Column.default_name(cid)})
                continue
            m = KEY_RE.match(stripped)
            if m and m.group(1) == "name" and m.group(2) and columns:
                columns[-1]["name"] = str(parse_scalar(m.group(2)))
            continue

        if item:
            value = parse_scalar(item.group(1))
            if subkey is not None and indent > subkey_indent:
                target = data[section]
                if not isinstance(target.get(subkey), list):
                    target[subkey] = []
                target[subkey].append(value)
            else:
                target = data.get(section)
                if not isinstance(target, list):
                    target = data[section] = []
                target.append(value)
            continue

        m = KEY_RE.match(stripped)
        if not m:
            continue
        target = data.get(section)
        if not isinstance(target, dict):
            target = data[section] = {}
        key, raw = m.group(1), _strip_comment(m.group(2) or "")
        if raw:
            target[key] = parse_scalar(raw)
            subkey = None
        else:
            target[key] = []
            subkey, subkey_indent = key, indent

    return data


def load_config(board_root: PathLike) -> BoardConfig:
    path = config_path(board_root)
    if not path.exists():
        raise NotInitializedError("No Flatban board found. Run 'flatban init' first.")
    return BoardConfig.from_dict(parse_config_text(path.read_text(encoding="utf-8")))


# ── Write ────────────────────────────────────────────────────────────────────


def config_to_text(config: BoardConfig) -> str:
    lines = ["# Flatban Configuration", f'name: "{config.name}"']
    sections: List[Tuple[str, Any]] = []
    for key, value in config.extra.items():
        if isinstance(value, dict) or (isinstance(value, list) and value):
            sections.append((key, value))
        else:
            lines.append(f"{key}: {format_scalar(value)}")
    lines.append("")

    lines.append("columns:")
    for c in config.columns:
        lines.append(f"  - id: {c.id}")
        lines.append(f'    name: "{c.name}"')
    lines.append("")

    lines.append("priorities:")
    for p in config.priorities:
        lines.append(f"  - {p}")
    lines.append("")

    n = config.notifications
    lines.append("# Browser notification settings")
    lines.append("notifications:")
    lines.append(f"  {'enabled: ' + format_scalar(n.enabled):<28}{NOTIFY_COMMENTS['enabled']}")
    lines.append(f"  {'all_changes: ' + format_scalar(n.all_changes):<28}{NOTIFY_COMMENTS['all_changes']}")
    if n.notify_columns:
        lines.append(
            f"  notify_columns: {format_scalar(n.notify_columns)}"
            "     # List of column IDs to notify when tasks move into them"
        )
    else:
        lines.append(
            "  notify_columns: []          "
            "# List of column IDs to notify when tasks move into them (e.g., [review, done])"
        )
    for key, value in n.extra.items():
        lines.append(f"  {key}: {format_scalar(value)}")

    for key, value in sections:
        lines.append("")
        lines.append(f"{key}:")
        if isinstance(value, dict):
            for k, v in value.items():
                lines.append(f"  {k}: {format_scalar(v)}")
        else:
            for v in value:
                lines.append(f"  - {format_scalar(v)}")

    return "\n".join(lines) + "\n"


def save_config(config: BoardConfig, board_root: PathLike) -> Path:
    path = config_path(board_root)
    write_text_atomic(path, config_to_text(config))
    return path


# ── Dotted-key access (flatban config get/set) ───────────────────────────────


def _walk(data: Any, key: str) -> Any:
    for part in key.split("."):
        if isinstance(data, dict) and part in data:
            data = data[part]
        elif isinstance(data, list) and part.isdigit() and int(part) < len(data):
            data = data[int(part)]
        else:
            raise NotFoundError(f"Setting not found: {key}")
    return data


def get_value(config: BoardConfig, key: str) -> Any:
    if not key:
        raise ValidationError("Key is required")
    return _walk(config.to_dict(), key)


def coerce_value(raw: str) -> Any:
    """CLI value -> typed value: true/false, JSON-ish [lists], else the string."""
    if raw == "true":
        return True
    if raw == "false":
        return False
    if raw.startswith("[") and raw.endswith("]"):
        try:
            return json.loads(raw)
        except ValueError:
            return parse_scalar(raw)
    return raw


def set_value(config: BoardConfig, key: str, raw: str) -> Tuple[BoardConfig, Any]:
    """Return a new config with `key` set, plus the value actually stored."""
    if not key:
        raise ValidationError("Key is required")
    value = coerce_value(raw)
    data = config.to_dict()
    parts = key.split(".")
    target = data
    for part in parts[:-1]:
        if not isinstance(target.get(part), dict):
            target[part] = {}
        target = target[part]
    target[parts[-1]] = value
    return BoardConfig.from_dict(data), value


# ── Notification settings ────────────────────────────────────────────────────


def add_notify_column(config: BoardConfig, column_id: str) -> bool:
    """Add a column to the notify list (and enable notifications). False if already there."""
    if column_id not in config.column_ids:
        raise ValidationError(f"Invalid column: {column_id}", config.column_ids)
    n = config.notifications
    if column_id in n.notify_columns:
        return False
    n.notify_columns.append(column_id)
    n.enabled = True
    return True


def remove_notify_column(config: BoardConfig, column_id: str) -> bool:
    n = config.notifications
    if column_id not in n.notify_columns:
        return False
    n.notify_columns.remove(column_id)
    return True
