"""
flatban command line.

    flatban init [NAME]
    flatban create TITLE [-c COLUMN] [-p PRIORITY] [-t TAG ...] [-a WHO]
    flatban move TASK COLUMN
    flatban delete TASK
    flatban list [COLUMN] [--priority P] [--tag T] [--assigned WHO]
    flatban show TASK
    flatban board [--compact]
    flatban sync
    flatban config [get KEY | set KEY VALUE | KEY [VALUE]]
    flatban config notifications enable|disable|all|column ID|remove ID
    flatban serve [--host HOST] [--port PORT]

TASK may be any unique prefix of a task id.
"""
import argparse
import json
import logging
import sys
from typing import List, Optional

import yaml

from . import __version__
from .board import Board
from .config import (
    add_notify_column,
    get_value,
    load_config,
    remove_notify_column,
    save_config,
    set_value,
)
from .errors import FlatbanError, ValidationError
from .render import format_board, format_task_detail, format_task_table
from .settings import Settings

logger = logging.getLogger("flatban")

NOTIFY_ACTIONS = ("enable", "disable", "all", "column", "remove")


def _text_arg(value: Optional[str]) -> Optional[str]:
    """Shell-friendly multi-line input: a literal \\n becomes a newline."""
    if value is None:
        return None
    return value.replace("\\n", "\n")


def _tags_arg(values: Optional[List[str]]) -> List[str]:
    tags: List[str] = []
    for value in values or []:
        tags.extend(t for t in value.split(",") if t.strip())
    return tags


# ── Commands ─────────────────────────────────────────────────────────────────


def cmd_init(args) -> int:
    config = Board(args.board).init(args.name or args.name_opt)
    print(f"✓ Initialized Flatban board: {config.name}")
    print(f"  Columns: {', '.join(config.column_ids)}")
    return 0


def cmd_create(args) -> int:
    task_id = Board(args.board).create(
        args.title,
        column=args.column,
        priority=args.priority,
        tags=_tags_arg(args.tag),
        assigned=args.assigned or "",
        description=_text_arg(args.description),
        notes=_text_arg(args.notes),
    )
    print(f"✓ Created task {task_id}")
    return 0


def cmd_move(args) -> int:
    result = Board(args.board).move(args.task, args.column)
    if result.moved:
        print(f"✓ Moved {result.task_id} to {result.to_column_name}")
    else:
        print(f"Task {result.task_id} is already in {result.to_column_name}")
    return 0


def cmd_delete(args) -> int:
    result = Board(args.board).delete(args.task)
    print(f"✓ Deleted {result.task_id}: {result.title}")
    return 0


def cmd_list(args) -> int:
    rows = Board(args.board).list_tasks(
        column=args.column, priority=args.priority, tag=args.tag, assigned=args.assigned
    )
    if not rows:
        print("No tasks found")
        return 0
    print(format_task_table(rows))
    return 0


def cmd_show(args) -> int:
    detail = Board(args.board).show(args.task)
    print(format_task_detail(detail.task_id, detail.entry, detail.record.body))
    return 0


def cmd_board(args) -> int:
    config, index = Board(args.board).snapshot()
    print(f"\n{config.name}\n")
    print(format_board(config, index, compact=args.compact))
    return 0


def cmd_sync(args) -> int:
    result = Board(args.board).sync()
    print(f"✓ Synced {result.task_count} task(s)")
    if result.error_count:
        print(f"  Skipped {result.error_count} file(s):")
        for error in result.errors:
            print(f"    {error}")
    return 0


def _notifications(args, config) -> int:
    action = args.value
    n = config.notifications
    if action == "enable":
        n.enabled = True
        print("✓ Notifications enabled")
    elif action == "disable":
        n.enabled = False
        print("✓ Notifications disabled")
    elif action == "all":
        n.enabled = True
        n.all_changes = True
        print("✓ Notifying on all changes")
    elif action in ("column", "remove"):
        if not args.extra:
            raise ValidationError(f"Column id required: flatban config notifications {action} ID")
        column_id = args.extra
        if action == "column":
            n.all_changes = False
            if add_notify_column(config, column_id):
                print(f"✓ Notifying on moves to {column_id}")
            else:
                print(f"Already notifying on moves to {column_id}")
        elif remove_notify_column(config, column_id):
            print(f"✓ No longer notifying on moves to {column_id}")
        else:
            print(f"Not notifying on {column_id}")
    else:
        raise ValidationError(f"Unknown notifications action: {args.value}", list(NOTIFY_ACTIONS))
    save_config(config, args.board)
    return 0


def cmd_config(args) -> int:
    config = load_config(args.board)
    if args.key == "get":
        args.key, args.value = args.value, None
        if not args.key:
            raise ValidationError("Usage: flatban config get KEY")
    elif args.key == "set":
        if args.value is None or args.extra is None:
            raise ValidationError("Usage: flatban config set KEY VALUE")
        args.key, args.value = args.value, args.extra

    if args.key == "notifications" and args.value:
        return _notifications(args, config)

    if not args.key:
        print(yaml.safe_dump(config.to_dict(), sort_keys=False, allow_unicode=True).rstrip())
        return 0

    if args.value is None:
        value = get_value(config, args.key)
        if isinstance(value, (dict, list)):
            print(yaml.safe_dump(value, sort_keys=False, allow_unicode=True).rstrip())
        else:
            print(value)
        return 0

    config, value = set_value(config, args.key, args.value)
    save_config(config, args.board)
    print(f"✓ Set {args.key} = {json.dumps(value, ensure_ascii=False)}")
    return 0


def cmd_serve(args) -> int:
    from .server import serve

    settings = Settings.load(args.settings)
    settings.board_root = args.board
    if args.host:
        settings.host = args.host
    if args.port:
        settings.port = args.port
    if not args.verbose:
        logger.setLevel(settings.log_level.upper())
    # Fail fast on a missing board instead of serving error pages
    load_config(settings.board_root)
    serve(settings)
    return 0


# ── Parser ───────────────────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="flatban", description="Flat-file kanban board")
    ap.add_argument("--version", action="version", version=f"flatban {__version__}")
    ap.add_argument("--board", default=None,
                    help="Board root (default: $FLATBAN_BOARD or current directory)")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = ap.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    p = sub.add_parser("init", help="Create a board in the current directory")
    p.add_argument("name", nargs="?", default=None, help="Board name")
    p.add_argument("--name", dest="name_opt", default=None, help=argparse.SUPPRESS)
    p.set_defaults(func=cmd_init)

    p = sub.add_parser("create", help="Create a task")
    p.add_argument("title")
    p.add_argument("-c", "--column", default=None)
    p.add_argument("-p", "--priority", default=None)
    p.add_argument("-t", "--tag", action="append", help="Tag (repeat or comma-separate)")
    p.add_argument("-a", "--assigned", default=None)
    p.add_argument("--description", default=None, help="Description text (\\n for newlines)")
    p.add_argument("--notes", default=None, help="Notes text (\\n for newlines)")
    p.set_defaults(func=cmd_create)

    p = sub.add_parser("move", help="Move a task to another column")
    p.add_argument("task")
    p.add_argument("column")
    p.set_defaults(func=cmd_move)

    p = sub.add_parser("delete", help="Delete a task")
    p.add_argument("task")
    p.set_defaults(func=cmd_delete)

    p = sub.add_parser("list", help="List tasks")
    p.add_argument("column", nargs="?", default=None)
    p.add_argument("--priority", default=None)
    p.add_argument("--tag", default=None)
    p.add_argument("--assigned", default=None)
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("show", help="Show one task")
    p.add_argument("task")
    p.set_defaults(func=cmd_show)

    p = sub.add_parser("board", help="Show the board")
    p.add_argument("--compact", action="store_true")
    p.set_defaults(func=cmd_board)

    p = sub.add_parser("sync", help="Rebuild the index from the task files")
    p.set_defaults(func=cmd_sync)

    p = sub.add_parser("config", help="Show or change board settings")
    p.add_argument("key", nargs="?", default=None)
    p.add_argument("value", nargs="?", default=None)
    p.add_argument("extra", nargs="?", default=None)
    p.set_defaults(func=cmd_config)

    p = sub.add_parser("serve", help="Run the live web viewer")
    p.add_argument("--host", default=None)
    p.add_argument("--port", type=int, default=None)
    p.add_argument("--settings", default=None, help="Path to settings.yaml")
    p.set_defaults(func=cmd_serve)

    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    if args.board is None:
        args.board = Settings.load(getattr(args, "settings", None)).board_root

    try:
        return args.func(args)
    except FlatbanError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
