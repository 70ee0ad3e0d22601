"""
Reconciliation: keep the index cache honest against the task files.

Files can change without going through this package (editors, git pulls,
a CLI run while the server is up), so the index is never assumed fresh.
Read paths that need accuracy call ensure_fresh(); `flatban sync` forces
rebuild_index() unconditionally.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from .codec import decode, history_created_at
from .config import load_config
from .errors import ParseError
from .paths import PathLike, column_dir, relative_task_path
from .schema import BoardConfig, TaskEntry, format_timestamp, timestamp_ms, utc_now
from .store import BoardIndex, IndexStore

logger = logging.getLogger(__name__)

TASK_SUFFIX = ".md"


@dataclass
class SyncResult:
    index: BoardIndex
    task_count: int = 0
    error_count: int = 0
    errors: List[Tuple[str, str]] = field(default_factory=list)  # (path, reason)


def task_files(directory: Path) -> List[Path]:
    """Task files in a column directory, in a stable order."""
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.iterdir() if p.suffix == TASK_SUFFIX and p.is_file())


def _mtime_ms(path: Path) -> int:
    return path.stat().st_mtime_ns // 1_000_000


def _file_times(path: Path, body: str) -> Tuple[str, str]:
    st = path.stat()
    modified = datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)
    created = history_created_at(body)
    if created is None:
        birth = getattr(st, "st_birthtime", None) or st.st_mtime
        created = datetime.fromtimestamp(birth, tz=timezone.utc)
    return format_timestamp(created), format_timestamp(modified)


def rebuild_index(config: BoardConfig, board_root: PathLike) -> SyncResult:
    """Build a fresh index from a full directory scan.

    One bad file never aborts the scan: it is logged, counted and left out.
    """
    index = BoardIndex.empty(config.name, config.column_ids)
    index.last_sync = format_timestamp(utc_now())
    result = SyncResult(index=index)

    for column in config.columns:
        for path in task_files(column_dir(board_root, column.id)):
            reason = None
            try:
                record = decode(path.read_text(encoding="utf-8"), config.default_priority)
                if not record.id:
                    reason = "no id in metadata"
                elif record.id in index.tasks:
                    reason = f"duplicate id {record.id} (already in {index.tasks[record.id].file})"
            except (OSError, UnicodeDecodeError, ParseError) as e:
                reason = str(e)

            if reason:
                logger.warning(f"Could not index {path}: {reason}")
                result.error_count += 1
                result.errors.append((str(path), reason))
                continue

            created, modified = _file_times(path, record.body)
            index.add(record.id, TaskEntry(
                file=relative_task_path(column.id, path.name),
                title=record.title,
                status=column.id,
                priority=record.priority,
                tags=record.tags,
                assigned=record.assigned,
                created=created,
                modified=modified,
            ))
            result.task_count += 1

    logger.info(
        f"Rebuilt index: {result.task_count} tasks across {len(config.columns)} columns"
        + (f", {result.error_count} file(s) skipped" if result.error_count else "")
    )
    return result


def is_stale(index: BoardIndex, config: BoardConfig, board_root: PathLike) -> bool:
    """Cheap check (listing + stat, no reads) for changes the index hasn't seen.

    Stale when the index was never synced, a task file was modified after
    last_sync, or a column directory changed after it (files added, removed
    or renamed). Compared in whole milliseconds, the resolution last_sync
    is stored at.
    """
    last_sync = index.last_sync_at
    if last_sync is None:
        return True
    last_ms = timestamp_ms(last_sync)

    try:
        for column in config.columns:
            directory = column_dir(board_root, column.id)
            if not directory.is_dir():
                continue
            if _mtime_ms(directory) > last_ms:
                return True
            for path in task_files(directory):
                if _mtime_ms(path) > last_ms:
                    return True
    except OSError as e:
        logger.debug(f"Staleness scan hit {e}; treating index as stale")
        return True
    return False


def ensure_fresh(
    board_root: PathLike,
    config: Optional[BoardConfig] = None,
    store: Optional[IndexStore] = None,
) -> BoardIndex:
    """Load the index, rebuilding and persisting it first if it is stale."""
    config = config or load_config(board_root)
    store = store or IndexStore(board_root)
    index = store.load()
    if is_stale(index, config, board_root):
        logger.info("Index is stale, rebuilding")
        index = rebuild_index(config, board_root).index
        store.save(index)
    return index
