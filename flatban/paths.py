"""On-disk layout of a board and whole-file writes."""
import os
import tempfile
from pathlib import Path
from typing import Union

BOARD_DIR = ".flatban"
CONFIG_FILE = "config.yaml"
TEMPLATE_FILE = "template.md"
INDEX_FILE = "index.json"
TMP_SUFFIX = ".tmp"

PathLike = Union[str, os.PathLike]


def board_dir(root: PathLike) -> Path:
    return Path(root) / BOARD_DIR


def config_path(root: PathLike) -> Path:
    return board_dir(root) / CONFIG_FILE


def template_path(root: PathLike) -> Path:
    return board_dir(root) / TEMPLATE_FILE


def index_path(root: PathLike) -> Path:
    return board_dir(root) / INDEX_FILE


def column_dir(root: PathLike, column_id: str) -> Path:
    return board_dir(root) / column_id


def relative_task_path(column_id: str, filename: str) -> str:
    """Index `file` value: .flatban/<column>/<filename>, always with forward slashes."""
    return f"{BOARD_DIR}/{column_id}/{filename}"


def write_text_atomic(path: Path, text: str) -> None:
    """Replace a file's contents in one rename so readers never see half a write."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=TMP_SUFFIX, dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
