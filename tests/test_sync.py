"""Tests for reconciliation: full rebuilds and staleness detection."""

import os
import time

import flatban.sync as sync_module
from flatban.config import load_config
from flatban.store import IndexStore
from flatban.sync import ensure_fresh, is_stale, rebuild_index


def _write_task(root, column, name, text):
    path = root / ".flatban" / column / name
    path.write_text(text)
    return path


def _touch_future(path, seconds=5):
    future = time.time() + seconds
    os.utime(path, (future, future))


class TestRebuild:
    def test_rebuild_matches_files(self, board, board_root):
        a = board.create("Alpha", column="todo")
        b = board.create("Beta", column="done", tags=["x"])
        config = load_config(board_root)

        result = rebuild_index(config, board_root)
        assert result.task_count == 2
        assert result.error_count == 0
        idx = result.index
        assert set(idx.tasks) == {a, b}
        assert idx.get(b).status == "done"
        assert idx.get(b).tags == ["x"]
        assert idx.columns == {"backlog": 0, "todo": 1, "in-progress": 0, "review": 0, "done": 1}
        assert idx.board_name == "Test Board"

    def test_rebuild_is_idempotent(self, board, board_root):
        board.create("Alpha")
        board.create("Beta", column="review")
        config = load_config(board_root)
        first = rebuild_index(config, board_root).index
        second = rebuild_index(config, board_root).index
        assert {k: v.to_dict() for k, v in first.tasks.items()} == \
               {k: v.to_dict() for k, v in second.tasks.items()}
        assert first.columns == second.columns

    def test_created_comes_from_history(self, board, board_root):
        task_id = board.create("Alpha")
        created_at_create = IndexStore(board_root).load().get(task_id).created
        rebuilt = rebuild_index(load_config(board_root), board_root).index
        assert rebuilt.get(task_id).created == created_at_create

    def test_bad_files_are_skipped_not_fatal(self, board, board_root, caplog):
        good = board.create("Good")
        _write_task(board_root, "todo", "notes.md", "# no frontmatter here\n")
        _write_task(board_root, "todo", "noid.md", '---\ntitle: "No id"\n---\n')
        _write_task(board_root, "todo", "readme.txt", "not a task")

        result = rebuild_index(load_config(board_root), board_root)
        assert set(result.index.tasks) == {good}
        assert result.error_count == 2
        assert "Could not index" in caplog.text

    def test_duplicate_ids_keep_the_first(self, board, board_root):
        task_id = board.create("Original", column="backlog")
        original = next((board_root / ".flatban" / "backlog").glob("*.md"))
        _write_task(board_root, "todo", "copy.md", original.read_text())

        result = rebuild_index(load_config(board_root), board_root)
        assert result.error_count == 1
        assert result.index.get(task_id).status == "backlog"
        assert result.index.columns["todo"] == 0

    def test_files_outside_columns_are_ignored(self, board, board_root):
        (board_root / ".flatban" / "archive").mkdir()
        _write_task(board_root, "archive", "old.md", "---\nid: old000001\ntitle: Old\n---\n")
        result = rebuild_index(load_config(board_root), board_root)
        assert "old000001" not in result.index.tasks


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Staleness
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestStaleness:
    def test_fresh_after_create(self, board, board_root):
        board.create("Alpha")
        config = load_config(board_root)
        assert not is_stale(IndexStore(board_root).load(), config, board_root)

    def test_never_synced_is_stale(self, board, board_root):
        IndexStore(board_root).path.unlink()
        config = load_config(board_root)
        assert is_stale(IndexStore(board_root).load(), config, board_root)

    def test_edited_file_is_stale(self, board, board_root):
        board.create("Alpha")
        path = next((board_root / ".flatban" / "todo").glob("*.md"))
        _touch_future(path)
        config = load_config(board_root)
        assert is_stale(IndexStore(board_root).load(), config, board_root)

    def test_file_added_behind_our_back(self, board, board_root):
        directory = board_root / ".flatban" / "review"
        _write_task(board_root, "review", "ext000001-external.md",
                    '---\nid: ext000001\ntitle: "External"\npriority: low\n---\n')
        _touch_future(directory)
        idx = ensure_fresh(board_root)
        assert idx.get("ext000001").title == "External"
        assert idx.columns["review"] == 1

    def test_file_deleted_behind_our_back(self, board, board_root):
        task_id = board.create("Doomed")
        directory = board_root / ".flatban" / "todo"
        next(directory.glob("*.md")).unlink()
        _touch_future(directory)
        idx = ensure_fresh(board_root)
        assert task_id not in idx.tasks
        assert idx.columns["todo"] == 0

    def test_ensure_fresh_persists_rebuild(self, board, board_root):
        board.create("Alpha")
        path = next((board_root / ".flatban" / "todo").glob("*.md"))
        path.write_text(path.read_text().replace('title: "Alpha"', 'title: "Renamed"'))
        _touch_future(path)
        _touch_future(path.parent)

        task_id = next(iter(ensure_fresh(board_root).tasks))
        # Saved, so a plain load sees the new title
        assert IndexStore(board_root).load().get(task_id).title == "Renamed"

    def test_fresh_index_is_not_rebuilt(self, board, board_root, monkeypatch):
        board.create("Alpha")
        calls = []
        monkeypatch.setattr(sync_module, "rebuild_index", lambda *a: calls.append(a))
        ensure_fresh(board_root)
        assert calls == []
