"""Tests for the board config store."""

import pytest

from flatban.config import (
    add_notify_column,
    config_to_text,
    get_value,
    load_config,
    parse_config_text,
    remove_notify_column,
    save_config,
    set_value,
)
from flatban.errors import NotFoundError, NotInitializedError, ValidationError
from flatban.schema import BoardConfig

HAND_WRITTEN = """# Flatban Configuration
name: "Team Board"   # shown in the viewer

columns:
  - id: todo
    name: "To Do"
  - id: doing
  - id: done
    name: Shipped

priorities:
  - low
  - high

notifications:
  enabled: true   # on
  all_changes: false
  notify_columns: [done]

owner: ops-team
"""


class TestParse:
    def test_hand_written_file(self):
        config = BoardConfig.from_dict(parse_config_text(HAND_WRITTEN))
        assert config.name == "Team Board"
        assert config.column_ids == ["todo", "doing", "done"]
        assert config.column_name("doing") == "Doing"
        assert config.column_name("done") == "Shipped"
        assert config.priorities == ["low", "high"]
        assert config.notifications.enabled is True
        assert config.notifications.notify_columns == ["done"]
        assert config.extra == {"owner": "ops-team"}

    def test_defaults_follow_vocabulary(self):
        config = BoardConfig.from_dict(parse_config_text(HAND_WRITTEN))
        # No "medium" in the list, so the first priority wins
        assert config.default_priority == "low"
        assert config.default_column == "todo"

    def test_garbage_lines_are_skipped(self):
        data = parse_config_text("name: ok\n{{not yaml\n  stray: indent\n")
        assert data == {"name": "ok"}

    def test_nested_list_under_section(self):
        data = parse_config_text("notifications:\n  notify_columns:\n    - review\n    - done\n")
        assert data["notifications"]["notify_columns"] == ["review", "done"]


class TestRoundTrip:
    def test_default_config_survives_save_and_load(self, tmp_path):
        config = BoardConfig.default("Round Trip")
        save_config(config, tmp_path)
        loaded = load_config(tmp_path)
        assert loaded.name == "Round Trip"
        assert loaded.column_ids == ["backlog", "todo", "in-progress", "review", "done"]
        assert loaded.column_name("in-progress") == "In Progress"
        assert loaded.priorities == ["low", "medium", "high", "critical"]
        assert loaded.notifications.enabled is False
        assert loaded.notifications.notify_columns == []

    def test_unknown_keys_are_written_back(self, tmp_path):
        config = BoardConfig.from_dict(parse_config_text(HAND_WRITTEN))
        save_config(config, tmp_path)
        text = (tmp_path / ".flatban" / "config.yaml").read_text()
        assert "owner: ops-team" in text
        assert load_config(tmp_path).extra == {"owner": "ops-team"}

    def test_written_format(self):
        text = config_to_text(BoardConfig.default())
        assert text.startswith("# Flatban Configuration\nname: \"My Project Board\"\n")
        assert "  - id: in-progress\n    name: \"In Progress\"\n" in text
        assert "notifications:\n  enabled: false" in text


def test_missing_config(tmp_path):
    with pytest.raises(NotInitializedError, match="flatban init"):
        load_config(tmp_path)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Dotted keys and notification helpers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_get_value():
    config = BoardConfig.default()
    assert get_value(config, "name") == "My Project Board"
    assert get_value(config, "notifications.enabled") is False
    assert get_value(config, "columns.0.id") == "backlog"
    with pytest.raises(NotFoundError, match="Setting not found"):
        get_value(config, "notifications.nope")


def test_set_value_coerces():
    config, value = set_value(BoardConfig.default(), "notifications.enabled", "true")
    assert value is True
    assert config.notifications.enabled is True

    config, value = set_value(config, "notifications.notify_columns", '["review", "done"]')
    assert config.notifications.notify_columns == ["review", "done"]

    config, value = set_value(config, "name", "Renamed")
    assert config.name == "Renamed"


def test_set_value_requires_key():
    with pytest.raises(ValidationError):
        set_value(BoardConfig.default(), "", "x")


def test_notify_columns():
    config = BoardConfig.default()
    assert add_notify_column(config, "review") is True
    assert config.notifications.enabled is True
    assert add_notify_column(config, "review") is False
    assert config.notifications.notify_columns == ["review"]

    with pytest.raises(ValidationError, match="Valid values"):
        add_notify_column(config, "nowhere")

    assert remove_notify_column(config, "review") is True
    assert remove_notify_column(config, "review") is False
