"""Tests for the task file codec: header parsing, templates, history lines."""

from datetime import datetime, timezone

import pytest

from flatban.codec import (
    DEFAULT_TEMPLATE,
    append_history,
    decode,
    encode,
    format_list,
    history_created_at,
    parse_list,
    render_template,
    slugify,
    task_filename,
)
from flatban.errors import ParseError
from flatban.schema import TaskRecord

WHEN = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)

SAMPLE = """---
id: k3f1x2abc
title: "Fix login bug"
priority: high
tags: [auth, web]
assigned: alice
---

## Description

Login fails on Safari.

## History
- 2024-05-01 09:30: Task created
"""


class TestDecode:
    def test_full_header(self):
        record = decode(SAMPLE)
        assert record.id == "k3f1x2abc"
        assert record.title == "Fix login bug"
        assert record.priority == "high"
        assert record.tags == ["auth", "web"]
        assert record.assigned == "alice"
        assert record.body.startswith("\n## Description")

    def test_missing_fields_get_defaults(self):
        record = decode("---\nid: abc123456\n---\nbody\n", default_priority="low")
        assert record.title == "Untitled"
        assert record.priority == "low"
        assert record.tags == []
        assert record.assigned == ""
        assert record.body == "body\n"

    def test_empty_assigned_and_tags(self):
        record = decode('---\nid: x\ntitle: "T"\ntags: []\nassigned: \n---\n')
        assert record.tags == []
        assert record.assigned == ""

    def test_no_frontmatter_is_an_error(self):
        with pytest.raises(ParseError, match="No valid frontmatter"):
            decode("# Just a markdown file\n")

    def test_unterminated_header_is_an_error(self):
        with pytest.raises(ParseError):
            decode("---\nid: abc\ntitle: nope\n")

    def test_unknown_fields_are_kept(self):
        record = decode("---\nid: x\ntitle: T\nestimate: 3\n---\n")
        assert record.extra == {"estimate": "3"}

    def test_crlf_file(self):
        record = decode("---\r\nid: abc\r\ntitle: \"T\"\r\n---\r\nbody")
        assert record.id == "abc"
        assert record.title == "T"


class TestEncode:
    def test_encode_then_decode_keeps_fields(self):
        record = TaskRecord(
            id="abc000001", title="Write docs", priority="low",
            tags=["docs"], assigned="bob", body="\n## Notes\n",
        )
        text = encode(record)
        assert 'title: "Write docs"' in text
        assert "tags: [docs]" in text
        back = decode(text)
        assert back.id == record.id
        assert back.tags == ["docs"]
        assert back.body == record.body

    def test_empty_tags(self):
        text = encode(TaskRecord(id="a", title="t", priority="low"))
        assert "tags: []" in text
        assert "assigned: \n" in text


def test_parse_list_dedupes_and_unquotes():
    assert parse_list('[a, "b", a, , c]') == ["a", "b", "c"]
    assert parse_list("[]") == []


def test_format_list():
    assert format_list([]) == "[]"
    assert format_list(["a", "b"]) == "[a, b]"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Filenames
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_slugify():
    assert slugify("Fix Login Bug!") == "fix-login-bug"
    assert slugify("a  --  b") == "a-b"
    assert slugify("Café déjà vu") == "caf-dj-vu"
    assert len(slugify("x" * 80)) == 50


def test_task_filename():
    assert task_filename("abc123456", "Fix login") == "abc123456-fix-login.md"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Templates and history
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestRenderTemplate:
    def test_placeholders_filled(self):
        text = render_template(
            DEFAULT_TEMPLATE, task_id="abc123456", title="Ship it", priority="high",
            tags=["release"], assigned="", created=WHEN,
        )
        record = decode(text)
        assert record.id == "abc123456"
        assert record.title == "Ship it"
        assert record.priority == "high"
        assert record.tags == ["release"]
        assert "- 2024-05-01 09:30: Task created" in text

    def test_placeholder_text_in_values_is_not_expanded(self):
        text = render_template(
            DEFAULT_TEMPLATE, task_id="abc123456", title="Use {priority} here",
            priority="low", tags=[], assigned="", created=WHEN,
        )
        assert decode(text).title == "Use {priority} here"

    def test_description_and_notes(self):
        text = render_template(
            DEFAULT_TEMPLATE, task_id="a", title="t", priority="low", tags=[],
            assigned="", created=WHEN, description="Line one\nLine two", notes="See #12",
        )
        assert "## Description\n\nLine one\nLine two\n" in text
        assert "## Notes\n\nSee #12\n" in text


def test_append_history():
    text = append_history("body without newline", "Moved to Done", WHEN)
    assert text == "body without newline\n- 2024-05-01 09:30: Moved to Done\n"


def test_history_created_at():
    assert history_created_at(SAMPLE) == WHEN
    assert history_created_at("no history here") is None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Values that look like lists or quotes
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestAwkwardValues:
    def test_bracketed_assignee_stays_a_string(self):
        record = TaskRecord(id="abc000001", title="T", priority="low", assigned="[team]")
        assert decode(encode(record)).assigned == "[team]"

    def test_tag_with_a_single_quote_mark(self):
        record = TaskRecord(id="abc000001", title="T", priority="low", tags=['"quoted', "b"])
        assert decode(encode(record)).tags == ['"quoted', "b"]

    def test_title_with_inner_quotes(self):
        record = TaskRecord(id="abc000001", title='Say "hi"', priority="low")
        assert decode(encode(record)).title == 'Say "hi"'

    def test_bracketed_title_in_template(self):
        text = render_template(
            DEFAULT_TEMPLATE, task_id="a", title="[WIP] parser", priority="low",
            tags=[], assigned="[ops]", created=WHEN,
        )
        record = decode(text)
        assert record.title == "[WIP] parser"
        assert record.assigned == "[ops]"

    def test_only_tags_are_lists(self):
        record = decode("---\nid: x\ntitle: T\nestimate: [1, 2]\n---\n")
        assert record.extra == {"estimate": "[1, 2]"}
