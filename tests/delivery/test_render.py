"""Tests for render mode selection."""

import pytest

from delivery.models import MessageKind, RenderMode
from delivery.render import has_fenced_code, has_markdown_table, select_render

TABLE = "| name | qty |\n|------|:---:|\n| nuts | 3 |"


def test_plain_text_is_text_in_auto_mode():
    assert select_render("hello") == MessageKind.TEXT


def test_fenced_code_selects_card():
    assert select_render("Try this:\n```\nprint('hi')\n```") == MessageKind.CARD


def test_markdown_table_selects_card():
    assert select_render(f"Results:\n{TABLE}") == MessageKind.CARD


def test_unpaired_fence_stays_text():
    assert select_render("```\nnot closed") == MessageKind.TEXT


@pytest.mark.parametrize(
    "mode, expected",
    [
        (RenderMode.RICH, MessageKind.CARD),
        (RenderMode.PLAIN, MessageKind.TEXT),
        ("rich", MessageKind.CARD),
    ],
)
def test_configured_mode_overrides_content(mode, expected):
    assert select_render("hello", mode) == expected
    assert select_render("```\ncode\n```", mode) == expected


def test_has_fenced_code():
    assert has_fenced_code("a ```b``` c")
    assert not has_fenced_code("a `b` c")
    assert not has_fenced_code("")


def test_has_markdown_table():
    assert has_markdown_table(TABLE)
    assert not has_markdown_table("a | b\nno separator")
    assert not has_markdown_table("|---|---|")
    assert not has_markdown_table("x | y\n|--x--|")
