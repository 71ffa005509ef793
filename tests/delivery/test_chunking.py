"""Tests for the chunked delivery pipeline."""

import pytest

from delivery.chunking import chunk_text
from delivery.models import ChunkMode


def _squash(text: str) -> str:
    return " ".join(text.split())


def test_short_text_is_single_chunk():
    chunks = chunk_text("  hello world \n", 4000)

    assert len(chunks) == 1
    assert chunks[0].index == 0
    assert chunks[0].text == "hello world"


@pytest.mark.parametrize("text", ["", "   ", "\n\n\t"])
def test_blank_text_yields_no_chunks(text):
    assert chunk_text(text, 10) == []


@pytest.mark.parametrize("limit", [0, -5])
def test_non_positive_limit_rejected(limit):
    with pytest.raises(ValueError):
        chunk_text("hello", limit)


def test_length_mode_cuts_fixed_slices():
    chunks = chunk_text("abcdefghij", 4, ChunkMode.LENGTH)

    assert [c.text for c in chunks] == ["abcd", "efgh", "ij"]
    assert [c.index for c in chunks] == [0, 1, 2]


def test_length_mode_accepts_string_value():
    chunks = chunk_text("abcdefgh", 4, "length")
    assert [c.text for c in chunks] == ["abcd", "efgh"]


def test_boundary_mode_prefers_paragraph_breaks():
    chunks = chunk_text("aaaa\n\nbbbb\n\ncccc", 10)

    assert [c.text for c in chunks] == ["aaaa\n\nbbbb", "cccc"]


def test_boundary_mode_splits_long_paragraph_on_sentences():
    text = "First sentence here. Second sentence here. Third sentence here."
    chunks = chunk_text(text, 25)

    assert [c.text for c in chunks] == [
        "First sentence here.",
        "Second sentence here.",
        "Third sentence here.",
    ]


def test_chunks_respect_limit_and_preserve_content():
    paragraphs = [
        " ".join(f"word{p}_{i}" for i in range(30)) + "." for p in range(6)
    ]
    text = "\n\n".join(paragraphs)

    chunks = chunk_text(text, 80)

    assert len(chunks) > 1
    assert all(len(c.text) <= 80 for c in chunks)
    assert _squash(" ".join(c.text for c in chunks)) == _squash(text)


def test_fenced_code_block_is_never_split():
    code = "```python\n" + "\n".join(f"x_{i} = {i}" for i in range(20)) + "\n```"
    text = f"Here is the code:\n\n{code}\n\nThat's all."

    chunks = chunk_text(text, 40)
    texts = [c.text for c in chunks]

    assert code in texts
    assert texts[0] == "Here is the code:"
    assert texts[-1] == "That's all."
    # only the unsplittable block may exceed the limit
    assert all(len(t) <= 40 for t in texts if t != code)


def test_unterminated_fence_runs_to_end():
    text = "intro line\n\n```\n" + "y = 1\n" * 10
    chunks = chunk_text(text, 20)

    assert chunks[0].text == "intro line"
    assert chunks[-1].text.startswith("```")
    assert chunks[-1].text.endswith("y = 1")


def test_word_longer_than_limit_is_kept_whole():
    word = "a" * 50
    chunks = chunk_text(f"{word} tail", 10)

    assert [c.text for c in chunks] == [word, "tail"]


def test_ordering_is_stable():
    text = "\n\n".join(f"paragraph number {i}" for i in range(10))
    chunks = chunk_text(text, 40)

    joined = "\n\n".join(c.text for c in chunks)
    assert joined == text
    assert [c.index for c in chunks] == list(range(len(chunks)))
