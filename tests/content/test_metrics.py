from __future__ import annotations

import pytest

from seoflow.content.metrics import DocumentStats, reading_time, strip_markup, word_count


def test_word_count_ignores_markup_and_images() -> None:
    text = "# Hello **world** [link text](http://x) ![img](http://y) [IMAGE_1]"
    assert word_count(text) == 4
    assert strip_markup(text) == "Hello world link text"


def test_word_count_ignores_html_image_embeds() -> None:
    body = 'Intro words <img src="https://x" alt="Article Image 1" style="width: 100%;" /> outro'
    assert word_count(body) == 3


def test_strip_markup_is_idempotent() -> None:
    samples = [
        "## Heading with __bold__ and *italics*",
        "[[IMAGE_1]](x) nested [a](b)",
        "***triple*** ~~strike~~ `code`",
        "",
    ]
    for sample in samples:
        once = strip_markup(sample)
        assert strip_markup(once) == once


def test_word_count_of_empty_text() -> None:
    assert word_count("") == 0
    assert word_count("   \n\t ") == 0


@pytest.mark.parametrize(
    ("words", "expected"),
    [(0, 0), (1, 1), (225, 1), (226, 2), (450, 2), (451, 3)],
)
def test_reading_time_rounds_up(words: int, expected: int) -> None:
    assert reading_time(words) == expected


def test_reading_time_custom_rate_and_validation() -> None:
    assert reading_time(100, words_per_minute=50) == 2
    assert reading_time(0, words_per_minute=0) == 0
    with pytest.raises(ValueError):
        reading_time(10, words_per_minute=0)


def test_document_stats_for_body() -> None:
    stats = DocumentStats.for_body("one two three", image_count=2, words_per_minute=2)
    assert stats.to_dict() == {"word_count": 3, "reading_time_minutes": 2, "image_count": 2}
