from __future__ import annotations

import pytest

from phrasetts.extract import (
    PhraseExtractor,
    PhraseTask,
    RowRejection,
    build_tasks,
    extract_leading_script,
    is_latin_or_tone_mark,
)


def test_extract_leading_script_stops_at_latin() -> None:
    assert extract_leading_script("你好nihao") == "你好"


@pytest.mark.parametrize(
    "value, expected",
    [
        ("你好 nǐ hǎo", "你好"),
        ("谢谢（xièxie）", "谢谢（"),
        ("我ǎ", "我"),
        ("  再见  zàijiàn", "再见"),
        ("多少钱？", "多少钱？"),
        ("nihao", ""),
        ("ǎ你好", ""),
        ("", ""),
        (None, ""),
    ],
)
def test_extract_leading_script_exact_stopping_rule(value: str | None, expected: str) -> None:
    assert extract_leading_script(value) == expected


def test_uppercase_tone_marks_do_not_stop_extraction() -> None:
    assert not is_latin_or_tone_mark("Ǎ")
    assert extract_leading_script("你Ǎ好a") == "你Ǎ好"


def test_extract_leading_script_accepts_custom_stop() -> None:
    assert extract_leading_script("สวัสดี123", stop=str.isdigit) == "สวัสดี"


def test_extractor_secondary_builds_task() -> None:
    row = ["สวัสดี", "你好 nǐ hǎo", "hello_01"]
    task = PhraseExtractor().extract(row, line=2)
    assert task == PhraseTask(key="hello_01", text="你好", raw_row=row, line=2)


def test_extractor_primary_uses_first_column_verbatim() -> None:
    row = ["สวัสดีครับ", "你好", "hello_01"]
    task = PhraseExtractor(text_source="primary").extract(row, line=5)
    assert isinstance(task, PhraseTask)
    assert task.text == "สวัสดีครับ"


@pytest.mark.parametrize(
    "row, reason",
    [
        (["สวัสดี", "你好", ""], "missing_key"),
        (["สวัสดี", "你好"], "missing_key"),
        (["สวัสดี", "", "k1"], "missing_text"),
        (["สวัสดี", "nihao", "k1"], "no_native_text"),
    ],
)
def test_extractor_rejects_rows(row: list[str], reason: str) -> None:
    result = PhraseExtractor().extract(row, line=7)
    assert isinstance(result, RowRejection)
    assert result.reason == reason
    assert result.line == 7
    assert result.raw_row == row


def test_extractor_primary_rejects_missing_primary() -> None:
    result = PhraseExtractor(text_source="primary").extract(["", "你好", "k"], line=1)
    assert isinstance(result, RowRejection)
    assert result.reason == "missing_text"


def test_extractor_rejects_unknown_source() -> None:
    with pytest.raises(ValueError):
        PhraseExtractor(text_source="tertiary")


def test_build_tasks_keeps_order_and_reports_drops() -> None:
    rows = [
        (2, ["a", "一 yī", "k1"]),
        (3, ["b", "nothing", "k2"]),
        (4, ["c", "二 èr", "k1"]),
        (5, ["d", "三 sān", "../evil"]),
        (6, ["e", "四 sì", "k4"]),
        (7, ["f", "五", ""]),
    ]
    events: list[dict[str, object]] = []
    tasks, rejected = build_tasks(rows, PhraseExtractor(), progress=events.append)

    assert [(task.key, task.text, task.line) for task in tasks] == [
        ("k1", "一", 2),
        ("k4", "四", 6),
    ]
    assert [(item.line, item.reason) for item in rejected] == [
        (3, "no_native_text"),
        (4, "duplicate_key"),
        (5, "invalid_key"),
        (7, "missing_key"),
    ]
    assert [event["event"] for event in events] == ["row_dropped"] * 4
    assert events[0]["line"] == 3
    assert events[0]["reason"] == "no_native_text"


def test_build_tasks_treats_keys_differing_in_case_as_duplicates() -> None:
    rows = [
        (2, ["a", "一", "Hello"]),
        (3, ["b", "二", "hello"]),
        (4, ["c", "三", "HELLO"]),
    ]
    tasks, rejected = build_tasks(rows, PhraseExtractor())

    assert [task.key for task in tasks] == ["Hello"]
    assert [(item.line, item.reason) for item in rejected] == [
        (3, "duplicate_key"),
        (4, "duplicate_key"),
    ]
