from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable

from .csv_rows import Row

StopPredicate = Callable[[str], bool]

PRIMARY_COLUMN = 0
SECONDARY_COLUMN = 1
KEY_COLUMN = 2

# Lowercase pinyin vowels with tone marks.
_TONE_MARKS = frozenset("āáǎàēéěèīíǐìōóǒòūúǔùǖǘǚǜ")

TEXT_SOURCES: tuple[str, ...] = ("primary", "secondary")


def is_latin_or_tone_mark(ch: str) -> bool:
    return ("A" <= ch <= "Z") or ("a" <= ch <= "z") or ch in _TONE_MARKS


def extract_leading_script(value: str | None, stop: StopPredicate = is_latin_or_tone_mark) -> str:
    """
    Return the leading run of ``value`` before the first stop character.

    ``"你好 nǐ hǎo"`` becomes ``"你好"``. The boundary is a plain character-class
    test, not word segmentation.
    """
    text = (value or "").strip()
    if not text:
        return ""
    collected: list[str] = []
    for ch in text:
        if stop(ch):
            break
        collected.append(ch)
    return "".join(collected).strip()


@dataclass
class PhraseTask:
    key: str
    text: str
    raw_row: Row = field(default_factory=list)
    line: int | None = None


@dataclass
class RowRejection:
    line: int | None
    reason: str
    raw_row: Row = field(default_factory=list)


def _column(row: Row, index: int) -> str:
    if index < len(row):
        return row[index] or ""
    return ""


class PhraseExtractor:
    """
    Turn a parsed row into a :class:`PhraseTask`.

    ``text_source="secondary"`` reads the mixed-script column and keeps its
    leading native-script run; ``"primary"`` speaks the first column verbatim.
    """

    def __init__(
        self,
        text_source: str = "secondary",
        stop: StopPredicate = is_latin_or_tone_mark,
    ) -> None:
        if text_source not in TEXT_SOURCES:
            raise ValueError(f"text_source must be one of: {', '.join(TEXT_SOURCES)}")
        self.text_source = text_source
        self.stop = stop

    def extract(self, row: Row, line: int | None = None) -> PhraseTask | RowRejection:
        key = _column(row, KEY_COLUMN).strip()
        if not key:
            return RowRejection(line=line, reason="missing_key", raw_row=list(row))
        if self.text_source == "primary":
            text = _column(row, PRIMARY_COLUMN).strip()
            if not text:
                return RowRejection(line=line, reason="missing_text", raw_row=list(row))
        else:
            secondary = _column(row, SECONDARY_COLUMN).strip()
            if not secondary:
                return RowRejection(line=line, reason="missing_text", raw_row=list(row))
            text = extract_leading_script(secondary, self.stop)
            if not text:
                return RowRejection(line=line, reason="no_native_text", raw_row=list(row))
        return PhraseTask(key=key, text=text, raw_row=list(row), line=line)


def _is_plain_file_name(key: str) -> bool:
    if key in {".", ".."}:
        return False
    return "/" not in key and "\\" not in key


def build_tasks(
    rows: Iterable[tuple[int, Row]],
    extractor: PhraseExtractor,
    *,
    progress: Callable[[dict[str, object]], None] | None = None,
) -> tuple[list[PhraseTask], list[RowRejection]]:
    """Extract tasks in input order, rejecting rows that cannot produce a unique artifact."""
    tasks: list[PhraseTask] = []
    rejected: list[RowRejection] = []
    seen_keys: set[str] = set()
    for line, row in rows:
        result = extractor.extract(row, line)
        if isinstance(result, PhraseTask):
            if not _is_plain_file_name(result.key):
                result = RowRejection(line=line, reason="invalid_key", raw_row=list(row))
            elif result.key.casefold() in seen_keys:
                result = RowRejection(line=line, reason="duplicate_key", raw_row=list(row))
        if isinstance(result, RowRejection):
            rejected.append(result)
            if progress is not None:
                progress(
                    {
                        "event": "row_dropped",
                        "line": result.line,
                        "reason": result.reason,
                        "row": result.raw_row,
                    }
                )
            continue
        seen_keys.add(result.key.casefold())
        tasks.append(result)
    return tasks, rejected


__all__ = [
    "PhraseExtractor",
    "PhraseTask",
    "RowRejection",
    "StopPredicate",
    "TEXT_SOURCES",
    "build_tasks",
    "extract_leading_script",
    "is_latin_or_tone_mark",
]
