from __future__ import annotations

from typing import Iterable, Iterator, Sequence

Row = list[str]

DEFAULT_HEADER_TOKENS = frozenset({"thai", "chinese_pinyin", "tts_key"})

_QUOTE = '"'
_DELIMITER = ","


def _normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def parse_csv_line(line: str) -> Row:
    """
    Split a single line into trimmed fields.

    The scan is lenient: a quote toggles the in-quotes state, a doubled quote
    inside quotes yields one literal quote, and an unterminated quote simply
    keeps the rest of the line inside the current field. Quote state never
    crosses the end of the line.
    """
    row: Row = []
    current: list[str] = []
    in_quotes = False
    index = 0
    length = len(line)
    while index < length:
        ch = line[index]
        if ch == _QUOTE:
            if in_quotes and index + 1 < length and line[index + 1] == _QUOTE:
                current.append(_QUOTE)
                index += 1
            else:
                in_quotes = not in_quotes
        elif ch == _DELIMITER and not in_quotes:
            row.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        index += 1
    row.append("".join(current).strip())
    return row


def iter_csv_rows(text: str) -> Iterator[tuple[int, Row]]:
    """Yield ``(line_number, row)`` pairs, skipping blank lines."""
    for line_number, line in enumerate(_normalize_newlines(text).split("\n"), start=1):
        if not line.strip():
            continue
        yield line_number, parse_csv_line(line)


def parse_csv(text: str) -> list[Row]:
    return [row for _, row in iter_csv_rows(text)]


def looks_like_header(row: Sequence[str], tokens: Iterable[str] = DEFAULT_HEADER_TOKENS) -> bool:
    known = {token.lower() for token in tokens}
    return any((value or "").lower() in known for value in row)


def strip_header(
    rows: Sequence[tuple[int, Row]],
    tokens: Iterable[str] = DEFAULT_HEADER_TOKENS,
) -> list[tuple[int, Row]]:
    """Drop the first row when it looks like a header; later rows are never inspected."""
    remaining = list(rows)
    if remaining and looks_like_header(remaining[0][1], tokens):
        return remaining[1:]
    return remaining


__all__ = [
    "DEFAULT_HEADER_TOKENS",
    "Row",
    "iter_csv_rows",
    "looks_like_header",
    "parse_csv",
    "parse_csv_line",
    "strip_header",
]
