from __future__ import annotations

import re
from typing import List, Optional, Tuple


_MULTISPACE_PATTERN = re.compile(r"\s+")
# Numeric ordinal ("1.", "02)", "3:", "#4:", "#4"), bullet, or parenthesised/bracketed ordinal
_LIST_MARKER_PATTERN = re.compile(
    r"^(?:#?\d{1,3}[.):\]]|#\d{1,3}|[-*•·▪►–—]|\(\d{1,3}\)|\[\d{1,3}\])\s+(?P<rest>\S.*)$"
)
# Chapter timestamps such as "00:00", "1:02:03", "[12:30]", "(4:05)"
_TIMESTAMP_PATTERN = re.compile(r"^[\[(]?\d{1,2}(?::\d{2}){1,2}[\])]?\s*(?:[-–—|]\s+)?")
# Artist/title separator: a hyphen or dash surrounded by whitespace
_SEPARATOR_PATTERN = re.compile(r"\s+[-–—]\s+")

LINE_LIST_ITEM = "list_item"
LINE_ARTIST_TITLE = "artist_title"
LINE_OTHER = "other"


def clean_text(value: Optional[str]) -> str:
    """Trim and collapse internal whitespace."""
    return _MULTISPACE_PATTERN.sub(" ", value or "").strip()


def track_identity(title: str, artist: str) -> Tuple[str, str]:
    """Case- and whitespace-insensitive identity used for deduplication."""
    return clean_text(title).casefold(), clean_text(artist).casefold()


def strip_timestamp(line: str) -> str:
    return _TIMESTAMP_PATTERN.sub("", line, count=1)


def split_artist_title(text: str) -> List[str]:
    """Split on the first dash separator. Returns one or two cleaned, non-empty parts."""
    parts = [clean_text(p) for p in _SEPARATOR_PATTERN.split(text, maxsplit=1)]
    return [p for p in parts if p]


def classify_line(line: str) -> Tuple[str, str]:
    """Classify a description line.

    Returns a ``(kind, text)`` pair where ``kind`` is one of ``LINE_LIST_ITEM``
    (text is the remainder after the marker), ``LINE_ARTIST_TITLE`` (text is the
    whole line) or ``LINE_OTHER``.
    """
    line = strip_timestamp(clean_text(line))
    if not line:
        return LINE_OTHER, ""
    match = _LIST_MARKER_PATTERN.match(line)
    if match:
        # "1. 00:00 Artist - Title": the chapter stamp can follow the marker
        rest = strip_timestamp(match.group("rest")).strip()
        if not rest:
            return LINE_OTHER, ""
        return LINE_LIST_ITEM, rest
    if _SEPARATOR_PATTERN.search(line):
        return LINE_ARTIST_TITLE, line
    return LINE_OTHER, line
