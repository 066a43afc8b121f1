"""Tracklist extraction from a fetched video page.

Two strategies, chosen by the shape of the ``RawPage``:

* structured-section (rendered DOM): an ordered list of section locators is tried
  against the expanded page; cards of the first section yielding tracks become
  the tracklist.
* embedded-data (static HTML): the ``ytInitialData`` blob is decoded and the
  video description is scanned line by line. When the description yields
  nothing, the structured "rich metadata" cards of the same blob are used.

Both strategies number accepted tracks 1..N after deduplication and record every
attempt in the run's ``ExtractionLog``. Extraction is a pure function of the page.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from functools import reduce
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from bs4 import BeautifulSoup, Tag

from app.application.extraction_log import (
    ExtractionLog, STEP_COMPLETE, STEP_DESCRIPTION_LINES, STEP_EMBEDDED_DATA,
    STEP_PARSE, STEP_TRACKS,
)
from app.domain.entities import (
    ExtractionResult, PAGE_RENDERED, RawPage, Track, UNKNOWN_ALBUM,
)
from app.domain.errors import NoTracksFound
from app.domain.normalization import (
    LINE_ARTIST_TITLE, LINE_LIST_ITEM, classify_line, clean_text,
    split_artist_title, track_identity,
)


logger = logging.getLogger(__name__)

NO_TRACKS_MESSAGE = "No music tracks found in the video"


# ---------------------------------------------------------------------------
# Shared: numbering and deduplication
# ---------------------------------------------------------------------------

class TrackCollector:
    """Accepts candidate tracks, rejecting duplicates and incomplete records.

    Numbers are assigned only to accepted candidates, so they stay contiguous from 1.
    """

    def __init__(self, log: ExtractionLog):
        self._log = log
        self._seen: Set[Tuple[str, str]] = set()
        self.tracks: List[Track] = []

    def offer(self, title: str, artist: str, album: str = "", origin: str = "") -> Optional[Track]:
        title = clean_text(title)
        artist = clean_text(artist)
        prefix = f"{origin}: " if origin else ""

        if not title or not artist:
            self._log.record(
                STEP_TRACKS,
                f"{prefix}Skipping incomplete track (title={title!r}, artist={artist!r})",
            )
            return None

        key = track_identity(title, artist)
        if key in self._seen:
            self._log.record(STEP_TRACKS, f"{prefix}Skipping duplicate track: {title} by {artist}")
            return None
        self._seen.add(key)

        track = Track(
            number=len(self.tracks) + 1,
            title=title,
            artist=artist,
            album=clean_text(album) or UNKNOWN_ALBUM,
        )
        self.tracks.append(track)
        self._log.record(STEP_TRACKS, f"{prefix}Found track {track.number}: {title} by {artist}")
        return track


# ---------------------------------------------------------------------------
# Structured-section strategy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SectionLocator:
    """A named way of locating music-attribution sections in a parsed page."""

    name: str
    locate: Callable[[BeautifulSoup], List[Tag]]


def css_locator(selector: str) -> SectionLocator:
    return SectionLocator(name=selector, locate=lambda soup: soup.select(selector))


# Most specific first; the last entry accepts any card list
SECTION_LOCATORS: List[SectionLocator] = [
    css_locator('#items ytd-horizontal-card-list-renderer[section-identifier="music"]'),
    css_locator('#contents ytd-horizontal-card-list-renderer[section-identifier="music"]'),
    css_locator('ytd-horizontal-card-list-renderer:-soup-contains("Music")'),
    css_locator('#contents ytd-horizontal-card-list-renderer'),
]

CARD_SELECTOR = '.yt-video-attribute-view-model__link-container'
CARD_TITLE_SELECTOR = '.yt-video-attribute-view-model__title'
CARD_ARTIST_SELECTOR = '.yt-video-attribute-view-model__subtitle span'
CARD_ALBUM_SELECTOR = '.yt-video-attribute-view-model__secondary-subtitle span'
PEOPLE_SECTION_ATTRS = {'section-identifier': 'people'}


def _first_text(element: Tag, selector: str) -> str:
    found = element.select_one(selector)
    return clean_text(found.get_text()) if found is not None else ""


def extract_from_sections(soup: BeautifulSoup, log: ExtractionLog,
                          locators: Iterable[SectionLocator] = SECTION_LOCATORS) -> List[Track]:
    """Run the section locators in order, stopping at the first one that yields tracks."""
    collector = TrackCollector(log)
    section_found = False

    for locator in locators:
        log.record(STEP_TRACKS, f"Looking for music section with selector: {locator.name}")
        try:
            sections = locator.locate(soup)
        except Exception as e:
            log.record(STEP_TRACKS, f"Failed with selector {locator.name} ({e}), trying next...")
            continue

        if not sections:
            log.record(STEP_TRACKS, f"No section matched selector: {locator.name}")
            continue

        log.record(STEP_TRACKS, "Found music section")
        section_found = True

        for section in sections:
            for card in section.select(CARD_SELECTOR):
                title = _first_text(card, CARD_TITLE_SELECTOR)
                artist = _first_text(card, CARD_ARTIST_SELECTOR)
                album = _first_text(card, CARD_ALBUM_SELECTOR)
                if card.find_parent(attrs=PEOPLE_SECTION_ATTRS) is not None:
                    log.record(STEP_TRACKS, f"Skipping people card: {title or artist}")
                    continue
                collector.offer(title, artist, album)

        if collector.tracks:
            log.record(STEP_TRACKS, f"Successfully found {len(collector.tracks)} unique tracks in music section")
            break

    if not section_found:
        log.record(STEP_TRACKS, "Could not find music section")

    return collector.tracks


def rendered_video_title(soup: BeautifulSoup) -> str:
    if soup.title is None:
        return ""
    return clean_text(soup.title.get_text().replace(" - YouTube", ""))


# ---------------------------------------------------------------------------
# Embedded-data strategy
# ---------------------------------------------------------------------------

INITIAL_DATA_MARKER = "ytInitialData"
_INITIAL_DATA_PATTERN = re.compile(r'(?:var\s+|window\["|)ytInitialData(?:"\])?\s*=\s*')

_WATCH_CONTENTS_PATH = ("contents", "twoColumnWatchNextResults", "results", "results", "contents")
_STRUCTURED_ITEMS_PATH = (
    "engagementPanelSectionListRenderer", "content", "structuredDescriptionContentRenderer", "items",
)


def dig(data: Any, *path: Any) -> Any:
    """Walk nested dicts/lists, returning None as soon as a step is missing."""
    for key in path:
        if isinstance(data, dict):
            data = data.get(key)
        elif isinstance(data, list) and isinstance(key, int) and -len(data) <= key < len(data):
            data = data[key]
        else:
            return None
    return data


def text_of(node: Any) -> str:
    """Flatten the text shapes used in the embedded data (plain, simpleText, runs, content)."""
    if isinstance(node, str):
        return node
    if not isinstance(node, dict):
        return ""
    if "content" in node:
        return str(node["content"] or "")
    if "simpleText" in node:
        return str(node["simpleText"] or "")
    runs = node.get("runs")
    if isinstance(runs, list):
        return "".join(str(r.get("text", "")) for r in runs if isinstance(r, dict))
    return ""


def find_initial_data(soup: BeautifulSoup, log: ExtractionLog) -> Optional[Dict[str, Any]]:
    """Locate and decode the inline script payload carrying ``ytInitialData``."""
    log.record(STEP_EMBEDDED_DATA, f"Looking for embedded data marker: {INITIAL_DATA_MARKER}")
    decoder = json.JSONDecoder()

    for index, script in enumerate(soup.find_all("script")):
        text = script.string or script.get_text()
        if not text or INITIAL_DATA_MARKER not in text:
            continue
        match = _INITIAL_DATA_PATTERN.search(text)
        if not match:
            continue
        try:
            data, _ = decoder.raw_decode(text, match.end())
        except json.JSONDecodeError as e:
            log.record(STEP_EMBEDDED_DATA, f"Script {index} carries the marker but is not valid JSON: {e}")
            continue
        if isinstance(data, dict):
            log.record(STEP_EMBEDDED_DATA, f"Found embedded data in script {index}")
            return data

    log.record(STEP_EMBEDDED_DATA, "Embedded data not found")
    return None


def description_fragments(data: Dict[str, Any]) -> List[str]:
    """Return the video description as its ordered list of text fragments."""
    for item in dig(data, *_WATCH_CONTENTS_PATH) or []:
        info = dig(item, "videoSecondaryInfoRenderer")
        if not info:
            continue
        runs = dig(info, "description", "runs")
        if isinstance(runs, list) and runs:
            return [str(r.get("text", "")) for r in runs if isinstance(r, dict)]
        content = dig(info, "attributedDescription", "content")
        if content:
            return [str(content)]
    return []


def embedded_video_title(data: Dict[str, Any]) -> str:
    for item in dig(data, *_WATCH_CONTENTS_PATH) or []:
        title = text_of(dig(item, "videoPrimaryInfoRenderer", "title"))
        if title:
            return clean_text(title)
    return ""


def rich_metadata_cards(data: Dict[str, Any]) -> Iterator[Tuple[str, str, str]]:
    """Yield (title, subtitle, caption) triples from the structured description cards."""
    for panel in data.get("engagementPanels") or []:
        for item in dig(panel, *_STRUCTURED_ITEMS_PATH) or []:
            card_list = dig(item, "horizontalCardListRenderer")
            if not card_list:
                continue
            header = text_of(dig(card_list, "header", "richListHeaderRenderer", "title"))
            if clean_text(header).casefold() == "people":
                continue
            for card in card_list.get("cards") or []:
                model = dig(card, "videoAttributeViewModel")
                if not model:
                    continue
                yield (
                    text_of(model.get("title")),
                    text_of(model.get("subtitle")),
                    text_of(model.get("secondarySubtitle")),
                )


@dataclass(frozen=True)
class LineCandidate:
    title: str
    artist: str
    line_number: int
    origin: str


@dataclass(frozen=True)
class ScanState:
    """Accumulator of the description scan: at most one pending track plus the emitted ones."""

    pending: Optional[LineCandidate] = None
    emitted: Tuple[LineCandidate, ...] = ()
    line_number: int = 0

    def closed(self) -> Tuple[LineCandidate, ...]:
        """Emitted candidates with the pending one (if any) closed out."""
        if self.pending is None:
            return self.emitted
        return self.emitted + (self.pending,)


def scan_line(state: ScanState, line: str) -> ScanState:
    """Advance the scan by one line.

    A list-marker line closes the pending track and opens a new one. An
    "Artist - Title" line closes the pending track and is emitted at once.
    Any other line leaves the state untouched.
    """
    line_number = state.line_number + 1
    kind, text = classify_line(line)

    if kind == LINE_LIST_ITEM:
        parts = split_artist_title(text)
        if len(parts) == 2:
            candidate = LineCandidate(title=parts[1], artist=parts[0], line_number=line_number, origin="list item")
        else:
            # A lone part is ambiguous; keep it as the title only
            candidate = LineCandidate(title=clean_text(text), artist="", line_number=line_number, origin="list item")
        return ScanState(pending=candidate, emitted=state.closed(), line_number=line_number)

    if kind == LINE_ARTIST_TITLE:
        parts = split_artist_title(text)
        if len(parts) == 2:
            standalone = LineCandidate(title=parts[1], artist=parts[0], line_number=line_number, origin="artist-title line")
            return ScanState(pending=None, emitted=state.closed() + (standalone,), line_number=line_number)

    return ScanState(pending=state.pending, emitted=state.emitted, line_number=line_number)


def scan_description(lines: Iterable[str]) -> Tuple[LineCandidate, ...]:
    """Fold ``scan_line`` over the lines and close out the final pending track."""
    return reduce(scan_line, lines, ScanState()).closed()


def extract_from_embedded_data(soup: BeautifulSoup, log: ExtractionLog) -> Tuple[List[Track], str]:
    data = find_initial_data(soup, log)
    if data is None:
        return [], rendered_video_title(soup)

    video_title = embedded_video_title(data) or rendered_video_title(soup)
    fragments = description_fragments(data)
    lines = "".join(fragments).splitlines()
    log.record(STEP_DESCRIPTION_LINES, f"Description has {len(fragments)} fragments and {len(lines)} lines")

    collector = TrackCollector(log)
    for candidate in scan_description(lines):
        collector.offer(
            candidate.title, candidate.artist,
            origin=f"Line {candidate.line_number} ({candidate.origin})",
        )

    if collector.tracks:
        log.record(STEP_TRACKS, f"Successfully found {len(collector.tracks)} unique tracks in description")
        return collector.tracks, video_title

    log.record(STEP_TRACKS, "No tracks in description, falling back to rich metadata cards")
    for title, subtitle, caption in rich_metadata_cards(data):
        collector.offer(title, subtitle, caption, origin="Rich metadata")

    if collector.tracks:
        log.record(STEP_TRACKS, f"Successfully found {len(collector.tracks)} unique tracks in rich metadata")
    return collector.tracks, video_title


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------

class TracklistExtractor:
    """Turns a fetched page into an ordered, deduplicated tracklist."""

    def __init__(self, section_locators: Optional[List[SectionLocator]] = None):
        self.section_locators = list(section_locators) if section_locators is not None else list(SECTION_LOCATORS)

    def extract(self, page: RawPage, log: Optional[ExtractionLog] = None) -> ExtractionResult:
        """Extract tracks from ``page``.

        Raises:
            NoTracksFound: if every strategy and fallback produced zero tracks
        """
        log = log if log is not None else ExtractionLog()
        log.record(STEP_PARSE, f"Getting page content and parsing ({page.kind} page)")
        soup = BeautifulSoup(page.html, "html.parser")

        log.record(STEP_TRACKS, "Extracting tracks")
        if page.kind == PAGE_RENDERED:
            tracks = extract_from_sections(soup, log, self.section_locators)
            video_title = rendered_video_title(soup)
        else:
            tracks, video_title = extract_from_embedded_data(soup, log)

        if not tracks:
            raise NoTracksFound(NO_TRACKS_MESSAGE, log.entries)

        log.record(STEP_COMPLETE, f"Process completed successfully with {len(tracks)} tracks")
        return ExtractionResult(tracks=tuple(tracks), logs=log.entries, video_title=video_title)
