from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


UNKNOWN_ALBUM = "unknown"
PAGE_STATIC = "static"
PAGE_RENDERED = "rendered"


@dataclass(frozen=True)
class Track:
    """Candidate track discovered in a mix before catalog matching."""

    number: int
    title: str
    artist: str
    album: str = UNKNOWN_ALBUM

    def __post_init__(self):
        if not self.album:
            object.__setattr__(self, 'album', UNKNOWN_ALBUM)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'number': self.number,
            'title': self.title,
            'artist': self.artist,
            'album': self.album,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Track":
        """Build a track from an inbound request payload.

        Raises:
            ValueError: if title/artist are blank or number is not a positive integer
        """
        title = str(data.get('title') or '').strip()
        artist = str(data.get('artist') or '').strip()
        if not title or not artist:
            raise ValueError("Track title and artist are required")
        try:
            number = int(data.get('number', 0))
        except (TypeError, ValueError):
            raise ValueError(f"Invalid track number: {data.get('number')!r}")
        if number < 1:
            raise ValueError(f"Invalid track number: {number}")
        album = str(data.get('album') or '').strip() or UNKNOWN_ALBUM
        return cls(number=number, title=title, artist=artist, album=album)


@dataclass(frozen=True)
class ExtractionLogEntry:
    """One diagnostic step recorded during an extraction run."""

    step: str
    message: str
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {'step': self.step, 'message': self.message, 'timestamp': self.timestamp}


@dataclass(frozen=True)
class RawPage:
    """Raw representation of a video page as fetched from the source."""

    video_id: str
    html: str
    # PAGE_RENDERED for a DOM snapshot taken after expansion, PAGE_STATIC for plain HTML
    kind: str = PAGE_STATIC


@dataclass(frozen=True)
class ExtractionResult:
    """Ordered tracks plus the diagnostics of one extraction run."""

    tracks: Tuple[Track, ...]
    logs: Tuple[ExtractionLogEntry, ...]
    video_title: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'tracks': [t.to_dict() for t in self.tracks],
            'logs': [entry.to_dict() for entry in self.logs],
            'videoTitle': self.video_title,
        }


@dataclass(frozen=True)
class CatalogTrack:
    """Top search hit returned by the catalog."""

    name: str
    artist: str
    album: str
    uri: str


@dataclass(frozen=True)
class CatalogMatch:
    """Pairing of a candidate track with the catalog entry found for it."""

    original: Track
    catalog_name: str
    catalog_artist: str
    catalog_album: str
    catalog_uri: str

    @classmethod
    def from_hit(cls, original: Track, hit: CatalogTrack) -> "CatalogMatch":
        return cls(
            original=original,
            catalog_name=hit.name,
            catalog_artist=hit.artist,
            catalog_album=hit.album,
            catalog_uri=hit.uri,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'original': self.original.to_dict(),
            'catalogName': self.catalog_name,
            'catalogArtist': self.catalog_artist,
            'catalogAlbum': self.catalog_album,
            'catalogUri': self.catalog_uri,
        }


@dataclass(frozen=True)
class Miss:
    """A track that could not be matched or applied. Carried as data, not raised."""

    original: Optional[Track]
    message: str


@dataclass(frozen=True)
class PlaylistRef:
    """Identity of a playlist created in the catalog."""

    id: str
    name: str
    url: str

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'url': self.url}


@dataclass(frozen=True)
class AddResult:
    """Result of a batch add operation to a playlist."""

    added: int
    errors: int


@dataclass(frozen=True)
class ReconciliationOutcome:
    """Summary of a queue or playlist run."""

    matches: Tuple[CatalogMatch, ...] = ()
    misses: Tuple[str, ...] = ()
    playlist: Optional[PlaylistRef] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'matches': [m.to_dict() for m in self.matches],
            'misses': list(self.misses),
        }
        if self.playlist is not None:
            data['playlist'] = self.playlist.to_dict()
        return data


@dataclass
class MatchReport:
    """Matches and misses produced by one sequential matching pass."""

    matches: List[CatalogMatch] = field(default_factory=list)
    misses: List[Miss] = field(default_factory=list)

    @property
    def miss_messages(self) -> List[str]:
        return [m.message for m in self.misses]
