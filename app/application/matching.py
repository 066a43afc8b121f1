import logging
import time
from typing import Callable, Iterable, Optional, Union

from app.domain.entities import CatalogMatch, MatchReport, Miss, Track
from app.domain.errors import Unauthorized
from app.domain.ports import MusicCatalog


logger = logging.getLogger(__name__)

DEFAULT_SEARCH_DELAY_SEC = 1.0
CATALOG_NAME = "Spotify"


def not_found_message(track: Track) -> str:
    return f'Could not find "{track.title}" on {CATALOG_NAME}'


def error_message(track: Track, error: Exception) -> str:
    return f'Error processing "{track.title}": {error}'


def build_query(track: Track) -> str:
    return f"{track.title} {track.artist}"


class CatalogMatcher:
    """Matches candidate tracks against the catalog, one top-1 search per track.

    The first hit is accepted as-is; ranking is left to the catalog. Tracks are
    processed strictly one after another with a fixed delay between calls to stay
    within the catalog's rate limits.
    """

    def __init__(self,
                 catalog: MusicCatalog,
                 delay_sec: float = DEFAULT_SEARCH_DELAY_SEC,
                 sleep: Optional[Callable[[float], None]] = None):
        """Initialize the matcher.

        Args:
            catalog: Catalog port used for searching
            delay_sec: Pause between successive catalog calls
            sleep: Sleep function, injectable for tests
        """
        self.catalog = catalog
        self.delay_sec = delay_sec
        self._sleep = sleep or time.sleep

    def match_one(self, track: Track) -> Union[CatalogMatch, Miss]:
        """Search for a single track.

        Transport errors propagate; ``match_all`` converts them into misses.
        """
        query = build_query(track)
        logger.debug(f"Searching for track: {query!r}")

        hit = self.catalog.search_top_track(query)
        if hit is None:
            logger.info(f"No track found for query: {query!r}")
            return Miss(original=track, message=not_found_message(track))

        logger.info(f"Found track: {hit.name!r} by {hit.artist}")
        return CatalogMatch.from_hit(track, hit)

    def match_all(self, tracks: Iterable[Track]) -> MatchReport:
        """Match every track in order.

        A failure on one track is recorded as a miss and never prevents the
        remaining tracks from being attempted. A rejected credential aborts the
        run since every later call would fail the same way.

        Raises:
            Unauthorized: the catalog rejected the bearer credential
        """
        report = MatchReport()

        for index, track in enumerate(tracks):
            if index > 0 and self.delay_sec > 0:
                self._sleep(self.delay_sec)
            try:
                result = self.match_one(track)
            except Unauthorized:
                raise
            except Exception as e:
                logger.error(f"Error processing track {track.number} ({track.title}): {e}")
                report.misses.append(Miss(original=track, message=error_message(track, e)))
                continue

            if isinstance(result, CatalogMatch):
                report.matches.append(result)
            else:
                report.misses.append(result)

        logger.info(f"Matching completed: {len(report.matches)} matched, {len(report.misses)} missed")
        return report
