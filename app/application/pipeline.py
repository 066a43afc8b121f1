import logging
import time
import uuid
from typing import Callable, List, Optional, Sequence

from app.application.extraction import TracklistExtractor
from app.application.extraction_log import (
    ExtractionLog, STEP_ERROR, STEP_START, STEP_VIDEO_ID,
)
from app.application.matching import CatalogMatcher, DEFAULT_SEARCH_DELAY_SEC
from app.application.video_id import resolve_video_id
from app.crosscutting.logging import (
    CorrelationContext, log_error, log_extraction_complete, log_extraction_start,
    log_reconciliation_complete,
)
from app.domain.entities import (
    CatalogMatch, ExtractionResult, ReconciliationOutcome, Track,
)
from app.domain.errors import (
    ExtractionError, InvalidInput, NoActiveDevice, ReconciliationFailed, Unauthorized,
)
from app.domain.ports import MusicCatalog, PageSource


logger = logging.getLogger(__name__)

NO_ACTIVE_DEVICE_MESSAGE = "No active Spotify device found. Please open Spotify and start playing."
GENERIC_EXTRACTION_FAILURE = "Failed to fetch tracks"
GENERIC_QUEUE_FAILURE = "Failed to process tracks"
GENERIC_PLAYLIST_FAILURE = "Failed to create playlist"


def queue_failure_message(match: CatalogMatch) -> str:
    return f'Failed to add "{match.original.title}" to queue'


def playlist_failure_message(count: int, name: str) -> str:
    return f'Failed to add {count} tracks to playlist "{name}"'


class TracklistService:
    """Runs one extraction request: URL -> video id -> page -> tracklist."""

    def __init__(self,
                 source: PageSource,
                 extractor: Optional[TracklistExtractor] = None,
                 strategy_name: str = "static"):
        """Initialize the service.

        Args:
            source: Page fetcher (static HTML or rendered DOM)
            extractor: Tracklist extractor; a default one is built if omitted
            strategy_name: Fetch strategy label used in logs
        """
        self.source = source
        self.extractor = extractor or TracklistExtractor()
        self.strategy_name = strategy_name

    def extract_from_url(self, url: str) -> ExtractionResult:
        """Extract the tracklist of the video behind ``url``.

        Raises:
            InvalidInput: the URL has neither the short nor the canonical shape
            ExtractionError: fetch or extraction failed; ``logs`` holds the diagnostics
        """
        request_id = uuid.uuid4().hex[:12]
        log = ExtractionLog()

        with CorrelationContext(request_id=request_id, stage='extract'):
            log_extraction_start(logger, request_id, url, self.strategy_name)
            try:
                log.record(STEP_START, "Starting track extraction process")
                log.record(STEP_VIDEO_ID, f"Extracting video ID from: {url}")
                video_id = resolve_video_id(url)
                if not video_id:
                    raise InvalidInput("Invalid YouTube URL")
                log.record(STEP_VIDEO_ID, f"Video ID extracted: {video_id}")

                with CorrelationContext(video_id=video_id):
                    page = self.source.fetch(video_id, log)
                    result = self.extractor.extract(page, log)

                log_extraction_complete(logger, request_id, video_id,
                                        track_count=len(result.tracks), log_count=len(result.logs))
                return result

            except InvalidInput as e:
                log.record(STEP_ERROR, f"Error in track extraction: {e}")
                raise
            except ExtractionError as e:
                log.record(STEP_ERROR, f"Error in track extraction: {e}")
                raise e.with_logs(log.entries)
            except Exception as e:
                log.record(STEP_ERROR, f"Error in track extraction: {e}")
                log_error(logger, "Unexpected extraction failure", e, url=url)
                raise ExtractionError(GENERIC_EXTRACTION_FAILURE, log.entries) from e


class Reconciler:
    """Turns candidate tracks into queue insertions or a new playlist.

    Per-track failures are collected as miss messages; only a missing playback
    device (queue mode) or a rejected credential abandon a run.
    """

    def __init__(self,
                 catalog: MusicCatalog,
                 matcher: Optional[CatalogMatcher] = None,
                 delay_sec: float = DEFAULT_SEARCH_DELAY_SEC,
                 sleep: Optional[Callable[[float], None]] = None,
                 playlist_description: str = ""):
        self.catalog = catalog
        self._sleep = sleep or time.sleep
        self.delay_sec = delay_sec
        self.matcher = matcher or CatalogMatcher(catalog, delay_sec=delay_sec, sleep=self._sleep)
        self.playlist_description = playlist_description

    def queue_tracks(self, tracks: Sequence[Track]) -> ReconciliationOutcome:
        """Match every track and append the hits to the live playback queue.

        Raises:
            NoActiveDevice: checked before any search or insertion
            Unauthorized: the catalog rejected the credential
            ReconciliationFailed: any unexpected failure
        """
        with CorrelationContext(stage='queue'):
            try:
                logger.info(f"Starting track queue process for {len(tracks)} tracks")
                if not self.catalog.has_active_device():
                    logger.warning("No active device found")
                    raise NoActiveDevice(NO_ACTIVE_DEVICE_MESSAGE)

                report = self.matcher.match_all(tracks)
                misses: List[str] = report.miss_messages
                queued: List[CatalogMatch] = []

                for index, match in enumerate(report.matches):
                    if index > 0 and self.delay_sec > 0:
                        self._sleep(self.delay_sec)
                    try:
                        self.catalog.add_to_queue(match.catalog_uri)
                    except Unauthorized:
                        raise
                    except Exception as e:
                        logger.error(f"Failed to add {match.catalog_uri} to queue: {e}")
                        misses.append(queue_failure_message(match))
                        continue
                    queued.append(match)
                    logger.info(f"Added {match.catalog_name!r} to queue")

                log_reconciliation_complete(logger, 'queue', len(queued), len(misses))
                return ReconciliationOutcome(matches=tuple(queued), misses=tuple(misses))

            except (NoActiveDevice, Unauthorized):
                raise
            except Exception as e:
                log_error(logger, "Queue run failed", e)
                raise ReconciliationFailed(GENERIC_QUEUE_FAILURE) from e

    def create_playlist(self, tracks: Sequence[Track], name: str) -> ReconciliationOutcome:
        """Match every track and materialize the hits as a new playlist.

        No playlist is created when nothing matched.

        Raises:
            Unauthorized: the catalog rejected the credential
            ReconciliationFailed: any unexpected failure
        """
        with CorrelationContext(stage='playlist'):
            try:
                logger.info(f"Creating playlist {name!r} from {len(tracks)} tracks")
                report = self.matcher.match_all(tracks)
                misses: List[str] = report.miss_messages

                if not report.matches:
                    log_reconciliation_complete(logger, 'playlist', 0, len(misses))
                    return ReconciliationOutcome(matches=(), misses=tuple(misses))

                user_id = self.catalog.current_user_id()
                playlist = self.catalog.create_playlist(user_id, name, self.playlist_description)
                uris = [m.catalog_uri for m in report.matches]

                try:
                    result = self.catalog.add_tracks_to_playlist(playlist.id, uris)
                    if result.errors:
                        misses.append(playlist_failure_message(result.errors, playlist.name))
                except Unauthorized:
                    raise
                except Exception as e:
                    logger.error(f"Failed to add tracks to playlist {playlist.id}: {e}")
                    misses.append(playlist_failure_message(len(uris), playlist.name))

                log_reconciliation_complete(logger, 'playlist', len(report.matches), len(misses),
                                            playlist_id=playlist.id)
                return ReconciliationOutcome(
                    matches=tuple(report.matches),
                    misses=tuple(misses),
                    playlist=playlist,
                )

            except Unauthorized:
                raise
            except Exception as e:
                log_error(logger, "Playlist run failed", e)
                raise ReconciliationFailed(GENERIC_PLAYLIST_FAILURE) from e
