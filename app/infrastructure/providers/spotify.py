import logging
from typing import Any, Callable, Dict, List, Optional

import requests
import spotipy
from spotipy.exceptions import SpotifyException
from urllib3.exceptions import ReadTimeoutError

from app.domain.entities import AddResult, CatalogTrack, PlaylistRef
from app.domain.errors import (
    NotFound, PermanentFailure, RateLimited, TemporaryFailure, Unauthorized,
)
from app.domain.ports import MusicCatalog

logger = logging.getLogger(__name__)

# Spotify accepts at most 100 URIs per playlist insertion request
PLAYLIST_ADD_LIMIT = 100


class SpotifyCatalog(MusicCatalog):
    """Spotify implementation of the catalog port.

    The adapter receives a ready access token and never refreshes it; a 401 from
    Spotify is raised as ``Unauthorized`` so the caller can re-authenticate.
    """

    def __init__(self,
                 access_token: str,
                 market: Optional[str] = None,
                 requests_timeout: int = 15):
        """Initialize Spotify catalog.

        Args:
            access_token: Spotify bearer token supplied by the auth collaborator
            market: Optional market code used for search
            requests_timeout: Per-request timeout in seconds
        """
        if not access_token:
            raise Unauthorized("Spotify access token is required")
        self._market = market
        # Tests replace _client with a mock
        self._client = spotipy.Spotify(
            auth=access_token,
            requests_timeout=requests_timeout,
            status_retries=0,
        )

    def _call(self, operation: str, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """Invoke a spotipy method, translating failures into domain errors."""
        try:
            return fn(*args, **kwargs)
        except SpotifyException as e:
            status = getattr(e, 'http_status', None)
            if status == 401:
                logger.error(f"Spotify rejected the access token during {operation}")
                raise Unauthorized(f"Spotify access token rejected during {operation}")
            if status == 429:
                headers = getattr(e, 'headers', None) or {}
                try:
                    retry_after = int(headers.get('Retry-After', 1))
                except (TypeError, ValueError):
                    retry_after = 1
                raise RateLimited(retry_after_ms=retry_after * 1000,
                                  message=f"Rate limited during {operation}")
            if status == 404:
                raise NotFound(f"{operation}: {e.msg}")
            if status is not None and int(status) >= 500:
                raise TemporaryFailure(f"{operation}: {e.msg}")
            raise PermanentFailure(f"{operation}: {getattr(e, 'msg', e)}")
        except (requests.exceptions.RequestException, ReadTimeoutError) as e:
            logger.warning(f"Transport failure during {operation}: {e}")
            raise TemporaryFailure(f"{operation}: {e}")

    @staticmethod
    def _to_catalog_track(item: Dict[str, Any]) -> Optional[CatalogTrack]:
        uri = item.get('uri') or (f"spotify:track:{item['id']}" if item.get('id') else None)
        if not uri:
            return None
        artists = item.get('artists') or []
        album = item.get('album') or {}
        return CatalogTrack(
            name=item.get('name', ''),
            artist=artists[0].get('name', '') if artists else '',
            album=album.get('name', '') if album else '',
            uri=uri,
        )

    def search_top_track(self, query: str) -> Optional[CatalogTrack]:
        """Return the first track hit for a free-text query.

        Args:
            query: Free-text query, typically "<title> <artist>"

        Returns:
            The top hit or None if the search is empty
        """
        if not query.strip():
            return None

        kwargs = {'q': query, 'type': 'track', 'limit': 1}
        if self._market:
            kwargs['market'] = self._market
        results = self._call('search', self._client.search, **kwargs)

        items = ((results or {}).get('tracks') or {}).get('items') or []
        if not items:
            return None
        return self._to_catalog_track(items[0])

    def has_active_device(self) -> bool:
        """Spotify answers 204 (no body) on /me/player when nothing is active."""
        playback = self._call('get playback state', self._client.current_playback)
        return bool(playback) and bool(playback.get('device'))

    def add_to_queue(self, uri: str) -> None:
        self._call('add to queue', self._client.add_to_queue, uri)

    def current_user_id(self) -> str:
        user = self._call('get current user', self._client.current_user)
        return user['id']

    def create_playlist(self, user_id: str, name: str, description: str = "") -> PlaylistRef:
        logger.info(f"Creating new playlist: {name}")
        result = self._call(
            'create playlist', self._client.user_playlist_create,
            user_id, name, public=False, description=description,
        )
        return PlaylistRef(
            id=result['id'],
            name=result.get('name', name),
            url=(result.get('external_urls') or {}).get('spotify', ''),
        )

    def add_tracks_to_playlist(self, playlist_id: str, uris: List[str]) -> AddResult:
        """Insert all URIs in request-sized chunks, preserving order.

        Failed chunks are counted as errors; a rejected token aborts the insertion.
        """
        if not uris:
            return AddResult(added=0, errors=0)

        added = 0
        errors = 0
        for start in range(0, len(uris), PLAYLIST_ADD_LIMIT):
            chunk = uris[start:start + PLAYLIST_ADD_LIMIT]
            try:
                result = self._call('add tracks to playlist', self._client.playlist_add_items, playlist_id, chunk)
            except Unauthorized:
                raise
            except (TemporaryFailure, PermanentFailure, RateLimited, NotFound) as e:
                logger.error(f"Failed to add tracks batch at {start}: {e}")
                errors += len(chunk)
                continue
            if result and 'snapshot_id' in result:
                added += len(chunk)
            else:
                errors += len(chunk)

        return AddResult(added=added, errors=errors)
