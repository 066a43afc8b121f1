from __future__ import annotations

from typing import List, Optional, Protocol

from .entities import AddResult, CatalogTrack, PlaylistRef, RawPage


class MusicCatalog(Protocol):
    """Port defining the calls the reconciler makes against the streaming catalog.

    Implementations receive a ready bearer credential and never refresh it; a rejected
    credential must surface as ``Unauthorized``.
    """

    def search_top_track(self, query: str) -> Optional[CatalogTrack]:
        """Return the single most relevant track for a free-text query, or None."""

    def has_active_device(self) -> bool:
        """Return True if a playback device is currently able to receive queue commands."""

    def add_to_queue(self, uri: str) -> None:
        """Append a track URI to the live playback queue."""

    def current_user_id(self) -> str:
        """Return the identifier of the user owning the credential."""

    def create_playlist(self, user_id: str, name: str, description: str = "") -> PlaylistRef:
        """Create a new private playlist and return its identity."""

    def add_tracks_to_playlist(self, playlist_id: str, uris: List[str]) -> AddResult:
        """Insert all URIs into the playlist, preserving order."""


class PageSource(Protocol):
    """Port for retrieving the raw representation of a video page."""

    def fetch(self, video_id: str, log) -> RawPage:
        """Fetch the page for ``video_id``, recording one log entry per meaningful step.

        Raises:
            FetchFailure: the source could not be reached
            DescriptionUnavailable: the description could not be located
        """
