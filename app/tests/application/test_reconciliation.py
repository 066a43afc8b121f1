from unittest.mock import Mock

import pytest

from app.application.pipeline import NO_ACTIVE_DEVICE_MESSAGE, Reconciler
from app.domain.entities import AddResult, CatalogTrack, PlaylistRef, Track
from app.domain.errors import (
    NoActiveDevice, PermanentFailure, ReconciliationFailed, TemporaryFailure, Unauthorized,
)


TRACKS = [
    Track(number=1, title="Night Drive", artist="DJ Snake"),
    Track(number=2, title="Unknown Song", artist="Nobody"),
    Track(number=3, title="Midnight City", artist="M83"),
]


CATALOG = {
    "Night Drive DJ Snake": CatalogTrack(name="Night Drive", artist="DJ Snake", album="Nomad",
                                         uri="spotify:track:Night_Drive"),
    "Midnight City M83": CatalogTrack(name="Midnight City", artist="M83", album="Hurry Up",
                                      uri="spotify:track:Midnight_City"),
}


def fake_search(query):
    return CATALOG.get(query)


class TestQueueMode:
    """Tests for adding matched tracks to the playback queue."""

    def setup_method(self):
        """Set up test fixtures."""
        self.catalog = Mock()
        self.catalog.has_active_device.return_value = True
        self.catalog.search_top_track.side_effect = fake_search
        self.sleep = Mock()
        self.reconciler = Reconciler(self.catalog, delay_sec=1.0, sleep=self.sleep)

    def test_no_active_device_aborts_before_any_search(self):
        self.catalog.has_active_device.return_value = False

        with pytest.raises(NoActiveDevice) as exc_info:
            self.reconciler.queue_tracks(TRACKS)

        assert str(exc_info.value) == NO_ACTIVE_DEVICE_MESSAGE
        self.catalog.search_top_track.assert_not_called()
        self.catalog.add_to_queue.assert_not_called()

    def test_matches_are_queued_in_order(self):
        outcome = self.reconciler.queue_tracks(TRACKS)

        assert [m.original.number for m in outcome.matches] == [1, 3]
        assert outcome.misses == ('Could not find "Unknown Song" on Spotify',)
        assert [c.args[0] for c in self.catalog.add_to_queue.call_args_list] == [
            "spotify:track:Night_Drive",
            "spotify:track:Midnight_City",
        ]
        assert outcome.playlist is None

    def test_queue_failure_becomes_a_miss(self):
        def add(uri):
            if uri.endswith("Night_Drive"):
                raise PermanentFailure("add to queue: Restricted device")

        self.catalog.add_to_queue.side_effect = add

        outcome = self.reconciler.queue_tracks(TRACKS)

        assert [m.original.number for m in outcome.matches] == [3]
        assert 'Failed to add "Night Drive" to queue' in outcome.misses

    def test_unauthorized_propagates(self):
        self.catalog.has_active_device.side_effect = Unauthorized("token rejected")

        with pytest.raises(Unauthorized):
            self.reconciler.queue_tracks(TRACKS)

    def test_unexpected_failure_is_wrapped(self):
        self.catalog.has_active_device.side_effect = RuntimeError("boom")

        with pytest.raises(ReconciliationFailed, match="Failed to process tracks"):
            self.reconciler.queue_tracks(TRACKS)


class TestPlaylistMode:
    """Tests for creating a playlist from matched tracks."""

    def setup_method(self):
        """Set up test fixtures."""
        self.catalog = Mock()
        self.catalog.search_top_track.side_effect = fake_search
        self.catalog.current_user_id.return_value = "user1"
        self.catalog.create_playlist.return_value = PlaylistRef(
            id="pl1", name="Summer Mix", url="https://open.spotify.com/playlist/pl1"
        )
        self.catalog.add_tracks_to_playlist.return_value = AddResult(added=2, errors=0)
        self.reconciler = Reconciler(self.catalog, delay_sec=0, sleep=Mock(),
                                     playlist_description="Created from a mix tracklist")

    def test_playlist_is_created_with_matched_uris(self):
        outcome = self.reconciler.create_playlist(TRACKS, "Summer Mix")

        self.catalog.create_playlist.assert_called_once_with("user1", "Summer Mix", "Created from a mix tracklist")
        self.catalog.add_tracks_to_playlist.assert_called_once_with(
            "pl1", ["spotify:track:Night_Drive", "spotify:track:Midnight_City"]
        )
        assert outcome.playlist.id == "pl1"
        assert len(outcome.matches) == 2
        assert outcome.misses == ('Could not find "Unknown Song" on Spotify',)

    def test_no_matches_creates_no_playlist(self):
        self.catalog.search_top_track.side_effect = None
        self.catalog.search_top_track.return_value = None

        outcome = self.reconciler.create_playlist(TRACKS, "Summer Mix")

        assert outcome.playlist is None
        assert outcome.matches == ()
        assert len(outcome.misses) == 3
        self.catalog.create_playlist.assert_not_called()

    def test_partial_insert_failure_is_reported(self):
        self.catalog.add_tracks_to_playlist.return_value = AddResult(added=0, errors=2)

        outcome = self.reconciler.create_playlist(TRACKS, "Summer Mix")

        assert 'Failed to add 2 tracks to playlist "Summer Mix"' in outcome.misses
        assert outcome.playlist is not None

    def test_insert_exception_is_reported(self):
        self.catalog.add_tracks_to_playlist.side_effect = TemporaryFailure("503")

        outcome = self.reconciler.create_playlist(TRACKS, "Summer Mix")

        assert 'Failed to add 2 tracks to playlist "Summer Mix"' in outcome.misses

    def test_create_failure_is_wrapped(self):
        self.catalog.create_playlist.side_effect = PermanentFailure("create playlist: 403")

        with pytest.raises(ReconciliationFailed, match="Failed to create playlist"):
            self.reconciler.create_playlist(TRACKS, "Summer Mix")

    def test_unauthorized_propagates(self):
        self.catalog.current_user_id.side_effect = Unauthorized("token rejected")

        with pytest.raises(Unauthorized):
            self.reconciler.create_playlist(TRACKS, "Summer Mix")
