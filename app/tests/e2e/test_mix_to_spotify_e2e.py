import json
from unittest.mock import Mock, patch

from spotipy.exceptions import SpotifyException

from app.application.pipeline import TracklistService
from app.crosscutting.config import Settings
from app.infrastructure.fetchers.static import StaticPageFetcher
from app.infrastructure.providers.spotify import SpotifyCatalog
from app.interfaces.http import HTTPServer


DESCRIPTION = """Summer mix, recorded live.

Tracklist:
00:00 1. DJ Snake - Night Drive
04:12 2. M83 - Midnight City
08:40 3. Nobody - Unknown Song
12:01 4. dj snake - night drive

Follow for more!"""


def watch_page_html() -> str:
    data = {
        "contents": {"twoColumnWatchNextResults": {"results": {"results": {"contents": [
            {"videoPrimaryInfoRenderer": {"title": {"runs": [{"text": "Summer Mix 2024"}]}}},
            {"videoSecondaryInfoRenderer": {"attributedDescription": {"content": DESCRIPTION}}},
        ]}}}},
    }
    return (
        "<html><head><title>Summer Mix 2024 - YouTube</title></head><body>"
        f"<script>var ytInitialData = {json.dumps(data)};</script>"
        "</body></html>"
    )


def spotify_search(q, type, limit, **kwargs):
    catalog = {
        "Night Drive DJ Snake": ("spotify:track:nd", "Night Drive", "DJ Snake", "Nomad"),
        "Midnight City M83": ("spotify:track:mc", "Midnight City", "M83", "Hurry Up, We're Dreaming"),
    }
    if q not in catalog:
        return {'tracks': {'items': []}}
    uri, name, artist, album = catalog[q]
    return {'tracks': {'items': [{
        'uri': uri, 'name': name, 'artists': [{'name': artist}], 'album': {'name': album},
    }]}}


class TestMixToSpotifyE2E:
    """Extraction and reconciliation through the HTTP surface with only the network mocked."""

    def setup_method(self):
        """Set up test fixtures."""
        self.session = Mock()
        self.session.get.return_value = Mock(ok=True, status_code=200, text=watch_page_html())
        service = TracklistService(StaticPageFetcher(session=self.session))

        self.spotify = Mock()
        self.spotify.search.side_effect = spotify_search
        self.spotify.current_playback.return_value = {'device': {'id': 'd1'}}
        self.spotify.current_user.return_value = {'id': 'user1'}
        self.spotify.user_playlist_create.return_value = {
            'id': 'pl1', 'name': 'Summer Mix 2024',
            'external_urls': {'spotify': 'https://open.spotify.com/playlist/pl1'},
        }
        self.spotify.playlist_add_items.return_value = {'snapshot_id': 'snap'}

        def catalog_factory(token):
            with patch('app.infrastructure.providers.spotify.spotipy.Spotify', return_value=self.spotify):
                return SpotifyCatalog(token)

        server = HTTPServer(
            settings=Settings(search_delay_sec=0),
            tracklist_service=service,
            catalog_factory=catalog_factory,
            sleep=Mock(),
        )
        self.client = server.app.test_client()

    def _extract(self):
        response = self.client.post('/api/tracks', json={'url': 'https://www.youtube.com/watch?v=abc123&t=5'})
        assert response.status_code == 200
        return response.get_json()

    def test_extract_then_create_playlist(self):
        extracted = self._extract()

        assert extracted['videoTitle'] == 'Summer Mix 2024'
        assert [(t['number'], t['artist'], t['title']) for t in extracted['tracks']] == [
            (1, 'DJ Snake', 'Night Drive'),
            (2, 'M83', 'Midnight City'),
            (3, 'Nobody', 'Unknown Song'),
        ]

        response = self.client.post('/api/spotify/playlist', json={
            'tracks': extracted['tracks'],
            'accessToken': 'token',
            'playlistName': extracted['videoTitle'],
        })

        assert response.status_code == 200
        data = response.get_json()
        assert data['playlist']['url'] == 'https://open.spotify.com/playlist/pl1'
        assert [m['catalogUri'] for m in data['matches']] == ['spotify:track:nd', 'spotify:track:mc']
        assert data['misses'] == ['Could not find "Unknown Song" on Spotify']
        self.spotify.playlist_add_items.assert_called_once_with('pl1', ['spotify:track:nd', 'spotify:track:mc'])

    def test_extract_then_queue(self):
        extracted = self._extract()

        response = self.client.post(
            '/api/spotify/queue',
            json={'tracks': extracted['tracks']},
            headers={'Authorization': 'Bearer token'},
        )

        assert response.status_code == 200
        assert [c.args[0] for c in self.spotify.add_to_queue.call_args_list] == [
            'spotify:track:nd', 'spotify:track:mc'
        ]

    def test_expired_token_is_reported(self):
        extracted = self._extract()
        self.spotify.current_playback.side_effect = SpotifyException(401, -1, "The access token expired")

        response = self.client.post('/api/spotify/queue', json={
            'tracks': extracted['tracks'], 'accessToken': 'token'
        })

        assert response.status_code == 401
        self.spotify.search.assert_not_called()

    def test_source_outage_is_bad_gateway(self):
        self.session.get.return_value = Mock(ok=False, status_code=503, text='')

        response = self.client.post('/api/tracks', json={'url': 'https://youtu.be/abc123'})

        assert response.status_code == 502
        data = response.get_json()
        assert data['logs'][0]['step'] == '1'
        assert data['logs'][-1]['step'] == 'Error'
