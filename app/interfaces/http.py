import logging
import os
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from flask import Flask, jsonify, request

from app.application.pipeline import Reconciler, TracklistService
from app.crosscutting.config import Settings, load_settings
from app.domain.entities import Track
from app.domain.errors import (
    DescriptionUnavailable, ExtractionError, FetchFailure, InvalidInput,
    NoActiveDevice, NoTracksFound, ReconciliationFailed, Unauthorized,
)
from app.domain.ports import MusicCatalog
from app.infrastructure.fetchers.factory import build_page_source
from app.infrastructure.providers.spotify import SpotifyCatalog

NO_DEVICE_HINT = "No active Spotify device. Open Spotify and start playing music first."


def parse_tracks(payload: Any) -> List[Track]:
    """Validate the ``tracks`` array of a reconciliation request."""
    if not isinstance(payload, list):
        raise InvalidInput("'tracks' must be a list")
    tracks = []
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            raise InvalidInput(f"Track {index + 1} must be an object")
        try:
            tracks.append(Track.from_dict(item))
        except ValueError as e:
            raise InvalidInput(f"Track {index + 1}: {e}")
    return tracks


class HTTPServer:
    """HTTP surface for tracklist extraction and Spotify reconciliation."""

    def __init__(self, host: str = 'localhost', port: int = 3000, debug: bool = False,
                 settings: Optional[Settings] = None,
                 tracklist_service: Optional[TracklistService] = None,
                 catalog_factory: Optional[Callable[[str], MusicCatalog]] = None,
                 sleep: Optional[Callable[[float], None]] = None):
        """Initialize HTTP server.

        Args:
            host: Bind address
            port: Bind port
            debug: Flask debug mode
            settings: Runtime settings; read from the environment if omitted
            tracklist_service: Extraction service; built from settings if omitted
            catalog_factory: Builds a catalog from a bearer token
            sleep: Sleep function used between catalog calls
        """
        self.host = host
        self.port = port
        self.debug = debug
        self.settings = settings or load_settings()
        self.app = Flask(__name__)
        self.logger = logging.getLogger(__name__)

        self.version = "0.1.0"
        self.commit = os.getenv('GIT_COMMIT', 'unknown')

        self.tracklist_service = tracklist_service or TracklistService(
            build_page_source(self.settings), strategy_name=self.settings.fetch_strategy
        )
        self.catalog_factory = catalog_factory or (
            lambda token: SpotifyCatalog(token, market=self.settings.market)
        )
        self._sleep = sleep

        self._setup_routes()

    def _access_token(self, body: Dict[str, Any]) -> Optional[str]:
        token = body.get('accessToken')
        if token:
            return str(token)
        header = request.headers.get('Authorization', '')
        if header.lower().startswith('bearer '):
            return header[7:].strip() or None
        return None

    def _reconciler(self, token: str) -> Reconciler:
        return Reconciler(
            self.catalog_factory(token),
            delay_sec=self.settings.search_delay_sec,
            sleep=self._sleep,
            playlist_description=self.settings.playlist_description,
        )

    def _reconciliation_request(self) -> Tuple[Dict[str, Any], List[Track], str]:
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            raise InvalidInput("Request body must be a JSON object")
        tracks = parse_tracks(body.get('tracks'))
        token = self._access_token(body)
        if not token:
            raise Unauthorized("Missing access token")
        return body, tracks, token

    def _setup_routes(self) -> None:
        """Setup Flask routes."""

        @self.app.route('/health', methods=['GET'])
        def health_check():
            """Health check endpoint."""
            return jsonify({
                'status': 'healthy',
                'version': self.version,
                'commit': self.commit,
                'timestamp': datetime.now().isoformat()
            }), 200

        @self.app.route('/', methods=['GET'])
        def root():
            """Root endpoint with basic info."""
            return jsonify({
                'service': 'Mixlist HTTP Interface',
                'version': self.version,
                'endpoints': {
                    'health': '/health',
                    'tracks': '/api/tracks',
                    'queue': '/api/spotify/queue',
                    'playlist': '/api/spotify/playlist'
                }
            }), 200

        @self.app.route('/api/tracks', methods=['POST'])
        def extract_tracks():
            """Extract the tracklist of a mix video."""
            body = request.get_json(silent=True) or {}
            url = body.get('url') if isinstance(body, dict) else None
            if not url or not isinstance(url, str):
                return jsonify({'error': "Missing 'url'"}), 400

            try:
                result = self.tracklist_service.extract_from_url(url)
                return jsonify(result.to_dict()), 200
            except InvalidInput as e:
                return jsonify({'error': str(e)}), 400
            except FetchFailure as e:
                return jsonify({'error': str(e), 'logs': [entry.to_dict() for entry in e.logs]}), 502
            except (NoTracksFound, DescriptionUnavailable) as e:
                return jsonify({'error': str(e), 'logs': [entry.to_dict() for entry in e.logs]}), 404
            except ExtractionError as e:
                return jsonify({'error': str(e), 'logs': [entry.to_dict() for entry in e.logs]}), 500
            except Exception as e:
                self.logger.error(f"Track extraction error: {e}")
                return jsonify({'error': 'Failed to fetch tracks'}), 500

        @self.app.route('/api/spotify/queue', methods=['POST'])
        def queue_tracks():
            """Search each track and add hits to the live Spotify queue."""
            try:
                _, tracks, token = self._reconciliation_request()
                outcome = self._reconciler(token).queue_tracks(tracks)
                return jsonify(outcome.to_dict()), 200
            except InvalidInput as e:
                return jsonify({'error': str(e)}), 400
            except Unauthorized as e:
                return jsonify({'error': str(e)}), 401
            except NoActiveDevice as e:
                return jsonify({
                    'error': str(e),
                    'matches': [],
                    'misses': [NO_DEVICE_HINT]
                }), 404
            except ReconciliationFailed as e:
                return jsonify({'error': str(e)}), 500
            except Exception as e:
                self.logger.error(f"Queue request error: {e}")
                return jsonify({'error': 'Failed to process tracks'}), 500

        @self.app.route('/api/spotify/playlist', methods=['POST'])
        def create_playlist():
            """Search each track and create a playlist from the hits."""
            try:
                body, tracks, token = self._reconciliation_request()
                name = str(body.get('playlistName') or '').strip() or self.settings.default_playlist_name
                outcome = self._reconciler(token).create_playlist(tracks, name)
                return jsonify(outcome.to_dict()), 200
            except InvalidInput as e:
                return jsonify({'error': str(e)}), 400
            except Unauthorized as e:
                return jsonify({'error': str(e)}), 401
            except ReconciliationFailed as e:
                return jsonify({'error': str(e)}), 500
            except Exception as e:
                self.logger.error(f"Playlist request error: {e}")
                return jsonify({'error': 'Failed to create playlist'}), 500

    def run(self) -> None:
        """Run the HTTP server."""
        self.logger.info(f"Starting Mixlist HTTP server on {self.host}:{self.port}")
        self.app.run(
            host=self.host,
            port=self.port,
            debug=self.debug
        )


def create_app(**kwargs) -> Flask:
    """Create Flask app for testing."""
    server = HTTPServer(**kwargs)
    return server.app
