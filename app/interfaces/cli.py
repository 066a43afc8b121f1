import argparse
import json
import logging
import os
import signal
import sys
import time
from dataclasses import replace
from typing import Callable, List, Optional

from app.application.pipeline import Reconciler, TracklistService
from app.crosscutting.config import Settings, load_env_file, load_settings
from app.crosscutting.logging import setup_logging
from app.domain.entities import UNKNOWN_ALBUM, ExtractionResult, ReconciliationOutcome
from app.domain.errors import ExtractionError, NoActiveDevice
from app.domain.ports import MusicCatalog
from app.infrastructure.fetchers.factory import build_page_source
from app.infrastructure.providers.spotify import SpotifyCatalog


class CLI:
    """Command Line Interface for Mixlist."""

    def __init__(self,
                 settings: Optional[Settings] = None,
                 service_factory: Optional[Callable[[Settings], TracklistService]] = None,
                 catalog_factory: Optional[Callable[[str, Settings], MusicCatalog]] = None):
        """Initialize CLI.

        Args:
            settings: Runtime settings; read from the environment on run if omitted
            service_factory: Builds the extraction service for the chosen strategy
            catalog_factory: Builds a catalog from an access token
        """
        self.settings = settings
        self._service_factory = service_factory or self._default_service
        self._catalog_factory = catalog_factory or self._default_catalog
        self.parser = self._create_parser()
        self._setup_signal_handlers()
        self._start_time = None

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create argument parser."""
        parser = argparse.ArgumentParser(
            prog='mixlist',
            description='Extract a mix tracklist from YouTube and reconcile it with Spotify'
        )

        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        extract_parser = subparsers.add_parser('extract', help='Print the tracklist of a mix video')
        extract_parser.add_argument('url', help='YouTube video URL')
        extract_parser.add_argument(
            '--json',
            action='store_true',
            help='Print the full result (tracks, logs, video title) as JSON'
        )

        queue_parser = subparsers.add_parser('queue', help='Add the tracklist to the active Spotify queue')
        queue_parser.add_argument('url', help='YouTube video URL')

        playlist_parser = subparsers.add_parser('playlist', help='Create a Spotify playlist from the tracklist')
        playlist_parser.add_argument('url', help='YouTube video URL')
        playlist_parser.add_argument(
            '--name',
            default=None,
            help='Playlist name (defaults to the video title)'
        )

        for sub in (extract_parser, queue_parser, playlist_parser):
            sub.add_argument(
                '--strategy',
                choices=['static', 'rendered'],
                default=None,
                help='Page fetch strategy (default from MIXLIST_FETCH_STRATEGY or static)'
            )
            sub.add_argument(
                '--log-level',
                choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                default=None,
                help='Set logging level'
            )

        return parser

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            logger = logging.getLogger(__name__)
            logger.warning(f"Received signal {signum}, shutting down...")
            self._cleanup_resources()
            sys.exit(130)

        signal.signal(signal.SIGTERM, signal_handler)

    def _cleanup_resources(self) -> None:
        """Log the run duration on exit."""
        logger = logging.getLogger(__name__)
        if self._start_time:
            duration = time.time() - self._start_time
            logger.info(f"CLI execution time: {duration:.2f}s")

    def _get_env_token(self, provider: str, token_type: str = 'access') -> Optional[str]:
        """Get token from environment variables."""
        env_var = f"{provider.upper()}_{token_type.upper()}_TOKEN"
        value = os.getenv(env_var)
        if value is None or not str(value).strip():
            return None
        return value

    @staticmethod
    def _default_service(settings: Settings) -> TracklistService:
        return TracklistService(build_page_source(settings), strategy_name=settings.fetch_strategy)

    @staticmethod
    def _default_catalog(token: str, settings: Settings) -> MusicCatalog:
        return SpotifyCatalog(token, market=settings.market, requests_timeout=settings.http_timeout_sec)

    def _resolve_settings(self, args: argparse.Namespace) -> Settings:
        settings = self.settings or load_settings()
        overrides = {}
        if args.strategy:
            overrides['fetch_strategy'] = args.strategy
        if args.log_level:
            overrides['log_level'] = args.log_level
        if overrides:
            settings = replace(settings, **overrides)
        return settings

    def _create_reconciler(self, settings: Settings) -> Reconciler:
        token = self._get_env_token('spotify', 'access')
        if not token:
            raise ValueError("SPOTIFY_ACCESS_TOKEN environment variable is required")
        return Reconciler(
            self._catalog_factory(token, settings),
            delay_sec=settings.search_delay_sec,
            playlist_description=settings.playlist_description,
        )

    def _extract(self, args: argparse.Namespace, settings: Settings) -> ExtractionResult:
        service = self._service_factory(settings)
        return service.extract_from_url(args.url)

    def _print_tracks(self, result: ExtractionResult) -> None:
        if result.video_title:
            print(result.video_title)
            print("-" * 50)
        for track in result.tracks:
            album = f" [{track.album}]" if track.album and track.album != UNKNOWN_ALBUM else ""
            print(f"{track.number:>3}. {track.artist} - {track.title}{album}")
        print(f"\nTotal tracks: {len(result.tracks)}")

    def _print_outcome(self, outcome: ReconciliationOutcome) -> None:
        if outcome.playlist is not None:
            print(f"Playlist: {outcome.playlist.name}")
            if outcome.playlist.url:
                print(f"URL: {outcome.playlist.url}")
        print(f"Matched: {len(outcome.matches)}")
        for match in outcome.matches:
            print(f"  + {match.catalog_artist} - {match.catalog_name}")
        if outcome.misses:
            print(f"Missed: {len(outcome.misses)}")
            for message in outcome.misses:
                print(f"  - {message}")

    def _run_extract(self, args: argparse.Namespace, settings: Settings) -> None:
        result = self._extract(args, settings)
        if args.json:
            print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
        else:
            self._print_tracks(result)

    def _run_queue(self, args: argparse.Namespace, settings: Settings) -> None:
        reconciler = self._create_reconciler(settings)
        result = self._extract(args, settings)
        outcome = reconciler.queue_tracks(list(result.tracks))
        self._print_outcome(outcome)

    def _run_playlist(self, args: argparse.Namespace, settings: Settings) -> None:
        reconciler = self._create_reconciler(settings)
        result = self._extract(args, settings)
        name = args.name or result.video_title or settings.default_playlist_name
        outcome = reconciler.create_playlist(list(result.tracks), name)
        self._print_outcome(outcome)

    def run(self, argv: Optional[List[str]] = None) -> None:
        """Run the CLI."""
        self._start_time = time.time()
        logger = logging.getLogger(__name__)

        try:
            args = self.parser.parse_args(argv)

            if not args.command:
                self.parser.print_help()
                sys.exit(1)

            settings = self._resolve_settings(args)
            setup_logging(settings.log_level)

            if args.command == 'extract':
                self._run_extract(args, settings)
            elif args.command == 'queue':
                self._run_queue(args, settings)
            elif args.command == 'playlist':
                self._run_playlist(args, settings)
            else:
                self.parser.print_help()
                sys.exit(1)

        except KeyboardInterrupt:
            logger.warning("Operation cancelled by user")
            sys.exit(130)
        except ExtractionError as e:
            logger.error(f"Extraction failed: {e}")
            for entry in e.logs:
                logger.debug(f"{entry.step}: {entry.message}")
            sys.exit(1)
        except NoActiveDevice as e:
            logger.error(str(e))
            sys.exit(1)
        except Exception as e:
            logger.error(f"CLI error: {e}")
            sys.exit(1)
        finally:
            self._cleanup_resources()


def main():
    """Main entry point."""
    load_env_file()
    cli = CLI()
    cli.run()


if __name__ == '__main__':
    main()
