import logging
from typing import Optional

import requests

from app.application.extraction_log import ExtractionLog, STEP_NAVIGATE
from app.application.video_id import watch_url
from app.crosscutting.config import DEFAULT_USER_AGENT
from app.domain.entities import PAGE_STATIC, RawPage
from app.domain.errors import FetchFailure
from app.domain.ports import PageSource

logger = logging.getLogger(__name__)


class StaticPageFetcher(PageSource):
    """Fetches the raw watch page HTML with a plain GET. No retries."""

    def __init__(self,
                 user_agent: str = DEFAULT_USER_AGENT,
                 timeout_sec: float = 15.0,
                 session: Optional[requests.Session] = None):
        self.user_agent = user_agent
        self.timeout_sec = timeout_sec
        self._session = session

    def fetch(self, video_id: str, log: ExtractionLog) -> RawPage:
        url = watch_url(video_id)
        headers = {
            'User-Agent': self.user_agent,
            'Accept-Language': 'en-US,en;q=0.9',
        }

        log.record(STEP_NAVIGATE, f"Requesting video page: {url}")
        try:
            if self._session is not None:
                response = self._session.get(url, headers=headers, timeout=self.timeout_sec)
            else:
                # Fresh session per fetch so cookies never carry over between videos
                with requests.Session() as session:
                    response = session.get(url, headers=headers, timeout=self.timeout_sec)
        except requests.exceptions.RequestException as e:
            log.record(STEP_NAVIGATE, f"Request failed: {e}")
            raise FetchFailure(f"Failed to fetch video page: {e}")

        if not response.ok:
            log.record(STEP_NAVIGATE, f"Video page answered with status {response.status_code}")
            raise FetchFailure(f"Failed to fetch video page: HTTP {response.status_code}")

        log.record(STEP_NAVIGATE, f"Page loaded successfully ({len(response.text)} bytes)")
        return RawPage(video_id=video_id, html=response.text, kind=PAGE_STATIC)
