"""Rendered-DOM page fetcher backed by a headless Chromium session."""

import logging
from contextlib import contextmanager
from typing import Callable, ContextManager, Iterator, List, Optional, Sequence

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from app.application.extraction_log import (
    ExtractionLog, STEP_CLOSE, STEP_CONTENT, STEP_DESCRIPTION, STEP_EXPAND,
    STEP_LAUNCH, STEP_NAVIGATE, STEP_SCROLL,
)
from app.application.video_id import watch_url
from app.crosscutting.config import DEFAULT_USER_AGENT, Settings
from app.domain.entities import PAGE_RENDERED, RawPage
from app.domain.errors import DescriptionUnavailable, FetchFailure
from app.domain.ports import PageSource

logger = logging.getLogger(__name__)

CONTENT_SELECTOR = '#content'
DESCRIPTION_SELECTORS: List[str] = [
    'ytd-text-inline-expander',
    'tp-yt-paper-button#expand',
    '.ytd-text-inline-expander #expand',
    'button[id="expand"]',
    'tp-yt-paper-button[id="expand"]',
]
EXPAND_CONTROL_SELECTOR = 'tp-yt-paper-button#expand'
CLICKABLE_SELECTOR = 'button, tp-yt-paper-button'
# Korean, English, and the truncated inline label
SHOW_MORE_PHRASES: List[str] = ['더보기', 'Show more', '...more']

BROWSER_ARGS = ['--no-sandbox', '--disable-dev-shm-usage', '--disable-gpu']

# Clicks the expansion control, or any clickable element whose text is a "show more" phrase
_EXPAND_SCRIPT = """
([controlSelector, clickableSelector, phrases]) => {
  const control = document.querySelector(controlSelector);
  if (control) {
    control.click();
    return 'control';
  }
  const candidates = Array.from(document.querySelectorAll(clickableSelector));
  const showMore = candidates.find(el => phrases.some(p => (el.textContent || '').includes(p)));
  if (showMore) {
    showMore.click();
    return 'text';
  }
  return '';
}
"""


@contextmanager
def browser_session(user_agent: str = DEFAULT_USER_AGENT,
                    log: Optional[ExtractionLog] = None) -> Iterator[Page]:
    """Acquire a headless browser page; the browser is closed on every exit path."""
    with sync_playwright() as playwright:
        if log is not None:
            log.record(STEP_LAUNCH, "Launching headless browser")
        browser = playwright.chromium.launch(headless=True, args=BROWSER_ARGS)
        try:
            context = browser.new_context(user_agent=user_agent)
            yield context.new_page()
        finally:
            if log is not None:
                log.record(STEP_CLOSE, "Closing browser")
            browser.close()


SessionFactory = Callable[[str, ExtractionLog], ContextManager[Page]]


class RenderedPageFetcher(PageSource):
    """Drives a headless browser to the watch page and snapshots the expanded DOM."""

    def __init__(self,
                 settings: Optional[Settings] = None,
                 session_factory: Optional[SessionFactory] = None,
                 description_selectors: Optional[Sequence[str]] = None):
        self.settings = settings or Settings(fetch_strategy='rendered')
        self._session_factory = session_factory or browser_session
        self.description_selectors = list(description_selectors or DESCRIPTION_SELECTORS)

    def fetch(self, video_id: str, log: ExtractionLog) -> RawPage:
        with self._session_factory(self.settings.user_agent, log) as page:
            self._navigate(page, video_id, log)
            self._locate_description(page, log)
            self._reveal_description(page, log)

            html = page.content()
            return RawPage(video_id=video_id, html=html, kind=PAGE_RENDERED)

    def _navigate(self, page: Page, video_id: str, log: ExtractionLog) -> None:
        url = watch_url(video_id)
        log.record(STEP_NAVIGATE, "Navigating to YouTube page")
        try:
            page.goto(url, wait_until='networkidle', timeout=self.settings.navigation_timeout_ms)
        except PlaywrightError as e:
            log.record(STEP_NAVIGATE, f"Navigation failed: {e}")
            raise FetchFailure(f"Failed to load video page: {e}")
        log.record(STEP_NAVIGATE, "Page loaded successfully")

        log.record(STEP_CONTENT, "Waiting for content to load")
        try:
            page.wait_for_selector(CONTENT_SELECTOR, timeout=self.settings.content_timeout_ms)
        except PlaywrightError as e:
            log.record(STEP_CONTENT, f"Content did not load: {e}")
            raise FetchFailure(f"Video page content did not load: {e}")
        log.record(STEP_CONTENT, "Content loaded")

    def _locate_description(self, page: Page, log: ExtractionLog) -> str:
        """Return the first description selector that resolves within its timeout."""
        log.record(STEP_DESCRIPTION, "Looking for description container")
        for selector in self.description_selectors:
            log.record(STEP_DESCRIPTION, f"Trying selector: {selector}")
            try:
                page.wait_for_selector(selector, timeout=self.settings.selector_timeout_ms)
            except PlaywrightTimeoutError:
                log.record(STEP_DESCRIPTION, f"Selector {selector} not found")
                continue
            log.record(STEP_DESCRIPTION, f"Found description with selector: {selector}")
            return selector

        raise DescriptionUnavailable("Could not find video description")

    def _reveal_description(self, page: Page, log: ExtractionLog) -> None:
        log.record(STEP_SCROLL, "Scrolling to make description visible")
        page.evaluate("window.scrollBy(0, 700)")
        page.wait_for_timeout(self.settings.scroll_delay_ms)
        log.record(STEP_SCROLL, "Scrolled and waited")

        log.record(STEP_EXPAND, "Attempting to expand description")
        try:
            clicked = page.evaluate(
                _EXPAND_SCRIPT, [EXPAND_CONTROL_SELECTOR, CLICKABLE_SELECTOR, SHOW_MORE_PHRASES]
            )
        except PlaywrightError as e:
            log.record(STEP_EXPAND, f"Failed to click expand button: {e}")
            raise DescriptionUnavailable("Could not expand video description")

        if clicked == 'control':
            log.record(STEP_EXPAND, "Successfully clicked expand button")
        elif clicked == 'text':
            log.record(STEP_EXPAND, "Successfully clicked a 'show more' element")
        else:
            log.record(STEP_EXPAND, "No expand control found, reading description as rendered")

        page.wait_for_timeout(self.settings.settle_delay_ms)
