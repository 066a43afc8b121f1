from app.crosscutting.config import ConfigError, Settings
from app.domain.ports import PageSource
from app.infrastructure.fetchers.rendered import RenderedPageFetcher
from app.infrastructure.fetchers.static import StaticPageFetcher


def build_page_source(settings: Settings) -> PageSource:
    """Return the fetcher matching ``settings.fetch_strategy``."""
    if settings.fetch_strategy == 'static':
        return StaticPageFetcher(user_agent=settings.user_agent, timeout_sec=settings.http_timeout_sec)
    if settings.fetch_strategy == 'rendered':
        return RenderedPageFetcher(settings=settings)
    raise ConfigError(f"Unsupported fetch strategy: {settings.fetch_strategy}")
