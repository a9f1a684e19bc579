from .base import SourceAdapter
from .career_page import CareerPageAdapter
from .greenhouse import GreenhouseAdapter
from .lever import LeverAdapter
from .mock import MockAdapter
from .remoteok import RemoteOKAdapter

from jobping.errors import ConfigError
from jobping.log import get_logger
from jobping.models import Source, SourceConfig

log = get_logger(__name__)

__all__ = [
    "SourceAdapter", "GreenhouseAdapter", "LeverAdapter", "RemoteOKAdapter",
    "CareerPageAdapter", "MockAdapter", "ADAPTERS", "build_adapter", "enabled_sources",
]

ADAPTERS: dict[Source, type[SourceAdapter]] = {
    Source.GREENHOUSE: GreenhouseAdapter,
    Source.LEVER: LeverAdapter,
    Source.REMOTEOK: RemoteOKAdapter,
    Source.CAREER_PAGE: CareerPageAdapter,
    Source.MOCK: MockAdapter,
}


def build_adapter(source: Source) -> SourceAdapter:
    try:
        return ADAPTERS[source]()
    except KeyError:
        raise ConfigError(f"no adapter registered for source {source!r}") from None


def enabled_sources(configs) -> list[SourceConfig]:
    configs = list(configs)
    enabled = [c for c in configs if c.enabled]
    skipped = len(configs) - len(enabled)
    if skipped:
        log.info("Skipping %d disabled source(s)", skipped)
    return enabled
