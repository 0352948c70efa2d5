"""Registry of source descriptors keyed by (asset, data_type)."""

from __future__ import annotations

from biaswatch.core.config import Settings
from biaswatch.core.logging import get_logger
from biaswatch.domain import SourceDescriptor, source_key


logger = get_logger("sources.registry")


class SourceRegistry:
    """Owned by the scheduler; one descriptor per (asset, data_type)."""

    def __init__(self, sources: list[SourceDescriptor] | None = None):
        self._sources: dict[str, SourceDescriptor] = {}
        for source in sources or []:
            self.register(source)

    def register(self, source: SourceDescriptor) -> None:
        """Register a source, replacing any previous one for its key."""
        self._sources[source.key] = source
        logger.debug(f"Registered source: {source.name} ({source.key})")

    def get(self, asset: str, data_type: str) -> SourceDescriptor | None:
        return self._sources.get(source_key(asset, data_type))

    def all(self) -> list[SourceDescriptor]:
        return list(self._sources.values())

    def keys(self) -> list[str]:
        return list(self._sources.keys())

    def __len__(self) -> int:
        return len(self._sources)

    def __contains__(self, key: str) -> bool:
        return key in self._sources


def build_default_sources(config: Settings) -> list[SourceDescriptor]:
    """One descriptor per tracked (asset, data_type).

    URLs come from source_url_template, formatted with asset and data_type.
    Without a template the descriptors carry no URL and fetches fail as
    source errors.
    """
    sources = []
    for asset in config.tracked_assets:
        for data_type in config.tracked_data_types:
            url = (
                config.source_url_template.format(asset=asset, data_type=data_type)
                if config.source_url_template
                else None
            )
            sources.append(
                SourceDescriptor(
                    name=f"{asset.lower()}_{data_type}",
                    asset=asset,
                    data_type=data_type,
                    url=url,
                    extraction_method="api",
                    timestamp_field=config.source_timestamp_field or None,
                    id_field=config.source_id_field or None,
                )
            )
    return sources
