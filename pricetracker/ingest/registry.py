"""Adapter registry for competitor implementations."""

import logging
from typing import Type

from pricetracker.config import Settings, settings
from pricetracker.ingest.base import ProviderAdapter
from pricetracker.ingest.providers.cherry import CherryServersAdapter
from pricetracker.ingest.providers.datapacket import DataPacketAdapter
from pricetracker.ingest.providers.hetzner import HetznerSnapshotAdapter
from pricetracker.ingest.providers.ovh import OVHAdapter
from pricetracker.ingest.providers.teraswitch import TeraswitchAdapter
from pricetracker.ingest.providers.vultr import VultrAdapter

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Registry of provider adapters keyed by competitor identifier."""

    _adapters: dict[str, Type[ProviderAdapter]] = {
        "OVHCLOUD": OVHAdapter,
        "VULTR": VultrAdapter,
        "CHERRYSERVERS": CherryServersAdapter,
        "DATAPACKET": DataPacketAdapter,
        "TERASWITCH": TeraswitchAdapter,
        "HETZNER": HetznerSnapshotAdapter,
    }

    @classmethod
    def create(cls, competitor: str, **kwargs) -> ProviderAdapter:
        """
        Instantiate the adapter for a competitor.

        Args:
            competitor: Competitor identifier (e.g. 'OVHCLOUD')
            **kwargs: Passed to the adapter constructor

        Returns:
            Adapter instance

        Raises:
            ValueError: If no adapter is registered for the competitor
        """
        key = competitor.upper()
        if key not in cls._adapters:
            raise ValueError(
                f"Unknown competitor: {competitor}. Available: {list(cls._adapters.keys())}"
            )
        return cls._adapters[key](**kwargs)

    @classmethod
    def enabled(cls, config: Settings = settings, **kwargs) -> list[ProviderAdapter]:
        """Adapters for ``config.enabled_providers``, in configured order."""
        return [cls.create(name, config=config, **kwargs) for name in config.enabled_providers]

    @classmethod
    def register_adapter(cls, competitor: str, adapter_class: Type[ProviderAdapter]) -> None:
        cls._adapters[competitor.upper()] = adapter_class
        logger.info(f"Registered adapter for {competitor}")

    @classmethod
    def available(cls) -> list[str]:
        return list(cls._adapters.keys())
