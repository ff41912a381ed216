from __future__ import annotations

from dataclasses import dataclass

from device_dna.auth.types import TokenProvider
from device_dna.config import Settings
from device_dna.graph.client import GraphClientConfig, GraphClientFactory
from device_dna.services import ExportService, IntuneCollector, ReportExportService
from device_dna.utils import get_logger


logger = get_logger(__name__)


@dataclass(slots=True)
class CollectorServices:
    client_factory: GraphClientFactory
    collector: IntuneCollector
    export: ExportService

    async def close(self) -> None:
        await self.client_factory.close()


def build_services(settings: Settings, token_provider: TokenProvider) -> CollectorServices:
    """Wire the Graph client, collector and exporter from settings."""

    client_factory = GraphClientFactory(
        token_provider,
        GraphClientConfig(scopes=list(settings.configured_scopes())),
    )
    collector = IntuneCollector(
        client_factory,
        include_user_groups=settings.include_user_groups,
        include_profile_settings=settings.include_profile_settings,
        exporter=ReportExportService(client_factory, poll=settings.report_poll),
    )
    logger.debug(
        "Collector services initialised",
        tenant_id=settings.tenant_id,
        user_groups=settings.include_user_groups,
        profile_settings=settings.include_profile_settings,
    )
    return CollectorServices(
        client_factory=client_factory,
        collector=collector,
        export=ExportService(),
    )


__all__ = ["CollectorServices", "build_services"]
