from __future__ import annotations

from device_dna.data.models import AssignmentFilter, IssueLog
from device_dna.graph.errors import GraphAPIError
from device_dna.graph.requests import assignment_filters_request
from device_dna.services.base import GraphCollectionService, Phase
from device_dna.utils import get_logger


logger = get_logger(__name__)


class AssignmentFilterService(GraphCollectionService):
    """Load the tenant's assignment filter catalog once per run."""

    resource = "assignmentFilters"

    async def catalog(self, *, issues: IssueLog) -> dict[str, AssignmentFilter]:
        request = assignment_filters_request()
        filters: dict[str, AssignmentFilter] = {}
        try:
            async for model in self._iter_models(
                request,
                AssignmentFilter,
                issues=issues,
                phase=Phase.FILTERS,
            ):
                filters[model.id] = model
        except GraphAPIError as exc:
            logger.warning("Failed to load assignment filters", error=str(exc))
            issues.record_error(
                Phase.FILTERS,
                exc,
                context="Assignment filters unavailable, filter details omitted",
            )
            return {}
        logger.debug("Assignment filter catalog loaded", count=len(filters))
        return filters


__all__ = ["AssignmentFilterService"]
