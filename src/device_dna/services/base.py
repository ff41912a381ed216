from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, AsyncIterator, Callable, Generic, Type, TypeVar

from device_dna.data.models import (
    AssignedResource,
    AssignmentFilter,
    DeviceIdentity,
    GraphBaseModel,
    IssueLog,
    TargetedItem,
    TargetingResult,
    TargetKind,
    normalise_assignments,
)
from device_dna.data.validation import GraphResponseValidator
from device_dna.graph.client import GraphClientFactory
from device_dna.graph.errors import GraphAPIError
from device_dna.graph.requests import GraphRequest
from device_dna.services.targeting import AssignmentEvaluator
from device_dna.utils import get_logger


logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=GraphBaseModel)
T_co = TypeVar("T_co", covariant=True)


class EventHook(Generic[T_co]):
    """Minimal observer used for progress reporting."""

    def __init__(self) -> None:
        self._subscribers: list[Callable[[T_co], None]] = []

    def subscribe(self, callback: Callable[[T_co], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:  # pragma: no cover - best effort cleanup
                pass

        return unsubscribe

    def emit(self, payload: T_co) -> None:
        for callback in list(self._subscribers):
            try:
                callback(payload)
            except Exception:  # pragma: no cover - callbacks should not break collection
                logger.exception("Progress callback failed")


class Phase(StrEnum):
    """Collection steps, as shown in the collection issues list."""

    IDENTITY = "Device Identity"
    DEVICE_GROUPS = "Device Groups"
    USER_GROUPS = "User Groups"
    FILTERS = "Assignment Filters"
    TARGETING = "Targeting"
    CONFIGURATION = "Configuration Profiles"
    COMPLIANCE = "Compliance Policies"
    APPLICATIONS = "Applications"
    REMEDIATIONS = "Proactive Remediations"
    DEPLOYMENT = "Deployment Status"


@dataclass(slots=True)
class TargetingContext:
    """What every policy collector needs to evaluate assignments for one device."""

    identity: DeviceIdentity
    device_group_ids: frozenset[str] = frozenset()
    filter_catalog: dict[str, AssignmentFilter] = field(default_factory=dict)
    group_names: dict[str, str] = field(default_factory=dict)

    @property
    def can_evaluate(self) -> bool:
        return self.identity.can_evaluate_targeting


class GraphCollectionService:
    """Shared plumbing for services that page through Graph collections."""

    resource = "graph"

    def __init__(self, client_factory: GraphClientFactory) -> None:
        self._client_factory = client_factory

    async def _iter_models(
        self,
        request: GraphRequest,
        model: Type[ModelT],
        *,
        issues: IssueLog,
        phase: str,
        resource: str | None = None,
    ) -> AsyncIterator[ModelT]:
        """Yield parsed models; malformed records are skipped and recorded."""

        validator = GraphResponseValidator(
            resource or self.resource,
            issues=issues,
            phase=phase,
        )
        async for item in self._client_factory.iter_collection(
            request.method,
            request.url,
            params=request.params,
            headers=request.headers,
            api_version=request.api_version,
        ):
            parsed = validator.parse(model, item)
            if parsed is not None:
                yield parsed

    async def _collect_models(
        self,
        request: GraphRequest,
        model: Type[ModelT],
        *,
        issues: IssueLog,
        phase: str,
        resource: str | None = None,
    ) -> list[ModelT]:
        return [
            item
            async for item in self._iter_models(
                request,
                model,
                issues=issues,
                phase=phase,
                resource=resource,
            )
        ]

    async def _fetch_json(self, request: GraphRequest) -> dict[str, Any]:
        return await self._client_factory.request_json(
            request.method,
            request.url,
            params=request.params,
            json_body=request.body,
            headers=request.headers,
            api_version=request.api_version,
        )


@dataclass(slots=True)
class CollectorResult:
    """Output of one policy collector.

    ``items`` holds what targets the device (excluded items included);
    ``catalog`` holds every object fetched, regardless of targeting.
    """

    items: list[TargetedItem] = field(default_factory=list)
    catalog: list[TargetedItem] = field(default_factory=list)

    def extend(self, other: "CollectorResult") -> None:
        self.items.extend(other.items)
        self.catalog.extend(other.catalog)


class PolicyCollector(GraphCollectionService):
    """Fetch assigned Intune objects and evaluate them against the device."""

    kind = "policy"
    phase: Phase = Phase.CONFIGURATION

    def __init__(
        self,
        client_factory: GraphClientFactory,
        *,
        evaluator: AssignmentEvaluator | None = None,
    ) -> None:
        super().__init__(client_factory)
        self._evaluator = evaluator or AssignmentEvaluator()

    def evaluate(
        self,
        resource: AssignedResource,
        context: TargetingContext,
    ) -> TargetingResult:
        if not context.can_evaluate:
            return TargetingResult()
        return self._evaluator.evaluate(
            normalise_assignments(resource.assignments),
            context.device_group_ids,
            context.filter_catalog,
            context.group_names,
        )

    def build_item(
        self,
        resource: AssignedResource,
        targeting: TargetingResult,
        **fields: Any,
    ) -> TargetedItem:
        return TargetedItem(
            id=resource.id,
            display_name=resource.display_name,
            kind=self.kind,
            targeting=targeting,
            description=resource.description,
            assigned_group_ids=tuple(
                assignment.group_id
                for assignment in normalise_assignments(resource.assignments)
                if assignment.target_kind is TargetKind.GROUP and assignment.group_id
            ),
            **fields,
        )

    async def _gather(
        self,
        request: GraphRequest,
        model: type[AssignedResource],
        context: TargetingContext,
        *,
        issues: IssueLog,
        label: str,
    ) -> list[tuple[AssignedResource, TargetingResult]] | None:
        """Fetch and evaluate one endpoint; ``None`` when the endpoint failed."""

        try:
            resources = await self._collect_models(
                request,
                model,
                issues=issues,
                phase=self.phase,
                resource=label,
            )
        except GraphAPIError as exc:
            logger.warning(
                "Policy endpoint failed",
                phase=self.phase.value,
                endpoint=label,
                error=str(exc),
            )
            issues.record_error(self.phase, exc, context=f"{label} unavailable")
            return None
        evaluated = [(resource, self.evaluate(resource, context)) for resource in resources]
        logger.info(
            "Policy endpoint collected",
            phase=self.phase.value,
            endpoint=label,
            fetched=len(evaluated),
            relevant=sum(1 for _, result in evaluated if is_relevant(result)),
        )
        return evaluated


def is_relevant(result: TargetingResult) -> bool:
    """Targeted and excluded items are reported; untargeted ones are not."""

    return result.is_targeted or result.is_excluded


__all__ = [
    "CollectorResult",
    "EventHook",
    "GraphCollectionService",
    "Phase",
    "PolicyCollector",
    "TargetingContext",
    "is_relevant",
]
