from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, TypeVar

from device_dna.data.models import (
    CollectionIssue,
    DeploymentState,
    DeviceIdentity,
    GroupMembership,
    IssueLog,
    MembershipSource,
    SettingErrorRow,
    TargetedItem,
)
from device_dna.graph.client import GraphClientFactory
from device_dna.graph.errors import GraphAPIError
from device_dna.services.applications import ApplicationCollector
from device_dna.services.base import (
    CollectorResult,
    EventHook,
    Phase,
    TargetingContext,
)
from device_dna.services.compliance import CompliancePolicyCollector
from device_dna.services.configurations import ConfigurationProfileCollector
from device_dna.services.deployment import DeploymentStateReconciler, with_deployed_items
from device_dna.services.filters import AssignmentFilterService
from device_dna.services.groups import GroupMembershipLookup, GroupNameCache
from device_dna.services.identity import IdentityResolver
from device_dna.services.remediations import RemediationCollector
from device_dna.services.reports import DeploymentReportService, ReportExportService
from device_dna.services.targeting import AssignmentEvaluator
from device_dna.utils import get_logger
from device_dna.utils.errors import describe_exception


logger = get_logger(__name__)

ResultT = TypeVar("ResultT")


@dataclass(slots=True)
class CollectionProgressEvent:
    phase: str
    completed: int
    total: int


@dataclass(slots=True)
class DeviceCollection:
    """Everything collected for one device in one run."""

    identity: DeviceIdentity
    device_groups: list[GroupMembership] = field(default_factory=list)
    user_groups: list[GroupMembership] = field(default_factory=list)
    configuration_profiles: list[TargetedItem] = field(default_factory=list)
    compliance_policies: list[TargetedItem] = field(default_factory=list)
    applications: list[TargetedItem] = field(default_factory=list)
    remediations: list[TargetedItem] = field(default_factory=list)
    deployment_states: list[DeploymentState] | None = None
    issues: list[CollectionIssue] = field(default_factory=list)
    collected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def targeting_evaluated(self) -> bool:
        return self.identity.can_evaluate_targeting

    def deployment_for(self, policy_id: str) -> DeploymentState | None:
        for state in self.deployment_states or []:
            if state.policy_id.lower() == policy_id.lower():
                return state
        return None


class IntuneCollector:
    """Run the Intune collection for one device, step by step.

    Steps run sequentially. A step that fails is recorded in the issue log and
    the remaining steps continue with whatever data is available.
    """

    _STEPS = 9

    def __init__(
        self,
        client_factory: GraphClientFactory,
        *,
        include_user_groups: bool = True,
        include_profile_settings: bool = False,
        exporter: ReportExportService | None = None,
        evaluator: AssignmentEvaluator | None = None,
    ) -> None:
        self._client_factory = client_factory
        self._include_user_groups = include_user_groups
        self._include_profile_settings = include_profile_settings
        self._evaluator = evaluator or AssignmentEvaluator()
        self._exporter = exporter or ReportExportService(client_factory)
        self._completed = 0
        self.progress: EventHook[CollectionProgressEvent] = EventHook()

    async def collect(
        self,
        device_name: str,
        hardware_device_id: str | None = None,
    ) -> DeviceCollection:
        issues = IssueLog()
        group_names = GroupNameCache(self._client_factory)
        self._completed = 0
        logger.info("Starting Intune collection", device_name=device_name)

        identity = await self._step(
            Phase.IDENTITY,
            issues,
            lambda: IdentityResolver(self._client_factory).resolve(
                device_name,
                hardware_device_id,
                issues=issues,
            ),
            default=DeviceIdentity(device_name=device_name.strip()),
        )
        collection = DeviceCollection(identity=identity)

        lookup = GroupMembershipLookup(self._client_factory, name_cache=group_names)
        collection.device_groups = await self._step(
            Phase.DEVICE_GROUPS,
            issues,
            lambda: lookup.transitive_groups(identity.directory_object_id, issues=issues),
            default=[],
        )
        if self._include_user_groups and identity.primary_user_id:
            collection.user_groups = await self._step(
                Phase.USER_GROUPS,
                issues,
                lambda: lookup.transitive_groups(
                    identity.primary_user_id,
                    issues=issues,
                    source=MembershipSource.USER,
                ),
                default=[],
            )
        else:
            self._advance(Phase.USER_GROUPS)

        if not identity.can_evaluate_targeting:
            issues.info(
                Phase.TARGETING,
                "Targeting evaluation skipped: the device has no Entra ID object id, "
                "so group membership is unknown",
            )

        filters = await self._step(
            Phase.FILTERS,
            issues,
            lambda: AssignmentFilterService(self._client_factory).catalog(issues=issues),
            default={},
        )
        memberships = [*collection.device_groups, *collection.user_groups]
        context = TargetingContext(
            identity=identity,
            device_group_ids=frozenset(group.group_id for group in memberships),
            filter_catalog=filters,
            group_names=group_names.snapshot(),
        )

        configurations = await self._step(
            Phase.CONFIGURATION,
            issues,
            lambda: ConfigurationProfileCollector(
                self._client_factory,
                evaluator=self._evaluator,
                include_settings=self._include_profile_settings,
            ).collect(context, issues=issues),
            default=CollectorResult(),
        )
        collection.configuration_profiles = configurations.items

        if identity.can_evaluate_targeting:
            compliance = await self._step(
                Phase.COMPLIANCE,
                issues,
                lambda: CompliancePolicyCollector(
                    self._client_factory,
                    evaluator=self._evaluator,
                ).collect(context, issues=issues),
                default=CollectorResult(),
            )
            applications = await self._step(
                Phase.APPLICATIONS,
                issues,
                lambda: ApplicationCollector(
                    self._client_factory,
                    evaluator=self._evaluator,
                ).collect(context, issues=issues),
                default=CollectorResult(),
            )
            remediations = await self._step(
                Phase.REMEDIATIONS,
                issues,
                lambda: RemediationCollector(
                    self._client_factory,
                    evaluator=self._evaluator,
                    exporter=self._exporter,
                ).collect(context, issues=issues),
                default=CollectorResult(),
            )
            collection.compliance_policies = compliance.items
            collection.applications = applications.items
            collection.remediations = remediations.items
        else:
            for phase in (Phase.COMPLIANCE, Phase.APPLICATIONS, Phase.REMEDIATIONS):
                self._advance(phase)

        collection.deployment_states = await self._step(
            Phase.DEPLOYMENT,
            issues,
            lambda: self._deployment_states(identity, configurations, group_names, issues),
            default=None,
        )
        if collection.deployment_states:
            collection.configuration_profiles = with_deployed_items(
                collection.configuration_profiles,
                configurations.catalog,
                collection.deployment_states,
                kind=ConfigurationProfileCollector.kind,
            )

        collection.issues = list(issues)
        logger.info(
            "Intune collection finished",
            device_name=device_name,
            profiles=len(collection.configuration_profiles),
            compliance=len(collection.compliance_policies),
            applications=len(collection.applications),
            remediations=len(collection.remediations),
            issues=len(collection.issues),
        )
        return collection

    async def _deployment_states(
        self,
        identity: DeviceIdentity,
        configurations: CollectorResult,
        group_names: GroupNameCache,
        issues: IssueLog,
    ) -> list[DeploymentState] | None:
        managed_device_id = identity.managed_device_id
        if not managed_device_id:
            issues.info(
                Phase.DEPLOYMENT,
                "Deployment status skipped: no Intune managed device record",
            )
            return None
        reports = DeploymentReportService(self._client_factory)
        try:
            rows = await reports.device_policy_report(managed_device_id, issues=issues)
        except GraphAPIError as exc:
            issues.record_error(
                Phase.DEPLOYMENT,
                exc,
                context="Deployment status report unavailable",
            )
            return None

        async def setting_errors(policy_id: str) -> list[SettingErrorRow]:
            return await reports.setting_errors(managed_device_id, policy_id)

        reconciler = DeploymentStateReconciler(group_names=group_names)
        return await reconciler.reconcile(
            configurations.catalog,
            rows,
            issues=issues,
            setting_errors=setting_errors,
        )

    async def _step(
        self,
        phase: Phase,
        issues: IssueLog,
        operation: Callable[[], Awaitable[ResultT]],
        *,
        default: ResultT,
    ) -> ResultT:
        logger.debug("Starting collection phase", phase=phase.value)
        try:
            return await operation()
        except GraphAPIError as exc:
            logger.warning("Collection phase failed", phase=phase.value, error=str(exc))
            issues.record_error(phase, exc)
            return default
        except Exception as exc:  # noqa: BLE001 - one step must not abort the run
            logger.exception("Collection phase raised unexpectedly", phase=phase.value)
            descriptor = describe_exception(exc)
            issues.error(phase, f"{descriptor.headline} {descriptor.detail}")
            return default
        finally:
            self._advance(phase)

    def _advance(self, phase: Phase) -> None:
        self._completed += 1
        self.progress.emit(
            CollectionProgressEvent(
                phase=phase.value,
                completed=self._completed,
                total=self._STEPS,
            )
        )


__all__ = ["CollectionProgressEvent", "DeviceCollection", "IntuneCollector"]
