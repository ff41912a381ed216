from __future__ import annotations

from device_dna.data.models import (
    AdministrativeTemplatePolicy,
    AssignedResource,
    DeviceConfigurationProfile,
    IssueLog,
    SettingsCatalogPolicy,
    SettingsCatalogSetting,
)
from device_dna.graph.client import GraphClientFactory
from device_dna.graph.errors import GraphAPIError
from device_dna.graph.requests import (
    ConfigurationEndpoint,
    configuration_policy_settings_request,
    configuration_profiles_request,
)
from device_dna.services.base import (
    CollectorResult,
    Phase,
    PolicyCollector,
    TargetingContext,
    is_relevant,
)
from device_dna.services.targeting import AssignmentEvaluator
from device_dna.utils import get_logger
from device_dna.utils.app_types import (
    platform_display_name,
    platform_from_odata_type,
    profile_type_name,
)


logger = get_logger(__name__)

SETTINGS_CATALOG = "Settings Catalog"
ADMINISTRATIVE_TEMPLATES = "Administrative Templates"

_ENDPOINT_MODELS: dict[ConfigurationEndpoint, type[AssignedResource]] = {
    "deviceConfigurations": DeviceConfigurationProfile,
    "configurationPolicies": SettingsCatalogPolicy,
    "groupPolicyConfigurations": AdministrativeTemplatePolicy,
}


class ConfigurationProfileCollector(PolicyCollector):
    """Device configuration profiles, settings catalog and administrative templates."""

    kind = "configurationProfile"
    phase = Phase.CONFIGURATION

    def __init__(
        self,
        client_factory: GraphClientFactory,
        *,
        evaluator: AssignmentEvaluator | None = None,
        include_settings: bool = False,
    ) -> None:
        super().__init__(client_factory, evaluator=evaluator)
        self._include_settings = include_settings

    async def collect(
        self,
        context: TargetingContext,
        *,
        issues: IssueLog,
    ) -> CollectorResult:
        result = CollectorResult()
        for endpoint, model in _ENDPOINT_MODELS.items():
            evaluated = await self._gather(
                configuration_profiles_request(endpoint),
                model,
                context,
                issues=issues,
                label=endpoint,
            )
            for resource, targeting in evaluated or []:
                item = self.build_item(
                    resource,
                    targeting,
                    platform=_platform(resource),
                    policy_type=_policy_type(resource),
                    details={"source": endpoint},
                )
                result.catalog.append(item)
                if not is_relevant(targeting):
                    continue
                if self._include_settings and isinstance(resource, SettingsCatalogPolicy):
                    item.details["settings"] = await self._settings(resource, issues=issues)
                result.items.append(item)
        return result

    async def _settings(
        self,
        policy: SettingsCatalogPolicy,
        *,
        issues: IssueLog,
    ) -> list[dict[str, str]]:
        try:
            settings = await self._collect_models(
                configuration_policy_settings_request(policy.id),
                SettingsCatalogSetting,
                issues=issues,
                phase=self.phase,
                resource="configurationPolicySettings",
            )
        except GraphAPIError as exc:
            issues.record_error(
                self.phase,
                exc,
                context=f"Settings of '{policy.display_name}' unavailable",
            )
            return []
        return [
            {"name": setting.display_name(), "value": setting.display_value()}
            for setting in settings
        ]


def _platform(resource: AssignedResource) -> str | None:
    match resource:
        case SettingsCatalogPolicy():
            return platform_display_name(resource.platforms)
        case AdministrativeTemplatePolicy():
            return "Windows"
        case _:
            return platform_from_odata_type(resource.odata_type)


def _policy_type(resource: AssignedResource) -> str | None:
    match resource:
        case SettingsCatalogPolicy():
            return SETTINGS_CATALOG
        case AdministrativeTemplatePolicy():
            return ADMINISTRATIVE_TEMPLATES
        case _:
            return profile_type_name(resource.odata_type)


__all__ = [
    "ADMINISTRATIVE_TEMPLATES",
    "ConfigurationProfileCollector",
    "SETTINGS_CATALOG",
]
