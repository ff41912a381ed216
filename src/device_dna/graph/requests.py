from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from device_dna.utils.sanitize import odata_literal


GraphMethod = Literal["GET", "POST"]
BETA_VERSION = "beta"
# transitiveMemberOf and the directory device list accept up to 999 per page.
DIRECTORY_PAGE_SIZE = 999

DIRECTORY_DEVICE_SELECT = (
    "id,deviceId,displayName,isManaged,isCompliant,"
    "approximateLastSignInDateTime,operatingSystem,operatingSystemVersion,trustType"
)
MANAGED_DEVICE_SELECT = (
    "id,deviceName,azureADDeviceId,userId,userPrincipalName,complianceState,"
    "lastSyncDateTime,operatingSystem,osVersion,managementAgent"
)
GROUP_SELECT = "id,displayName,description,groupTypes,membershipRule"


@dataclass(slots=True)
class GraphRequest:
    """Structured representation of a Microsoft Graph request."""

    method: GraphMethod
    url: str
    headers: dict[str, str] | None = None
    body: Any | None = None
    params: dict[str, Any] | None = None
    api_version: str | None = None


# ------------------------------------------------------------------ Directory


def directory_devices_by_name_request(display_name: str) -> GraphRequest:
    return GraphRequest(
        method="GET",
        url="/devices",
        params={
            "$filter": f"displayName eq {odata_literal(display_name)}",
            "$select": DIRECTORY_DEVICE_SELECT,
        },
    )


def directory_devices_by_device_id_request(device_id: str) -> GraphRequest:
    return GraphRequest(
        method="GET",
        url="/devices",
        params={
            "$filter": f"deviceId eq {odata_literal(device_id)}",
            "$select": DIRECTORY_DEVICE_SELECT,
        },
    )


def transitive_member_of_request(
    object_id: str,
    *,
    kind: Literal["devices", "users"] = "devices",
) -> GraphRequest:
    return GraphRequest(
        method="GET",
        url=f"/{kind}/{object_id}/transitiveMemberOf",
        params={"$top": DIRECTORY_PAGE_SIZE},
    )


def group_request(group_id: str) -> GraphRequest:
    return GraphRequest(
        method="GET",
        url=f"/groups/{group_id}",
        params={"$select": GROUP_SELECT},
    )


# ------------------------------------------------------------------ Intune MDM


def managed_devices_by_azure_id_request(azure_ad_device_id: str) -> GraphRequest:
    return GraphRequest(
        method="GET",
        url="/deviceManagement/managedDevices",
        params={
            "$filter": f"azureADDeviceId eq {odata_literal(azure_ad_device_id)}",
            "$select": MANAGED_DEVICE_SELECT,
        },
    )


def managed_devices_by_name_request(device_name: str) -> GraphRequest:
    return GraphRequest(
        method="GET",
        url="/deviceManagement/managedDevices",
        params={
            "$filter": f"deviceName eq {odata_literal(device_name)}",
            "$select": MANAGED_DEVICE_SELECT,
        },
    )


def assignment_filters_request() -> GraphRequest:
    return GraphRequest(
        method="GET",
        url="/deviceManagement/assignmentFilters",
        api_version=BETA_VERSION,
    )


ConfigurationEndpoint = Literal[
    "deviceConfigurations",
    "configurationPolicies",
    "groupPolicyConfigurations",
]


def configuration_profiles_request(endpoint: ConfigurationEndpoint) -> GraphRequest:
    api_version = None if endpoint == "deviceConfigurations" else BETA_VERSION
    return GraphRequest(
        method="GET",
        url=f"/deviceManagement/{endpoint}",
        params={"$expand": "assignments"},
        api_version=api_version,
    )


def configuration_policy_settings_request(policy_id: str) -> GraphRequest:
    return GraphRequest(
        method="GET",
        url=f"/deviceManagement/configurationPolicies/{policy_id}/settings",
        params={"$expand": "settingDefinitions"},
        api_version=BETA_VERSION,
    )


def compliance_policies_request() -> GraphRequest:
    return GraphRequest(
        method="GET",
        url="/deviceManagement/deviceCompliancePolicies",
        params={"$expand": "assignments"},
    )


def device_compliance_states_request(managed_device_id: str) -> GraphRequest:
    return GraphRequest(
        method="GET",
        url=f"/deviceManagement/managedDevices/{managed_device_id}/deviceCompliancePolicyStates",
    )


def mobile_apps_request() -> GraphRequest:
    return GraphRequest(
        method="GET",
        url="/deviceAppManagement/mobileApps",
        params={
            "$expand": "assignments",
            "$filter": "isAssigned eq true",
        },
        api_version=BETA_VERSION,
    )


def app_intent_states_request(user_id: str, managed_device_id: str) -> GraphRequest:
    return GraphRequest(
        method="GET",
        url=f"/users/{user_id}/mobileAppIntentAndStates/{managed_device_id}",
        api_version=BETA_VERSION,
    )


def health_scripts_request() -> GraphRequest:
    return GraphRequest(
        method="GET",
        url="/deviceManagement/deviceHealthScripts",
        params={"$expand": "assignments"},
        api_version=BETA_VERSION,
    )


def health_script_run_states_request(
    script_id: str,
    managed_device_id: str,
) -> GraphRequest:
    return GraphRequest(
        method="GET",
        url=f"/deviceManagement/deviceHealthScripts/{script_id}/deviceRunStates",
        params={
            "$filter": f"managedDevice/id eq {odata_literal(managed_device_id)}",
        },
        api_version=BETA_VERSION,
    )


# -------------------------------------------------------------------- Reports


def device_policy_report_request(managed_device_id: str) -> GraphRequest:
    return GraphRequest(
        method="POST",
        url="/deviceManagement/reports/getConfigurationPoliciesReportForDevice",
        body={
            "select": [
                "PolicyId",
                "PolicyName",
                "PolicyBaseTypeName",
                "UnifiedPolicyPlatformType",
                "PolicyStatus",
                "UPN",
                "UserId",
                "PspdpuLastModifiedTimeUtc",
            ],
            "filter": f"(IntuneDeviceId eq {odata_literal(managed_device_id)})",
            "orderBy": ["PolicyName"],
            "skip": 0,
            "top": 500,
        },
        api_version=BETA_VERSION,
    )


def setting_status_report_request(
    managed_device_id: str,
    policy_id: str,
) -> GraphRequest:
    return GraphRequest(
        method="POST",
        url="/deviceManagement/reports/getConfigurationSettingsReport",
        body={
            "select": [
                "PolicyId",
                "SettingName",
                "SettingStatus",
                "ErrorCode",
                "SettingId",
            ],
            "filter": (
                f"(PolicyId eq {odata_literal(policy_id)}) and "
                f"(DeviceId eq {odata_literal(managed_device_id)})"
            ),
            "skip": 0,
            "top": 500,
        },
        api_version=BETA_VERSION,
    )


def export_job_request(
    report_name: str,
    *,
    filter_expression: str | None = None,
    select: list[str] | None = None,
) -> GraphRequest:
    body: dict[str, Any] = {"reportName": report_name, "format": "csv"}
    if filter_expression:
        body["filter"] = filter_expression
    if select:
        body["select"] = list(select)
    return GraphRequest(
        method="POST",
        url="/deviceManagement/reports/exportJobs",
        body=body,
        api_version=BETA_VERSION,
    )


def export_job_status_request(job_id: str) -> GraphRequest:
    return GraphRequest(
        method="GET",
        url=f"/deviceManagement/reports/exportJobs('{job_id}')",
        api_version=BETA_VERSION,
    )


__all__ = [
    "BETA_VERSION",
    "DIRECTORY_PAGE_SIZE",
    "ConfigurationEndpoint",
    "GraphMethod",
    "GraphRequest",
    "app_intent_states_request",
    "assignment_filters_request",
    "compliance_policies_request",
    "configuration_policy_settings_request",
    "configuration_profiles_request",
    "device_compliance_states_request",
    "device_policy_report_request",
    "directory_devices_by_device_id_request",
    "directory_devices_by_name_request",
    "export_job_request",
    "export_job_status_request",
    "group_request",
    "health_script_run_states_request",
    "health_scripts_request",
    "managed_devices_by_azure_id_request",
    "managed_devices_by_name_request",
    "mobile_apps_request",
    "setting_status_report_request",
    "transitive_member_of_request",
]
