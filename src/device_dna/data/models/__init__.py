"""Typed models for the Microsoft Graph payloads DeviceDNA consumes."""

from .assignment import (
    Assignment,
    AssignmentIntent,
    AssignmentTarget,
    FilterMode,
    GraphAssignment,
    TargetKind,
    normalise_assignments,
)
from .common import GraphBaseModel, GraphResource, TimestampedResource, odata_suffix
from .device import DeviceIdentity, DirectoryDevice, ManagedDevice
from .filters import AppliedFilter, AssignmentFilter
from .group import DirectoryObject, GroupMembership, MembershipSource, MembershipType
from .issues import CollectionIssue, IssueLog, IssueSeverity
from .policies import (
    AdministrativeTemplatePolicy,
    AssignedResource,
    CompliancePolicy,
    CompliancePolicyState,
    DeviceConfigurationProfile,
    HealthScript,
    HealthScriptRunState,
    MobileApp,
    MobileAppIntentAndStates,
    MobileAppIntentState,
    SettingsCatalogPolicy,
    SettingsCatalogSetting,
)
from .reports import (
    DeploymentState,
    ExportJob,
    ExportJobStatus,
    NotDeployedReason,
    ReportRow,
    SettingErrorRow,
    status_label,
)
from .targeting import TargetedItem, TargetingResult

__all__ = [
    "GraphBaseModel",
    "GraphResource",
    "TimestampedResource",
    "odata_suffix",
    "DirectoryDevice",
    "ManagedDevice",
    "DeviceIdentity",
    "DirectoryObject",
    "GroupMembership",
    "MembershipSource",
    "MembershipType",
    "Assignment",
    "AssignmentIntent",
    "AssignmentTarget",
    "FilterMode",
    "GraphAssignment",
    "TargetKind",
    "normalise_assignments",
    "AssignmentFilter",
    "AppliedFilter",
    "AssignedResource",
    "DeviceConfigurationProfile",
    "SettingsCatalogPolicy",
    "SettingsCatalogSetting",
    "AdministrativeTemplatePolicy",
    "CompliancePolicy",
    "CompliancePolicyState",
    "MobileApp",
    "MobileAppIntentAndStates",
    "MobileAppIntentState",
    "HealthScript",
    "HealthScriptRunState",
    "ReportRow",
    "SettingErrorRow",
    "DeploymentState",
    "NotDeployedReason",
    "ExportJob",
    "ExportJobStatus",
    "status_label",
    "TargetingResult",
    "TargetedItem",
    "CollectionIssue",
    "IssueLog",
    "IssueSeverity",
]
