"""Collection services for DeviceDNA's Intune view of a device."""

from .applications import ApplicationCollector
from .base import (
    CollectorResult,
    EventHook,
    Phase,
    PolicyCollector,
    TargetingContext,
)
from .collection import CollectionProgressEvent, DeviceCollection, IntuneCollector
from .compliance import CompliancePolicyCollector
from .configurations import ConfigurationProfileCollector
from .deployment import DeploymentStateReconciler
from .export import ExportService, build_report
from .filters import AssignmentFilterService
from .groups import GroupMembershipLookup, GroupNameCache
from .identity import IdentityResolver
from .remediations import RemediationCollector
from .reports import DeploymentReportService, ReportExportService
from .targeting import AssignmentEvaluator

__all__ = [
    "IdentityResolver",
    "GroupMembershipLookup",
    "GroupNameCache",
    "AssignmentFilterService",
    "AssignmentEvaluator",
    "PolicyCollector",
    "CollectorResult",
    "TargetingContext",
    "ConfigurationProfileCollector",
    "CompliancePolicyCollector",
    "ApplicationCollector",
    "RemediationCollector",
    "ReportExportService",
    "DeploymentReportService",
    "DeploymentStateReconciler",
    "IntuneCollector",
    "DeviceCollection",
    "CollectionProgressEvent",
    "ExportService",
    "build_report",
    "EventHook",
    "Phase",
]
