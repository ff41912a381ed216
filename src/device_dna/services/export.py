from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from device_dna.data.models import DeploymentState, TargetedItem
from device_dna.services.base import EventHook
from device_dna.services.collection import DeviceCollection
from device_dna.utils import get_logger


logger = get_logger(__name__)

NOT_DEPLOYED = "Not Deployed"


def deployment_label(state: DeploymentState | None) -> str | None:
    if state is None:
        return None
    if not state.is_deployed:
        return NOT_DEPLOYED
    return state.status_code


def item_to_report(
    item: TargetedItem,
    *,
    deployment: DeploymentState | None = None,
) -> dict[str, Any]:
    """Flatten a targeted item into the shape the report renderer reads."""

    targeting = item.targeting
    record: dict[str, Any] = {
        "id": item.id,
        "displayName": item.display_name,
        "description": item.description,
        "platform": item.platform,
        "policyType": item.policy_type,
        "targetingStatus": targeting.status,
        "targetGroups": list(targeting.matched_group_labels),
        "assignmentFilter": (
            targeting.applied_filter.to_report() if targeting.applied_filter else None
        ),
        "intent": targeting.intent.value if targeting.intent else None,
        "deploymentState": deployment_label(deployment),
        "deployment": deployment.to_report() if deployment else None,
    }
    if item.kind == "application":
        record["appType"] = item.policy_type
        record["version"] = item.details.get("appVersion")
    record.update(item.details)
    return record


def build_report(collection: DeviceCollection) -> dict[str, Any]:
    def items(entries: list[TargetedItem], *, with_deployment: bool = False) -> list[dict[str, Any]]:
        return [
            item_to_report(
                entry,
                deployment=collection.deployment_for(entry.id) if with_deployment else None,
            )
            for entry in entries
        ]

    states = collection.deployment_states
    return {
        "generatedAt": collection.collected_at.isoformat(),
        "device": collection.identity.to_report(),
        "intune": {
            "targetingEvaluated": collection.targeting_evaluated,
            "deviceGroups": [group.to_report() for group in collection.device_groups],
            "userGroups": [group.to_report() for group in collection.user_groups],
            "configurationProfiles": items(
                collection.configuration_profiles,
                with_deployment=True,
            ),
            "compliancePolicies": items(collection.compliance_policies),
            "applications": items(collection.applications),
            "proactiveRemediations": items(collection.remediations),
            "deploymentStates": (
                [state.to_report() for state in states] if states is not None else None
            ),
        },
        "collectionIssues": [issue.to_report() for issue in collection.issues],
    }


class ExportService:
    """Write collection results as the JSON document the report consumes."""

    def __init__(self) -> None:
        self.completed: EventHook[Path] = EventHook()

    def write_json(self, path: Path, collection: DeviceCollection) -> Path:
        payload = build_report(collection)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
        logger.debug(
            "Exported device collection JSON",
            path=str(path),
            issues=len(collection.issues),
        )
        self.completed.emit(path)
        return path


__all__ = ["ExportService", "build_report", "deployment_label", "item_to_report"]
