from __future__ import annotations

from typing import Iterable

from device_dna.data.models import (
    DirectoryObject,
    GroupMembership,
    IssueLog,
    MembershipSource,
)
from device_dna.graph.client import GraphClientFactory
from device_dna.graph.errors import GraphAPIError
from device_dna.graph.requests import group_request, transitive_member_of_request
from device_dna.services.base import GraphCollectionService, Phase
from device_dna.utils import get_logger


logger = get_logger(__name__)


class GroupNameCache:
    """Group id to display name, memoised for the duration of one run."""

    def __init__(self, client_factory: GraphClientFactory) -> None:
        self._client_factory = client_factory
        self._names: dict[str, str] = {}
        self._lookups = 0

    def remember(self, group_id: str, display_name: str) -> None:
        self._names.setdefault(group_id, display_name)

    def remember_all(self, memberships: Iterable[GroupMembership]) -> None:
        for membership in memberships:
            self.remember(membership.group_id, membership.display_name)

    def get(self, group_id: str) -> str | None:
        return self._names.get(group_id)

    @property
    def lookups(self) -> int:
        """Number of ``/groups/{id}`` round trips made so far."""
        return self._lookups

    async def resolve(self, group_id: str) -> str:
        """Return the display name, fetching it once when not yet known.

        Falls back to the id itself when the group cannot be read.
        """

        cached = self._names.get(group_id)
        if cached is not None:
            return cached
        request = group_request(group_id)
        self._lookups += 1
        payload = await self._client_factory.request_json_or_none(
            request.method,
            request.url,
            params=request.params,
            api_version=request.api_version,
        )
        name = group_id
        if payload:
            display_name = payload.get("displayName")
            if isinstance(display_name, str) and display_name:
                name = display_name
        self._names[group_id] = name
        return name

    def snapshot(self) -> dict[str, str]:
        return dict(self._names)


class GroupMembershipLookup(GraphCollectionService):
    """Transitive Entra ID group membership of a device or user."""

    resource = "transitiveMemberOf"

    def __init__(
        self,
        client_factory: GraphClientFactory,
        *,
        name_cache: GroupNameCache | None = None,
    ) -> None:
        super().__init__(client_factory)
        self._name_cache = name_cache

    async def transitive_groups(
        self,
        object_id: str | None,
        *,
        issues: IssueLog,
        source: MembershipSource = MembershipSource.DEVICE,
    ) -> list[GroupMembership]:
        if not object_id:
            return []

        kind = "users" if source is MembershipSource.USER else "devices"
        phase = Phase.USER_GROUPS if source is MembershipSource.USER else Phase.DEVICE_GROUPS
        request = transitive_member_of_request(object_id, kind=kind)

        memberships: list[GroupMembership] = []
        skipped = 0
        try:
            async for entry in self._iter_models(
                request,
                DirectoryObject,
                issues=issues,
                phase=phase,
            ):
                if not entry.is_group:
                    skipped += 1
                    continue
                memberships.append(
                    GroupMembership.from_directory_object(entry, source=source)
                )
        except GraphAPIError as exc:
            logger.warning(
                "Transitive group lookup failed",
                object_id=object_id,
                source=source.value,
                collected=len(memberships),
                error=str(exc),
            )
            issues.record_error(phase, exc, context=f"{source.value} group membership")

        if self._name_cache is not None:
            self._name_cache.remember_all(memberships)
        logger.info(
            "Transitive groups collected",
            object_id=object_id,
            source=source.value,
            groups=len(memberships),
            skipped_non_groups=skipped,
        )
        return memberships


__all__ = ["GroupMembershipLookup", "GroupNameCache"]
