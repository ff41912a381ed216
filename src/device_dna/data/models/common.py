from __future__ import annotations

from datetime import datetime
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field


class GraphBaseModel(BaseModel):
    """Base class for Graph payloads.

    Unknown fields are ignored and every optional field defaults to ``None``
    so loosely shaped responses still hydrate.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        use_enum_values=True,
        extra="ignore",
        frozen=True,
    )

    @classmethod
    def from_graph(cls, payload: dict[str, Any]) -> Self:
        """Hydrate a model from a raw Graph response."""
        return cls.model_validate(payload)


class GraphResource(GraphBaseModel):
    id: str = Field(alias="id")


class TimestampedResource(GraphResource):
    created_date_time: datetime | None = Field(default=None, alias="createdDateTime")
    last_modified_date_time: datetime | None = Field(
        default=None, alias="lastModifiedDateTime"
    )


def odata_suffix(odata_type: str | None) -> str | None:
    """``#microsoft.graph.win32LobApp`` -> ``win32LobApp``."""

    if not odata_type:
        return None
    return odata_type.rsplit(".", 1)[-1].lstrip("#") or None


__all__ = ["GraphBaseModel", "GraphResource", "TimestampedResource", "odata_suffix"]
