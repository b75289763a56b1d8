"""Service instance and binding records.

These are the records owned by :class:`pyosb.state.store.InstanceStore`.
They are mutable on purpose: ``update_instance`` changes an instance in
place and bindings are added to / removed from ``bindings`` directly.
Callers outside the store only ever see deep copies.
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ServiceBinding(BaseModel):
    """A credential/connection grant scoped to one instance."""

    model_config = ConfigDict(extra="forbid")

    api_version: str | None = None
    service_id: str
    plan_id: str
    app_guid: str | None = None
    bind_resource: dict[str, Any] | None = None
    parameters: dict[str, Any] | None = None


class ServiceInstance(BaseModel):
    """A provisioned unit of the offered service."""

    model_config = ConfigDict(extra="forbid")

    timestamp: datetime
    api_version: str | None = None
    service_id: str
    plan_id: str | None = None
    parameters: dict[str, Any] | None = None
    accepts_incomplete: bool = False
    organization_guid: str | None = None
    space_guid: str | None = None
    context: dict[str, Any] | None = None
    bindings: dict[str, ServiceBinding] = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class BindingRemoval(enum.StrEnum):
    """Outcome of an unbind.

    ``NOT_FOUND`` covers both a missing binding and a missing owning
    instance; it is a successful outcome, not an error.
    """

    REMOVED = "removed"
    NOT_FOUND = "not_found"
