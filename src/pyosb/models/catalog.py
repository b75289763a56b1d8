"""Catalog response models (``GET /v2/catalog``)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Plan(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    name: str
    description: str
    free: bool = True


class ServiceOffering(BaseModel):
    """The one service this broker offers."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    description: str
    id: str
    tags: list[str] = Field(default_factory=list)
    bindable: bool = True
    plan_updateable: bool = True
    plans: list[Plan] = Field(default_factory=list)


class Catalog(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    services: list[ServiceOffering]
