"""Broker configuration for pyosb."""

from __future__ import annotations

import dataclasses
import json
import os
import re
from typing import Any

from pyosb.exceptions import OsbConfigError

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_list(value: str | None) -> tuple[str, ...] | None:
    if value is None:
        return None
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclasses.dataclass(frozen=True)
class ServicePlan:
    """A plan offered for the service.

    Parameters
    ----------
    id : str
        Globally unique plan id sent back by the platform as ``plan_id``.
    name : str
        CLI-friendly plan name.
    description : str
        Short human readable description.
    free : bool
        Whether the plan is free of charge.
    """

    id: str
    name: str
    description: str
    free: bool = True

    @classmethod
    def from_dict(cls, data: Any) -> ServicePlan:
        if not isinstance(data, dict):
            raise OsbConfigError(f"Plan definition must be an object, got {type(data).__name__}")
        try:
            return cls(
                id=str(data["id"]),
                name=str(data["name"]),
                description=str(data.get("description", "")),
                free=bool(data.get("free", True)),
            )
        except KeyError as exc:
            raise OsbConfigError(f"Plan definition missing {exc.args[0]!r}") from exc


_DEFAULT_PLANS: tuple[ServicePlan, ...] = (
    ServicePlan(
        id="5c2d4a8e-91f3-4b7a-8e0d-2f6b9a1c7d40",
        name="default",
        description="Default plan of the demo service",
    ),
)


@dataclasses.dataclass(frozen=True)
class CatalogConfig:
    """Static description of the single offered service."""

    name: str = "demo-service"
    description: str = "Demo service exposed through the Open Service Broker API"
    service_id: str = "0f8b7c1e-3a55-4f6c-9d4b-6a1fbd1c2e77"
    tags: tuple[str, ...] = ("demo",)
    bindable: bool = True
    plans: tuple[ServicePlan, ...] = _DEFAULT_PLANS


@dataclasses.dataclass(frozen=True)
class BrokerConfig:
    """Broker configuration.

    Parameters
    ----------
    storage_url : str
        Key-value backend location: ``memory://``, ``file:///path/to/dir``
        or an ``http(s)://`` base URL.
    storage_key : str or None
        Broker-scoped key the state blob is stored under.  Defaults to
        ``"<service name>-service-broker"``.
    host : str
        Interface the HTTP adapter binds to.
    port : int
        Port the HTTP adapter listens on.
    save_queue_size : int
        Upper bound of pending snapshots waiting for the save worker.
    catalog : CatalogConfig
        Offered service and plans.
    """

    storage_url: str = "memory://"
    storage_key: str | None = None
    host: str = "0.0.0.0"
    port: int = 8080
    save_queue_size: int = 64
    catalog: CatalogConfig = dataclasses.field(default_factory=CatalogConfig)

    @property
    def resolved_storage_key(self) -> str:
        if self.storage_key:
            return self.storage_key
        # Storage backends only accept [A-Za-z0-9._-] keys.
        slug = _UNSAFE_KEY_CHARS.sub("-", self.catalog.name).strip("-._") or "service"
        return f"{slug}-service-broker"

    @classmethod
    def from_env(cls, **overrides: Any) -> BrokerConfig:
        """Create configuration from ``OSB_*`` environment variables.

        Explicit keyword arguments override environment values.

        Raises
        ------
        OsbConfigError
            If a numeric or JSON variable cannot be parsed.
        """
        env = os.environ

        catalog_kwargs: dict[str, Any] = {}
        for env_key, field_name in {
            "OSB_SERVICE_NAME": "name",
            "OSB_SERVICE_DESCRIPTION": "description",
            "OSB_SERVICE_ID": "service_id",
        }.items():
            val = env.get(env_key)
            if val is not None:
                catalog_kwargs[field_name] = val

        tags = _env_list(env.get("OSB_SERVICE_TAGS"))
        if tags is not None:
            catalog_kwargs["tags"] = tags
        if "OSB_SERVICE_BINDABLE" in env:
            catalog_kwargs["bindable"] = _env_bool(env.get("OSB_SERVICE_BINDABLE"), True)

        plans_env = env.get("OSB_PLANS")
        if plans_env is not None:
            try:
                raw_plans = json.loads(plans_env)
            except json.JSONDecodeError as exc:
                raise OsbConfigError(f"OSB_PLANS is not valid JSON: {exc}") from exc
            if not isinstance(raw_plans, list) or not raw_plans:
                raise OsbConfigError("OSB_PLANS must be a non-empty JSON list")
            catalog_kwargs["plans"] = tuple(ServicePlan.from_dict(item) for item in raw_plans)

        # Allow overriding the catalog via a nested dict
        catalog_overrides = overrides.pop("catalog", None)
        if isinstance(catalog_overrides, dict):
            catalog_kwargs.update(catalog_overrides)
        elif isinstance(catalog_overrides, CatalogConfig):
            catalog_kwargs = {f.name: getattr(catalog_overrides, f.name) for f in dataclasses.fields(catalog_overrides)}

        config_kwargs: dict[str, Any] = {"catalog": CatalogConfig(**catalog_kwargs)}
        for env_key, field_name in {
            "OSB_STORAGE_URL": "storage_url",
            "OSB_STORAGE_KEY": "storage_key",
            "OSB_HOST": "host",
        }.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        for env_key, field_name in {"OSB_PORT": "port", "OSB_SAVE_QUEUE_SIZE": "save_queue_size"}.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                try:
                    config_kwargs[field_name] = int(val)
                except ValueError as exc:
                    raise OsbConfigError(f"{env_key} must be an integer, got {val!r}") from exc

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
