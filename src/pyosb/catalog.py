"""Catalog provider: read-only description of the offered service."""

from __future__ import annotations

from pyosb.config import CatalogConfig
from pyosb.models.catalog import Catalog, Plan, ServiceOffering


class CatalogProvider:
    """Builds the OSB catalog from an injected, immutable :class:`CatalogConfig`."""

    def __init__(self, config: CatalogConfig) -> None:
        self._config = config

    @property
    def config(self) -> CatalogConfig:
        return self._config

    def describe_catalog(self) -> Catalog:
        """Return the catalog with the single offered service.

        ``plan_updateable`` is always ``True``; plan changes go through
        ``update_instance``.
        """
        cfg = self._config
        return Catalog(
            services=[
                ServiceOffering(
                    name=cfg.name,
                    description=cfg.description,
                    id=cfg.service_id,
                    tags=list(cfg.tags),
                    bindable=cfg.bindable,
                    plan_updateable=True,
                    plans=[
                        Plan(id=plan.id, name=plan.name, description=plan.description, free=plan.free)
                        for plan in cfg.plans
                    ],
                )
            ]
        )
