"""High-level service broker facade.

:class:`ServiceBroker` wires the catalog, the instance store, persistence
and the echo cache together.  Adapters (the aiohttp app in
:mod:`pyosb.server`, tests, embedding code) validate request shape and then
call exactly one operation here.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pyosb.catalog import CatalogProvider
from pyosb.config import BrokerConfig
from pyosb.persistence.backends import open_key_value_store
from pyosb.persistence.gateway import KeyValueStore
from pyosb.persistence.sync import PersistenceSync
from pyosb.state.echo import EchoCache
from pyosb.state.store import InstanceStore

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _instance_url(instance_id: str) -> str:
    return f"/v2/service_instances/{instance_id}"


def _binding_url(instance_id: str, binding_id: str) -> str:
    return f"{_instance_url(instance_id)}/service_bindings/{binding_id}"


class ServiceBroker:
    """Open Service Broker core.

    Usage::

        async with ServiceBroker(BrokerConfig.from_env()) as broker:
            await broker.provision("svc-1", service_id=..., plan_id=..., ...)
    """

    def __init__(
        self,
        config: BrokerConfig,
        *,
        backend: KeyValueStore | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config
        self._catalog = CatalogProvider(config.catalog)
        self._persistence = PersistenceSync(
            backend if backend is not None else open_key_value_store(config.storage_url),
            config.resolved_storage_key,
            queue_size=config.save_queue_size,
            clock=clock,
        )
        self._store = InstanceStore(clock=clock, on_change=self._persistence.schedule_save)
        self._echo = EchoCache()

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ServiceBroker:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def start(self) -> None:
        """Initialise the key-value store and restore any persisted state."""
        if not await self._persistence.init_store():
            _logger.error("Broker %s is running without persistence", self._persistence.key)
        blob = await self._persistence.load()
        if blob is not None:
            self._store.restore(blob)
        if self._persistence.persistent:
            self._persistence.start()

    async def close(self) -> None:
        await self._persistence.close()

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def config(self) -> BrokerConfig:
        return self._config

    @property
    def catalog(self) -> CatalogProvider:
        return self._catalog

    @property
    def store(self) -> InstanceStore:
        return self._store

    @property
    def persistence(self) -> PersistenceSync:
        return self._persistence

    @property
    def echo(self) -> EchoCache:
        return self._echo

    def _record_request(self, method: str, url: str, body: dict[str, Any] | None = None) -> None:
        if body is not None:
            body = {key: value for key, value in body.items() if value is not None}
        self._echo.record_request(method, url, body)

    def _respond(self, payload: dict[str, Any]) -> dict[str, Any]:
        self._echo.record_response(payload)
        return payload

    # ------------------------------------------------------------------
    # OSB operations
    # ------------------------------------------------------------------

    def get_catalog(self) -> dict[str, Any]:
        self._record_request("GET", "/v2/catalog")
        return self._respond(self._catalog.describe_catalog().model_dump())

    async def provision(
        self,
        instance_id: str,
        *,
        service_id: str,
        plan_id: str,
        organization_guid: str,
        space_guid: str,
        api_version: str | None = None,
        parameters: dict[str, Any] | None = None,
        context: dict[str, Any] | None = None,
        accepts_incomplete: bool = False,
    ) -> dict[str, Any]:
        self._record_request(
            "PUT",
            _instance_url(instance_id),
            {
                "service_id": service_id,
                "plan_id": plan_id,
                "organization_guid": organization_guid,
                "space_guid": space_guid,
                "parameters": parameters,
                "context": context,
            },
        )
        await self._store.create_instance(
            instance_id,
            service_id=service_id,
            plan_id=plan_id,
            organization_guid=organization_guid,
            space_guid=space_guid,
            api_version=api_version,
            parameters=parameters,
            context=context,
            accepts_incomplete=accepts_incomplete,
        )
        return self._respond({})

    async def update(
        self,
        instance_id: str,
        *,
        service_id: str,
        api_version: str | None = None,
        plan_id: str | None = None,
        parameters: dict[str, Any] | None = None,
        context: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Raises :class:`InstanceNotFoundError` for an unknown instance."""
        self._record_request(
            "PATCH",
            _instance_url(instance_id),
            {"service_id": service_id, "plan_id": plan_id, "parameters": parameters, "context": context},
        )
        await self._store.update_instance(
            instance_id,
            service_id=service_id,
            api_version=api_version,
            plan_id=plan_id,
            parameters=parameters,
            context=context,
        )
        return self._respond({})

    async def deprovision(self, instance_id: str) -> dict[str, Any]:
        self._record_request("DELETE", _instance_url(instance_id))
        await self._store.delete_instance(instance_id)
        return self._respond({})

    async def bind(
        self,
        instance_id: str,
        binding_id: str,
        *,
        service_id: str,
        plan_id: str,
        api_version: str | None = None,
        app_guid: str | None = None,
        bind_resource: dict[str, Any] | None = None,
        parameters: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Raises :class:`InstanceNotFoundError` for an unknown instance."""
        self._record_request(
            "PUT",
            _binding_url(instance_id, binding_id),
            {
                "service_id": service_id,
                "plan_id": plan_id,
                "app_guid": app_guid,
                "bind_resource": bind_resource,
                "parameters": parameters,
            },
        )
        await self._store.create_binding(
            instance_id,
            binding_id,
            service_id=service_id,
            plan_id=plan_id,
            api_version=api_version,
            app_guid=app_guid,
            bind_resource=bind_resource,
            parameters=parameters,
        )
        return self._respond({})

    async def unbind(self, instance_id: str, binding_id: str) -> dict[str, Any]:
        self._record_request("DELETE", _binding_url(instance_id, binding_id))
        await self._store.delete_binding(instance_id, binding_id)
        return self._respond({})

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def dashboard(self, api_version: str | None = None) -> dict[str, Any]:
        """Data for the overview page: current instances, echo and last save."""
        echo = self._echo.snapshot()
        last_save = self._persistence.last_outcome
        return {
            "title": "Service Broker Overview",
            "status": "running",
            "api_version": api_version,
            "persistent": self._persistence.persistent,
            "service_instances": self._store.snapshot().model_dump(mode="json"),
            "last_request": echo.last_request.model_dump(mode="json") if echo.last_request else None,
            "last_response": echo.last_response,
            "last_save": last_save.model_dump(mode="json") if last_save else None,
        }
