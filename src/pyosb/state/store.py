"""In-memory instance/binding store.

This is the only component allowed to mutate the instance map.  Every
mutation runs inside one critical section and, before releasing it, hands a
snapshot of the whole map to the ``on_change`` callback (normally
:meth:`pyosb.persistence.sync.PersistenceSync.schedule_save`).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pyosb.exceptions import BindingNotFoundError, InstanceNotFoundError
from pyosb.models.instance import BindingRemoval, ServiceBinding, ServiceInstance
from pyosb.state.blob import StateBlob

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class InstanceStore:
    """Last-write-wins map of instance id to :class:`ServiceInstance`.

    There is no version token or compare-and-swap: concurrent requests are
    serialized by an :class:`asyncio.Lock`, and the later one wins.
    Re-creating an existing instance replaces it (bindings included) without
    signalling a conflict.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = _utcnow,
        on_change: Callable[[StateBlob], None] | None = None,
    ) -> None:
        self._clock = clock
        self._on_change = on_change
        self._instances: dict[str, ServiceInstance] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> StateBlob:
        """Deep copy of the whole map, suitable for persisting."""
        return StateBlob({key: value.model_copy(deep=True) for key, value in self._instances.items()})

    def restore(self, blob: StateBlob) -> None:
        """Replace the map with a previously persisted blob (no save is triggered)."""
        self._instances = {key: value.model_copy(deep=True) for key, value in blob.root.items()}
        _logger.info("Restored %d service instance(s)", len(self._instances))

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self.snapshot())

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def instance_ids(self) -> list[str]:
        return sorted(self._instances)

    def __contains__(self, instance_id: object) -> bool:
        return instance_id in self._instances

    def __len__(self) -> int:
        return len(self._instances)

    def get_instance(self, instance_id: str) -> ServiceInstance:
        instance = self._instances.get(instance_id)
        if instance is None:
            raise InstanceNotFoundError(instance_id)
        return instance.model_copy(deep=True)

    def get_binding(self, instance_id: str, binding_id: str) -> ServiceBinding:
        instance = self._instances.get(instance_id)
        if instance is None:
            raise InstanceNotFoundError(instance_id)
        binding = instance.bindings.get(binding_id)
        if binding is None:
            raise BindingNotFoundError(instance_id, binding_id)
        return binding.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    async def create_instance(
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
    ) -> ServiceInstance:
        """Create (or replace) the instance stored under *instance_id*."""
        async with self._lock:
            if instance_id in self._instances:
                _logger.info("Replacing existing service instance %s", instance_id)
            else:
                _logger.info("Creating service instance %s", instance_id)
            instance = ServiceInstance(
                timestamp=self._clock(),
                api_version=api_version,
                service_id=service_id,
                plan_id=plan_id,
                parameters=parameters,
                accepts_incomplete=accepts_incomplete,
                organization_guid=organization_guid,
                space_guid=space_guid,
                context=context,
                bindings={},
            )
            self._instances[instance_id] = instance
            self._changed()
            return instance.model_copy(deep=True)

    async def update_instance(
        self,
        instance_id: str,
        *,
        service_id: str,
        api_version: str | None = None,
        plan_id: str | None = None,
        parameters: dict[str, Any] | None = None,
        context: dict[str, Any] | None = None,
    ) -> ServiceInstance:
        """Update an existing instance in place; bindings are left alone.

        ``plan_id``, ``parameters`` and ``context`` are only replaced when
        supplied.

        Raises
        ------
        InstanceNotFoundError
            If no instance is stored under *instance_id*.
        """
        async with self._lock:
            instance = self._instances.get(instance_id)
            if instance is None:
                raise InstanceNotFoundError(instance_id)
            _logger.info("Updating service instance %s", instance_id)
            instance.api_version = api_version
            instance.service_id = service_id
            if plan_id is not None:
                instance.plan_id = plan_id
            if parameters is not None:
                instance.parameters = parameters
            if context is not None:
                instance.context = context
            self._changed()
            return instance.model_copy(deep=True)

    async def delete_instance(self, instance_id: str) -> bool:
        """Remove the instance and all of its bindings.

        Returns whether an instance was removed.  Deleting an unknown id is
        still a success.
        """
        async with self._lock:
            removed = self._instances.pop(instance_id, None) is not None
            if removed:
                _logger.info("Deleted service instance %s", instance_id)
            else:
                _logger.debug("Service instance %s was already absent", instance_id)
            self._changed()
            return removed

    async def create_binding(
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
    ) -> ServiceBinding:
        """Create (or replace) a binding under an existing instance.

        Raises
        ------
        InstanceNotFoundError
            If no instance is stored under *instance_id*.
        """
        async with self._lock:
            instance = self._instances.get(instance_id)
            if instance is None:
                raise InstanceNotFoundError(instance_id)
            _logger.info("Creating service binding %s for service instance %s", binding_id, instance_id)
            binding = ServiceBinding(
                api_version=api_version,
                service_id=service_id,
                plan_id=plan_id,
                app_guid=app_guid,
                bind_resource=bind_resource,
                parameters=parameters,
            )
            instance.bindings[binding_id] = binding
            self._changed()
            return binding.model_copy(deep=True)

    async def delete_binding(self, instance_id: str, binding_id: str) -> BindingRemoval:
        """Remove a binding if present.

        A missing instance or binding means the state was already lost; it is
        logged and reported as :attr:`BindingRemoval.NOT_FOUND`, never raised.
        """
        async with self._lock:
            _logger.info("Deleting service binding %s for service instance %s", binding_id, instance_id)
            instance = self._instances.get(instance_id)
            if instance is None or instance.bindings.pop(binding_id, None) is None:
                _logger.warning(
                    "Service binding %s for service instance %s not found; state already lost",
                    binding_id,
                    instance_id,
                )
                result = BindingRemoval.NOT_FOUND
            else:
                result = BindingRemoval.REMOVED
            self._changed()
            return result
