from __future__ import annotations

import pytest

from pyosb.broker import ServiceBroker
from pyosb.config import BrokerConfig, CatalogConfig, ServicePlan
from pyosb.exceptions import InstanceNotFoundError, PersistenceError
from pyosb.persistence.gateway import MemoryKeyValueStore


class _FailingSaveBackend(MemoryKeyValueStore):
    async def save(self, key: str, data: str) -> None:
        raise PersistenceError("disk full", key=key)


def _config() -> BrokerConfig:
    return BrokerConfig(
        storage_key="broker-test",
        catalog=CatalogConfig(
            name="redis",
            description="Redis as a service",
            service_id="svc-offering",
            tags=("cache", "redis"),
            plans=(ServicePlan(id="gold", name="gold", description="Big"),),
        ),
    )


async def _provision(broker: ServiceBroker, instance_id: str = "svc-1") -> dict[str, object]:
    return await broker.provision(
        instance_id,
        service_id="svc-offering",
        plan_id="gold",
        organization_guid="org-a",
        space_guid="space-a",
        api_version="2.13",
    )


@pytest.mark.asyncio
async def test_lifecycle_returns_empty_payloads_and_records_echo() -> None:
    async with ServiceBroker(_config(), backend=MemoryKeyValueStore()) as broker:
        assert await _provision(broker) == {}
        assert await broker.bind("svc-1", "bind-1", service_id="svc-offering", plan_id="gold") == {}
        assert await broker.update("svc-1", service_id="svc-offering", plan_id="gold") == {}
        assert await broker.unbind("svc-1", "bind-9") == {}
        assert await broker.deprovision("svc-1") == {}
        assert await broker.deprovision("svc-1") == {}

        assert broker.echo.snapshot().last_response == {}
        assert "svc-1" not in broker.store


@pytest.mark.asyncio
async def test_update_and_bind_on_unknown_instance_propagate_not_found() -> None:
    async with ServiceBroker(_config(), backend=MemoryKeyValueStore()) as broker:
        with pytest.raises(InstanceNotFoundError):
            await broker.update("ghost", service_id="svc-offering")
        with pytest.raises(InstanceNotFoundError):
            await broker.bind("ghost", "bind-1", service_id="svc-offering", plan_id="gold")


@pytest.mark.asyncio
async def test_state_survives_restart_with_same_backend() -> None:
    backend = MemoryKeyValueStore()

    async with ServiceBroker(_config(), backend=backend) as broker:
        await _provision(broker)
        await broker.bind("svc-1", "bind-1", service_id="svc-offering", plan_id="gold", app_guid="app-x")

    assert await backend.load("broker-test") is not None

    async with ServiceBroker(_config(), backend=backend) as restarted:
        assert restarted.store.get_binding("svc-1", "bind-1").app_guid == "app-x"


@pytest.mark.asyncio
async def test_save_failure_does_not_fail_provision() -> None:
    async with ServiceBroker(_config(), backend=_FailingSaveBackend()) as broker:
        assert await _provision(broker) == {}
        assert "svc-1" in broker.store

        await broker.persistence.flush()
        outcome = broker.persistence.last_outcome
        assert outcome is not None
        assert outcome.ok is False
        assert broker.dashboard()["last_save"]["ok"] is False


def test_catalog_payload_and_echo() -> None:
    broker = ServiceBroker(_config(), backend=MemoryKeyValueStore())

    payload = broker.get_catalog()

    service = payload["services"][0]
    assert service["name"] == "redis"
    assert service["id"] == "svc-offering"
    assert service["tags"] == ["cache", "redis"]
    assert service["bindable"] is True
    assert service["plan_updateable"] is True
    assert service["plans"] == [{"id": "gold", "name": "gold", "description": "Big", "free": True}]
    assert broker.echo.snapshot().last_response == payload


@pytest.mark.asyncio
async def test_dashboard_reflects_state_and_last_request() -> None:
    async with ServiceBroker(_config(), backend=MemoryKeyValueStore()) as broker:
        await _provision(broker)
        await broker.persistence.flush()

        view = broker.dashboard("2.13")

    assert view["title"] == "Service Broker Overview"
    assert view["status"] == "running"
    assert view["api_version"] == "2.13"
    assert view["persistent"] is True
    assert view["service_instances"]["svc-1"]["bindings"] == {}
    assert view["last_request"] == {
        "method": "PUT",
        "url": "/v2/service_instances/svc-1",
        "body": {
            "service_id": "svc-offering",
            "plan_id": "gold",
            "organization_guid": "org-a",
            "space_guid": "space-a",
        },
    }
    assert view["last_response"] == {}
    assert view["last_save"]["ok"] is True


@pytest.mark.asyncio
async def test_operations_record_last_request() -> None:
    async with ServiceBroker(_config(), backend=MemoryKeyValueStore()) as broker:
        assert broker.echo.snapshot().last_request is None

        await _provision(broker)
        provisioned = broker.echo.snapshot().last_request
        assert provisioned is not None
        assert provisioned.method == "PUT"
        assert provisioned.url == "/v2/service_instances/svc-1"

        await broker.bind("svc-1", "bind-1", service_id="svc-offering", plan_id="gold", app_guid="app-1")
        bound = broker.echo.snapshot().last_request
        assert bound is not None
        assert bound.url == "/v2/service_instances/svc-1/service_bindings/bind-1"
        assert bound.body == {"service_id": "svc-offering", "plan_id": "gold", "app_guid": "app-1"}

        await broker.unbind("svc-1", "bind-1")
        unbound = broker.echo.snapshot().last_request
        assert unbound is not None
        assert unbound.method == "DELETE"
        assert unbound.body is None


@pytest.mark.asyncio
async def test_request_is_recorded_when_instance_is_missing() -> None:
    async with ServiceBroker(_config(), backend=MemoryKeyValueStore()) as broker:
        with pytest.raises(InstanceNotFoundError):
            await broker.update("missing", service_id="svc-offering", plan_id="gold")

        last = broker.echo.snapshot().last_request
    assert last is not None
    assert last.method == "PATCH"
    assert last.url == "/v2/service_instances/missing"
    assert last.body == {"service_id": "svc-offering", "plan_id": "gold"}
