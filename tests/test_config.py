from __future__ import annotations

import json
from pathlib import Path

import pytest

from pyosb.broker import ServiceBroker
from pyosb.catalog import CatalogProvider
from pyosb.config import BrokerConfig, CatalogConfig, ServicePlan
from pyosb.exceptions import OsbConfigError
from pyosb.persistence.backends import FileKeyValueStore, HttpKeyValueStore, open_key_value_store
from pyosb.persistence.gateway import MemoryKeyValueStore


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "OSB_STORAGE_URL",
        "OSB_STORAGE_KEY",
        "OSB_HOST",
        "OSB_PORT",
        "OSB_SAVE_QUEUE_SIZE",
        "OSB_SERVICE_NAME",
        "OSB_SERVICE_DESCRIPTION",
        "OSB_SERVICE_ID",
        "OSB_SERVICE_TAGS",
        "OSB_SERVICE_BINDABLE",
        "OSB_PLANS",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults_derive_storage_key_from_service_name() -> None:
    config = BrokerConfig.from_env()
    assert config.storage_url == "memory://"
    assert config.resolved_storage_key == "demo-service-service-broker"
    assert len(config.catalog.plans) == 1


@pytest.mark.parametrize(
    ("service_name", "expected"),
    [
        ("My Service", "My-Service-service-broker"),
        ("redis/cluster", "redis-cluster-service-broker"),
        ("  ", "service-service-broker"),
    ],
)
def test_derived_storage_key_is_slugified(service_name: str, expected: str) -> None:
    config = BrokerConfig(catalog=CatalogConfig(name=service_name))
    assert config.resolved_storage_key == expected


@pytest.mark.asyncio
async def test_service_name_with_spaces_keeps_file_storage_persistent(tmp_path: Path) -> None:
    config = BrokerConfig(storage_url=f"file://{tmp_path}", catalog=CatalogConfig(name="My Service"))
    async with ServiceBroker(config) as broker:
        assert broker.persistence.persistent is True
        await broker.provision(
            "svc-1",
            service_id=config.catalog.service_id,
            plan_id=config.catalog.plans[0].id,
            organization_guid="org-a",
            space_guid="space-a",
        )

    assert (tmp_path / "My-Service-service-broker.json").is_file()


def test_from_env_reads_catalog_and_storage(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OSB_SERVICE_NAME", "postgres")
    monkeypatch.setenv("OSB_SERVICE_TAGS", "sql, db ,")
    monkeypatch.setenv("OSB_SERVICE_BINDABLE", "no")
    monkeypatch.setenv("OSB_PORT", "9090")
    monkeypatch.setenv("OSB_STORAGE_URL", "file:///tmp/pyosb")
    monkeypatch.setenv(
        "OSB_PLANS",
        json.dumps([{"id": "p-small", "name": "small", "description": "1 GB"}, {"id": "p-big", "name": "big"}]),
    )

    config = BrokerConfig.from_env()

    assert config.port == 9090
    assert config.storage_url == "file:///tmp/pyosb"
    assert config.resolved_storage_key == "postgres-service-broker"
    assert config.catalog.tags == ("sql", "db")
    assert config.catalog.bindable is False
    assert [plan.id for plan in config.catalog.plans] == ["p-small", "p-big"]
    assert config.catalog.plans[1].description == ""


def test_overrides_win_over_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OSB_PORT", "9090")
    monkeypatch.setenv("OSB_STORAGE_KEY", "from-env")

    config = BrokerConfig.from_env(port=7000, storage_key="explicit", catalog={"name": "mysql"})

    assert config.port == 7000
    assert config.resolved_storage_key == "explicit"
    assert config.catalog.name == "mysql"


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("OSB_PORT", "eighty"),
        ("OSB_PLANS", "{not json"),
        ("OSB_PLANS", "[]"),
        ("OSB_PLANS", '[{"name": "no-id"}]'),
    ],
)
def test_invalid_env_raises_config_error(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(OsbConfigError):
        BrokerConfig.from_env()


def test_catalog_provider_is_pure() -> None:
    provider = CatalogProvider(
        CatalogConfig(
            name="mq",
            description="Queues",
            service_id="mq-id",
            tags=("amqp",),
            bindable=False,
            plans=(ServicePlan(id="p1", name="one", description="d", free=False),),
        )
    )

    first = provider.describe_catalog()
    second = provider.describe_catalog()

    assert first == second
    service = first.services[0]
    assert service.plan_updateable is True
    assert service.bindable is False
    assert service.plans[0].free is False


def test_open_key_value_store_selects_backend() -> None:
    assert isinstance(open_key_value_store("memory://"), MemoryKeyValueStore)
    assert isinstance(open_key_value_store("file:///var/lib/pyosb"), FileKeyValueStore)
    assert isinstance(open_key_value_store("https://kv.example.com/v1/keys"), HttpKeyValueStore)
    with pytest.raises(OsbConfigError):
        open_key_value_store("redis://localhost")
