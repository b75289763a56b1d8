"""pyosb - Async Open Service Broker API server core."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyosb")
except PackageNotFoundError:
    __version__ = "0+local"
from pyosb.broker import ServiceBroker
from pyosb.catalog import CatalogProvider
from pyosb.config import BrokerConfig, CatalogConfig, ServicePlan
from pyosb.exceptions import (
    BindingNotFoundError,
    InstanceNotFoundError,
    OsbConfigError,
    OsbError,
    PersistenceError,
)
from pyosb.models import (
    BindingRemoval,
    Catalog,
    Plan,
    ServiceBinding,
    ServiceInstance,
    ServiceOffering,
)
from pyosb.persistence.backends import FileKeyValueStore, HttpKeyValueStore, open_key_value_store
from pyosb.persistence.gateway import KeyValueStore, MemoryKeyValueStore
from pyosb.persistence.sync import PersistenceSync, SaveOutcome
from pyosb.state.blob import StateBlob
from pyosb.state.echo import EchoCache
from pyosb.state.store import InstanceStore

__all__ = [
    "__version__",
    "BindingNotFoundError",
    "BindingRemoval",
    "BrokerConfig",
    "Catalog",
    "CatalogConfig",
    "CatalogProvider",
    "EchoCache",
    "FileKeyValueStore",
    "HttpKeyValueStore",
    "InstanceNotFoundError",
    "InstanceStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "OsbConfigError",
    "OsbError",
    "PersistenceError",
    "PersistenceSync",
    "Plan",
    "SaveOutcome",
    "ServiceBinding",
    "ServiceBroker",
    "ServiceInstance",
    "ServiceOffering",
    "ServicePlan",
    "StateBlob",
]
