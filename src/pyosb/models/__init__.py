"""Data models for broker state and OSB responses."""

from pyosb.models.catalog import Catalog, Plan, ServiceOffering
from pyosb.models.instance import BindingRemoval, ServiceBinding, ServiceInstance

__all__ = [
    "BindingRemoval",
    "Catalog",
    "Plan",
    "ServiceBinding",
    "ServiceInstance",
    "ServiceOffering",
]
