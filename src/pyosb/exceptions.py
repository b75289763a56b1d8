"""Custom exception hierarchy for pyosb."""

from __future__ import annotations


class OsbError(Exception):
    """Base exception for all pyosb errors."""


class OsbConfigError(OsbError):
    """Invalid or missing configuration."""


class InstanceNotFoundError(OsbError):
    """No service instance is registered under the requested id.

    Raised by operations that need an existing instance (update, bind,
    lookups).  The HTTP adapter maps it to ``404 Not Found``.
    """

    def __init__(self, instance_id: str) -> None:
        self.instance_id = instance_id
        super().__init__(f"Service instance {instance_id!r} does not exist")


class BindingNotFoundError(OsbError):
    """No binding with the requested id exists under the instance.

    Only raised by lookups.  Unbinding a missing binding is reported as
    :attr:`pyosb.models.BindingRemoval.NOT_FOUND` instead.
    """

    def __init__(self, instance_id: str, binding_id: str) -> None:
        self.instance_id = instance_id
        self.binding_id = binding_id
        super().__init__(f"Service binding {binding_id!r} does not exist for instance {instance_id!r}")


class PersistenceError(OsbError):
    """Key-value backend failure (unreachable, rejected write, bad I/O)."""

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)
