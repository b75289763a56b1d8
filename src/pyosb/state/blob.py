"""StateBlob: the serialized snapshot of every instance and its bindings."""

from __future__ import annotations

from pydantic import Field, RootModel

from pyosb.models.instance import ServiceInstance


class StateBlob(RootModel[dict[str, ServiceInstance]]):
    """Mapping of instance id to :class:`ServiceInstance`.

    This is the unit of persistence; it is always written wholesale.
    """

    root: dict[str, ServiceInstance] = Field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.root)

    def __contains__(self, instance_id: object) -> bool:
        return instance_id in self.root

    def encode(self) -> str:
        return self.model_dump_json()

    @classmethod
    def decode(cls, data: str | bytes) -> StateBlob:
        """Parse a stored blob.

        Raises :class:`pydantic.ValidationError` for malformed data.
        """
        return cls.model_validate_json(data)
