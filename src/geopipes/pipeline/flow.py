"""
Flow - the unit record travelling through a pipeline.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Sequence
from typing import Any, Optional

from shapely.geometry.base import BaseGeometry

from ..layer import Record


class Flow:
    """
    One geometry with named properties and the layer records it came from.

    A flow is created once per source record and is mutated in place by
    streaming stages. Aggregating stages build a new flow carrying every
    contributing record.
    """

    def __init__(
        self,
        flow_id: str,
        geometry: BaseGeometry,
        records: Sequence[Record] = (),
        properties: Optional[dict[str, Any]] = None,
    ):
        self.id = flow_id
        self.geometry = geometry
        self.records = list(records)
        self.properties: dict[str, Any] = dict(properties or {})

    @classmethod
    def from_record(cls, record: Record) -> "Flow":
        return cls(str(record.id), record.geometry, [record])

    @classmethod
    def merge(cls, flows: Sequence["Flow"], geometry: BaseGeometry) -> "Flow":
        """New flow over a computed geometry, carrying all records of `flows`."""
        records = [record for flow in flows for record in flow.records]
        return cls(",".join(flow.id for flow in flows), geometry, records)

    @property
    def geometry(self) -> BaseGeometry:
        return self._geometry

    @geometry.setter
    def geometry(self, value: BaseGeometry) -> None:
        if value is None:
            raise ValueError(f"Flow {getattr(self, 'id', '?')} geometry must not be None")
        self._geometry = value

    def fork(self, suffix: str, geometry: BaseGeometry) -> "Flow":
        """Child flow for fan-out stages: same records, copied properties."""
        return Flow(f"{self.id}-{suffix}", geometry, self.records, self.properties)

    def get_property(self, name: str, default: Any = None) -> Any:
        return self.properties.get(name, default)

    def set_property(self, name: str, value: Any) -> None:
        self.properties[name] = value

    def record_attribute(self, name: str, default: Any = None) -> Any:
        """First value of `name` among the originating records' attributes."""
        for record in self.records:
            if name in record.properties:
                return record.properties[name]
        return default

    def copy_record_properties(self, names: Optional[Iterable[str]] = None) -> None:
        """Copy record attributes into the flow's properties; the first record wins."""
        wanted = set(names) if names is not None else None
        for record in self.records:
            for key, value in record.properties.items():
                if wanted is not None and key not in wanted:
                    continue
                self.properties.setdefault(key, value)

    def __repr__(self) -> str:
        return f"Flow(id={self.id!r}, geometry={self.geometry.geom_type}, properties={self.properties})"


# A stage consumes the upstream flows lazily and yields its own output.
Stage = Callable[[Iterator[Flow]], Iterator[Flow]]
