"""In-memory mapping model produced by the tiny decoder and consumed by the emitter."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

__all__ = ["MethodMapping", "FieldMapping", "MappingModel"]


@dataclass(slots=True, frozen=True)
class MethodMapping:
    """Source/target names of one method plus its source-namespace descriptor."""

    src_name: str
    dst_name: Optional[str]
    descriptor: str


@dataclass(slots=True, frozen=True)
class FieldMapping:
    """Source/target names of one field plus its source-namespace descriptor."""

    src_name: str
    dst_name: Optional[str]
    descriptor: str


@dataclass(frozen=True)
class MappingModel:
    """Decoded renamings for one artifact version.

    Attributes:
        classes: Source class name to target class name, in first-seen order.
            The target is ``None`` when the file leaves that column empty.
        methods: Source class name to its method mappings. Only classes with at
            least one method appear, in the same relative order as ``classes``.
        fields: Same layout as ``methods`` for field mappings.
    """

    classes: Dict[str, Optional[str]] = field(default_factory=dict)
    methods: Dict[str, Tuple[MethodMapping, ...]] = field(default_factory=dict)
    fields: Dict[str, Tuple[FieldMapping, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for section in (self.methods, self.fields):
            for owner in section:
                if owner not in self.classes:
                    raise ValueError(f"member owner {owner!r} is not a known class")

    @property
    def method_count(self) -> int:
        return sum(len(entries) for entries in self.methods.values())

    @property
    def field_count(self) -> int:
        return sum(len(entries) for entries in self.fields.values())
