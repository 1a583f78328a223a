"""Structural snapshot of a positioned pedigree.

Only the graph and the primary layout tables (ranks, order, positions) are
stored. Vertical levels, rank rows, ancestors and consanguinity are derived
again on load.
"""
from __future__ import annotations

from pydantic import BaseModel, Field, ValidationError

from pedigree_layout.config import CONFIG, LayoutConfig
from pedigree_layout.errors import ErrorKind, PedigreeImportError
from pedigree_layout.graph import GraphRecord, GraphStore, PersonProperties, RelationshipProperties
from pedigree_layout.layout import PositionedLayout


class LayoutSnapshot(BaseModel):
    graph: GraphRecord
    ranks: dict[int, int] = Field(default_factory=dict)
    order: list[list[int]] = Field(default_factory=list)
    positions: dict[int, float] = Field(default_factory=dict)

    @classmethod
    def from_layout(cls, layout: PositionedLayout) -> LayoutSnapshot:
        strip_unused_properties(layout.store)
        return cls(
            graph=layout.store.serialize(),
            ranks=dict(layout.ranks),
            order=layout.order.serialize(),
            positions=dict(layout.positions),
        )

    def to_layout(self, config: LayoutConfig = CONFIG) -> PositionedLayout:
        store = GraphStore.deserialize(self.graph)
        return PositionedLayout.restore(store, self.ranks, self.order, self.positions, config)

    def to_json(self, indent: int | None = None) -> str:
        return self.model_dump_json(indent=indent)

    @classmethod
    def from_json(cls, text: str | bytes) -> LayoutSnapshot:
        try:
            return cls.model_validate_json(text)
        except ValidationError as e:
            raise PedigreeImportError(kind=ErrorKind.BAD_IMPORT, message=f"malformed snapshot: {e}") from e


def strip_unused_properties(store: GraphStore) -> None:
    """Reset blank or meaningless property values so they are not serialized."""
    for v in store:
        props = store.properties(v)
        if isinstance(props, PersonProperties):
            cleaned = props.model_copy()
            for name in ("first_name", "last_name", "last_name_at_birth", "gestation_age", "carrier_status",
                         "comments"):
                value = getattr(cleaned, name)
                if value != value.strip():
                    setattr(cleaned, name, value.strip())
            for name in ("external_id", "date_of_birth", "date_of_death", "childless_status"):
                value = getattr(cleaned, name)
                if value is not None and not value.strip():
                    setattr(cleaned, name, None)
            cleaned.disorders = [d for d in cleaned.disorders if d.strip()]
            cleaned.hpo_terms = [t for t in cleaned.hpo_terms if t.strip()]
            if cleaned.childless_status is None:
                cleaned.childless_reason = None
            store.set_properties(v, cleaned)
        elif isinstance(props, RelationshipProperties):
            if props.childless_status is not None and not props.childless_status.strip():
                cleaned = props.model_copy(update={"childless_status": None, "childless_reason": None})
                store.set_properties(v, cleaned)
            elif props.childless_status is None and props.childless_reason is not None:
                store.set_properties(v, props.model_copy(update={"childless_reason": None}))
