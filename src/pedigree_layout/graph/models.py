"""Vertex and property models for the pedigree graph.

Every vertex carries a property record that matches its kind:

- Person / PersonGroup -> PersonProperties
- Relationship -> RelationshipProperties
- ChildHub / VirtualEdgeSegment -> empty records

Records are validated at construction; unknown keys are rejected.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pedigree_layout.errors import ErrorKind, PedigreeInvariantError


class VertexKind(str, Enum):
    """Kinds of vertices in the layout graph."""
    PERSON = "person"
    PERSON_GROUP = "person_group"
    RELATIONSHIP = "relationship"
    CHILDHUB = "childhub"
    VIRTUAL_EDGE = "virtual_edge"

    @property
    def is_person_like(self) -> bool:
        return self in (VertexKind.PERSON, VertexKind.PERSON_GROUP)


class Gender(str, Enum):
    MALE = "M"
    FEMALE = "F"
    UNKNOWN = "U"

    @property
    def opposite(self) -> Gender:
        if self == Gender.MALE:
            return Gender.FEMALE
        if self == Gender.FEMALE:
            return Gender.MALE
        return Gender.UNKNOWN


class LifeStatus(str, Enum):
    ALIVE = "alive"
    DECEASED = "deceased"
    STILLBORN = "stillborn"
    MISCARRIAGE = "miscarriage"
    ABORTED = "aborted"
    UNBORN = "unborn"


class _Record(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, validate_assignment=True)

    def to_dict(self) -> dict[str, Any]:
        """Serialize using exchange (camelCase) names, omitting defaults."""
        return self.model_dump(mode="json", by_alias=True, exclude_defaults=True)


class PersonProperties(_Record):
    """Properties of a person or a person group."""
    gender: Gender = Gender.UNKNOWN
    first_name: str = Field(default="", alias="fName")
    last_name: str = Field(default="", alias="lName")
    last_name_at_birth: str = Field(default="", alias="lNameAtB")
    external_id: str | None = Field(default=None, alias="externalID")
    life_status: LifeStatus = Field(default=LifeStatus.ALIVE, alias="lifeStatus")
    date_of_birth: str | None = Field(default=None, alias="dob")
    date_of_death: str | None = Field(default=None, alias="dod")
    gestation_age: str = Field(default="", alias="gestationAge")
    disorders: list[str] = Field(default_factory=list)
    hpo_terms: list[str] = Field(default_factory=list, alias="hpoTerms")
    carrier_status: str = Field(default="", alias="carrierStatus")
    evaluated: bool = False
    adopted: bool = Field(default=False, alias="isAdopted")
    twin_group: int | None = Field(default=None, alias="twinGroup", ge=0)
    childless_status: str | None = Field(default=None, alias="childlessStatus")
    childless_reason: str | None = Field(default=None, alias="childlessReason")
    comments: str = ""
    num_persons: int | None = Field(default=None, alias="numPersons", ge=1)

    @field_validator("gender", mode="before")
    @classmethod
    def _normalize_gender(cls, value: Any) -> Any:
        if isinstance(value, Gender):
            return value
        if isinstance(value, str) and value.upper() in ("M", "F"):
            return value.upper()
        return Gender.UNKNOWN


class RelationshipProperties(_Record):
    """Properties of a partnership."""
    consangr: Literal["A", "Y", "N"] = "A"  # A = derived from ancestry
    broken: bool = False
    childless_status: str | None = Field(default=None, alias="childlessStatus")
    childless_reason: str | None = Field(default=None, alias="childlessReason")


class ChildhubProperties(_Record):
    """Child hubs carry no properties."""


class VirtualEdgeProperties(_Record):
    """Virtual edge segments carry no properties."""


VertexProperties = Union[PersonProperties, RelationshipProperties, ChildhubProperties, VirtualEdgeProperties]

_PROPERTY_MODELS: dict[VertexKind, type[_Record]] = {
    VertexKind.PERSON: PersonProperties,
    VertexKind.PERSON_GROUP: PersonProperties,
    VertexKind.RELATIONSHIP: RelationshipProperties,
    VertexKind.CHILDHUB: ChildhubProperties,
    VertexKind.VIRTUAL_EDGE: VirtualEdgeProperties,
}


class PersonGroupProperties(PersonProperties):
    """Person group: a person record standing for ``num_persons`` people."""
    num_persons: int = Field(default=1, alias="numPersons", ge=1)


def make_properties(
    kind: VertexKind,
    data: VertexProperties | dict[str, Any] | None = None,
) -> VertexProperties:
    """Build (and validate) the property record for a vertex kind.

    Accepts an existing record, a plain mapping using either field names or
    exchange aliases, or None for defaults.
    """
    model = _PROPERTY_MODELS[kind]
    if kind == VertexKind.PERSON_GROUP:
        model = PersonGroupProperties
    if data is None:
        return model()
    if isinstance(data, BaseModel):
        if isinstance(data, model):
            return data.model_copy(deep=True)
        data = data.model_dump(by_alias=True, exclude_none=True)
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise PedigreeInvariantError(
            kind=ErrorKind.INVALID_PROPERTIES,
            message=f"invalid {kind.value} properties: {e.errors()[0]['msg']}",
        ) from e


@dataclass
class Vertex:
    """A vertex of the layout graph.

    Edge maps keep insertion order, so they double as the ordered edge lists.
    """
    id: int
    kind: VertexKind
    properties: VertexProperties
    out_edges: dict[int, float] = field(default_factory=dict)
    in_edges: dict[int, float] = field(default_factory=dict)


class VertexRecord(BaseModel):
    """Serialized form of a vertex."""
    id: int = Field(ge=0)
    kind: VertexKind
    properties: dict[str, Any] = Field(default_factory=dict)
    out_edges: list[tuple[int, float]] = Field(default_factory=list)
    in_edges: list[int] = Field(default_factory=list)


class GraphRecord(BaseModel):
    """Serialized form of a graph store."""
    vertices: list[VertexRecord] = Field(default_factory=list)
    next_id: int = Field(default=0, ge=0)
