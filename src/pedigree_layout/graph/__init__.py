"""Graph storage and analysis for pedigree layouts.

Provides:
- Typed vertex/edge storage with invariant validation and serialization
- Pydantic property records per vertex kind
- Ancestor, consanguinity and connectivity analysis
"""
from .ancestry import (
    AncestryResult,
    compute_ancestors,
    compute_consanguinity,
    find_all_ancestors,
    has_ancestry_cycle,
    reachable_if_removed,
    removal_closure,
)
from .models import (
    ChildhubProperties,
    Gender,
    GraphRecord,
    LifeStatus,
    PersonGroupProperties,
    PersonProperties,
    RelationshipProperties,
    Vertex,
    VertexKind,
    VertexProperties,
    VertexRecord,
    VirtualEdgeProperties,
    make_properties,
)
from .store import PROBAND, GraphStore

__all__ = [
    # Storage
    "GraphStore",
    "PROBAND",
    "Vertex",
    "VertexKind",
    "GraphRecord",
    "VertexRecord",
    # Properties
    "Gender",
    "LifeStatus",
    "PersonProperties",
    "PersonGroupProperties",
    "RelationshipProperties",
    "ChildhubProperties",
    "VirtualEdgeProperties",
    "VertexProperties",
    "make_properties",
    # Analysis
    "AncestryResult",
    "compute_ancestors",
    "compute_consanguinity",
    "find_all_ancestors",
    "reachable_if_removed",
    "removal_closure",
    "has_ancestry_cycle",
]
