"""Layout pipeline: ranks, within-rank order, x coordinates and vertical lanes.

Provides:
- Rank assignment and virtual edge chains for multi-rank partner edges
- Crossing-reducing ordering and median-pull coordinate relaxation
- Lane assignment for overlapping horizontal lines
- Insertion heuristics used by incremental edits
"""
from .heuristics import ChildrenInfo, Heuristics, PartnerSides
from .ordering import Ordering, count_crossings, order_vertices
from .positioned import PositionedLayout
from .positioning import relax_positions, separation
from .ranking import assign_ranks, insert_virtual_chains
from .vertical import EdgeLevel, RelLineY, VerticalLevels, compute_rank_y, position_vertically

__all__ = [
    # Pipeline
    "PositionedLayout",
    "assign_ranks",
    "insert_virtual_chains",
    "order_vertices",
    "relax_positions",
    "position_vertically",
    "compute_rank_y",
    # Tables
    "Ordering",
    "VerticalLevels",
    "EdgeLevel",
    "RelLineY",
    "count_crossings",
    "separation",
    # Incremental placement
    "Heuristics",
    "ChildrenInfo",
    "PartnerSides",
]
