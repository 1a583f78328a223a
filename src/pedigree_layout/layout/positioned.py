"""The positioned pedigree: graph plus every layout table, kept in lock-step."""
from __future__ import annotations

import copy
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from pedigree_layout.config import CONFIG, LayoutConfig
from pedigree_layout.errors import ErrorKind, PedigreeImportError, PedigreeInvariantError
from pedigree_layout.graph import AncestryResult, GraphStore, VertexKind, find_all_ancestors

from .ordering import Ordering, order_vertices
from .positioning import initial_positions, relax_positions
from .ranking import assign_ranks, insert_virtual_chains
from .vertical import RelLineY, VerticalLevels, compute_rank_y, node_y, position_vertically, rel_line_y

logger = structlog.get_logger(__name__)


@dataclass
class PositionedLayout:
    """Graph store, ranks, order, positions and everything derived from them.

    Only ``store``, ``ranks``, ``order`` and ``positions`` are primary; the
    vertical levels, rank-y table and ancestry are recomputed from those.
    """
    store: GraphStore
    ranks: dict[int, int]
    order: Ordering
    positions: dict[int, float]
    config: LayoutConfig = CONFIG
    vertical: VerticalLevels = field(default_factory=VerticalLevels)
    rank_y: list[float] = field(default_factory=list)
    ancestry: AncestryResult = field(default_factory=AncestryResult)

    @classmethod
    def build(
        cls,
        store: GraphStore,
        config: LayoutConfig = CONFIG,
        suggested_order: Sequence[Sequence[int]] | None = None,
        proband: int = 0,
    ) -> PositionedLayout:
        """Run the full pipeline on a graph (virtual segments are rebuilt from scratch).

        ``suggested_order`` is a per-row list of person ids from a previous
        layout; it biases the new order toward the old one.
        """
        start = time.time()
        work = store.make_collapsed_copy()
        try:
            work.validate()
            ranks = assign_ranks(work)
            insert_virtual_chains(work, ranks)
            ordering = order_vertices(work, ranks, config, suggested_order, proband)
            positions = relax_positions(work, ranks, ordering, initial_positions(work, ordering, config), config)
        except PedigreeInvariantError as e:
            raise PedigreeImportError(kind=ErrorKind.LAYOUT_FAILED, message=str(e)) from e

        layout = cls(store=work, ranks=ranks, order=ordering, positions=positions, config=config)
        layout.refresh_vertical()
        layout.update_ancestry()
        logger.info(
            "layout.built",
            vertices=len(work),
            ranks=layout.order.num_ranks,
            runtime_ms=round((time.time() - start) * 1000, 2),
        )
        return layout

    @classmethod
    def empty(cls, config: LayoutConfig = CONFIG) -> PositionedLayout:
        """A graph holding only the proband."""
        store = GraphStore()
        store.add_vertex(VertexKind.PERSON)
        layout = cls(store=store, ranks={0: 1}, order=Ordering([[], [0]]), positions={0: 0.0}, config=config)
        layout.refresh_vertical()
        layout.update_ancestry()
        return layout

    @classmethod
    def restore(
        cls,
        store: GraphStore,
        ranks: dict[int, int],
        order: Sequence[Sequence[int]],
        positions: dict[int, float],
        config: LayoutConfig = CONFIG,
    ) -> PositionedLayout:
        """Rebuild the derived tables for previously saved primary tables."""
        ordering = Ordering.deserialize(order)
        ids = set(store.vertex_ids())
        if set(ranks) != ids or set(positions) != ids or set(ordering.v_order) != ids:
            raise PedigreeImportError(
                kind=ErrorKind.BAD_IMPORT, message="ranks, order and positions must cover exactly the graph's vertices"
            )
        for v, rank in ranks.items():
            if ordering.rank_of(v) != rank:
                raise PedigreeImportError(kind=ErrorKind.BAD_IMPORT, message=f"vertex {v} is ordered on the wrong rank")
        try:
            store.validate()
        except PedigreeInvariantError as e:
            raise PedigreeImportError(kind=ErrorKind.BAD_IMPORT, message=str(e)) from e

        layout = cls(store=store, ranks=dict(ranks), order=ordering, positions=dict(positions), config=config)
        layout.refresh_vertical()
        layout.update_ancestry()
        return layout

    # ------------------------------------------------------------------

    @property
    def max_rank(self) -> int:
        return self.order.num_ranks - 1

    def copy(self) -> PositionedLayout:
        return copy.deepcopy(self)

    def refresh_vertical(
        self,
        ranks_before: dict[int, int] | None = None,
        rank_y_before: list[float] | None = None,
    ) -> None:
        self.vertical = position_vertically(self.store, self.ranks, self.order, self.positions)
        self.rank_y = compute_rank_y(self.store, self.order, self.vertical, self.config, ranks_before, rank_y_before)

    def update_ancestry(self) -> None:
        self.ancestry = find_all_ancestors(self.store)

    def node_y(self, rank: int, level: int = 0) -> float:
        return node_y(self.rank_y, self.config, rank, level)

    def rel_line_y(self, rank: int, attach_level: int, vertical_level: int) -> RelLineY:
        return rel_line_y(self.rank_y, self.config, rank, attach_level, vertical_level)

    def person_order(self) -> list[list[int]]:
        """Person ids per row, empty rows dropped (the ordering hint for a rebuild)."""
        rows = [[v for v in row if self.store.is_person(v)] for row in self.order.order]
        return [row for row in rows if row]

    def check(self) -> None:
        """Cross-table consistency: every vertex ranked, ordered and positioned."""
        self.store.validate()
        self.order.check()
        for v in self.store:
            if v not in self.ranks or v not in self.positions or v not in self.order:
                raise PedigreeInvariantError(
                    kind=ErrorKind.INCONSISTENT_GRAPH, message="vertex missing from the layout tables", vertex_id=v
                )
            if self.order.rank_of(v) != self.ranks[v]:
                raise PedigreeInvariantError(
                    kind=ErrorKind.INCONSISTENT_GRAPH, message="vertex ordered on the wrong rank", vertex_id=v
                )
