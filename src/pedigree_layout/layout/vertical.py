"""Vertical lanes for same-rank edge bundles and the rank -> pixel row table.

Two kinds of horizontal lines can collide on a rank:

- the sibling line under a ChildHub, spanning the hub and all its children
- the partner line from a person to a relationship that is not its direct
  order-neighbour (it has to jump over other vertices)

Each gets the smallest lane that does not overlap a line already placed.
Partner lines between direct neighbours stay on lane 0. When a person has
several relationships on the same side, its lines leave from stacked attach
ports, nearest relationship first.
"""
from __future__ import annotations

import copy
from collections.abc import Hashable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from pedigree_layout.config import LayoutConfig
    from pedigree_layout.graph import GraphStore

    from .ordering import Ordering


@dataclass
class EdgeLevel:
    attach_level: int = 0
    vertical_level: int = 0
    num_attach_levels: int = 1


@dataclass
class VerticalLevels:
    """Lane bookkeeping: ``child_edge_level[hub]`` and ``out_edge_level[person][rel]``."""
    child_edge_level: dict[int, int] = field(default_factory=dict)
    out_edge_level: dict[int, dict[int, EdgeLevel]] = field(default_factory=dict)

    def edge(self, person: int, rel: int) -> EdgeLevel:
        return self.out_edge_level.get(person, {}).get(rel, EdgeLevel())

    def has_edge(self, person: int, rel: int) -> bool:
        return rel in self.out_edge_level.get(person, {})

    def copy(self) -> VerticalLevels:
        return copy.deepcopy(self)


class RelLineY(NamedTuple):
    attach_y: float
    rel_line_y: float


def _overlaps(a: tuple[float, float], b: tuple[float, float]) -> bool:
    return a[0] < b[1] and b[0] < a[1]


def _assign_lanes(spans: dict[Hashable, tuple[float, float]], first_lane: int) -> dict[Hashable, int]:
    """Interval colouring; shorter spans get the lower lanes."""
    lanes: list[list[tuple[float, float]]] = []
    result: dict[Hashable, int] = {}
    for key in sorted(spans, key=lambda k: (spans[k][1] - spans[k][0], spans[k][0], k)):
        span = spans[key]
        for i, taken in enumerate(lanes):
            if not any(_overlaps(span, other) for other in taken):
                taken.append(span)
                result[key] = i + first_lane
                break
        else:
            lanes.append([span])
            result[key] = len(lanes) - 1 + first_lane
    return result


def position_vertically(
    store: GraphStore,
    ranks: dict[int, int],
    ordering: Ordering,
    positions: dict[int, float],
) -> VerticalLevels:
    levels = VerticalLevels()

    # sibling lines
    hub_spans: dict[int, dict[int, tuple[float, float]]] = {}
    for v in store:
        if not store.is_childhub(v):
            continue
        xs = [positions[v]] + [positions[c] for c in store.get_out_edges(v)]
        hub_spans.setdefault(ranks[v], {})[v] = (min(xs), max(xs))
    for spans in hub_spans.values():
        levels.child_edge_level.update(_assign_lanes(spans, first_lane=0))

    # partner lines
    for p in store.persons():
        levels.out_edge_level[p] = {}
    edge_spans: dict[int, dict[tuple[int, int], tuple[float, float]]] = {}
    for rel in store.relationships():
        o_rel = ordering.index(rel)
        for u in store.get_in_edges(rel):
            person = store.up_the_chain_until_non_virtual(u)
            o_u = ordering.index(u)
            level = EdgeLevel()
            levels.out_edge_level.setdefault(person, {})[rel] = level
            if abs(o_u - o_rel) > 1:
                edge_spans.setdefault(ranks[rel], {})[(person, rel)] = (min(o_u, o_rel), max(o_u, o_rel))
    for spans in edge_spans.values():
        for (person, rel), lane in _assign_lanes(spans, first_lane=1).items():
            levels.out_edge_level[person][rel].vertical_level = lane

    # attach ports
    for p in store.persons():
        o_p = ordering.index(p)
        left, right = [], []
        for rel in store.get_out_edges(p):
            if not store.is_relationship(rel) or ranks[rel] != ranks[p]:
                continue
            o_rel = ordering.index(rel)
            (left if o_rel < o_p else right).append((abs(o_rel - o_p), rel))
        num_ports = max(len(left), len(right), 1)
        for side in (left, right):
            for port, (_, rel) in enumerate(sorted(side)):
                edge = levels.out_edge_level[p][rel]
                edge.attach_level = port
                edge.num_attach_levels = num_ports
    return levels


def _row_height(
    store: GraphStore,
    row: list[int],
    levels: VerticalLevels,
    config: LayoutConfig,
) -> float:
    if not row:
        return 0.0
    hubs = [v for v in row if store.is_childhub(v)]
    if hubs:
        return config.hub_row_height + config.lane_height * max(levels.child_edge_level.get(h, 0) for h in hubs)
    if not any(store.is_person(v) or store.is_relationship(v) for v in row):
        return config.hub_row_height
    lanes, ports = 0, 1
    for rel in row:
        if not store.is_relationship(rel):
            continue
        for parent in store.get_parents(rel):
            edge = levels.edge(parent, rel)
            lanes = max(lanes, edge.vertical_level)
            ports = max(ports, edge.num_attach_levels)
    return config.person_row_height + config.lane_height * lanes + config.attach_height * (ports - 1)


def compute_rank_y(
    store: GraphStore,
    ordering: Ordering,
    levels: VerticalLevels,
    config: LayoutConfig,
    ranks_before: dict[int, int] | None = None,
    rank_y_before: list[float] | None = None,
) -> list[float]:
    """Pixel row for every rank.

    With a previous table, a rank that still holds vertices from the previous
    layout never shrinks below its previous height.
    """
    heights = [_row_height(store, row, levels, config) for row in ordering.order]

    if ranks_before is not None and rank_y_before:
        for r, row in enumerate(ordering.order):
            old = next((ranks_before[v] for v in row if v in ranks_before), None)
            if old is None or not 0 <= old < len(rank_y_before):
                continue
            old_height = rank_y_before[old] - (rank_y_before[old - 1] if old > 0 else 0.0)
            heights[r] = max(heights[r], old_height)

    rank_y: list[float] = []
    y = 0.0
    for h in heights:
        y += h
        rank_y.append(y)
    return rank_y


def node_y(rank_y: list[float], config: LayoutConfig, rank: int, level: int = 0) -> float:
    return rank_y[rank] + level * config.lane_height


def rel_line_y(
    rank_y: list[float],
    config: LayoutConfig,
    rank: int,
    attach_level: int,
    vertical_level: int,
) -> RelLineY:
    """Where a partner line leaves the person and where its horizontal part runs."""
    attach_y = rank_y[rank] + attach_level * config.attach_height
    if vertical_level == 0:
        return RelLineY(attach_y=attach_y, rel_line_y=attach_y)
    return RelLineY(attach_y=attach_y, rel_line_y=rank_y[rank] - vertical_level * config.lane_height)
