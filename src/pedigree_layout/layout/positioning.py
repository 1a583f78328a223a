"""Horizontal coordinate assignment.

Each vertex is pulled toward the median x of its neighbours. A rank is solved
as a whole: minimise the squared distance to those targets subject to the
minimum gaps between order-neighbours, which is an isotonic regression after
subtracting the cumulative gaps (pool-adjacent-violators). Passes are bounded
by ``max_xcoord_iterations``.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from pedigree_layout.config import LayoutConfig
    from pedigree_layout.graph import GraphStore

    from .ordering import Ordering

logger = structlog.get_logger(__name__)


def vertex_width(store: GraphStore, config: LayoutConfig, v: int) -> float:
    return config.person_width if store.is_person(v) else config.other_width


def separation(store: GraphStore, config: LayoutConfig, u: int, v: int) -> float:
    """Minimum distance between the centres of two order-neighbours."""
    return (vertex_width(store, config, u) + vertex_width(store, config, v)) / 2.0


def initial_positions(store: GraphStore, ordering: Ordering, config: LayoutConfig) -> dict[int, float]:
    """Pack every rank tightly from x = 0."""
    positions: dict[int, float] = {}
    for row in ordering.order:
        x = 0.0
        for i, v in enumerate(row):
            if i > 0:
                x += separation(store, config, row[i - 1], v)
            positions[v] = x
    return positions


def _median(values: list[float]) -> float:
    values = sorted(values)
    mid = len(values) // 2
    if len(values) % 2:
        return values[mid]
    return (values[mid - 1] + values[mid]) / 2.0


def _isotonic(targets: list[float], gaps: list[float]) -> list[float]:
    """Closest non-decreasing sequence with x[i+1] - x[i] >= gaps[i]."""
    offsets = [0.0]
    for g in gaps:
        offsets.append(offsets[-1] + g)
    shifted = [t - o for t, o in zip(targets, offsets)]

    # pool adjacent violators: blocks of (mean, size)
    blocks: list[list[float]] = []
    for value in shifted:
        blocks.append([value, 1.0])
        while len(blocks) > 1 and blocks[-2][0] > blocks[-1][0]:
            mean2, size2 = blocks.pop()
            mean1, size1 = blocks[-1]
            blocks[-1] = [(mean1 * size1 + mean2 * size2) / (size1 + size2), size1 + size2]

    fitted: list[float] = []
    for mean, size in blocks:
        fitted.extend([mean] * int(size))
    return [y + o for y, o in zip(fitted, offsets)]


def place_rank(
    store: GraphStore,
    ordering: Ordering,
    positions: dict[int, float],
    config: LayoutConfig,
    rank: int,
    targets: dict[int, float],
) -> float:
    """Re-solve one rank toward ``targets``; returns the largest movement."""
    row = ordering.rank(rank)
    if not row:
        return 0.0
    gaps = [separation(store, config, row[i], row[i + 1]) for i in range(len(row) - 1)]
    solved = _isotonic([targets.get(v, positions[v]) for v in row], gaps)
    moved = 0.0
    for v, x in zip(row, solved):
        moved = max(moved, abs(positions[v] - x))
        positions[v] = x
    return moved


def relax_positions(
    store: GraphStore,
    ranks: dict[int, int],
    ordering: Ordering,
    positions: dict[int, float],
    config: LayoutConfig,
) -> dict[int, float]:
    """Median-pull relaxation, alternating downward and upward sweeps."""
    iterations = 0
    for iterations in range(1, config.max_xcoord_iterations + 1):
        sweep = range(ordering.num_ranks) if iterations % 2 else range(ordering.num_ranks - 1, -1, -1)
        moved = 0.0
        for rank in sweep:
            targets = {}
            for v in ordering.rank(rank):
                neighbours = store.get_in_edges(v) + store.get_out_edges(v)
                if neighbours:
                    targets[v] = _median([positions[u] for u in neighbours])
            moved = max(moved, place_rank(store, ordering, positions, config, rank, targets))
        if moved < config.xcoord_tolerance:
            break

    if positions:
        leftmost = min(positions.values())
        for v in positions:
            positions[v] -= leftmost
    logger.debug("layout.relaxed", iterations=iterations, vertices=len(positions))
    return positions
