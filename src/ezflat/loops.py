from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Iterable, Sequence

import numpy as np

from .geometry import Point3D

CIRCLE_VERTEX_COUNT = 32
CIRCLE_CIRCULARITY_FLOOR = 0.85


@dataclass(frozen=True)
class Loop:
    indices: tuple[int, ...]
    closed: bool


@dataclass(frozen=True)
class LoopSummary:
    closed: bool
    length: float
    vertex_count: int
    diameter: float
    centroid: Point3D | None = None
    circularity: float | None = None

    def is_round(self, threshold: float) -> bool:
        return self.circularity is not None and self.circularity >= threshold


def walk_loops(edges: Iterable[tuple[int, int]]) -> list[Loop]:
    # A branching vertex ends the walk early; the walk becomes an open chain.
    edge_list = [(int(a), int(b)) for a, b in edges]
    adjacency: dict[int, list[int]] = {}
    for a, b in edge_list:
        adjacency.setdefault(a, []).append(b)
        adjacency.setdefault(b, []).append(a)

    visited: set[tuple[int, int]] = set()
    limit = len(edge_list) * 4
    loops: list[Loop] = []
    for a, b in edge_list:
        key = _edge_key(a, b)
        if key in visited:
            continue
        visited.add(key)

        walk = [a]
        previous, current = a, b
        closed = False
        steps = 0
        while steps < limit:
            steps += 1
            walk.append(current)
            if current == walk[0]:
                closed = True
                break
            following = _next_vertex(adjacency, current, previous, visited)
            if following is None:
                break
            visited.add(_edge_key(current, following))
            previous, current = current, following
        loops.append(Loop(indices=tuple(walk), closed=closed))
    return loops


def summarize_loop(loop: Loop, vertices: Sequence[Sequence[float]] | np.ndarray) -> LoopSummary:
    coords = np.asarray(vertices, dtype=np.float64)[list(loop.indices)]
    if coords.shape[0] > 1:
        length = float(np.linalg.norm(np.diff(coords, axis=0), axis=1).sum())
    else:
        length = 0.0

    points = coords[:-1] if loop.closed and coords.shape[0] > 1 else coords
    diameter = _max_pairwise_distance(points)

    centroid: Point3D | None = None
    circularity: float | None = None
    if loop.closed and points.shape[0]:
        center = points.mean(axis=0)
        centroid = (float(center[0]), float(center[1]), float(center[2]))
        if points.shape[0] >= 4:
            circularity = _circularity(points, center, length)

    return LoopSummary(
        closed=loop.closed,
        length=length,
        vertex_count=int(points.shape[0]),
        diameter=diameter,
        centroid=centroid,
        circularity=circularity,
    )


def dedupe_closed_loops(
    summaries: Iterable[LoopSummary],
    tolerance: float = 1e-3,
) -> list[LoopSummary]:
    # Edges shared by two patches are walked once per patch.
    groups: dict[tuple, list[LoopSummary]] = {}
    order: list[tuple | LoopSummary] = []
    for summary in summaries:
        if not summary.closed or summary.centroid is None:
            order.append(summary)
            continue
        key = (
            *(_quantize(value, tolerance) for value in summary.centroid),
            _quantize(summary.length, tolerance),
            summary.vertex_count,
            _quantize(summary.diameter, tolerance),
        )
        if key not in groups:
            groups[key] = []
            order.append(key)
        groups[key].append(summary)

    result: list[LoopSummary] = []
    for item in order:
        if isinstance(item, LoopSummary):
            result.append(item)
        else:
            result.append(_merge_group(groups[item]))
    return result


def classify_loops(
    summaries: Iterable[LoopSummary],
) -> tuple[LoopSummary | None, list[LoopSummary], list[LoopSummary]]:
    closed: list[LoopSummary] = []
    open_chains: list[LoopSummary] = []
    for summary in summaries:
        (closed if summary.closed else open_chains).append(summary)
    closed.sort(key=lambda summary: summary.length, reverse=True)
    if not closed:
        return None, [], open_chains
    return closed[0], closed[1:], open_chains


def _circularity(points: np.ndarray, center: np.ndarray, length: float) -> float:
    radii = np.linalg.norm(points - center, axis=1)
    average = float(radii.mean())
    if average <= 0:
        return 0.0
    variation = float(radii.std()) / average
    spread_score = max(0.0, 1.0 - variation * 5.0)
    perimeter_radius = length / (2.0 * math.pi)
    low = min(perimeter_radius, average)
    high = max(perimeter_radius, average)
    radius_score = low / high if high > 0 else 0.0
    score = (spread_score + radius_score) / 2.0
    if points.shape[0] >= CIRCLE_VERTEX_COUNT:
        score = max(score, CIRCLE_CIRCULARITY_FLOOR)
    return score


def _max_pairwise_distance(points: np.ndarray) -> float:
    best = 0.0
    for i in range(points.shape[0] - 1):
        span = float(np.linalg.norm(points[i + 1 :] - points[i], axis=1).max())
        if span > best:
            best = span
    return best


def _merge_group(group: list[LoopSummary]) -> LoopSummary:
    if len(group) == 1:
        return group[0]
    count = len(group)
    centroid = tuple(
        sum(summary.centroid[axis] for summary in group) / count  # type: ignore[index]
        for axis in range(3)
    )
    scores = [summary.circularity for summary in group if summary.circularity is not None]
    return replace(
        group[0],
        length=sum(summary.length for summary in group) / count,
        diameter=sum(summary.diameter for summary in group) / count,
        vertex_count=max(summary.vertex_count for summary in group),
        centroid=centroid,  # type: ignore[arg-type]
        circularity=sum(scores) / len(scores) if scores else None,
    )


def _quantize(value: float, tolerance: float) -> int:
    return math.floor(value / tolerance + 0.5)


def _next_vertex(
    adjacency: dict[int, list[int]],
    current: int,
    previous: int,
    visited: set[tuple[int, int]],
) -> int | None:
    for candidate in adjacency.get(current, ()):
        if candidate == previous:
            continue
        if _edge_key(current, candidate) in visited:
            continue
        return candidate
    return None


def _edge_key(a: int, b: int) -> tuple[int, int]:
    return (a, b) if a < b else (b, a)
