from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

import numpy as np

from .graph import BoundaryGraph

logger = logging.getLogger(__name__)

COMMON_BEND_ANGLES = (90, 45, 30, 135, 120, 60, 180)


@dataclass
class BendStats:
    bucket: float = 3.0
    count: int = 0
    angle_sum: float = 0.0
    min_angle: float | None = None
    max_angle: float | None = None
    histogram: dict[float, int] = field(default_factory=dict)
    candidate_edges: int = 0
    total_edges: int = 0

    @property
    def mean_angle(self) -> float | None:
        if not self.count:
            return None
        return self.angle_sum / self.count

    def add(self, angle: float) -> None:
        self.count += 1
        self.angle_sum += angle
        self.min_angle = angle if self.min_angle is None else min(self.min_angle, angle)
        self.max_angle = angle if self.max_angle is None else max(self.max_angle, angle)
        key = bucket_angle(angle, self.bucket)
        self.histogram[key] = self.histogram.get(key, 0) + 1

    def merge(self, other: "BendStats") -> "BendStats":
        histogram = dict(self.histogram)
        for key, value in other.histogram.items():
            histogram[key] = histogram.get(key, 0) + value
        return BendStats(
            bucket=self.bucket,
            count=self.count + other.count,
            angle_sum=self.angle_sum + other.angle_sum,
            min_angle=_combine(min, self.min_angle, other.min_angle),
            max_angle=_combine(max, self.max_angle, other.max_angle),
            histogram=histogram,
            candidate_edges=self.candidate_edges + other.candidate_edges,
            total_edges=self.total_edges + other.total_edges,
        )

    def common_angles(self) -> list[int]:
        found: list[int] = []
        for angle in COMMON_BEND_ANGLES:
            if any(abs(key - angle) <= self.bucket for key in self.histogram):
                found.append(angle)
        return found


def bucket_angle(angle: float, bucket: float) -> float:
    value = math.floor(angle / bucket + 0.5) * bucket
    return float(round(value, 6))


def summarize_bends(
    graph: BoundaryGraph,
    flat_threshold: float = 1.0,
    bucket: float = 3.0,
) -> BendStats:
    stats = BendStats(bucket=bucket, total_edges=len(graph.edges))
    pairs = [edge.faces for edge in graph.edges.values() if edge.is_bend_candidate]
    stats.candidate_edges = len(pairs)
    if not pairs:
        return stats

    index = np.asarray(pairs, dtype=np.int64)
    first = graph.face_normals[index[:, 0]]
    second = graph.face_normals[index[:, 1]]
    # Faces without area have a zero normal and no meaningful dihedral.
    usable = (np.linalg.norm(first, axis=1) > 0) & (np.linalg.norm(second, axis=1) > 0)
    dots = np.clip(np.einsum("ij,ij->i", first[usable], second[usable]), -1.0, 1.0)
    angles = np.degrees(np.arccos(dots))
    for angle in angles.tolist():
        if angle > flat_threshold:
            stats.add(angle)

    logger.debug(
        "%d bend edges out of %d candidates (%d edges total)",
        stats.count,
        stats.candidate_edges,
        stats.total_edges,
    )
    return stats


def _combine(pick, left: float | None, right: float | None) -> float | None:
    if left is None:
        return right
    if right is None:
        return left
    return pick(left, right)
