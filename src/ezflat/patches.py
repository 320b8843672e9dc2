from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from .graph import BoundaryEdge, BoundaryGraph

logger = logging.getLogger(__name__)

Vector = tuple[float, float, float]


@dataclass(frozen=True)
class Patch:
    index: int
    faces: tuple[int, ...]
    normal: Vector
    plane_constant: float

    @property
    def face_count(self) -> int:
        return len(self.faces)


def segment_patches(
    graph: BoundaryGraph,
    angle_threshold_deg: float = 3.0,
    offset_ratio: float = 1e-4,
    offset_floor: float = 1e-4,
) -> tuple[list[Patch], list[int]]:
    # Seeds in ascending face order, neighbours in ascending order off a stack.
    # Faces without area stay unassigned (-1).
    face_count = graph.face_count
    neighbors = graph.face_neighbors()
    normals: list[Vector] = [tuple(row) for row in graph.face_normals.tolist()]
    centroids: list[Vector] = [tuple(row) for row in graph.face_centroids.tolist()]
    min_dot = math.cos(math.radians(angle_threshold_deg))
    offset_tolerance = max(graph.diagonal() * offset_ratio, offset_floor)

    face_patch = [-1] * face_count
    patches: list[Patch] = []
    for seed in range(face_count):
        if face_patch[seed] != -1:
            continue
        if not _has_area(normals[seed]):
            continue
        patch_index = len(patches)
        face_patch[seed] = patch_index
        members = [seed]
        normal = normals[seed]
        normal_sum = list(normal)
        point_sum = list(centroids[seed])
        plane = _dot(normal, centroids[seed])

        stack = [seed]
        while stack:
            face = stack.pop()
            for other in neighbors[face]:
                if face_patch[other] != -1:
                    continue
                if not _has_area(normals[other]):
                    continue
                if _dot(normal, normals[other]) < min_dot:
                    continue
                if abs(_dot(normal, centroids[other]) - plane) > offset_tolerance:
                    continue
                face_patch[other] = patch_index
                members.append(other)
                stack.append(other)

                for axis in range(3):
                    normal_sum[axis] += normals[other][axis]
                    point_sum[axis] += centroids[other][axis]
                length = math.sqrt(_dot(normal_sum, normal_sum))
                if length > 0:
                    normal = (
                        normal_sum[0] / length,
                        normal_sum[1] / length,
                        normal_sum[2] / length,
                    )
                count = len(members)
                average = (point_sum[0] / count, point_sum[1] / count, point_sum[2] / count)
                plane = _dot(normal, average)

        patches.append(
            Patch(
                index=patch_index,
                faces=tuple(members),
                normal=normal,
                plane_constant=plane,
            )
        )

    logger.debug("segmented %d faces into %d patches", face_count, len(patches))
    return patches, face_patch


def patch_edge_lists(graph: BoundaryGraph, face_patch: list[int]) -> list[list[BoundaryEdge]]:
    # Single-face edges belong to their patch, edges between patches to each
    # of them. Interior edges and edges of unassigned faces are dropped.
    patch_count = max(face_patch, default=-1) + 1
    lists: list[list[BoundaryEdge]] = [[] for _ in range(patch_count)]
    for edge in graph.edges.values():
        if len(edge.faces) == 1:
            owner = face_patch[edge.faces[0]]
            if owner != -1:
                lists[owner].append(edge)
            continue
        owners: list[int] = []
        for face in edge.faces:
            owner = face_patch[face]
            if owner != -1 and owner not in owners:
                owners.append(owner)
        if len(owners) > 1:
            for owner in owners:
                lists[owner].append(edge)
    return lists


def _dot(a, b) -> float:
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def _has_area(normal: Vector) -> bool:
    return _dot(normal, normal) > 0.0
