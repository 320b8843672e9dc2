from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np

from .mesh import Mesh

logger = logging.getLogger(__name__)

EdgeKey = tuple[int, int]


@dataclass
class BoundaryEdge:
    a: int
    b: int
    faces: list[int] = field(default_factory=list)

    @property
    def key(self) -> EdgeKey:
        return (self.a, self.b)

    @property
    def is_boundary(self) -> bool:
        return len(self.faces) == 1

    @property
    def is_bend_candidate(self) -> bool:
        return len(self.faces) == 2


@dataclass(eq=False)
class BoundaryGraph:
    vertices: np.ndarray
    faces: np.ndarray
    face_normals: np.ndarray
    face_centroids: np.ndarray
    edges: dict[EdgeKey, BoundaryEdge]

    @property
    def face_count(self) -> int:
        return int(self.faces.shape[0])

    def edge_list(self) -> list[BoundaryEdge]:
        return list(self.edges.values())

    def boundary_edges(self) -> list[BoundaryEdge]:
        return [edge for edge in self.edges.values() if edge.is_boundary]

    def face_neighbors(self) -> list[list[int]]:
        neighbors: list[set[int]] = [set() for _ in range(self.face_count)]
        for edge in self.edges.values():
            if len(edge.faces) < 2:
                continue
            for face in edge.faces:
                neighbors[face].update(other for other in edge.faces if other != face)
        return [sorted(items) for items in neighbors]

    def diagonal(self) -> float:
        if self.vertices.shape[0] == 0:
            return 0.0
        extent = self.vertices.max(axis=0) - self.vertices.min(axis=0)
        return float(np.linalg.norm(extent))


def build_boundary_graph(
    mesh: Mesh,
    matrix=None,
    tolerance: float = 1e-4,
) -> BoundaryGraph:
    if tolerance <= 0:
        raise ValueError(f"tolerance must be positive: {tolerance}")
    if matrix is not None:
        mesh = mesh.transformed(matrix)

    positions = mesh.positions
    vertices, vertex_ids = _weld(positions, tolerance)

    faces = mesh.faces()
    if faces.size:
        valid = ((faces >= 0) & (faces < positions.shape[0])).all(axis=1)
        skipped = int((~valid).sum())
        if skipped:
            logger.debug("skipping %d faces with unresolved vertices", skipped)
        faces = vertex_ids[faces[valid]]
    else:
        faces = np.empty((0, 3), dtype=np.int64)

    corners = vertices[faces] if faces.size else np.empty((0, 3, 3))
    normals = np.cross(corners[:, 1] - corners[:, 0], corners[:, 2] - corners[:, 0])
    lengths = np.linalg.norm(normals, axis=1, keepdims=True)
    normals = np.divide(normals, lengths, out=np.zeros_like(normals), where=lengths > 0)
    centroids = corners.mean(axis=1) if faces.size else np.empty((0, 3))

    edges: dict[EdgeKey, BoundaryEdge] = {}
    for face_index, (i, j, k) in enumerate(faces.tolist()):
        for u, v in ((i, j), (j, k), (k, i)):
            if u == v:
                continue
            key = (u, v) if u < v else (v, u)
            edge = edges.get(key)
            if edge is None:
                edge = edges[key] = BoundaryEdge(key[0], key[1])
            edge.faces.append(face_index)

    logger.debug(
        "welded %d positions into %d vertices, %d faces, %d edges",
        positions.shape[0],
        vertices.shape[0],
        faces.shape[0],
        len(edges),
    )
    return BoundaryGraph(
        vertices=vertices,
        faces=faces,
        face_normals=normals,
        face_centroids=centroids,
        edges=edges,
    )


def _weld(positions: np.ndarray, tolerance: float) -> tuple[np.ndarray, np.ndarray]:
    # Welded vertices are numbered in first-seen order.
    if positions.shape[0] == 0:
        return np.empty((0, 3)), np.empty(0, dtype=np.int64)
    keys = np.floor(positions / tolerance + 0.5).astype(np.int64)
    _, first, inverse = np.unique(keys, axis=0, return_index=True, return_inverse=True)
    inverse = inverse.reshape(-1)
    order = np.argsort(first, kind="stable")
    rank = np.empty_like(order)
    rank[order] = np.arange(order.shape[0])
    return positions[first[order]], rank[inverse]
