from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

import numpy as np

from .errors import EmptyDrawingError, TriangulationError
from .units import mesh_unit_scale

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Mesh:
    positions: np.ndarray
    indices: np.ndarray | None = None
    name: str | None = None

    @classmethod
    def from_buffers(
        cls,
        positions: Sequence[float] | np.ndarray,
        indices: Sequence[int] | np.ndarray | None = None,
        name: str | None = None,
    ) -> "Mesh":
        flat = np.asarray(positions, dtype=np.float64).reshape(-1)
        if flat.size % 3:
            raise ValueError(
                f"position buffer length must be a multiple of 3, got {flat.size}"
            )
        index_array = None
        if indices is not None:
            index_flat = np.asarray(indices, dtype=np.int64).reshape(-1)
            if index_flat.size % 3:
                raise ValueError(
                    f"index buffer length must be a multiple of 3, got {index_flat.size}"
                )
            index_array = index_flat.reshape(-1, 3)
        return cls(positions=flat.reshape(-1, 3), indices=index_array, name=name)

    @property
    def vertex_count(self) -> int:
        return int(self.positions.shape[0])

    @property
    def face_count(self) -> int:
        return int(self.faces().shape[0])

    def faces(self) -> np.ndarray:
        if self.indices is not None:
            return self.indices
        usable = self.vertex_count - self.vertex_count % 3
        return np.arange(usable, dtype=np.int64).reshape(-1, 3)

    def transformed(self, matrix: Sequence[Sequence[float]] | np.ndarray) -> "Mesh":
        transform = np.asarray(matrix, dtype=np.float64)
        if transform.shape != (4, 4):
            raise ValueError(f"transform must be a 4x4 matrix, got shape {transform.shape}")
        homogeneous = np.hstack([self.positions, np.ones((self.vertex_count, 1))])
        moved = homogeneous @ transform.T
        w = moved[:, 3:4]
        w = np.where(np.abs(w) > 0, w, 1.0)
        return Mesh(positions=moved[:, :3] / w, indices=self.indices, name=self.name)

    def scaled(self, factor: float) -> "Mesh":
        if factor == 1.0:
            return self
        return Mesh(positions=self.positions * factor, indices=self.indices, name=self.name)

    def bounds(self) -> tuple[np.ndarray, np.ndarray] | None:
        if self.vertex_count == 0:
            return None
        return self.positions.min(axis=0), self.positions.max(axis=0)


def read_stl(path: str | Path, unit: str = "mm") -> Mesh:
    stl_mesh = _require_numpy_stl()
    scale = mesh_unit_scale(unit)
    data = stl_mesh.Mesh.from_file(str(path))
    vectors = np.asarray(data.vectors, dtype=np.float64)
    if vectors.size == 0:
        raise EmptyDrawingError(f"STL file contained no triangles: {path}")
    name = getattr(data, "name", None)
    if isinstance(name, bytes):
        name = name.decode("ascii", errors="ignore")
    logger.debug("read %d triangles from %s (unit=%s)", len(vectors), path, unit)
    return Mesh(positions=vectors.reshape(-1, 3) * scale, name=(name or "").strip() or None)


def meshes_from_triangulation(result: Any) -> list[Mesh]:
    if not isinstance(result, Mapping):
        raise TriangulationError(
            f"triangulation returned {type(result).__name__}, expected a mapping"
        )
    if not result.get("success"):
        message = result.get("error") or "triangulation reported failure"
        raise TriangulationError(str(message))

    meshes: list[Mesh] = []
    for entry in result.get("meshes") or ():
        if not isinstance(entry, Mapping):
            continue
        positions = _lookup(entry, _POSITION_PATHS)
        if positions is None:
            continue
        indices = _lookup(entry, _INDEX_PATHS)
        mesh = Mesh.from_buffers(positions, indices, name=entry.get("name"))
        if mesh.face_count:
            meshes.append(mesh)
    if not meshes:
        raise TriangulationError("triangulation produced no geometry")
    return meshes


def load_triangulated(
    data: bytes,
    triangulate: Callable[..., Any],
    params: Mapping[str, Any] | None = None,
    *,
    unit_scale: float = 1.0,
) -> list[Mesh]:
    try:
        result = triangulate(data, dict(params or {}))
    except TriangulationError:
        raise
    except Exception as exc:
        raise TriangulationError(f"triangulation backend failed: {exc}") from exc
    return [mesh.scaled(unit_scale) for mesh in meshes_from_triangulation(result)]


_POSITION_PATHS: tuple[tuple[str, ...], ...] = (
    ("attributes", "position", "array"),
    ("position",),
    ("positions",),
    ("vertices",),
)
_INDEX_PATHS: tuple[tuple[str, ...], ...] = (
    ("index", "array"),
    ("indices",),
    ("index",),
)


def _lookup(entry: Mapping[str, Any], paths: tuple[tuple[str, ...], ...]) -> Any:
    for path in paths:
        node: Any = entry
        for key in path:
            if not isinstance(node, Mapping) or key not in node:
                node = None
                break
            node = node[key]
        if node is not None and not isinstance(node, Mapping):
            return node
    return None


def _require_numpy_stl():
    try:
        from stl import mesh as stl_mesh
    except Exception as exc:
        raise ImportError(
            "numpy-stl is required for STL input. "
            'Install it with `pip install "ezflat[stl]"`.'
        ) from exc
    return stl_mesh
