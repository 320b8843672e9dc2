from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Iterable, Sequence

import numpy as np

from .bends import BendStats, summarize_bends
from .document import Drawing, read
from .errors import EmptyDrawingError, InputFormatError
from .geometry import Point3D, distance
from .graph import build_boundary_graph
from .loops import (
    Loop,
    LoopSummary,
    classify_loops,
    dedupe_closed_loops,
    summarize_loop,
    walk_loops,
)
from .mesh import Mesh, load_triangulated, read_stl
from .options import AnalysisOptions, ParseOptions
from .patches import patch_edge_lists, segment_patches
from .units import mesh_unit_scale

logger = logging.getLogger(__name__)

FLAT_PATCH_RATIO = 0.6
FLAT_ASPECT_RATIO = 5.0
CLOSURE_FACTOR = 10.0

DRAWING_SUFFIXES = frozenset({".dxf"})
STL_SUFFIXES = frozenset({".stl"})
TRIANGULATED_SUFFIXES = frozenset({".step", ".stp", ".iges", ".igs"})

_AXES = ("X", "Y", "Z")


@dataclass(frozen=True)
class FlatPattern:
    likely: bool
    dominant_axis: str | None
    largest_patch_ratio: float
    aspect_ratio: float


@dataclass
class MeshAnalysis:
    loops: list[LoopSummary] = field(default_factory=list)
    bends: BendStats = field(default_factory=BendStats)
    flat_pattern: FlatPattern | None = None
    patch_count: int = 0

    @property
    def total_length(self) -> float:
        return sum(summary.length for summary in self.loops)


@dataclass(frozen=True)
class AnalysisReport:
    outer_perimeter: LoopSummary | None
    holes: tuple[LoopSummary, ...]
    open_chains: tuple[LoopSummary, ...]
    total_cut_length: float
    bends: BendStats
    flat_pattern: FlatPattern | None
    circularity_threshold: float = 0.80
    source: str | None = None

    @classmethod
    def from_analysis(
        cls,
        analysis: MeshAnalysis,
        options: AnalysisOptions | None = None,
        source: str | None = None,
    ) -> "AnalysisReport":
        options = options or AnalysisOptions()
        outer, holes, open_chains = classify_loops(analysis.loops)
        return cls(
            outer_perimeter=outer,
            holes=tuple(holes),
            open_chains=tuple(open_chains),
            total_cut_length=analysis.total_length,
            bends=analysis.bends,
            flat_pattern=analysis.flat_pattern,
            circularity_threshold=options.circularity_threshold,
            source=source,
        )

    @property
    def outer_perimeter_length(self) -> float:
        return self.outer_perimeter.length if self.outer_perimeter is not None else 0.0

    @property
    def round_hole_count(self) -> int:
        return sum(1 for hole in self.holes if hole.is_round(self.circularity_threshold))

    @property
    def feature_count(self) -> int:
        return len(self.holes) - self.round_hole_count

    @property
    def internal_cut_length(self) -> float:
        return sum(hole.length for hole in self.holes)

    def to_dict(self) -> dict[str, Any]:
        flat = self.flat_pattern
        return {
            "source": self.source,
            "outer_perimeter_length": self.outer_perimeter_length,
            "holes": [
                {
                    "approx_diameter": hole.diameter,
                    "perimeter": hole.length,
                    "vertex_count": hole.vertex_count,
                    "circularity": hole.circularity,
                    "circular": hole.is_round(self.circularity_threshold),
                }
                for hole in self.holes
            ],
            "open_chains": [{"length": chain.length} for chain in self.open_chains],
            "total_cut_length": self.total_cut_length,
            "internal_cut_length": self.internal_cut_length,
            "round_hole_count": self.round_hole_count,
            "feature_count": self.feature_count,
            "bend": {
                "count": self.bends.count,
                "histogram": {
                    _format_bucket(key): value
                    for key, value in sorted(self.bends.histogram.items())
                },
                "min": self.bends.min_angle,
                "max": self.bends.max_angle,
                "mean": self.bends.mean_angle,
                "common_angles": self.bends.common_angles(),
                "candidate_edges": self.bends.candidate_edges,
                "total_edges": self.bends.total_edges,
            },
            "flat_pattern_likely": flat.likely if flat is not None else False,
            "dominant_plane_axis": flat.dominant_axis if flat is not None else None,
            "largest_patch_ratio": flat.largest_patch_ratio if flat is not None else None,
            "aspect_ratio": flat.aspect_ratio if flat is not None else None,
        }


def analyze_mesh(
    mesh: Mesh,
    options: AnalysisOptions | None = None,
    matrix=None,
) -> MeshAnalysis:
    options = options or AnalysisOptions()
    if matrix is not None:
        mesh = mesh.transformed(matrix)
    mesh = mesh.scaled(options.unit_scale)

    graph = build_boundary_graph(mesh, tolerance=options.vertex_merge_tolerance)
    if graph.face_count == 0:
        raise EmptyDrawingError("mesh contained no triangles")

    patches, face_patch = segment_patches(
        graph,
        options.planar_angle_threshold,
        options.plane_offset_ratio,
        options.plane_offset_floor,
    )

    summaries: list[LoopSummary] = []
    for edges in patch_edge_lists(graph, face_patch):
        for loop in walk_loops(edge.key for edge in edges):
            summaries.append(summarize_loop(loop, graph.vertices))
    if not summaries:
        boundary = graph.boundary_edges()
        for loop in walk_loops(edge.key for edge in boundary):
            summaries.append(summarize_loop(loop, graph.vertices))
    loops = dedupe_closed_loops(summaries, options.loop_dedupe_tolerance)

    bends = summarize_bends(graph, options.flat_bend_threshold, options.bend_angle_tolerance)

    flat: FlatPattern | None = None
    if patches:
        largest = max(patches, key=lambda patch: patch.face_count)
        patch_ratio = largest.face_count / graph.face_count
        aspect = _aspect_ratio(graph.vertices)
        dominant = int(np.argmax(np.abs(np.asarray(largest.normal))))
        flat = FlatPattern(
            likely=patch_ratio > FLAT_PATCH_RATIO and aspect > FLAT_ASPECT_RATIO,
            dominant_axis=_AXES[dominant],
            largest_patch_ratio=patch_ratio,
            aspect_ratio=aspect,
        )
    logger.debug(
        "mesh %s: %d patches, %d loops (%d before dedupe), %d bends",
        mesh.name or "<unnamed>",
        len(patches),
        len(loops),
        len(summaries),
        bends.count,
    )
    return MeshAnalysis(loops=loops, bends=bends, flat_pattern=flat, patch_count=len(patches))


def analyze_polyline(
    points: Sequence[Point3D],
    closed: bool = False,
    options: AnalysisOptions | None = None,
) -> MeshAnalysis | None:
    options = options or AnalysisOptions()
    scale = options.unit_scale
    vertices = [(x * scale, y * scale, z * scale) for x, y, z in points]
    if len(vertices) < 2:
        return None

    closure = options.vertex_merge_tolerance * CLOSURE_FACTOR
    ends_meet = distance(vertices[0], vertices[-1]) <= closure
    is_closed = closed or ends_meet
    if is_closed and ends_meet:
        vertices.pop()
    if is_closed and len(vertices) < 3:
        return None

    indices = list(range(len(vertices)))
    if is_closed:
        indices.append(0)
    summary = summarize_loop(Loop(indices=tuple(indices), closed=is_closed), vertices)
    flat = FlatPattern(
        likely=True,
        dominant_axis="Z",
        largest_patch_ratio=1.0,
        aspect_ratio=_aspect_ratio(np.asarray(vertices)),
    )
    return MeshAnalysis(loops=[summary], flat_pattern=flat)


def analyze_drawing(drawing: Drawing, options: AnalysisOptions | None = None) -> AnalysisReport:
    options = options or AnalysisOptions()
    scaled = replace(options, unit_scale=options.unit_scale * drawing.unit_scale)

    parts: list[MeshAnalysis] = []
    positions: list[Point3D] = []
    indices: list[int] = []
    for primitive in drawing.primitives:
        if primitive.is_line_like:
            result = analyze_polyline(primitive.to_points(), primitive.closed, scaled)
            if result is not None:
                parts.append(result)
        elif primitive.is_face:
            offset = len(positions)
            positions.extend(primitive.points)
            for triangle in primitive.triangles:
                indices.extend(offset + corner for corner in triangle)

    if indices:
        parts.append(analyze_mesh(Mesh.from_buffers(positions, indices, name="3DFACE"), scaled))
    if not parts:
        raise EmptyDrawingError("drawing contained no outlines or faces to analyse")

    merged = merge_analyses(parts, options)
    return AnalysisReport.from_analysis(merged, options, source=drawing.path)


def merge_analyses(
    analyses: Iterable[MeshAnalysis],
    options: AnalysisOptions | None = None,
) -> MeshAnalysis:
    options = options or AnalysisOptions()
    loops: list[LoopSummary] = []
    bends = BendStats(bucket=options.bend_angle_tolerance)
    flat: FlatPattern | None = None
    patch_count = 0
    for analysis in analyses:
        loops.extend(analysis.loops)
        bends = bends.merge(analysis.bends)
        patch_count += analysis.patch_count
        candidate = analysis.flat_pattern
        if candidate is not None and (flat is None or (candidate.likely and not flat.likely)):
            flat = candidate
    return MeshAnalysis(
        loops=dedupe_closed_loops(loops, options.loop_dedupe_tolerance),
        bends=bends,
        flat_pattern=flat,
        patch_count=patch_count,
    )


def analyze_file(
    path: str | Path,
    options: AnalysisOptions | None = None,
    *,
    parse_options: ParseOptions | None = None,
    unit: str = "mm",
    triangulate: Callable[..., Any] | None = None,
) -> AnalysisReport:
    options = options or AnalysisOptions()
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix in DRAWING_SUFFIXES:
        return analyze_drawing(read(path, parse_options), options)
    if suffix in STL_SUFFIXES:
        analysis = analyze_mesh(read_stl(path, unit), options)
        return AnalysisReport.from_analysis(analysis, options, source=str(path))
    if suffix in TRIANGULATED_SUFFIXES:
        if triangulate is None:
            raise InputFormatError(f"{suffix} input needs a triangulation backend")
        meshes = load_triangulated(
            path.read_bytes(),
            triangulate,
            {"format": suffix.lstrip(".")},
            unit_scale=mesh_unit_scale(unit),
        )
        merged = merge_analyses((analyze_mesh(mesh, options) for mesh in meshes), options)
        return AnalysisReport.from_analysis(merged, options, source=str(path))
    raise InputFormatError(f"unsupported file type: {path.suffix or path.name}")


def _aspect_ratio(vertices: np.ndarray) -> float:
    if vertices.shape[0] == 0:
        return 0.0
    extent = vertices.max(axis=0) - vertices.min(axis=0)
    largest = float(extent.max())
    smallest = float(extent.min())
    if smallest == 0:
        smallest = 1.0
    return largest / smallest


def _format_bucket(key: float) -> str:
    return str(int(key)) if float(key).is_integer() else str(key)
