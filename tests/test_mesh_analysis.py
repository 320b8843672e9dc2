from __future__ import annotations

import math

import numpy as np
import pytest

from ezflat.analysis import AnalysisReport, analyze_mesh
from ezflat.bends import BendStats, bucket_angle, summarize_bends
from ezflat.errors import EmptyDrawingError
from ezflat.graph import build_boundary_graph
from ezflat.mesh import Mesh
from ezflat.options import AnalysisOptions
from ezflat.patches import patch_edge_lists, segment_patches


def _triangle_soup(triangles) -> Mesh:  # noqa: ANN001
    return Mesh.from_buffers([coord for triangle in triangles for point in triangle for coord in point])


def _fold_mesh(angle_deg: float = 90.0) -> Mesh:
    """Two 10x10 quads sharing the edge y=10; the second is lifted by ``angle_deg``."""
    lift = math.radians(angle_deg)
    v0 = (0.0, 0.0, 0.0)
    v1 = (10.0, 0.0, 0.0)
    v2 = (10.0, 10.0, 0.0)
    v3 = (0.0, 10.0, 0.0)
    far_y = 10.0 + 10.0 * math.cos(lift)
    far_z = 10.0 * math.sin(lift)
    v4 = (0.0, far_y, far_z)
    v5 = (10.0, far_y, far_z)
    return _triangle_soup([(v0, v1, v2), (v0, v2, v3), (v3, v2, v5), (v3, v5, v4)])


def _square(size: float, origin: tuple[float, float]) -> list:
    x, y = origin
    a = (x, y, 0.0)
    b = (x + size, y, 0.0)
    c = (x + size, y + size, 0.0)
    d = (x, y + size, 0.0)
    return [(a, b, c), (a, c, d)]


def _plate_with_hole() -> Mesh:
    outer = [(0.0, 0.0), (100.0, 0.0), (100.0, 100.0), (0.0, 100.0)]
    inner = [(40.0, 40.0), (60.0, 40.0), (60.0, 60.0), (40.0, 60.0)]
    positions = [(x, y, 0.0) for x, y in outer + inner]
    indices = []
    for i in range(4):
        j = (i + 1) % 4
        indices.extend([i, j, 4 + j])
        indices.extend([i, 4 + j, 4 + i])
    return Mesh.from_buffers(positions, indices, name="plate")


def test_build_boundary_graph_welds_coincident_vertices() -> None:
    noise = 2e-6
    mesh = _triangle_soup(
        [
            ((0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (1.0, 1.0, 0.0)),
            ((0.0, 0.0, noise), (1.0, 1.0, -noise), (0.0, 1.0, 0.0)),
        ]
    )

    graph = build_boundary_graph(mesh, tolerance=1e-4)

    assert graph.vertices.shape == (4, 3)
    assert graph.faces.tolist() == [[0, 1, 2], [0, 2, 3]]
    assert len(graph.edges) == 5
    assert graph.edges[(0, 2)].faces == [0, 1]
    assert len(graph.boundary_edges()) == 4
    np.testing.assert_allclose(graph.face_normals, [[0.0, 0.0, 1.0], [0.0, 0.0, 1.0]], atol=1e-5)


def test_build_boundary_graph_tight_tolerance_splits_vertices() -> None:
    mesh = _triangle_soup(
        [
            ((0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (1.0, 1.0, 0.0)),
            ((0.0, 0.0, 2e-3), (1.0, 1.0, 0.0), (0.0, 1.0, 0.0)),
        ]
    )

    graph = build_boundary_graph(mesh, tolerance=1e-4)

    assert graph.vertices.shape[0] == 5
    assert len(graph.edges) == 6
    assert all(edge.is_boundary for edge in graph.edges.values())


def test_build_boundary_graph_applies_transform_and_skips_bad_indices() -> None:
    mesh = Mesh.from_buffers(
        [0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0, 0.0],
        [0, 1, 2, 0, 1, 9],
    )
    shift = np.eye(4)
    shift[:3, 3] = (5.0, 0.0, 0.0)

    graph = build_boundary_graph(mesh, matrix=shift)

    assert graph.face_count == 1
    assert graph.vertices[:, 0].min() == pytest.approx(5.0)


def test_fold_reports_exactly_one_ninety_degree_bend() -> None:
    graph = build_boundary_graph(_fold_mesh(90.0))

    stats = summarize_bends(graph)

    assert stats.count == 1
    assert stats.min_angle == pytest.approx(90.0, abs=2.0)
    assert stats.max_angle == pytest.approx(90.0, abs=2.0)
    assert stats.histogram == {90.0: 1}
    assert stats.candidate_edges == 3
    assert stats.total_edges == 9
    assert stats.common_angles() == [90]


def test_near_flat_edges_are_not_bends() -> None:
    graph = build_boundary_graph(_fold_mesh(2.0))

    assert summarize_bends(graph, flat_threshold=1.0).histogram == {3.0: 1}
    assert summarize_bends(graph, flat_threshold=5.0).count == 0
    assert summarize_bends(build_boundary_graph(_fold_mesh(0.5))).count == 0


def test_bucket_angle_rounds_to_nearest_bucket() -> None:
    assert bucket_angle(89.2, 3.0) == 90.0
    assert bucket_angle(44.0, 3.0) == 45.0
    assert bucket_angle(44.0, 1.0) == 44.0


def test_bend_stats_merge_combines_extremes_and_histograms() -> None:
    left = BendStats()
    left.add(90.0)
    right = BendStats()
    right.add(45.0)
    right.add(91.0)

    merged = left.merge(right)

    assert merged.count == 3
    assert merged.min_angle == 45.0
    assert merged.max_angle == 91.0
    assert merged.mean_angle == pytest.approx(226.0 / 3)
    assert merged.histogram == {90.0: 2, 45.0: 1}
    assert merged.merge(BendStats()).count == 3


def test_segment_patches_splits_fold_into_two_patches() -> None:
    graph = build_boundary_graph(_fold_mesh(90.0))

    patches, face_patch = segment_patches(graph)

    assert face_patch == [0, 0, 1, 1]
    assert [patch.faces for patch in patches] == [(0, 1), (2, 3)]
    edge_lists = patch_edge_lists(graph, face_patch)
    assert [len(edges) for edges in edge_lists] == [4, 4]


def test_planar_threshold_is_tunable() -> None:
    graph = build_boundary_graph(_fold_mesh(2.0))

    loose, _ = segment_patches(graph, angle_threshold_deg=3.0, offset_ratio=0.1)
    strict, _ = segment_patches(graph, angle_threshold_deg=1.0, offset_ratio=0.1)
    offset_bound, _ = segment_patches(graph, angle_threshold_deg=3.0)

    assert len(loose) == 1
    assert len(strict) == 2
    assert len(offset_bound) == 2


def test_plate_with_hole_reports_perimeter_and_hole() -> None:
    analysis = analyze_mesh(_plate_with_hole())
    report = AnalysisReport.from_analysis(analysis)

    assert analysis.patch_count == 1
    assert report.outer_perimeter_length == pytest.approx(400.0)
    assert [hole.length for hole in report.holes] == pytest.approx([80.0])
    assert report.holes[0].vertex_count == 4
    assert report.holes[0].diameter == pytest.approx(math.hypot(20.0, 20.0))
    assert report.open_chains == ()
    assert report.total_cut_length == pytest.approx(480.0)
    assert report.bends.count == 0
    assert report.flat_pattern is not None
    assert report.flat_pattern.likely
    assert report.flat_pattern.dominant_axis == "Z"
    assert report.flat_pattern.largest_patch_ratio == 1.0


def test_three_loops_are_ordered_perimeter_then_holes() -> None:
    triangles = _square(25.0, (0.0, 0.0)) + _square(10.0, (100.0, 0.0)) + _square(3.75, (200.0, 0.0))

    report = AnalysisReport.from_analysis(analyze_mesh(_triangle_soup(triangles)))

    assert report.outer_perimeter_length == pytest.approx(100.0)
    assert [hole.length for hole in report.holes] == pytest.approx([40.0, 15.0])


def test_fold_is_not_a_flat_pattern() -> None:
    analysis = analyze_mesh(_fold_mesh(90.0))

    assert analysis.patch_count == 2
    assert analysis.flat_pattern is not None
    assert not analysis.flat_pattern.likely
    assert analysis.bends.count == 1
    assert all(loop.closed for loop in analysis.loops)


def test_analyze_mesh_applies_unit_scale_and_matrix() -> None:
    rotate = np.array(
        [
            [0.0, -1.0, 0.0, 0.0],
            [1.0, 0.0, 0.0, 0.0],
            [0.0, 0.0, 1.0, 0.0],
            [0.0, 0.0, 0.0, 1.0],
        ]
    )

    analysis = analyze_mesh(_plate_with_hole(), AnalysisOptions(unit_scale=10.0), matrix=rotate)
    report = AnalysisReport.from_analysis(analysis)

    assert report.outer_perimeter_length == pytest.approx(4000.0)
    assert report.flat_pattern.dominant_axis == "Z"


def test_single_square_patch_keeps_its_four_boundary_edges() -> None:
    graph = build_boundary_graph(_triangle_soup(_square(1.0, (0.0, 0.0))))

    patches, face_patch = segment_patches(graph)

    assert len(patches) == 1
    assert len(patch_edge_lists(graph, face_patch)[0]) == 4


def test_empty_mesh_raises() -> None:
    with pytest.raises(EmptyDrawingError):
        analyze_mesh(Mesh.from_buffers([]))


def test_zero_area_faces_stay_out_of_patches() -> None:
    triangles = _square(1.0, (0.0, 0.0)) + [((0.0, 0.0, 0.0), (0.5, 0.0, 0.0), (1.0, 0.0, 0.0))]
    graph = build_boundary_graph(_triangle_soup(triangles))

    patches, face_patch = segment_patches(graph)

    assert len(patches) == 1
    assert face_patch == [0, 0, -1]
    edge_lists = patch_edge_lists(graph, face_patch)
    assert all(4 not in edge.key for edge in edge_lists[0])
    report = AnalysisReport.from_analysis(analyze_mesh(_triangle_soup(triangles)))
    assert report.holes == ()
    assert report.bends.count == 0
