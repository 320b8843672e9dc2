from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from ezflat.analysis import analyze_file
from ezflat.errors import TriangulationError
from ezflat.mesh import Mesh, load_triangulated, meshes_from_triangulation, read_stl

ASCII_STL = """solid plate
facet normal 0 0 1
  outer loop
    vertex 0 0 0
    vertex 10 0 0
    vertex 10 10 0
  endloop
endfacet
facet normal 0 0 1
  outer loop
    vertex 0 0 0
    vertex 10 10 0
    vertex 0 10 0
  endloop
endfacet
endsolid plate
"""

SQUARE = [0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 1.0, 1.0, 0.0, 0.0, 1.0, 0.0]


def _write_stl(tmp_path: Path) -> Path:
    path = tmp_path / "plate.stl"
    path.write_text(ASCII_STL, encoding="ascii")
    return path


def test_read_stl_scales_to_millimetres(tmp_path: Path) -> None:
    pytest.importorskip("stl")
    path = _write_stl(tmp_path)

    mesh = read_stl(path, unit="cm")

    assert mesh.face_count == 2
    assert mesh.indices is None
    low, high = mesh.bounds()
    np.testing.assert_allclose(low, [0.0, 0.0, 0.0])
    np.testing.assert_allclose(high, [100.0, 100.0, 0.0])


def test_analyze_file_reads_stl(tmp_path: Path) -> None:
    pytest.importorskip("stl")
    path = _write_stl(tmp_path)

    report = analyze_file(path, unit="in")

    assert report.source == str(path)
    assert report.outer_perimeter_length == pytest.approx(40.0 * 25.4)
    assert report.bends.count == 0


def test_mesh_from_buffers_validates_lengths() -> None:
    with pytest.raises(ValueError, match="multiple of 3"):
        Mesh.from_buffers([0.0, 1.0])
    with pytest.raises(ValueError, match="multiple of 3"):
        Mesh.from_buffers(SQUARE, [0, 1])


def test_mesh_transformed_requires_4x4() -> None:
    mesh = Mesh.from_buffers(SQUARE, [0, 1, 2, 0, 2, 3])

    with pytest.raises(ValueError, match="4x4"):
        mesh.transformed(np.eye(3))

    moved = mesh.transformed(np.diag([2.0, 2.0, 2.0, 1.0]))
    assert moved.positions[2].tolist() == [2.0, 2.0, 0.0]
    assert moved.indices is mesh.indices


def test_meshes_from_triangulation_position_paths() -> None:
    result = {
        "success": True,
        "meshes": [
            {"name": "a", "attributes": {"position": {"array": SQUARE}}, "index": {"array": [0, 1, 2, 0, 2, 3]}},
            {"name": "b", "position": SQUARE[:9]},
            {"positions": SQUARE, "indices": [0, 1, 2]},
            {"vertices": SQUARE[:9], "index": [0, 1, 2]},
            "not a mesh",
            {"name": "no geometry"},
        ],
    }

    meshes = meshes_from_triangulation(result)

    assert [mesh.face_count for mesh in meshes] == [2, 1, 1, 1]
    assert [mesh.name for mesh in meshes] == ["a", "b", None, None]


@pytest.mark.parametrize(
    ("result", "message"),
    [
        ([], "expected a mapping"),
        ({"success": False}, "reported failure"),
        ({"success": False, "error": "bad header"}, "bad header"),
        ({"success": True, "meshes": []}, "no geometry"),
        ({"success": True, "meshes": [{"position": []}]}, "no geometry"),
    ],
)
def test_meshes_from_triangulation_failures(result: object, message: str) -> None:
    with pytest.raises(TriangulationError, match=message):
        meshes_from_triangulation(result)


def test_load_triangulated_scales_and_wraps_backend_errors() -> None:
    def backend(data: bytes, params: dict) -> dict:
        assert params == {"linear_deflection": 0.1}
        return {"success": True, "meshes": [{"position": SQUARE, "index": [0, 1, 2]}]}

    meshes = load_triangulated(b"", backend, {"linear_deflection": 0.1}, unit_scale=1000.0)
    assert meshes[0].positions.max() == pytest.approx(1000.0)

    def broken(data: bytes, params: dict) -> dict:
        raise RuntimeError("kernel crashed")

    with pytest.raises(TriangulationError, match="kernel crashed"):
        load_triangulated(b"", broken)
