from __future__ import annotations

from pathlib import Path

import pytest

import ezflat
import ezflat.convert as convert_module
from ezflat.colors import aci_to_rgb
from ezflat.options import DEFAULT_COLOR
from tests._dxf_helpers import (
    block,
    circle,
    dxf_entities_of_type,
    dxf_text,
    entities,
    group_float,
    layer_table,
    line,
    lwpolyline,
    rectangle,
    section,
)

ARC = [
    (0, "ARC"),
    (8, "0"),
    (10, 1.0),
    (20, 2.0),
    (30, 0.0),
    (40, 3.0),
    (50, 15.0),
    (51, 120.0),
]


def _write(tmp_path: Path, *sections) -> Path:  # noqa: ANN002
    path = tmp_path / "source.dxf"
    path.write_text(dxf_text(*sections), encoding="utf-8")
    return path


def _group_str(entity: dict[str, object], code: str) -> str | None:
    groups = entity["groups"]
    assert isinstance(groups, list)
    for group_code, raw_value in groups:
        if group_code == code:
            return raw_value
    return None


def test_to_dxf_writes_line_and_native_circle(tmp_path: Path) -> None:
    pytest.importorskip("ezdxf")

    source = _write(tmp_path, entities(line((0, 0), (10, 0)), circle((5, 5), 2)))
    output = tmp_path / "out.dxf"
    result = ezflat.to_dxf(str(source), str(output), dxf_version="R2010")

    assert output.exists()
    assert result.source_path == str(source)
    assert result.total_entities == 2
    assert result.written_entities == 2
    assert result.skipped_entities == 0
    lines = dxf_entities_of_type(output, "LINE")
    assert len(lines) == 1
    assert group_float(lines[0], "11") == pytest.approx(10.0)
    circles = dxf_entities_of_type(output, "CIRCLE")
    assert len(circles) == 1
    assert group_float(circles[0], "10") == pytest.approx(5.0)
    assert group_float(circles[0], "40") == pytest.approx(2.0)


def test_export_dxf_keeps_arc_angles(tmp_path: Path) -> None:
    pytest.importorskip("ezdxf")

    drawing = ezflat.parse(dxf_text(entities(ARC)))
    output = tmp_path / "arc.dxf"
    result = drawing.export_dxf(str(output), types="ARC")

    assert result.total_entities == 1
    assert result.source_path is None
    arcs = dxf_entities_of_type(output, "ARC")
    assert len(arcs) == 1
    assert group_float(arcs[0], "50") == pytest.approx(15.0)
    assert group_float(arcs[0], "51") == pytest.approx(120.0)
    assert group_float(arcs[0], "40") == pytest.approx(3.0)


def test_to_dxf_writes_closed_lwpolyline(tmp_path: Path) -> None:
    pytest.importorskip("ezdxf")

    drawing = ezflat.parse(dxf_text(entities(lwpolyline(rectangle(30.0, 20.0), closed=True))))
    output = tmp_path / "plate.dxf"
    drawing.export_dxf(str(output))

    polylines = dxf_entities_of_type(output, "LWPOLYLINE")
    assert len(polylines) == 1
    assert int(group_float(polylines[0], "90")) == 4
    assert int(group_float(polylines[0], "70")) & 1


def test_to_dxf_writes_block_instances_as_outlines(tmp_path: Path) -> None:
    pytest.importorskip("ezdxf")

    insert = [(0, "INSERT"), (8, "0"), (2, "HOLE"), (10, 10.0), (20, 10.0), (30, 0.0)]
    drawing = ezflat.parse(
        dxf_text(
            section("BLOCKS", block("HOLE", circle((0, 0), 1.5))),
            entities(insert),
        )
    )
    output = tmp_path / "insert.dxf"
    result = drawing.export_dxf(str(output))

    assert result.written_entities == 1
    assert dxf_entities_of_type(output, "INSERT") == []
    assert dxf_entities_of_type(output, "CIRCLE") == []
    polylines = dxf_entities_of_type(output, "LWPOLYLINE")
    assert len(polylines) == 1
    assert int(group_float(polylines[0], "90")) == 64


def test_to_dxf_writes_layer_and_true_color(tmp_path: Path) -> None:
    pytest.importorskip("ezdxf")

    drawing = ezflat.parse(
        dxf_text(
            layer_table({"CUT": [(62, 1)]}),
            entities(line((0, 0), (1, 0), layer="CUT"), line((0, 1), (1, 1))),
        )
    )
    output = tmp_path / "colors.dxf"
    drawing.export_dxf(str(output))

    lines = dxf_entities_of_type(output, "LINE")
    assert [_group_str(entity, "8") for entity in lines] == ["CUT", "0"]
    assert int(group_float(lines[0], "420")) == aci_to_rgb(1)
    assert int(group_float(lines[1], "420")) == DEFAULT_COLOR


def test_to_dxf_types_filter(tmp_path: Path) -> None:
    pytest.importorskip("ezdxf")

    drawing = ezflat.parse(dxf_text(entities(line((0, 0), (10, 0)), circle((5, 5), 2), ARC)))
    output = tmp_path / "filtered.dxf"
    result = ezflat.to_dxf(drawing, str(output), types="CIRCLE ARC")

    assert result.total_entities == 2
    assert dxf_entities_of_type(output, "LINE") == []


def test_to_dxf_reports_and_strictly_rejects_skipped_primitives(tmp_path: Path) -> None:
    pytest.importorskip("ezdxf")

    empty_text = [(0, "TEXT"), (8, "0"), (10, 1.0), (20, 1.0), (30, 0.0), (40, 2.5), (1, "")]
    drawing = ezflat.parse(dxf_text(entities(line((0, 0), (10, 0)), empty_text)))

    result = ezflat.to_dxf(drawing, str(tmp_path / "lenient.dxf"))
    assert result.skipped_entities == 1
    assert result.skipped_by_type == {"TEXT": 1}

    with pytest.raises(ValueError, match=r"failed to convert 1 entities \(TEXT:1\)"):
        ezflat.to_dxf(drawing, str(tmp_path / "strict.dxf"), strict=True)
    assert not (tmp_path / "strict.dxf").exists()


def test_write_failures_count_as_skipped(monkeypatch, tmp_path: Path) -> None:
    pytest.importorskip("ezdxf")

    def boom(_modelspace, _primitive):
        raise RuntimeError("backend refused entity")

    monkeypatch.setattr(convert_module, "_write_primitive_to_modelspace_unsafe", boom)
    drawing = ezflat.parse(dxf_text(entities(circle((5, 5), 2))))

    result = ezflat.to_dxf(drawing, str(tmp_path / "out.dxf"))

    assert result.written_entities == 0
    assert result.skipped_by_type == {"CIRCLE": 1}


def test_require_ezdxf_names_extra(monkeypatch) -> None:
    import builtins

    real_import = builtins.__import__

    def fake_import(name, *args, **kwargs):
        if name == "ezdxf":
            raise ModuleNotFoundError("No module named 'ezdxf'")
        return real_import(name, *args, **kwargs)

    monkeypatch.setattr(builtins, "__import__", fake_import)

    with pytest.raises(ImportError, match=r"ezflat\[dxf\]"):
        convert_module._require_ezdxf()
