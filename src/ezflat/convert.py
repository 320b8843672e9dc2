from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from .document import Drawing, read
from .entity import Primitive

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConvertResult:
    source_path: str | None
    output_path: str
    total_entities: int
    written_entities: int
    skipped_entities: int
    skipped_by_type: dict[str, int]


def to_dxf(
    source: str | Path | Drawing,
    output_path: str,
    *,
    types: str | Iterable[str] | None = None,
    dxf_version: str = "R2010",
    strict: bool = False,
) -> ConvertResult:
    ezdxf = _require_ezdxf()
    source_path, drawing = _resolve_drawing(source)

    dxf_doc = ezdxf.new(dxfversion=dxf_version)
    modelspace = dxf_doc.modelspace()
    for layer in sorted(drawing.layers):
        if layer not in dxf_doc.layers:
            dxf_doc.layers.add(layer)

    total = 0
    written = 0
    skipped_by_type: dict[str, int] = {}

    for primitive in drawing.query(types):
        total += 1
        if _write_primitive_to_modelspace(modelspace, primitive):
            written += 1
            continue
        skipped_by_type[primitive.dxftype] = skipped_by_type.get(primitive.dxftype, 0) + 1

    skipped = total - written
    if strict and skipped > 0:
        summary = ", ".join(
            f"{dxftype}:{count}" for dxftype, count in sorted(skipped_by_type.items())
        )
        raise ValueError(f"failed to convert {skipped} entities ({summary})")

    out_path = Path(output_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    dxf_doc.saveas(str(out_path))

    return ConvertResult(
        source_path=source_path,
        output_path=str(out_path),
        total_entities=total,
        written_entities=written,
        skipped_entities=skipped,
        skipped_by_type=dict(sorted(skipped_by_type.items())),
    )


def _require_ezdxf():
    try:
        import ezdxf
    except Exception as exc:
        raise ImportError(
            "ezdxf is required for DXF export. "
            'Install it with `pip install "ezflat[dxf]"`.'
        ) from exc
    return ezdxf


def _resolve_drawing(source: str | Path | Drawing) -> tuple[str | None, Drawing]:
    if isinstance(source, Drawing):
        return source.path, source
    return str(source), read(source)


def _write_primitive_to_modelspace(modelspace: Any, primitive: Primitive) -> bool:
    try:
        return _write_primitive_to_modelspace_unsafe(modelspace, primitive)
    except Exception as exc:
        logger.debug("could not write %s: %s", primitive.dxftype, exc)
        return False


def _write_primitive_to_modelspace_unsafe(modelspace: Any, primitive: Primitive) -> bool:
    dxftype = primitive.dxftype
    dxf = primitive.dxf
    dxfattribs = _primitive_dxfattribs(primitive)
    points = [_point3(point) for point in primitive.points]

    if dxftype in {"LINE", "DIMENSION"}:
        modelspace.add_line(points[0], points[-1], dxfattribs=dxfattribs)
        return True

    if dxftype == "POINT":
        modelspace.add_point(points[0], dxfattribs=dxfattribs)
        return True

    if dxftype == "CIRCLE" and "radius" in dxf:
        modelspace.add_circle(
            _point3(dxf.get("center")),
            float(dxf["radius"]),
            dxfattribs=dxfattribs,
        )
        return True

    if dxftype == "ARC" and "radius" in dxf:
        modelspace.add_arc(
            _point3(dxf.get("center")),
            float(dxf["radius"]),
            float(dxf.get("start_angle", 0.0)),
            float(dxf.get("end_angle", 0.0)),
            dxfattribs=dxfattribs,
        )
        return True

    if dxftype == "ELLIPSE" and "major_axis" in dxf:
        modelspace.add_ellipse(
            _point3(dxf.get("center")),
            major_axis=_point3(dxf.get("major_axis")),
            ratio=float(dxf.get("axis_ratio", 1.0)),
            start_param=float(dxf.get("start_param", 0.0)),
            end_param=float(dxf.get("end_param", 0.0)),
            dxfattribs=dxfattribs,
        )
        return True

    if dxftype == "3DFACE":
        corners = points if len(points) == 4 else points + [points[-1]]
        modelspace.add_3dface(corners, dxfattribs=dxfattribs)
        return True

    if dxftype in {"TEXT", "MTEXT"}:
        return _write_text_like(modelspace, primitive, dxfattribs)

    if primitive.is_line_like:
        return _write_outline(modelspace, primitive, points, dxfattribs)

    return False


def _write_outline(
    modelspace: Any,
    primitive: Primitive,
    points: list[tuple[float, float, float]],
    dxfattribs: dict[str, Any],
) -> bool:
    if len(points) < 2:
        return False
    elevation = points[0][2]
    if all(point[2] == elevation for point in points):
        attribs = dict(dxfattribs)
        if elevation:
            attribs["elevation"] = elevation
        modelspace.add_lwpolyline(
            [(point[0], point[1]) for point in points],
            format="xy",
            close=primitive.closed,
            dxfattribs=attribs,
        )
        return True
    modelspace.add_polyline3d(points, close=primitive.closed, dxfattribs=dxfattribs)
    return True


def _write_text_like(modelspace: Any, primitive: Primitive, dxfattribs: dict[str, Any]) -> bool:
    text = str(primitive.dxf.get("text", "") or "")
    if text == "":
        return False
    height = primitive.dxf.get("height")
    if primitive.dxftype == "MTEXT":
        mtext = modelspace.add_mtext(text, dxfattribs=dxfattribs)
        mtext.set_location(_point3(primitive.points[0]))
        if height is not None:
            mtext.dxf.char_height = float(height)
        return True
    text_entity = modelspace.add_text(
        text,
        height=float(height) if height is not None else None,
        dxfattribs=dxfattribs,
    )
    text_entity.dxf.insert = _point3(primitive.points[0])
    return True


def _primitive_dxfattribs(primitive: Primitive) -> dict[str, Any]:
    attribs: dict[str, Any] = {"true_color": int(primitive.color) & 0xFFFFFF}
    if primitive.layer:
        attribs["layer"] = primitive.layer
    return attribs


def _point3(value: Any) -> tuple[float, float, float]:
    if value is None:
        return (0.0, 0.0, 0.0)
    if isinstance(value, (list, tuple)):
        if len(value) >= 3:
            return (float(value[0]), float(value[1]), float(value[2]))
        if len(value) >= 2:
            return (float(value[0]), float(value[1]), 0.0)
    raise ValueError(f"invalid point value: {value!r}")
