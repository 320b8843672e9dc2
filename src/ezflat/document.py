from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Iterable, Iterator

from .colors import aci_to_rgb, resolve_color
from .entity import MARKER_TYPES, Primitive
from .errors import EmptyDrawingError
from .geometry import (
    Point3D,
    arc_points,
    bounds_of,
    circle_points,
    ellipse_points,
    expand_bulges,
)
from .options import ParseOptions
from .tags import TagPair, scan_tags
from .units import MM_TO_INCH, dxf_unit_name, dxf_unit_scale

logger = logging.getLogger(__name__)

SUPPORTED_ENTITY_TYPES = (
    "LINE",
    "LWPOLYLINE",
    "POLYLINE",
    "CIRCLE",
    "ARC",
    "ELLIPSE",
    "SPLINE",
    "POINT",
    "3DFACE",
    "INSERT",
    "TEXT",
    "MTEXT",
    "DIMENSION",
)

# Inserted geometry is emitted under the referenced entity types, so INSERT
# never appears as a primitive type.
PRIMITIVE_TYPES = tuple(name for name in SUPPORTED_ENTITY_TYPES if name != "INSERT")

_POLYFACE_FACE_FLAG = 128
_POLYFACE_VERTEX_FLAG = 64


class EntityRecord:
    __slots__ = ("pairs", "_groups")

    def __init__(self) -> None:
        self.pairs: list[tuple[int, str]] = []
        self._groups: dict[int, list[str]] = {}

    def add(self, code: int, value: str) -> None:
        self.pairs.append((code, value))
        self._groups.setdefault(code, []).append(value)

    def __contains__(self, code: object) -> bool:
        return code in self._groups

    def values(self, code: int) -> list[str]:
        return list(self._groups.get(code, ()))

    def get_str(self, code: int, index: int = 0, default: str | None = None) -> str | None:
        values = self._groups.get(code)
        if not values or index >= len(values):
            return default
        return values[index].strip()

    def get_float(self, code: int, index: int = 0, default: float = 0.0) -> float:
        values = self._groups.get(code)
        if not values or index >= len(values):
            return default
        value = _parse_float(values[index])
        return default if value is None else value

    def get_int(self, code: int, index: int = 0, default: int | None = None) -> int | None:
        values = self._groups.get(code)
        if not values or index >= len(values):
            return default
        value = _parse_int(values[index])
        return default if value is None else value

    def point(self, code: int, default: float = 0.0, z_default: float | None = None) -> Point3D:
        z = default if z_default is None else z_default
        return (
            self.get_float(code, 0, default),
            self.get_float(code + 10, 0, default),
            self.get_float(code + 20, 0, z),
        )


@dataclass(frozen=True)
class Block:
    name: str
    base_point: Point3D
    primitives: tuple[Primitive, ...]


@dataclass
class _Cursor:
    pairs: list[TagPair]
    index: int = 0

    def at_end(self) -> bool:
        return self.index >= len(self.pairs)

    def peek(self, offset: int = 0) -> TagPair | None:
        position = self.index + offset
        if position >= len(self.pairs):
            return None
        return self.pairs[position]

    def marker(self) -> str | None:
        pair = self.peek()
        if pair is None or pair.code != 0:
            return None
        return pair.value.strip().upper()

    def advance(self, count: int = 1) -> None:
        self.index += count

    def collect(self) -> EntityRecord:
        record = EntityRecord()
        while self.index < len(self.pairs):
            pair = self.pairs[self.index]
            if pair.code == 0:
                break
            record.add(pair.code, pair.value)
            self.index += 1
        return record


@dataclass
class _ParseState:
    options: ParseOptions
    header: dict[str, int | float] = field(default_factory=dict)
    layers: dict[str, int | None] = field(default_factory=dict)
    blocks: dict[str, Block] = field(default_factory=dict)
    entity_counts: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class Drawing:
    primitives: tuple[Primitive, ...]
    header: dict[str, int | float]
    layers: dict[str, int | None]
    blocks: dict[str, Block]
    entity_counts: dict[str, int]
    options: ParseOptions = field(default_factory=ParseOptions)
    path: str | None = None

    @property
    def units(self) -> int | None:
        value = self.header.get("$INSUNITS")
        return None if value is None else int(value)

    @property
    def unit_scale(self) -> float:
        return dxf_unit_scale(self.units)

    @property
    def unit_name(self) -> str:
        return dxf_unit_name(self.units)

    @property
    def layer_count(self) -> int:
        return len(self.layers)

    def query(self, types: str | Iterable[str] | None = None) -> Iterator[Primitive]:
        type_set = set(_normalize_types(types))
        for primitive in self.primitives:
            if primitive.dxftype in type_set:
                yield primitive

    def bounds(self) -> tuple[Point3D, Point3D] | None:
        return bounds_of(point for primitive in self.primitives for point in primitive.points)

    def dimensions(self) -> dict[str, Point3D] | None:
        box = self.bounds()
        if box is None:
            return None
        low, high = box
        scale = self.unit_scale
        size_mm = tuple((high[i] - low[i]) * scale for i in range(3))
        return {
            "mm": size_mm,  # type: ignore[dict-item]
            "inch": tuple(value * MM_TO_INCH for value in size_mm),  # type: ignore[dict-item]
        }

    def warnings(self) -> list[str]:
        notes: list[str] = []
        dims = self.dimensions()
        if dims is not None:
            size = dims["mm"]
            largest = max(size)
            smallest = min(size)
            if largest > 1_000_000:
                notes.append("very large geometry detected - check units")
            if largest < 0.001:
                notes.append("very small geometry detected - check units")
            if smallest == 0 and largest > 0:
                notes.append("true 2D flat pattern detected")

        inserts = self.entity_counts.get("INSERT", 0)
        if inserts:
            notes.append(f"contains {inserts} block instances")
        texts = self.entity_counts.get("TEXT", 0) + self.entity_counts.get("MTEXT", 0)
        if texts:
            notes.append(f"contains {texts} text annotations (kept as markers)")
        if self.entity_counts.get("3DFACE", 0):
            notes.append("contains 3D faces - may not be a flat pattern")
        return notes

    def export_dxf(self, output_path: str, **kwargs):
        from .convert import to_dxf

        return to_dxf(self, output_path, **kwargs)


def read(path: str | Path, options: ParseOptions | None = None) -> Drawing:
    text = Path(path).read_text(encoding="utf-8-sig", errors="replace")
    return parse(text, options, path=str(path))


def parse(
    text: str | bytes,
    options: ParseOptions | None = None,
    *,
    path: str | None = None,
) -> Drawing:
    options = options or ParseOptions()
    cursor = _Cursor(scan_tags(text))
    state = _ParseState(options=options)
    primitives: list[Primitive] = []

    while not cursor.at_end():
        if cursor.marker() != "SECTION":
            cursor.advance()
            continue
        name_pair = cursor.peek(1)
        section = ""
        if name_pair is not None and name_pair.code == 2:
            section = name_pair.value.strip().upper()
        cursor.advance(2)
        if section == "HEADER":
            _parse_header(cursor, state)
        elif section == "TABLES":
            _parse_tables(cursor, state)
        elif section == "BLOCKS":
            _parse_blocks(cursor, state)
        elif section == "ENTITIES":
            _parse_entities(cursor, state, primitives)
        else:
            logger.debug("skipping section %r", section)
            _skip_section(cursor)

    if not primitives:
        raise EmptyDrawingError("DXF file contained no supported entities")

    return Drawing(
        primitives=tuple(primitives),
        header=state.header,
        layers=state.layers,
        blocks=state.blocks,
        entity_counts=state.entity_counts,
        options=options,
        path=path,
    )


def _skip_section(cursor: _Cursor) -> None:
    while not cursor.at_end():
        if cursor.marker() == "ENDSEC":
            cursor.advance()
            return
        cursor.advance()


def _parse_header(cursor: _Cursor, state: _ParseState) -> None:
    current: str | None = None
    while not cursor.at_end():
        pair = cursor.peek()
        if pair is None:
            return
        if pair.code == 0 and pair.value.strip().upper() == "ENDSEC":
            cursor.advance()
            return
        if pair.code == 9:
            current = pair.value.strip()
        elif current and pair.code == 70:
            value = _parse_int(pair.value)
            if value is not None:
                state.header[current] = value
        elif current and pair.code == 40:
            number = _parse_float(pair.value)
            if number is not None:
                state.header[current] = number
        cursor.advance()


def _parse_tables(cursor: _Cursor, state: _ParseState) -> None:
    while not cursor.at_end():
        marker = cursor.marker()
        if marker == "ENDSEC":
            cursor.advance()
            return
        if marker == "TABLE":
            name_pair = cursor.peek(1)
            if (
                name_pair is not None
                and name_pair.code == 2
                and name_pair.value.strip().upper() == "LAYER"
            ):
                cursor.advance(2)
                _parse_layer_table(cursor, state)
                continue
        cursor.advance()


def _parse_layer_table(cursor: _Cursor, state: _ParseState) -> None:
    while not cursor.at_end():
        marker = cursor.marker()
        if marker == "ENDTAB":
            cursor.advance()
            return
        if marker == "ENDSEC":
            # Unterminated table; leave ENDSEC for the TABLES walker.
            return
        if marker == "LAYER":
            cursor.advance()
            record = cursor.collect()
            name = record.get_str(2)
            if name:
                color = record.get_int(420)
                if color is not None:
                    color &= 0xFFFFFF
                else:
                    color = aci_to_rgb(record.get_int(62))
                state.layers[name] = color
            continue
        cursor.advance()


def _parse_blocks(cursor: _Cursor, state: _ParseState) -> None:
    while not cursor.at_end():
        marker = cursor.marker()
        if marker == "ENDSEC":
            cursor.advance()
            return
        if marker == "BLOCK":
            cursor.advance()
            record = cursor.collect()
            name = record.get_str(2)
            if name:
                body: list[Primitive] = []
                _parse_block_body(cursor, state, body)
                state.blocks[name] = Block(
                    name=name,
                    base_point=record.point(10),
                    primitives=tuple(body),
                )
            continue
        cursor.advance()


def _parse_block_body(cursor: _Cursor, state: _ParseState, sink: list[Primitive]) -> None:
    while not cursor.at_end():
        marker = cursor.marker()
        if marker is None:
            cursor.advance()
            continue
        if marker == "ENDBLK":
            cursor.advance()
            return
        if marker == "ENDSEC":
            return
        _parse_entity(cursor, state, sink)


def _parse_entities(cursor: _Cursor, state: _ParseState, sink: list[Primitive]) -> None:
    while not cursor.at_end():
        marker = cursor.marker()
        if marker is None:
            cursor.advance()
            continue
        if marker == "ENDSEC":
            cursor.advance()
            return
        _parse_entity(cursor, state, sink)


def _parse_entity(cursor: _Cursor, state: _ParseState, sink: list[Primitive]) -> None:
    dxftype = cursor.marker() or ""
    state.entity_counts[dxftype] = state.entity_counts.get(dxftype, 0) + 1
    cursor.advance()
    record = cursor.collect()

    if dxftype == "POLYLINE":
        sink.extend(_parse_polyline(cursor, record, state))
        return
    handler = _ENTITY_PARSERS.get(dxftype)
    if handler is None:
        logger.debug("skipping unsupported entity %s", dxftype)
        return
    sink.extend(handler(record, state))


def _entity_color(record: EntityRecord, state: _ParseState) -> int:
    return resolve_color(
        record.get_int(420),
        record.get_int(62),
        record.get_str(8),
        state.layers,
        state.options.default_color,
    )


def _make(
    dxftype: str,
    points: list[Point3D],
    closed: bool,
    record: EntityRecord,
    state: _ParseState,
    **extra: object,
) -> Primitive | None:
    minimum = 3 if dxftype == "3DFACE" else 1 if dxftype in MARKER_TYPES else 2
    if len(points) < minimum:
        logger.debug("dropping %s with %d vertices", dxftype, len(points))
        return None
    dxf: dict[str, object] = dict(extra)
    handle = record.get_str(5)
    if handle:
        dxf["handle"] = handle
    return Primitive(
        dxftype=dxftype,
        points=tuple(points),
        closed=closed,
        color=_entity_color(record, state),
        layer=record.get_str(8),
        dxf=dxf,
    )


def _parse_line(record: EntityRecord, state: _ParseState) -> Iterator[Primitive]:
    start = record.point(10)
    end = record.point(11)
    if start == end:
        logger.debug("dropping zero-length LINE")
        return
    primitive = _make("LINE", [start, end], False, record, state)
    if primitive is not None:
        yield primitive


def _parse_lwpolyline(record: EntityRecord, state: _ParseState) -> Iterator[Primitive]:
    elevation = record.get_float(38, 0, 0.0)
    coords: list[list[float | None]] = []
    bulges: list[float] = []
    for code, raw_value in record.pairs:
        if code == 10:
            coords.append([_parse_float(raw_value), 0.0, elevation])
            bulges.append(0.0)
        elif not coords:
            continue
        elif code == 20:
            coords[-1][1] = _parse_float(raw_value)
        elif code == 30:
            coords[-1][2] = _parse_float(raw_value)
        elif code == 42:
            bulges[-1] = _parse_float(raw_value) or 0.0

    points: list[Point3D] = []
    kept_bulges: list[float] = []
    for (x, y, z), bulge in zip(coords, bulges):
        if x is None or y is None or z is None:
            continue
        points.append((x, y, z))
        kept_bulges.append(bulge)

    flags = record.get_int(70, 0, 0) or 0
    vertices = expand_bulges(points, kept_bulges, state.options.arc_segment_angle)
    primitive = _make(
        "LWPOLYLINE",
        vertices,
        bool(flags & 1),
        record,
        state,
        bulges=kept_bulges,
        flags=flags,
    )
    if primitive is not None:
        yield primitive


def _parse_polyline(
    cursor: _Cursor, record: EntityRecord, state: _ParseState
) -> Iterator[Primitive]:
    flags = record.get_int(70, 0, 0) or 0
    elevation = record.get_float(30, 0, 0.0)
    points: list[Point3D] = []
    bulges: list[float] = []

    while not cursor.at_end():
        marker = cursor.marker()
        if marker is None:
            cursor.advance()
            continue
        if marker == "VERTEX":
            cursor.advance()
            vertex = cursor.collect()
            vertex_flags = vertex.get_int(70, 0, 0) or 0
            if vertex_flags & _POLYFACE_FACE_FLAG and not vertex_flags & _POLYFACE_VERTEX_FLAG:
                continue
            x = vertex.get_float(10, 0, math.nan)
            y = vertex.get_float(20, 0, math.nan)
            z = vertex.get_float(30, 0, elevation)
            if math.isfinite(x) and math.isfinite(y) and math.isfinite(z):
                points.append((x, y, z))
                bulges.append(vertex.get_float(42, 0, 0.0))
            continue
        if marker == "SEQEND":
            cursor.advance()
            cursor.collect()
        break

    vertices = expand_bulges(points, bulges, state.options.arc_segment_angle)
    primitive = _make("POLYLINE", vertices, bool(flags & 1), record, state, flags=flags)
    if primitive is not None:
        yield primitive


def _parse_circle(record: EntityRecord, state: _ParseState) -> Iterator[Primitive]:
    center = record.point(10)
    radius = record.get_float(40, 0, 0.0)
    if radius <= 0:
        logger.debug("dropping CIRCLE with radius %r", radius)
        return
    points = circle_points(center, radius, state.options.circle_segments)
    primitive = _make("CIRCLE", points, True, record, state, center=center, radius=radius)
    if primitive is not None:
        yield primitive


def _parse_arc(record: EntityRecord, state: _ParseState) -> Iterator[Primitive]:
    center = record.point(10)
    radius = record.get_float(40, 0, 0.0)
    if radius <= 0:
        logger.debug("dropping ARC with radius %r", radius)
        return
    start_angle = record.get_float(50, 0, 0.0)
    end_angle = record.get_float(51, 0, 0.0)
    points = arc_points(center, radius, start_angle, end_angle, state.options.arc_segment_angle)
    primitive = _make(
        "ARC",
        points,
        False,
        record,
        state,
        center=center,
        radius=radius,
        start_angle=start_angle,
        end_angle=end_angle,
    )
    if primitive is not None:
        yield primitive


def _parse_ellipse(record: EntityRecord, state: _ParseState) -> Iterator[Primitive]:
    center = record.point(10)
    major_axis = record.point(11)
    ratio = record.get_float(40, 0, 1.0)
    start_param = record.get_float(41, 0, 0.0)
    end_param = record.get_float(42, 0, math.tau)
    major = math.sqrt(sum(component * component for component in major_axis))
    if major <= 0 or major * ratio <= 0:
        logger.debug("dropping degenerate ELLIPSE")
        return
    points, closed = ellipse_points(
        center,
        major_axis,
        ratio,
        start_param,
        end_param,
        state.options.circle_segments,
    )
    primitive = _make(
        "ELLIPSE",
        points,
        closed,
        record,
        state,
        center=center,
        major_axis=major_axis,
        axis_ratio=ratio,
        start_param=start_param,
        end_param=end_param,
    )
    if primitive is not None:
        yield primitive


def _parse_spline(record: EntityRecord, state: _ParseState) -> Iterator[Primitive]:
    points = _ordered_points(record, 10)
    flags = record.get_int(70, 0, 0) or 0
    primitive = _make(
        "SPLINE",
        points,
        bool(flags & 1),
        record,
        state,
        degree=record.get_int(71, 0, 3),
    )
    if primitive is not None:
        yield primitive


def _parse_point(record: EntityRecord, state: _ParseState) -> Iterator[Primitive]:
    x = record.get_float(10, 0, math.nan)
    y = record.get_float(20, 0, math.nan)
    z = record.get_float(30, 0, 0.0)
    if not (math.isfinite(x) and math.isfinite(y) and math.isfinite(z)):
        return
    primitive = _make("POINT", [(x, y, z)], False, record, state)
    if primitive is not None:
        yield primitive


def _parse_3dface(record: EntityRecord, state: _ParseState) -> Iterator[Primitive]:
    corners: list[Point3D | None] = []
    for code in (10, 11, 12, 13):
        corner = record.point(code, math.nan, 0.0)
        corners.append(corner if all(math.isfinite(value) for value in corner) else None)
    v1, v2, v3, v4 = corners
    if v1 is None or v2 is None or v3 is None:
        logger.debug("dropping 3DFACE with fewer than 3 corners")
        return
    points: list[Point3D] = [v1, v2, v3]
    triangles = [(0, 1, 2)]
    if v4 is not None and v4 != v3 and v4 != v2:
        points.append(v4)
        triangles.append((0, 2, 3))
    primitive = _make("3DFACE", points, True, record, state, triangles=triangles)
    if primitive is not None:
        yield primitive


def _parse_insert(record: EntityRecord, state: _ParseState) -> Iterator[Primitive]:
    name = record.get_str(2)
    block = state.blocks.get(name) if name else None
    if block is None:
        logger.debug("INSERT references unknown block %r", name)
        return
    insert = record.point(10)
    scale = (
        record.get_float(41, 0, 1.0),
        record.get_float(42, 0, 1.0),
        record.get_float(43, 0, 1.0),
    )
    rotation = record.get_float(50, 0, 0.0)
    layer = record.get_str(8)
    for primitive in block.primitives:
        instance = primitive.transformed(
            insert=insert,
            scale=scale,
            rotation_deg=rotation,
            base=block.base_point,
        )
        instance.dxf["block"] = block.name
        if primitive.layer in (None, "0"):
            instance = instance.with_layer(layer)
        yield instance


def _parse_text(record: EntityRecord, state: _ParseState) -> Iterator[Primitive]:
    # MTEXT splits long strings over repeated code 3 chunks ahead of code 1.
    text = "".join(value for value in record.values(3)) + (record.get_str(1, 0, "") or "")
    point = record.point(10)
    primitive = _make(
        "TEXT",
        [point],
        False,
        record,
        state,
        text=text,
        height=record.get_float(40, 0, 1.0),
    )
    if primitive is not None:
        yield primitive


def _parse_mtext(record: EntityRecord, state: _ParseState) -> Iterator[Primitive]:
    for primitive in _parse_text(record, state):
        yield replace(primitive, dxftype="MTEXT")


def _parse_dimension(record: EntityRecord, state: _ParseState) -> Iterator[Primitive]:
    start = record.point(13, math.nan, 0.0)
    end = record.point(14, math.nan, 0.0)
    if not all(math.isfinite(value) for value in start[:2] + end[:2]):
        return
    if start == end:
        return
    primitive = _make(
        "DIMENSION",
        [start, end],
        False,
        record,
        state,
        text=record.get_str(1, 0, "") or "",
    )
    if primitive is not None:
        yield primitive


def _ordered_points(record: EntityRecord, code: int) -> list[Point3D]:
    coords: list[list[float | None]] = []
    for group, raw_value in record.pairs:
        if group == code:
            coords.append([_parse_float(raw_value), 0.0, 0.0])
        elif coords and group == code + 10:
            coords[-1][1] = _parse_float(raw_value)
        elif coords and group == code + 20:
            coords[-1][2] = _parse_float(raw_value)
    return [
        (x, y, z)
        for x, y, z in coords
        if x is not None and y is not None and z is not None
    ]


_ENTITY_PARSERS: dict[str, Callable[[EntityRecord, _ParseState], Iterator[Primitive]]] = {
    "LINE": _parse_line,
    "LWPOLYLINE": _parse_lwpolyline,
    "CIRCLE": _parse_circle,
    "ARC": _parse_arc,
    "ELLIPSE": _parse_ellipse,
    "SPLINE": _parse_spline,
    "POINT": _parse_point,
    "3DFACE": _parse_3dface,
    "INSERT": _parse_insert,
    "TEXT": _parse_text,
    "MTEXT": _parse_mtext,
    "DIMENSION": _parse_dimension,
}


def _parse_float(value: str) -> float | None:
    try:
        number = float(value.strip())
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def _parse_int(value: str) -> int | None:
    text = value.strip()
    try:
        return int(text)
    except ValueError:
        pass
    number = _parse_float(text)
    if number is None:
        return None
    return int(number)


def _normalize_types(types: str | Iterable[str] | None) -> list[str]:
    if types is None:
        return list(PRIMITIVE_TYPES)
    if isinstance(types, str):
        tokens = [token for token in re.split(r"[\s,]+", types) if token]
    else:
        tokens = [str(token) for token in types]
    normalized: list[str] = []
    for token in tokens:
        name = token.strip().upper()
        if not name:
            continue
        if name not in PRIMITIVE_TYPES:
            raise ValueError(
                f"unsupported primitive type: {token!r}. "
                f"Supported types: {', '.join(PRIMITIVE_TYPES)}"
            )
        if name not in normalized:
            normalized.append(name)
    return normalized
