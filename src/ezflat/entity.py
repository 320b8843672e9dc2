from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from .geometry import Point3D, transform_point

LINE_LIKE_TYPES = frozenset(
    {"LINE", "LWPOLYLINE", "POLYLINE", "CIRCLE", "ARC", "ELLIPSE", "SPLINE"}
)
MARKER_TYPES = frozenset({"POINT", "TEXT", "MTEXT"})

_ANALYTIC_KEYS = frozenset(
    {
        "center",
        "radius",
        "start_angle",
        "end_angle",
        "major_axis",
        "axis_ratio",
        "start_param",
        "end_param",
        "bulges",
    }
)


@dataclass(frozen=True)
class Primitive:
    dxftype: str
    points: tuple[Point3D, ...]
    closed: bool = False
    color: int = 0
    layer: str | None = None
    dxf: dict[str, Any] = field(default_factory=dict)

    def to_points(self) -> list[Point3D]:
        points = list(self.points)
        if self.closed and len(points) > 1 and points[0] != points[-1]:
            points.append(points[0])
        return points

    @property
    def is_line_like(self) -> bool:
        return self.dxftype in LINE_LIKE_TYPES

    @property
    def is_face(self) -> bool:
        return self.dxftype == "3DFACE"

    @property
    def triangles(self) -> list[tuple[int, int, int]]:
        return list(self.dxf.get("triangles", []))

    def transformed(
        self,
        *,
        insert: Point3D = (0.0, 0.0, 0.0),
        scale: Point3D = (1.0, 1.0, 1.0),
        rotation_deg: float = 0.0,
        base: Point3D = (0.0, 0.0, 0.0),
    ) -> "Primitive":
        points = tuple(
            transform_point(
                point,
                insert=insert,
                scale=scale,
                rotation_deg=rotation_deg,
                base=base,
            )
            for point in self.points
        )
        # Analytic parameters no longer describe the transformed outline.
        dxf = {key: value for key, value in self.dxf.items() if key not in _ANALYTIC_KEYS}
        return replace(self, points=points, dxf=dxf)

    def with_layer(self, layer: str | None) -> "Primitive":
        if layer is None or layer == self.layer:
            return self
        return replace(self, layer=layer, dxf=dict(self.dxf))
