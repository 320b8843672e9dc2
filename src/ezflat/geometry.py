from __future__ import annotations

import math
from typing import Iterable, Sequence

Point3D = tuple[float, float, float]

TAU = math.tau
MIN_BULGE = 1e-6


def bulge_to_arc(
    start: Point3D,
    end: Point3D,
    bulge: float,
    segment_angle_deg: float = 10.0,
) -> list[Point3D]:
    # Excludes start; the arc lies in the plane z = start.z.
    cx = end[0] - start[0]
    cy = end[1] - start[1]
    chord = math.hypot(cx, cy)
    if chord == 0.0 or abs(bulge) <= MIN_BULGE:
        return [end]

    half = chord / 2.0
    sagitta = bulge * half
    radius = (half * half + sagitta * sagitta) / (2.0 * abs(sagitta))
    offset = math.sqrt(max(radius * radius - half * half, 0.0))
    # Centre sits left of the chord for positive bulges up to a half circle,
    # and flips side once the arc is the major one (|bulge| > 1).
    side = 1.0 if sagitta >= 0 else -1.0
    if abs(bulge) > 1.0:
        side = -side
    px = -cy / chord
    py = cx / chord
    mx = (start[0] + end[0]) / 2.0
    my = (start[1] + end[1]) / 2.0
    center_x = mx + px * offset * side
    center_y = my + py * offset * side

    start_angle = math.atan2(start[1] - center_y, start[0] - center_x)
    end_angle = math.atan2(end[1] - center_y, end[0] - center_x)
    sweep = end_angle - start_angle
    if bulge > 0 and sweep < 0:
        sweep += TAU
    elif bulge < 0 and sweep > 0:
        sweep -= TAU

    steps = max(4, math.ceil(abs(sweep) / math.radians(segment_angle_deg)))
    z = start[2]
    points: list[Point3D] = []
    for step in range(1, steps + 1):
        angle = start_angle + sweep * step / steps
        points.append(
            (
                center_x + radius * math.cos(angle),
                center_y + radius * math.sin(angle),
                z,
            )
        )
    points[-1] = (end[0], end[1], z)
    return points


def expand_bulges(
    points: Sequence[Point3D],
    bulges: Sequence[float],
    segment_angle_deg: float = 10.0,
) -> list[Point3D]:
    # bulges[i] arcs the segment ending at points[i].
    out: list[Point3D] = []
    for i, point in enumerate(points):
        bulge = bulges[i] if i < len(bulges) else 0.0
        if out and abs(bulge) > MIN_BULGE:
            out.extend(bulge_to_arc(out[-1], point, bulge, segment_angle_deg))
        else:
            out.append(point)
    return out


def circle_points(center: Point3D, radius: float, segments: int) -> list[Point3D]:
    count = max(16, int(segments))
    cx, cy, cz = center
    return [
        (
            cx + radius * math.cos(i / count * TAU),
            cy + radius * math.sin(i / count * TAU),
            cz,
        )
        for i in range(count)
    ]


def arc_sweep(start_deg: float, end_deg: float) -> float:
    sweep = math.radians(end_deg) - math.radians(start_deg)
    if sweep <= 0:
        sweep += TAU
    return sweep


def arc_points(
    center: Point3D,
    radius: float,
    start_deg: float,
    end_deg: float,
    segment_angle_deg: float = 10.0,
) -> list[Point3D]:
    start = math.radians(start_deg)
    sweep = arc_sweep(start_deg, end_deg)
    steps = max(8, math.ceil(sweep / math.radians(segment_angle_deg)))
    cx, cy, cz = center
    return [
        (
            cx + radius * math.cos(start + sweep * step / steps),
            cy + radius * math.sin(start + sweep * step / steps),
            cz,
        )
        for step in range(steps + 1)
    ]


def ellipse_points(
    center: Point3D,
    major_axis: Point3D,
    ratio: float,
    start_param: float,
    end_param: float,
    segments: int,
) -> tuple[list[Point3D], bool]:
    major = math.sqrt(major_axis[0] ** 2 + major_axis[1] ** 2 + major_axis[2] ** 2)
    minor = major * ratio
    rotation = math.atan2(major_axis[1], major_axis[0])
    count = max(32, int(segments))
    sweep = end_param - start_param
    if sweep <= 0:
        sweep += TAU
    steps = max(16, math.ceil(sweep / TAU * count))

    cos_r = math.cos(rotation)
    sin_r = math.sin(rotation)
    cx, cy, cz = center
    points: list[Point3D] = []
    for i in range(steps + 1):
        t = start_param + sweep * i / steps
        x = major * math.cos(t)
        y = minor * math.sin(t)
        points.append((cx + x * cos_r - y * sin_r, cy + x * sin_r + y * cos_r, cz))
    closed = abs(sweep - TAU) < 0.01
    if closed:
        points.pop()
    return points, closed


def transform_point(
    point: Point3D,
    *,
    insert: Point3D = (0.0, 0.0, 0.0),
    scale: Point3D = (1.0, 1.0, 1.0),
    rotation_deg: float = 0.0,
    base: Point3D = (0.0, 0.0, 0.0),
) -> Point3D:
    x = (point[0] - base[0]) * scale[0]
    y = (point[1] - base[1]) * scale[1]
    z = (point[2] - base[2]) * scale[2]
    if rotation_deg:
        angle = math.radians(rotation_deg)
        c = math.cos(angle)
        s = math.sin(angle)
        x, y = x * c - y * s, x * s + y * c
    return (x + insert[0], y + insert[1], z + insert[2])


def distance(a: Sequence[float], b: Sequence[float]) -> float:
    return math.sqrt((a[0] - b[0]) ** 2 + (a[1] - b[1]) ** 2 + (a[2] - b[2]) ** 2)


def bounds_of(points: Iterable[Point3D]) -> tuple[Point3D, Point3D] | None:
    min_x = min_y = min_z = math.inf
    max_x = max_y = max_z = -math.inf
    seen = False
    for x, y, z in points:
        seen = True
        min_x = min(min_x, x)
        min_y = min(min_y, y)
        min_z = min(min_z, z)
        max_x = max(max_x, x)
        max_y = max(max_y, y)
        max_z = max(max_z, z)
    if not seen:
        return None
    return (min_x, min_y, min_z), (max_x, max_y, max_z)
