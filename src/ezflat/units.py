from __future__ import annotations

DXF_UNITS_TO_MM: dict[int, float] = {
    0: 1.0,
    1: 25.4,
    2: 304.8,
    3: 1609344.0,
    4: 1.0,
    5: 10.0,
    6: 1000.0,
    7: 1000000.0,
    8: 0.0000254,
    9: 0.0254,
    10: 914.4,
    11: 0.0000001,
    12: 0.000001,
    13: 0.001,
    14: 100.0,
    15: 10000.0,
    16: 100000.0,
    17: 1.0e12,
    18: 1.495978707e14,
    19: 9.4607304725808e18,
    20: 3.08567758149137e19,
}

DXF_UNIT_NAMES: dict[int, str] = {
    0: "unitless (assumed mm)",
    1: "inches",
    2: "feet",
    3: "miles",
    4: "millimeters",
    5: "centimeters",
    6: "meters",
    7: "kilometers",
    8: "microinches",
    9: "mils",
    10: "yards",
    11: "angstroms",
    12: "nanometers",
    13: "microns",
    14: "decimeters",
    15: "decameters",
    16: "hectometers",
    17: "gigameters",
    18: "astronomical units",
    19: "light years",
    20: "parsecs",
}

MESH_UNITS_TO_MM: dict[str, float] = {
    "mm": 1.0,
    "cm": 10.0,
    "m": 1000.0,
    "in": 25.4,
    "ft": 304.8,
}

MM_TO_INCH = 0.0393700787


def dxf_unit_scale(code: object) -> float:
    try:
        value = int(code)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 1.0
    return DXF_UNITS_TO_MM.get(value, 1.0)


def dxf_unit_name(code: object) -> str:
    if code is None:
        return DXF_UNIT_NAMES[0]
    try:
        value = int(code)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return "unknown"
    return DXF_UNIT_NAMES.get(value, "unknown")


def mesh_unit_scale(unit: str | None) -> float:
    if not unit:
        return 1.0
    return MESH_UNITS_TO_MM.get(unit.strip().lower(), 1.0)
