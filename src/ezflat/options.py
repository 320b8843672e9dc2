from __future__ import annotations

from dataclasses import dataclass, fields

DEFAULT_COLOR = 0x3F83F8


@dataclass(frozen=True)
class ParseOptions:
    circle_segments: int = 64
    arc_segment_angle: float = 10.0
    default_color: int = DEFAULT_COLOR

    def __post_init__(self) -> None:
        if int(self.circle_segments) <= 0:
            raise ValueError(f"circle_segments must be positive: {self.circle_segments}")
        if not float(self.arc_segment_angle) > 0.0:
            raise ValueError(f"arc_segment_angle must be positive: {self.arc_segment_angle}")
        if not 0 <= int(self.default_color) <= 0xFFFFFF:
            raise ValueError(f"default_color is not a 24-bit RGB value: {self.default_color}")


@dataclass(frozen=True)
class AnalysisOptions:
    vertex_merge_tolerance: float = 1e-4
    planar_angle_threshold: float = 3.0
    plane_offset_ratio: float = 1e-4
    plane_offset_floor: float = 1e-4
    flat_bend_threshold: float = 1.0
    bend_angle_tolerance: float = 3.0
    loop_dedupe_tolerance: float = 1e-3
    circularity_threshold: float = 0.80
    unit_scale: float = 1.0

    def __post_init__(self) -> None:
        for item in fields(self):
            if item.name == "flat_bend_threshold":
                continue
            value = float(getattr(self, item.name))
            if not value > 0.0:
                raise ValueError(f"{item.name} must be positive: {value}")
        if float(self.flat_bend_threshold) < 0.0:
            raise ValueError(f"flat_bend_threshold must not be negative: {self.flat_bend_threshold}")
