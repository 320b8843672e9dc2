from __future__ import annotations

from typing import Mapping

from .options import DEFAULT_COLOR

ACI_COLOR_MAP: dict[int, int] = {
    1: 0xFF0000,
    2: 0xFFFF00,
    3: 0x00FF00,
    4: 0x00FFFF,
    5: 0x0000FF,
    6: 0xFF00FF,
    7: 0xFFFFFF,
    8: 0x808080,
    9: 0xC0C0C0,
}

# 0 is BYBLOCK and 256 is BYLAYER; both defer to the owning layer.
_DEFER_INDICES = {0, 256}


def aci_to_rgb(index: int | None) -> int | None:
    if index is None or isinstance(index, bool) or not isinstance(index, int):
        return None
    if index in _DEFER_INDICES:
        return None
    mapped = ACI_COLOR_MAP.get(index)
    if mapped is not None:
        return mapped
    if 250 <= index <= 255:
        gray = _channel((index - 250) / 5)
        return (gray << 16) | (gray << 8) | gray
    if 10 <= index <= 249:
        return _hsv_aci_color(index)
    return None


def _hsv_aci_color(index: int) -> int:
    row = (index - 10) // 10
    col = (index - 10) % 10

    hue = col / 10 * 360
    sat = 0.5 if row < 2 else 1.0
    val = 1.0 - (row / 24) * 0.5

    c = val * sat
    x = c * (1 - abs((hue / 60) % 2 - 1))
    m = val - c

    if hue < 60:
        r, g, b = c, x, 0.0
    elif hue < 120:
        r, g, b = x, c, 0.0
    elif hue < 180:
        r, g, b = 0.0, c, x
    elif hue < 240:
        r, g, b = 0.0, x, c
    elif hue < 300:
        r, g, b = x, 0.0, c
    else:
        r, g, b = c, 0.0, x

    return (_channel(r + m) << 16) | (_channel(g + m) << 8) | _channel(b + m)


def _channel(value: float) -> int:
    # Round half up, not half to even.
    return int(value * 255 + 0.5)


def resolve_color(
    true_color: int | None,
    color_index: int | None,
    layer: str | None,
    layers: Mapping[str, int | None],
    default: int = DEFAULT_COLOR,
) -> int:
    if true_color is not None:
        return int(true_color) & 0xFFFFFF
    mapped = aci_to_rgb(color_index)
    if mapped is not None:
        return mapped
    if layer:
        layer_color = layers.get(layer)
        if layer_color is not None:
            return layer_color
    return default


def rgb_to_hex(color: int) -> str:
    return f"#{int(color) & 0xFFFFFF:06x}"
