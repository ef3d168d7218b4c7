#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Palettes and per-trace aesthetics shared by the interaction and one-way plots.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

import matplotlib
import numpy as np


RGB = Tuple[float, float, float]

MAPPINGS = ("shape", "linetype", "color", "fill")

SHAPES: List[str] = ["o", "^", "s", "D", "v", "P", "X", "*"]
LINETYPES: List[str] = ["-", "--", ":", "-."]

DEFAULT_COLORS: Dict[str, str] = {
    "mean": "black",
    "data": "darkgrey",
    "box_face": "white",
}


def parse_color_overrides(color_string: Optional[str]) -> Dict[str, str]:
    """Parse ``name:hex`` overrides from a CLI string."""
    if not color_string:
        return {}
    overrides: Dict[str, str] = {}
    for part in color_string.split(","):
        if ":" in part:
            key, value = part.split(":", 1)
            overrides[key.strip()] = value.strip()
    return overrides


def cmap_colors(name: str, n_colors: Optional[int] = None) -> List[RGB]:
    """
    RGB tuples from a matplotlib colormap.

    Qualitative maps (``tab10``, ``Set1``...) return their listed colors;
    continuous maps are sampled evenly at ``n_colors`` points.
    """
    try:
        colormap = matplotlib.colormaps[name]
    except KeyError as exc:
        raise ValueError(f"Unknown matplotlib colormap: {name!r}.") from exc
    seq = getattr(colormap, "colors", None)
    if seq is None or len(seq) > 64:
        seq = colormap(np.linspace(0.0, 1.0, max(n_colors or 8, 1)))
    rgb_list: List[RGB] = []
    for color in seq:
        red, green, blue = color[:3]
        rgb_list.append((float(red), float(green), float(blue)))
    return rgb_list


def darken_colors(colors: List[RGB], factor: float = 0.8) -> List[RGB]:
    """Scale RGB tuples by ``factor`` to darken/lighten the palette."""
    factor = float(factor)
    return [
        (
            max(0.0, red * factor),
            max(0.0, green * factor),
            max(0.0, blue * factor),
        )
        for red, green, blue in colors
    ]


def check_mapping(mapping: Sequence[str]) -> List[str]:
    """Validate aesthetic names used to distinguish trace levels."""
    mapping = [mapping] if isinstance(mapping, str) else list(mapping)
    unknown = [name for name in mapping if name not in MAPPINGS]
    if unknown:
        raise ValueError(
            f"Unknown mapping(s) {', '.join(unknown)}; use any of {', '.join(MAPPINGS)}."
        )
    return mapping


def trace_styles(
    n_levels: int,
    mapping: Sequence[str],
    palette: str = "tab10",
    data_color: str = DEFAULT_COLORS["data"],
) -> List[Dict[str, object]]:
    """
    Aesthetics for each trace level.

    Every entry has ``marker``, ``linestyle``, ``color`` (means, lines and
    error bars), ``fill`` (box/violin bodies and marker faces) and
    ``data_color`` (raw data).
    """
    mapping = check_mapping(mapping)
    colors = cmap_colors(palette, n_levels) if {"color", "fill"} & set(mapping) else []
    styles: List[Dict[str, object]] = []
    for index in range(n_levels):
        palette_color = colors[index % len(colors)] if colors else None
        color = palette_color if "color" in mapping else DEFAULT_COLORS["mean"]
        styles.append(
            {
                "marker": SHAPES[index % len(SHAPES)] if "shape" in mapping else SHAPES[0],
                "linestyle": LINETYPES[index % len(LINETYPES)] if "linetype" in mapping else LINETYPES[0],
                "color": color,
                "fill": palette_color if "fill" in mapping else DEFAULT_COLORS["box_face"],
                "data_color": color if "color" in mapping else data_color,
            }
        )
    return styles


__all__ = [
    "DEFAULT_COLORS",
    "LINETYPES",
    "MAPPINGS",
    "SHAPES",
    "check_mapping",
    "cmap_colors",
    "darken_colors",
    "parse_color_overrides",
    "trace_styles",
]
