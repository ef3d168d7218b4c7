"""Raw-data geometries drawn behind the marginal means."""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Mapping, Optional, Sequence

import numpy as np
from matplotlib.axes import Axes

from ..plotting_styles import darken_colors


logger = logging.getLogger(__name__)

GEOMS = ("point", "jitter", "violin", "box", "beeswarm", "boxjitter")


def beeswarm_offsets(
    values: Sequence[float],
    x_spacing: float,
    y_spacing: float,
    max_offset: Optional[float] = None,
) -> np.ndarray:
    """
    Horizontal offsets that keep points from overlapping.

    Points are placed from the lowest value upwards at the candidate offset
    closest to the centre (0, +s, -s, +2s, ...) whose normalised distance to
    every already placed point is at least one. When ``max_offset`` is given
    the swarm is compressed to fit within it.
    """
    values = np.asarray(values, dtype=float)
    offsets = np.zeros(len(values))
    if len(values) < 2:
        return offsets
    y_spacing = y_spacing if y_spacing > 0 else 1.0
    placed_x: List[float] = []
    placed_y: List[float] = []
    steps = [0.0]
    for step in range(1, len(values) + 1):
        steps.extend([step * x_spacing, -step * x_spacing])
    for index in np.argsort(values, kind="mergesort"):
        y_value = values[index]
        near_x = np.asarray(placed_x)
        near_y = np.asarray(placed_y)
        close = np.abs(near_y - y_value) < y_spacing
        near_x, near_y = near_x[close], near_y[close]
        for candidate in steps:
            distance = ((candidate - near_x) / x_spacing) ** 2 + ((y_value - near_y) / y_spacing) ** 2
            if np.all(distance >= 1.0 - 1e-9):
                break
        offsets[index] = candidate
        placed_x.append(candidate)
        placed_y.append(y_value)
    widest = float(np.max(np.abs(offsets)))
    if max_offset is not None and widest > max_offset > 0:
        offsets *= max_offset / widest
    return offsets


def _scatter(ax: Axes, xs, ys, style: Mapping, alpha: float, data_arg: Mapping) -> None:
    kwargs = {
        "s": 12,
        "color": style["data_color"],
        "alpha": alpha,
        "linewidths": 0,
        "zorder": 1,
    }
    kwargs.update({key: value for key, value in data_arg.items() if key not in ("width", "spacing", "seed")})
    ax.scatter(xs, ys, **kwargs)


def draw_point(ax, positions, groups, style, width, alpha, rng, data_arg) -> None:
    for pos, values in zip(positions, groups):
        _scatter(ax, np.full(len(values), pos), values, style, alpha, data_arg)


def draw_jitter(ax, positions, groups, style, width, alpha, rng, data_arg) -> None:
    spread = float(data_arg.get("width", width * 0.5))
    for pos, values in zip(positions, groups):
        xs = pos + rng.uniform(-spread / 2, spread / 2, size=len(values))
        _scatter(ax, xs, values, style, alpha, data_arg)


def draw_beeswarm(ax, positions, groups, style, width, alpha, rng, data_arg) -> None:
    pooled = np.concatenate([np.asarray(values, dtype=float) for values in groups]) if groups else np.array([])
    y_range = float(np.ptp(pooled)) if pooled.size else 1.0
    y_spacing = float(data_arg.get("y_spacing", y_range / 40 if y_range > 0 else 1.0))
    x_spacing = float(data_arg.get("spacing", width / 12))
    for pos, values in zip(positions, groups):
        offsets = beeswarm_offsets(values, x_spacing, y_spacing, max_offset=width / 2)
        _scatter(ax, pos + offsets, values, style, alpha, data_arg)


def _style_bodies(bodies, style: Mapping, alpha: float) -> None:
    edge = style["color"]
    if isinstance(style["fill"], tuple) and style["color"] == "black":
        edge = darken_colors([style["fill"]], 0.6)[0]
    for body in bodies:
        body.set_facecolor(style["fill"])
        body.set_edgecolor(edge)
        body.set_alpha(alpha)


def draw_violin(ax, positions, groups, style, width, alpha, rng, data_arg) -> None:
    usable = [(pos, values) for pos, values in zip(positions, groups) if len(np.unique(values)) > 1]
    if len(usable) < len(positions):
        logger.debug("Skipping violins for %d cell(s) with fewer than two distinct values.", len(positions) - len(usable))
    if not usable:
        return
    parts = ax.violinplot(
        [values for _, values in usable],
        positions=[pos for pos, _ in usable],
        widths=width,
        showextrema=False,
    )
    _style_bodies(parts["bodies"], style, alpha)


def _boxplot(ax, positions, groups, style, width, alpha) -> None:
    parts = ax.boxplot(
        [np.asarray(values, dtype=float) for values in groups],
        positions=list(positions),
        widths=width,
        patch_artist=True,
        manage_ticks=False,
        showfliers=False,
        zorder=1,
    )
    _style_bodies(parts["boxes"], style, alpha)
    for key in ("whiskers", "caps", "medians"):
        for line in parts[key]:
            line.set_color(style["color"])
            line.set_alpha(max(alpha, 0.6))


def draw_box(ax, positions, groups, style, width, alpha, rng, data_arg) -> None:
    _boxplot(ax, positions, groups, style, width, alpha)


def draw_boxjitter(ax, positions, groups, style, width, alpha, rng, data_arg) -> None:
    """Box on the left half of the slot, jittered points on the right half."""
    half = width / 2
    _boxplot(ax, [pos - half / 2 for pos in positions], groups, style, half * 0.9, alpha)
    spread = float(data_arg.get("width", half * 0.6))
    for pos, values in zip(positions, groups):
        xs = pos + half / 2 + rng.uniform(-spread / 2, spread / 2, size=len(values))
        _scatter(ax, xs, values, style, alpha, data_arg)


_DRAWERS: Dict[str, Callable] = {
    "point": draw_point,
    "jitter": draw_jitter,
    "violin": draw_violin,
    "box": draw_box,
    "beeswarm": draw_beeswarm,
    "boxjitter": draw_boxjitter,
}


def check_geoms(geom) -> List[str]:
    """Normalize a geom name or list of names, rejecting unknown ones."""
    geoms = [geom] if isinstance(geom, str) else list(geom)
    unknown = [name for name in geoms if name not in _DRAWERS]
    if unknown:
        raise ValueError(f"Unknown data_geom(s) {', '.join(unknown)}; use any of {', '.join(GEOMS)}.")
    return geoms


def draw_data(
    ax: Axes,
    geoms: Sequence[str],
    positions: Sequence[float],
    groups: Sequence[Sequence[float]],
    style: Mapping,
    width: float,
    alpha: float,
    rng: np.random.Generator,
    data_arg: Optional[Mapping] = None,
) -> None:
    """Draw each requested geom for one trace level, in order."""
    data_arg = dict(data_arg or {})
    kept = [(pos, values) for pos, values in zip(positions, groups) if len(values)]
    if not kept:
        return
    positions = [pos for pos, _ in kept]
    groups = [np.asarray(values, dtype=float) for _, values in kept]
    for geom in check_geoms(geoms):
        _DRAWERS[geom](ax, positions, groups, style, width, alpha, rng, data_arg)


__all__ = ["GEOMS", "beeswarm_offsets", "check_geoms", "draw_data"]
