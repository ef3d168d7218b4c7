"""Layout and legend helpers shared by the interaction and one-way plots."""

from __future__ import annotations

import math
from typing import List, Mapping, Sequence, Tuple

import numpy as np
from matplotlib.lines import Line2D
from matplotlib.patches import Patch


def dodge_offsets(n_traces: int, dodge: float) -> np.ndarray:
    """
    Horizontal offsets of trace levels around an x position.

    ``dodge`` is the total spread; levels are centred in equal slots.
    """
    if n_traces <= 1:
        return np.zeros(max(n_traces, 1))
    return (np.arange(n_traces) - (n_traces - 1) / 2) * dodge / n_traces


def slot_width(n_traces: int, dodge: float) -> float:
    """Width available to one trace level's raw-data geometry."""
    if n_traces > 1 and dodge > 0:
        return 0.9 * dodge / n_traces
    return 0.45


def panel_grid(n_panels: int) -> Tuple[int, int]:
    """``(nrows, ncols)`` for a wrapped, roughly square panel layout."""
    n_panels = max(n_panels, 1)
    ncols = math.ceil(math.sqrt(n_panels))
    return math.ceil(n_panels / ncols), ncols


def legend_handles(
    labels: Sequence[str],
    styles: Sequence[Mapping[str, object]],
    mapping: Sequence[str],
    show_lines: bool = True,
) -> List[Line2D | Patch]:
    """
    Build legend handles for trace levels from their aesthetics.

    A filled patch is used when only the fill distinguishes levels.
    """
    handles: List[Line2D | Patch] = []
    for label, style in zip(labels, styles):
        if set(mapping) == {"fill"}:
            handles.append(Patch(facecolor=style["fill"], edgecolor=style["color"], label=str(label)))
            continue
        handles.append(
            Line2D(
                [0],
                [0],
                color=style["color"],
                linestyle=style["linestyle"] if show_lines else "none",
                marker=style["marker"],
                markerfacecolor=style["fill"] if "fill" in mapping else style["color"],
                label=str(label),
            )
        )
    return handles


__all__ = [
    "dodge_offsets",
    "legend_handles",
    "panel_grid",
    "slot_width",
]
