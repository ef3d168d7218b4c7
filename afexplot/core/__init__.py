"""Raw-data geometries and layout helpers for the plotting front end."""

from __future__ import annotations

from .geoms import GEOMS, beeswarm_offsets, check_geoms, draw_data
from .plotting_helpers import dodge_offsets, legend_handles, panel_grid, slot_width


__all__ = [
    "GEOMS",
    "beeswarm_offsets",
    "check_geoms",
    "dodge_offsets",
    "draw_data",
    "legend_handles",
    "panel_grid",
    "slot_width",
]
