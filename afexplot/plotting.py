#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Common Matplotlib styling and figure export helpers.

Higher-level plotting code lives in :mod:`afexplot.afex_plot`; this module
only holds rcParams styles and saving utilities.
"""

from __future__ import annotations

import logging
import os
from typing import Mapping, Optional, Sequence

import matplotlib as mpl
import matplotlib.pyplot as plt


logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Global style helpers
# ---------------------------------------------------------------------------

DEFAULT_STYLE: Mapping[str, object] = {
    "axes.titlesize": 12,
    "axes.labelsize": 12,
    "font.size": 12,
    "legend.fontsize": 11,
    "xtick.labelsize": 11,
    "ytick.labelsize": 11,
    "font.family": "serif",
    "font.serif": ["Times New Roman", "Times", "Nimbus Roman No9 L", "STIXGeneral", "DejaVu Serif"],
    "mathtext.fontset": "stix",
    "axes.spines.top": False,
    "axes.spines.right": False,
    "pdf.fonttype": 42,
    "ps.fonttype": 42,
}

UNIT_TO_INCHES = {"in": 1.0, "cm": 1 / 2.54, "mm": 1 / 25.4}


def apply_default_style(extra: Mapping[str, object] | None = None) -> None:
    """
    Apply a serif, open-axes style suited to published ANOVA figures.

    Optionally, pass a small dict of overrides via extra.
    """
    params = dict(DEFAULT_STYLE)
    if extra:
        params.update(extra)
    mpl.rcParams.update(params)


def style_from_config(config: Mapping[str, object]) -> dict:
    """rcParams overrides derived from a plot config mapping."""
    size = int(config.get("font_size", DEFAULT_STYLE["font.size"]))
    return {
        "font.family": config.get("font_family", DEFAULT_STYLE["font.family"]),
        "font.size": size,
        "axes.titlesize": size,
        "axes.labelsize": size,
        "legend.fontsize": size - 1,
        "xtick.labelsize": size - 1,
        "ytick.labelsize": size - 1,
    }


def to_inches(value: Optional[float], units: str = "in") -> Optional[float]:
    """Convert a length in ``in``, ``cm`` or ``mm`` to inches."""
    if value is None:
        return None
    try:
        return float(value) * UNIT_TO_INCHES[units]
    except KeyError as exc:
        raise ValueError(f"units must be one of {', '.join(UNIT_TO_INCHES)}; got {units!r}.") from exc


# ---------------------------------------------------------------------------
# Export helpers
# ---------------------------------------------------------------------------


def save_figure(
    fig: plt.Figure,
    path: str,
    width: Optional[float] = None,
    height: Optional[float] = None,
    units: str = "in",
    dpi: int = 300,
    formats: Sequence[str] = (),
    tight: bool = True,
) -> list:
    """
    Save a Matplotlib figure, creating parent dirs.

    ``path`` may carry an extension (``out/plot.pdf``); otherwise ``formats``
    lists the extensions to write, e.g. ``save_figure(fig, "out/plot",
    formats=("png", "pdf"))``. ``width``/``height`` resize the figure first.

    :returns: List of written paths.
    """
    outdir = os.path.dirname(path)
    if outdir:
        os.makedirs(outdir, exist_ok=True)

    current_width, current_height = fig.get_size_inches()
    new_width = to_inches(width, units) or current_width
    new_height = to_inches(height, units) or current_height
    fig.set_size_inches(new_width, new_height)

    root, ext = os.path.splitext(path)
    if ext and not formats:
        targets = [path]
    else:
        targets = [f"{root}.{fmt.lstrip('.')}" for fmt in (formats or ("png",))]

    bbox = "tight" if tight else None
    for target in targets:
        fig.savefig(target, dpi=dpi, bbox_inches=bbox)
        logger.info("Wrote %s", target)
    return targets
