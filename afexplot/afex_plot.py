#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Plot estimated marginal means of fitted models with error bars and raw data.

``afex_plot`` is the entry point: it collects the marginal means of the
plotted factors (``x``, ``trace``, ``panel``), the raw data aggregated per
``id`` and the requested error bars, then hands both frames to
``interaction_plot`` (when a trace factor is given) or ``oneway_plot``.
Both renderers can also be called directly with precomputed frames, e.g. to
draw into an existing ``Axes`` of a larger composite figure.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from itertools import product
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.axes import Axes

from .common.design import (
    AfexWarning,
    aggregate_cells,
    as_list,
    factorize,
    relabel_levels,
    within_between,
)
from .core.geoms import check_geoms, draw_data
from .core.plotting_helpers import dodge_offsets, legend_handles, panel_grid, slot_width
from .error_bars import mean_error, model_error, normalize_error_type, within_error
from .models.anova import AovResult
from .models.emmeans import emmeans, is_ols_result
from .models.mixed import MixedResult
from .plotting import save_figure
from .plotting_styles import DEFAULT_COLORS, check_mapping, trace_styles


logger = logging.getLogger(__name__)

WITHIN_WARNING = (
    "Panel(s) show within-subjects factors, but not within-subjects error bars.\n"
    "For within-subjects error bars use: error = 'within'"
)
MIXED_WARNING = (
    "Panel(s) show a mixed within-between-design.\n"
    "Error bars do not allow comparisons across all means.\n"
    "Suppress error bars with: error = 'none'"
)

ROW_ID = "row"


@dataclass(frozen=True)
class PlotOptions:
    """Display settings shared by the interaction and one-way plots."""

    mapping: Tuple[str, ...] = ()
    data_plot: bool = True
    data_geom: Tuple[str, ...] = ("point",)
    data_alpha: float = 0.5
    data_arg: Mapping[str, Any] = field(default_factory=dict)
    point_arg: Mapping[str, Any] = field(default_factory=dict)
    line_arg: Mapping[str, Any] = field(default_factory=dict)
    error_arg: Mapping[str, Any] = field(default_factory=dict)
    dodge: float = 0.5
    palette: str = "tab10"
    data_color: str = DEFAULT_COLORS["data"]
    legend_title: Optional[str] = None
    dv_label: Optional[str] = None
    seed: int = 0


@dataclass
class AfexPlotData:
    """Means (with error limits) and id-aggregated raw data behind a plot."""

    means: pd.DataFrame
    data: pd.DataFrame


@dataclass
class AfexPlot:
    """
    A rendered plot: the figure, its axes keyed by panel level, and the frames.

    Panels are keyed by level; a plot without a panel factor uses ``None``.
    """

    figure: plt.Figure
    axes: Dict[Any, Axes]
    means: pd.DataFrame
    data: pd.DataFrame
    x: str
    trace: Optional[str] = None
    panel: Optional[str] = None

    @property
    def ax(self) -> Axes:
        """The first (or only) panel's axes, for adding layers."""
        return next(iter(self.axes.values()))

    def save(
        self,
        path: str,
        width: Optional[float] = None,
        height: Optional[float] = None,
        units: str = "in",
        dpi: int = 300,
    ) -> List[str]:
        """Write the figure; the format follows the file extension."""
        return save_figure(self.figure, path, width=width, height=height, units=units, dpi=dpi)

    def close(self) -> None:
        plt.close(self.figure)


# ---------------------------------------------------------------------------
# Data collection
# ---------------------------------------------------------------------------


def _model_frame(model) -> Tuple[pd.DataFrame, str, Optional[str]]:
    """``(data, dv, default id)`` for a supported model object."""
    if isinstance(model, AovResult):
        return model.data, model.dv, model.id
    if isinstance(model, MixedResult):
        return model.data, model.dv, model.groups
    if is_ols_result(model):
        frame = model.model.data.frame
        dv = str(model.model.endog_names)
        if dv not in frame.columns:
            # transformed response: rows kept by the fit, response as modelled
            frame = frame.loc[model.model.data.row_labels].copy()
            frame[dv] = np.asarray(model.model.endog)
        return frame, dv, None
    raise TypeError(f"Unsupported model object: {type(model).__name__}.")


def _plot_data(
    frame: pd.DataFrame,
    dv: str,
    id_col: Optional[str],
    factors: List[str],
) -> Tuple[pd.DataFrame, str]:
    """Raw data for the plotted factors, one row per id and cell."""
    if id_col is None:
        id_col = ROW_ID if ROW_ID not in factors else f"_{ROW_ID}"
        data = frame.loc[:, factors + [dv]].copy()
        data[id_col] = np.arange(len(data))
        data = factorize(data, factors)
    else:
        if id_col not in frame.columns:
            raise ValueError(f"id column '{id_col}' not found in the model data.")
        data, collapsed = aggregate_cells(factorize(frame, factors), id_col, dv, factors)
        if collapsed:
            logger.info("Aggregating raw data over '%s' and %s.", id_col, ", ".join(factors))
    data = data.rename(columns={dv: "y"})
    return data.loc[:, [id_col] + factors + ["y"]].copy(), id_col


def _design_roles(model, data: pd.DataFrame, id_col: str, factors: List[str]) -> Tuple[List[str], List[str]]:
    if isinstance(model, AovResult):
        within = [name for name in factors if name in model.within]
        return within, [name for name in factors if name not in within]
    return within_between(data, id_col, factors)


def _warn_error_choice(error: str, within: List[str], between: List[str]) -> None:
    if error in ("model", "mean") and within and not between:
        warnings.warn(WITHIN_WARNING, AfexWarning, stacklevel=3)
    if error != "none" and within and between:
        warnings.warn(MIXED_WARNING, AfexWarning, stacklevel=3)


def _error_limits(
    means: pd.DataFrame,
    data: pd.DataFrame,
    error: str,
    ci: bool,
    level: float,
    id_col: str,
    factors: List[str],
    within: List[str],
    between: List[str],
) -> pd.DataFrame:
    if error == "model":
        bars = model_error(means, ci=ci)
        bars["error"] = "model"
        return bars
    bars = means.copy()
    if error == "none":
        bars["lower"] = np.nan
        bars["upper"] = np.nan
        bars["error"] = "none"
        return bars
    if error == "mean":
        summary = mean_error(data, "y", factors, level=level, ci=ci)
    else:
        summary = within_error(data, id_col, "y", within, between, level=level, ci=ci)
    bars = bars.merge(summary.loc[:, factors + ["half_width"]], on=factors, how="left")
    bars["lower"] = bars["emmean"] - bars["half_width"]
    bars["upper"] = bars["emmean"] + bars["half_width"]
    bars["error"] = error
    return bars.drop(columns="half_width")


def _combine(frames: Sequence[pd.DataFrame], names: List[str], sep: str) -> Optional[str]:
    """Merge several factors into one column (in place) and return its name."""
    if not names:
        return None
    if len(names) == 1:
        return names[0]
    combined = ":".join(names)
    reference = frames[0]
    levels = [list(reference[name].cat.categories) for name in names]
    categories = [sep.join(str(value) for value in combo) for combo in product(*levels)]
    for frame in frames:
        labels = frame[names[0]].astype(str)
        for name in names[1:]:
            labels = labels + sep + frame[name].astype(str)
        frame[combined] = pd.Categorical(labels, categories=categories)
    return combined


def afex_plot(
    model,
    x: Union[str, Sequence[str]],
    trace: Union[None, str, Sequence[str]] = None,
    panel: Union[None, str, Sequence[str]] = None,
    mapping: Optional[Sequence[str]] = None,
    error: str = "model",
    error_ci: bool = True,
    error_level: float = 0.95,
    error_arg: Optional[Mapping[str, Any]] = None,
    data_plot: bool = True,
    data_geom: Union[str, Sequence[str]] = "point",
    data_alpha: float = 0.5,
    data_arg: Optional[Mapping[str, Any]] = None,
    point_arg: Optional[Mapping[str, Any]] = None,
    line_arg: Optional[Mapping[str, Any]] = None,
    dodge: float = 0.5,
    id: Optional[str] = None,  # pylint: disable=redefined-builtin
    dv_label: Optional[str] = None,
    factor_levels: Optional[Mapping[str, Any]] = None,
    legend_title: Optional[str] = None,
    return_: str = "plot",
    ax: Optional[Axes] = None,
    figsize: Optional[Tuple[float, float]] = None,
    palette: str = "tab10",
    data_color: str = DEFAULT_COLORS["data"],
    seed: int = 0,
) -> Union[AfexPlot, AfexPlotData]:
    """
    Plot estimated marginal means of ``model`` with error bars and raw data.

    :param model: :class:`AovResult`, :class:`MixedResult` or a statsmodels
        OLS formula result.
    :param x: Factor(s) on the x-axis.
    :param trace: Factor(s) distinguished by the ``mapping`` aesthetics and
        connected by lines.
    :param panel: Factor(s) split into separate panels.
    :param mapping: Aesthetics for trace levels, any of ``shape``,
        ``linetype``, ``color``, ``fill``. Defaults to ``("shape",
        "linetype")`` with a trace and to none for one-way plots.
    :param error: ``"model"``, ``"mean"``/``"between"``, ``"within"``/``"CMO"``
        or ``"none"``.
    :param error_ci: Confidence intervals (``True``) or +/- 1 SE (``False``).
    :param error_level: Confidence level.
    :param data_geom: Raw-data geometry or list of geometries: ``point``,
        ``jitter``, ``violin``, ``box``, ``beeswarm``, ``boxjitter``.
    :param dodge: Total horizontal spread of trace levels at one x position.
    :param id: Column used to aggregate raw data; defaults to the ANOVA id or
        the mixed model's grouping factor. OLS data is shown per row.
    :param factor_levels: New level labels per plotted factor, as a list in
        level order or an ``old -> new`` mapping.
    :param return_: ``"plot"`` for an :class:`AfexPlot`, ``"data"`` for the
        underlying :class:`AfexPlotData`.
    :param ax: Existing axes to draw into (single-panel plots only).
    """
    x_names = as_list(x)
    trace_names = as_list(trace)
    panel_names = as_list(panel)
    if not x_names:
        raise ValueError("x must name at least one factor.")
    factors = x_names + trace_names + panel_names
    if len(set(factors)) != len(factors):
        raise ValueError("A factor can only be used once among x, trace and panel.")
    if return_ not in ("plot", "data"):
        raise ValueError(f"return_ must be 'plot' or 'data'; got {return_!r}.")
    error = normalize_error_type(error)
    geoms = check_geoms(data_geom)
    if mapping is None:
        mapping = ("shape", "linetype") if trace_names else ()
    mapping = tuple(check_mapping(mapping))

    frame, dv, default_id = _model_frame(model)
    id_col = id or default_id
    if error == "within" and id_col is None:
        raise ValueError('error = "within" requires an id column.')

    means = emmeans(model, factors, level=error_level)
    data, id_col = _plot_data(frame, dv, id_col, factors)
    within, between = _design_roles(model, data, id_col, factors)
    _warn_error_choice(error, within, between)
    means = _error_limits(means, data, error, error_ci, error_level, id_col, factors, within, between)
    means = means.rename(columns={"emmean": "y"})

    if factor_levels:
        unknown = [name for name in factor_levels if name not in factors]
        if unknown:
            raise ValueError(f"factor_levels refers to unplotted factor(s): {', '.join(unknown)}.")
        means = relabel_levels(means, factor_levels)
        data = relabel_levels(data, factor_levels)

    x_col = _combine([means, data], x_names, "\n")
    trace_col = _combine([means, data], trace_names, " / ")
    panel_col = _combine([means, data], panel_names, " / ")

    if return_ == "data":
        return AfexPlotData(means=means, data=data)

    options = PlotOptions(
        mapping=mapping,
        data_plot=data_plot,
        data_geom=tuple(geoms),
        data_alpha=data_alpha,
        data_arg=dict(data_arg or {}),
        point_arg=dict(point_arg or {}),
        line_arg=dict(line_arg or {}),
        error_arg=dict(error_arg or {}),
        dodge=dodge,
        palette=palette,
        data_color=data_color,
        legend_title=legend_title,
        dv_label=dv_label or dv,
        seed=seed,
    )
    if trace_col:
        figure, axes = interaction_plot(means, data, x_col, trace_col, panel_col, options, ax=ax, figsize=figsize)
    else:
        figure, axes = oneway_plot(means, data, x_col, panel_col, options, ax=ax, figsize=figsize)
    return AfexPlot(
        figure=figure,
        axes=axes,
        means=means,
        data=data,
        x=x_col,
        trace=trace_col,
        panel=panel_col,
    )


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _levels(frame: pd.DataFrame, name: Optional[str]) -> List:
    if name is None:
        return [None]
    column = frame[name]
    if isinstance(column.dtype, pd.CategoricalDtype):
        return list(column.cat.categories)
    return sorted(column.unique().tolist())


def _make_axes(
    panel_levels: List,
    ax: Optional[Axes],
    figsize: Optional[Tuple[float, float]],
) -> Tuple[plt.Figure, Dict[Any, Axes], int]:
    if ax is not None:
        if len(panel_levels) > 1:
            raise ValueError("ax can only be used for plots without a panel factor.")
        return ax.figure, {panel_levels[0]: ax}, 1
    nrows, ncols = panel_grid(len(panel_levels))
    figsize = figsize or (1.0 + 3.6 * ncols, 0.6 + 3.2 * nrows)
    figure, grid = plt.subplots(nrows, ncols, sharey=True, squeeze=False, figsize=figsize)
    flat = grid.ravel()
    for extra in flat[len(panel_levels):]:
        extra.set_visible(False)
    return figure, dict(zip(panel_levels, flat)), ncols


def _subset(frame: pd.DataFrame, name: Optional[str], level) -> pd.DataFrame:
    if name is None:
        return frame
    return frame[frame[name] == level]


def _draw_means(ax: Axes, xpos: np.ndarray, cells: pd.DataFrame, style: Mapping, options: PlotOptions, connect: bool) -> None:
    y_values = cells["y"].to_numpy(dtype=float)
    if connect and len(xpos) > 1:
        line_kwargs = {"linestyle": style["linestyle"], "color": style["color"], "linewidth": 1.2, "zorder": 2}
        line_kwargs.update(options.line_arg)
        ax.plot(xpos, y_values, **line_kwargs)
    lower = cells["lower"].to_numpy(dtype=float)
    upper = cells["upper"].to_numpy(dtype=float)
    finite = np.isfinite(lower) & np.isfinite(upper)
    if finite.any():
        error_kwargs = {"fmt": "none", "ecolor": style["color"], "elinewidth": 1.2, "capsize": 0, "zorder": 3}
        error_kwargs.update(options.error_arg)
        ax.errorbar(
            xpos[finite],
            y_values[finite],
            yerr=[y_values[finite] - lower[finite], upper[finite] - y_values[finite]],
            **error_kwargs,
        )
    point_kwargs = {
        "linestyle": "none",
        "marker": style["marker"],
        "color": style["color"],
        "markerfacecolor": style["fill"] if "fill" in options.mapping else style["color"],
        "markersize": 7,
        "zorder": 4,
    }
    point_kwargs.update(options.point_arg)
    ax.plot(xpos, y_values, **point_kwargs)


def _finish_axes(ax: Axes, x_levels: List, x_name: str, title: Optional[str]) -> None:
    ax.set_xticks(np.arange(len(x_levels)))
    ax.set_xticklabels([str(level) for level in x_levels])
    ax.set_xlim(-0.6, len(x_levels) - 0.4)
    ax.set_xlabel(x_name)
    if title is not None:
        ax.set_title(title)


def interaction_plot(
    means: pd.DataFrame,
    data: pd.DataFrame,
    x: str,
    trace: str,
    panel: Optional[str] = None,
    options: Optional[PlotOptions] = None,
    ax: Optional[Axes] = None,
    figsize: Optional[Tuple[float, float]] = None,
) -> Tuple[plt.Figure, Dict[Any, Axes]]:
    """
    Draw means per ``x`` level with one dodged, connected series per ``trace`` level.

    ``means`` needs ``y``, ``lower`` and ``upper`` columns, ``data`` a ``y``
    column; both carry the factor columns.
    """
    options = options or PlotOptions(mapping=("shape", "linetype"))
    x_levels = _levels(means, x)
    trace_levels = _levels(means, trace)
    panel_levels = _levels(means, panel)
    offsets = dodge_offsets(len(trace_levels), options.dodge)
    width = slot_width(len(trace_levels), options.dodge)
    styles = trace_styles(len(trace_levels), options.mapping, options.palette, options.data_color)
    rng = np.random.default_rng(options.seed)

    figure, axes, ncols = _make_axes(panel_levels, ax, figsize)
    for index, (panel_level, axis) in enumerate(axes.items()):
        panel_means = _subset(means, panel, panel_level)
        panel_data = _subset(data, panel, panel_level)
        for trace_index, trace_level in enumerate(trace_levels):
            style = styles[trace_index]
            positions = np.arange(len(x_levels)) + offsets[trace_index]
            if options.data_plot:
                trace_data = panel_data[panel_data[trace] == trace_level]
                groups = [trace_data.loc[trace_data[x] == level, "y"].to_numpy() for level in x_levels]
                draw_data(axis, options.data_geom, positions, groups, style, width, options.data_alpha, rng, options.data_arg)
            cells = panel_means[panel_means[trace] == trace_level].sort_values(x)
            codes = np.asarray([x_levels.index(level) for level in cells[x]], dtype=float)
            _draw_means(axis, codes + offsets[trace_index], cells, style, options, connect=True)
        _finish_axes(axis, x_levels, x, None if panel is None else str(panel_level))
        if index % ncols == 0:
            axis.set_ylabel(options.dv_label or "y")

    last_axis = list(axes.values())[-1]
    last_axis.legend(
        handles=legend_handles(trace_levels, styles, options.mapping),
        title=options.legend_title or trace,
        frameon=False,
    )
    logger.debug("Drew interaction plot with %d panel(s).", len(axes))
    return figure, axes


def oneway_plot(
    means: pd.DataFrame,
    data: pd.DataFrame,
    x: str,
    panel: Optional[str] = None,
    options: Optional[PlotOptions] = None,
    ax: Optional[Axes] = None,
    figsize: Optional[Tuple[float, float]] = None,
) -> Tuple[plt.Figure, Dict[Any, Axes]]:
    """
    Draw unconnected means per ``x`` level.

    With a ``mapping`` the aesthetics distinguish the ``x`` levels and a
    legend is added.
    """
    options = options or PlotOptions()
    x_levels = _levels(means, x)
    panel_levels = _levels(means, panel)
    styles = trace_styles(len(x_levels), options.mapping, options.palette, options.data_color)
    width = slot_width(1, options.dodge)
    rng = np.random.default_rng(options.seed)

    figure, axes, ncols = _make_axes(panel_levels, ax, figsize)
    for index, (panel_level, axis) in enumerate(axes.items()):
        panel_means = _subset(means, panel, panel_level)
        panel_data = _subset(data, panel, panel_level)
        for x_index, x_level in enumerate(x_levels):
            style = styles[x_index]
            if options.data_plot:
                values = panel_data.loc[panel_data[x] == x_level, "y"].to_numpy()
                draw_data(axis, options.data_geom, [float(x_index)], [values], style, width, options.data_alpha, rng, options.data_arg)
            cells = panel_means[panel_means[x] == x_level]
            _draw_means(axis, np.full(len(cells), float(x_index)), cells, style, options, connect=False)
        _finish_axes(axis, x_levels, x, None if panel is None else str(panel_level))
        if index % ncols == 0:
            axis.set_ylabel(options.dv_label or "y")

    if options.mapping:
        list(axes.values())[-1].legend(
            handles=legend_handles(x_levels, styles, options.mapping, show_lines=False),
            title=options.legend_title or x,
            frameon=False,
        )
    return figure, axes


__all__ = [
    "AfexPlot",
    "AfexPlotData",
    "MIXED_WARNING",
    "PlotOptions",
    "WITHIN_WARNING",
    "afex_plot",
    "interaction_plot",
    "oneway_plot",
]
