#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Error-bar half-widths for plotted marginal means.

Three sources are supported: the fitted model (``model_error``), per-cell
standard errors of the id-aggregated data (``mean_error``), and
Cousineau-Morey within-subject intervals (``within_error``).
"""

from __future__ import annotations

import logging
from typing import List, Sequence

import numpy as np
import pandas as pd
from scipy import stats


logger = logging.getLogger(__name__)

ERROR_TYPES = ("model", "mean", "within", "none")
ERROR_ALIASES = {"between": "mean", "CMO": "within"}


def normalize_error_type(error: str) -> str:
    """Resolve aliases (``between`` -> ``mean``, ``CMO`` -> ``within``)."""
    resolved = ERROR_ALIASES.get(error, error)
    if resolved not in ERROR_TYPES:
        allowed = ", ".join(list(ERROR_TYPES) + list(ERROR_ALIASES))
        raise ValueError(f"error must be one of {allowed}; got {error!r}.")
    return resolved


def _half_width(sd: pd.Series, n: pd.Series, level: float, ci: bool) -> pd.Series:
    se = sd / np.sqrt(n)
    if not ci:
        return se
    crit = stats.t.ppf((1 + level) / 2, n - 1)
    return se * crit


def model_error(means: pd.DataFrame, ci: bool = True) -> pd.DataFrame:
    """Lower/upper limits from ``emmeans`` output (CI or +/- 1 SE)."""
    bars = means.copy()
    if not ci:
        bars["lower"] = bars["emmean"] - bars["SE"]
        bars["upper"] = bars["emmean"] + bars["SE"]
    return bars


def mean_error(
    data: pd.DataFrame,
    dv: str,
    factors: Sequence[str],
    level: float = 0.95,
    ci: bool = True,
) -> pd.DataFrame:
    """
    Per-cell half-widths from the standard error of the aggregated data.

    :returns: DataFrame with ``factors``, ``n`` and ``half_width``.
    """
    grouped = data.groupby(list(factors), observed=True)[dv]
    summary = grouped.agg(n="count", sd="std").reset_index()
    summary["half_width"] = _half_width(summary["sd"], summary["n"], level, ci)
    return summary.drop(columns="sd")


def within_error(
    data: pd.DataFrame,
    id_col: str,
    dv: str,
    within: Sequence[str],
    between: Sequence[str] = (),
    level: float = 0.95,
    ci: bool = True,
) -> pd.DataFrame:
    """
    Cousineau-Morey within-subject half-widths.

    Each id's values are centred on its own mean and shifted to the mean of
    its between-subject group; the per-cell standard error of those values is
    inflated by ``sqrt(J / (J - 1))`` with ``J`` the number of within cells.
    Ids missing any within cell are removed.

    :returns: DataFrame with ``between + within``, ``n`` and ``half_width``.
    """
    within = list(within)
    between = list(between)
    if not within:
        logger.debug("No within-subject factors plotted; using between-subject SEs.")
        return mean_error(data, dv, between, level=level, ci=ci)
    n_cells = int(np.prod([data[name].nunique() for name in within]))
    # data holds one row per id and plotted cell
    cell_counts = data.groupby(id_col, observed=True).size()
    incomplete: List = cell_counts[cell_counts < n_cells].index.tolist()
    if incomplete:
        logger.info("Dropping %d id(s) with incomplete within cells from within error bars.", len(incomplete))
        data = data[~data[id_col].isin(incomplete)]

    normalized = data.copy()
    id_mean = normalized.groupby(id_col, observed=True)[dv].transform("mean")
    if between:
        group_mean = normalized.groupby(between, observed=True)[dv].transform("mean")
    else:
        group_mean = normalized[dv].mean()
    normalized[dv] = normalized[dv] - id_mean + group_mean

    summary = mean_error(normalized, dv, between + within, level=level, ci=ci)
    correction = np.sqrt(n_cells / (n_cells - 1)) if n_cells > 1 else 1.0
    summary["half_width"] = summary["half_width"] * correction
    return summary


__all__ = [
    "ERROR_TYPES",
    "mean_error",
    "model_error",
    "normalize_error_type",
    "within_error",
]
