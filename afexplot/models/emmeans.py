#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Estimated marginal means for fitted ANOVA, mixed and OLS models.

Marginal means average model predictions with equal weights over every
design cell that is not part of ``specs``. For ANOVAs the multivariate model
is used (uncertainty from the residual covariance of the within cells); for
mixed and OLS models a reference grid over all categorical predictors is
built with patsy, numeric covariates fixed at their mean.
"""

from __future__ import annotations

from typing import List, Sequence, Union

import numpy as np
import pandas as pd
from patsy import build_design_matrices
from scipy import stats
from statsmodels.regression.linear_model import RegressionResults, RegressionResultsWrapper

from ..common.design import as_factor, as_list, level_grid
from .anova import AovResult
from .mixed import MixedResult, formula_factors


EMM_COLUMNS = ["emmean", "SE", "df", "lower", "upper"]


def _critical_value(level: float, df: float) -> float:
    if not 0 < level < 1:
        raise ValueError(f"level must be between 0 and 1; got {level}.")
    upper = (1 + level) / 2
    if np.isinf(df):
        return float(stats.norm.ppf(upper))
    return float(stats.t.ppf(upper, df))


def _cell_mask(cells: pd.DataFrame, names: Sequence[str], values: dict) -> np.ndarray:
    mask = np.ones(len(cells), dtype=bool)
    for name in names:
        mask &= (cells[name] == values[name]).to_numpy()
    return mask


def _finish(grid: pd.DataFrame, estimates, errors, df: float, level: float) -> pd.DataFrame:
    result = grid.reset_index(drop=True).copy()
    crit = _critical_value(level, df)
    result["emmean"] = np.asarray(estimates, dtype=float)
    result["SE"] = np.asarray(errors, dtype=float)
    result["df"] = float(df)
    result["lower"] = result["emmean"] - crit * result["SE"]
    result["upper"] = result["emmean"] + crit * result["SE"]
    return result


def _aov_emmeans(model: AovResult, specs: List[str], level: float) -> pd.DataFrame:
    spec_between = [name for name in specs if name in model.between]
    spec_within = [name for name in specs if name in model.within]
    grid = level_grid(specs, model.levels)
    design_rows = model.between_rows(model.between_cells)
    covariance = model.residual_cov

    estimates, errors = [], []
    for _, cell in grid.iterrows():
        between_mask = _cell_mask(model.between_cells, spec_between, cell)
        within_mask = _cell_mask(model.within_cells, spec_within, cell)
        contrast = design_rows[between_mask].mean(axis=0)
        weights = within_mask / within_mask.sum()
        estimates.append(contrast @ model.coefficients @ weights)
        variance = (contrast @ model.xtx_inv @ contrast) * (weights @ covariance @ weights)
        errors.append(np.sqrt(variance))
    return _finish(grid, estimates, errors, model.df_resid, level)


def _grid_emmeans(
    frame: pd.DataFrame,
    design_info,
    factors: List[str],
    covariates: List[str],
    params: np.ndarray,
    cov: np.ndarray,
    df: float,
    specs: List[str],
    level: float,
) -> pd.DataFrame:
    unknown = [name for name in specs if name not in factors]
    if unknown:
        raise ValueError(
            f"Factor(s) not among the model's categorical predictors: {', '.join(unknown)}."
        )
    levels = {}
    for name in factors:
        if isinstance(frame[name].dtype, pd.CategoricalDtype):
            levels[name] = list(frame[name].cat.categories)
        else:
            levels[name] = list(as_factor(frame[name]).cat.categories)
    reference = level_grid(factors, levels)
    for name in factors:
        if not isinstance(frame[name].dtype, pd.CategoricalDtype):
            reference[name] = reference[name].astype(object).astype(frame[name].dtype)
    for name in covariates:
        reference[name] = float(frame[name].mean())
    matrix = np.asarray(build_design_matrices([design_info], reference, return_type="dataframe")[0])

    grid = level_grid(specs, levels)
    estimates, errors = [], []
    for _, cell in grid.iterrows():
        contrast = matrix[_cell_mask(reference, specs, cell)].mean(axis=0)
        estimates.append(contrast @ params)
        errors.append(np.sqrt(contrast @ cov @ contrast))
    return _finish(grid, estimates, errors, df, level)


def formula_design_info(data):
    """
    The patsy ``DesignInfo`` of a formula model's data container.

    Older statsmodels releases store it as ``design_info``, newer ones as
    ``model_spec``.
    """
    design_info = getattr(data, "design_info", None) or getattr(data, "model_spec", None)
    if design_info is None:
        raise TypeError("Model was not fitted from a formula; no design information available.")
    return design_info


def is_ols_result(model) -> bool:
    """True for statsmodels regression results fitted from a formula."""
    if not isinstance(model, (RegressionResults, RegressionResultsWrapper)):
        return False
    return getattr(model.model, "formula", None) is not None


def emmeans(
    model: Union[AovResult, MixedResult, RegressionResultsWrapper],
    specs: Union[str, Sequence[str]],
    level: float = 0.95,
) -> pd.DataFrame:
    """
    Estimated marginal means for every combination of the ``specs`` factors.

    :param model: An :class:`AovResult`, a :class:`MixedResult`, or a
        statsmodels OLS result fitted with the formula API.
    :param specs: Factor name(s).
    :param level: Confidence level of the ``lower``/``upper`` limits.
    :returns: DataFrame with the ``specs`` columns and ``emmean``, ``SE``,
        ``df``, ``lower``, ``upper``. Mixed models use asymptotic (normal)
        limits, reported as ``df = inf``.
    """
    specs = as_list(specs)
    if not specs:
        raise ValueError("specs must name at least one factor.")
    if isinstance(model, AovResult):
        unknown = [name for name in specs if name not in model.factors]
        if unknown:
            raise ValueError(f"Factor(s) not in the ANOVA design: {', '.join(unknown)}.")
        return _aov_emmeans(model, specs, level)
    if isinstance(model, MixedResult):
        return _grid_emmeans(
            model.data,
            model.design_info,
            model.factors,
            model.covariates,
            np.asarray(model.fe_params, dtype=float),
            model.fe_cov,
            np.inf,
            specs,
            level,
        )
    if is_ols_result(model):
        frame = model.model.data.frame
        factors, covariates = formula_factors(model.model.formula, frame)
        return _grid_emmeans(
            frame,
            formula_design_info(model.model.data),
            factors,
            covariates,
            np.asarray(model.params, dtype=float),
            np.asarray(model.cov_params(), dtype=float),
            float(model.df_resid),
            specs,
            level,
        )
    raise TypeError(f"Unsupported model object: {type(model).__name__}.")


__all__ = ["EMM_COLUMNS", "emmeans", "formula_design_info", "is_ols_result"]
