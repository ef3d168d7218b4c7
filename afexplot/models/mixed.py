#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Linear mixed models with tests for every fixed effect.

``mixed`` recodes the factors of the fixed-effects formula with sum-to-zero
contrasts, fits the full model with statsmodels ``MixedLM`` and tests each
fixed-effect term by removing its design columns (type III). Tests use
likelihood-ratio statistics from maximum-likelihood refits, optionally with
p-values from a parametric bootstrap.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
import statsmodels.api as sm
from patsy import dmatrices, dmatrix
from scipy import stats

from ..common.design import check_columns, factorize


logger = logging.getLogger(__name__)

METHODS = ("LRT", "PB")

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
# C(name) or C(name, <contrast>), contrast arguments may hold one level of parentheses
_CATEGORICAL = r"C\(\s*{name}\s*(?:,(?:[^()]|\([^()]*\))*)?\)"
_CATEGORICAL_TERM = re.compile(_CATEGORICAL.format(name=r"([A-Za-z_][A-Za-z0-9_]*)"))


def formula_variables(formula: str, columns) -> Tuple[Optional[str], List[str]]:
    """
    Split a formula into its response and the data columns used on the right.

    :returns: ``(response, predictors)``; ``response`` is ``None`` for
        one-sided formulas.
    """
    if "~" in formula:
        lhs, rhs = formula.split("~", 1)
        response = lhs.strip() or None
    else:
        response, rhs = None, formula
    predictors: List[str] = []
    for token in _IDENTIFIER.findall(rhs):
        if token in columns and token not in predictors:
            predictors.append(token)
    return response, predictors


def is_wrapped_factor(formula: str, name: str) -> bool:
    """True if ``formula`` marks ``name`` as categorical with ``C()``."""
    return re.search(rf"C\(\s*{re.escape(name)}\b", formula) is not None


def formula_factors(formula: str, frame: pd.DataFrame) -> Tuple[List[str], List[str]]:
    """Categorical predictors (non-numeric or wrapped in ``C()``) and numeric covariates."""
    _, predictors = formula_variables(formula, frame.columns)
    factors, covariates = [], []
    for name in predictors:
        if is_wrapped_factor(formula, name) or not pd.api.types.is_numeric_dtype(frame[name]):
            factors.append(name)
        else:
            covariates.append(name)
    return factors, covariates


def sum_coded_formula(formula: str, factors: List[str]) -> str:
    """
    Code every factor on the right-hand side of ``formula`` as ``C(name, Sum)``.

    Bare names are wrapped; existing ``C(name)`` or ``C(name, Treatment)``
    calls have their contrast replaced.
    """
    if "~" in formula:
        lhs, rhs = formula.split("~", 1)
        prefix = f"{lhs.strip()} ~ " if lhs.strip() else "~ "
    else:
        prefix, rhs = "", formula
    for name in factors:
        rhs = re.sub(_CATEGORICAL.format(name=re.escape(name)), f"C({name}, Sum)", rhs)
    for name in factors:
        rhs = re.sub(rf"(?<![\w(]){re.escape(name)}(?![\w(])", f"C({name}, Sum)", rhs)
    return prefix + rhs.strip()


def clean_term_name(term: str) -> str:
    """Turn ``C(a, Sum):C(b)`` back into ``a:b``."""
    return _CATEGORICAL_TERM.sub(r"\1", term)


@dataclass
class MixedResult:
    """Fitted mixed model together with its table of fixed-effect tests."""

    formula: str
    fixed_formula: str
    dv: str
    groups: str
    re_formula: str
    method: str
    factors: List[str]
    covariates: List[str]
    data: pd.DataFrame
    full_model: object
    design_info: object
    anova_table: pd.DataFrame

    @property
    def fe_params(self) -> pd.Series:
        return self.full_model.fe_params

    @property
    def fe_cov(self) -> np.ndarray:
        """Covariance matrix of the fixed-effect estimates."""
        k_fe = len(self.full_model.fe_params)
        return np.asarray(self.full_model.cov_params())[:k_fe, :k_fe]


def _fit(endog, exog, groups, exog_re, reml: bool):
    model = sm.MixedLM(endog, exog, groups=groups, exog_re=exog_re)
    return model.fit(reml=reml)


def _lrt(full, reduced) -> float:
    return max(0.0, 2.0 * (float(full.llf) - float(reduced.llf)))


def _simulate_response(
    fit,
    exog: pd.DataFrame,
    group_codes: np.ndarray,
    n_groups: int,
    exog_re: Optional[pd.DataFrame],
    rng: np.random.Generator,
) -> np.ndarray:
    """Draw one response vector from a fitted model's implied distribution."""
    mean = np.asarray(exog) @ np.asarray(fit.fe_params)
    cov_re = np.atleast_2d(np.asarray(fit.cov_re))
    design_re = np.ones((len(exog), 1)) if exog_re is None else np.asarray(exog_re)
    effects = rng.multivariate_normal(np.zeros(cov_re.shape[0]), cov_re, size=n_groups)
    random_part = np.sum(design_re * effects[group_codes], axis=1)
    noise = rng.normal(0.0, np.sqrt(float(fit.scale)), size=len(exog))
    return mean + random_part + noise


def _parametric_bootstrap(
    observed: float,
    reduced_fit,
    endog: pd.Series,
    exog: pd.DataFrame,
    reduced_exog: pd.DataFrame,
    groups: pd.Series,
    exog_re: Optional[pd.DataFrame],
    nsim: int,
    rng: np.random.Generator,
) -> float:
    group_codes, uniques = pd.factorize(groups)
    simulated: List[float] = []
    for _ in range(nsim):
        y_star = pd.Series(
            _simulate_response(reduced_fit, reduced_exog, group_codes, len(uniques), exog_re, rng),
            index=endog.index,
            name=endog.name,
        )
        full_star = _fit(y_star, exog, groups, exog_re, reml=False)
        reduced_star = _fit(y_star, reduced_exog, groups, exog_re, reml=False)
        simulated.append(_lrt(full_star, reduced_star))
    exceed = int(np.sum(np.asarray(simulated) >= observed))
    return (exceed + 1) / (nsim + 1)


def _random_design(re_formula: str, frame: pd.DataFrame, factors: List[str]) -> Optional[pd.DataFrame]:
    spec = re_formula.strip().lstrip("~").strip()
    if spec in ("", "1"):
        return None
    coded = sum_coded_formula(spec, factors)
    return dmatrix(coded, frame, return_type="dataframe")


def mixed(
    formula: str,
    data: pd.DataFrame,
    groups: str,
    re_formula: str = "1",
    method: str = "LRT",
    nsim: int = 1000,
    seed: Optional[int] = None,
) -> MixedResult:
    """
    Fit a linear mixed model and test all fixed effects.

    :param formula: Fixed-effects formula, e.g. ``"rt ~ condition * block"``.
    :param data: Long-format data.
    :param groups: Column with the random-effects grouping factor.
    :param re_formula: Random-effects design within ``groups``; ``"1"`` for
        random intercepts, e.g. ``"~condition"`` for correlated random slopes.
    :param method: ``"LRT"`` (likelihood-ratio tests) or ``"PB"`` (parametric
        bootstrap, also reporting the LRT p-value).
    :param nsim: Number of bootstrap samples for ``method="PB"``.
    :param seed: Seed for the bootstrap random generator.
    :returns: :class:`MixedResult`.
    """
    if method not in METHODS:
        raise ValueError(f"method must be one of {', '.join(METHODS)}; got {method!r}.")
    if method == "PB" and nsim < 1:
        raise ValueError("nsim must be a positive integer for parametric bootstrap.")
    response, predictors = formula_variables(formula, data.columns)
    if response is None:
        raise ValueError("formula needs a response on the left-hand side.")
    _, re_predictors = formula_variables(re_formula, data.columns)
    if _IDENTIFIER.fullmatch(response):
        response_columns = [response]
    else:
        # transformed response such as np.log(rt)
        response_columns = [token for token in _IDENTIFIER.findall(response) if token in data.columns]
        if not response_columns:
            raise ValueError(f"Response '{response}' does not use any column of the data.")
    check_columns(data, response_columns + [groups])
    used = response_columns + predictors + [name for name in re_predictors if name not in predictors] + [groups]
    frame = data.loc[:, list(dict.fromkeys(used))].dropna().reset_index(drop=True)
    factors = [
        name
        for name in dict.fromkeys(predictors + re_predictors)
        if is_wrapped_factor(formula, name)
        or is_wrapped_factor(re_formula, name)
        or not pd.api.types.is_numeric_dtype(frame[name])
    ]
    covariates = [name for name in predictors if name not in factors]
    frame = factorize(frame, factors)

    fixed_formula = sum_coded_formula(formula, [name for name in predictors if name in factors])
    endog, exog = dmatrices(fixed_formula, frame, return_type="dataframe")
    endog = endog.iloc[:, 0]
    dv = str(endog.name)
    frame = frame.loc[endog.index].copy()
    if dv not in frame.columns:
        frame[dv] = endog
    exog_re = _random_design(re_formula, frame, factors)
    group_values = frame[groups]
    design_info = exog.design_info

    logger.info("Fitting full model %s (groups=%s, re=%s).", fixed_formula, groups, re_formula)
    full_model = _fit(endog, exog, group_values, exog_re, reml=True)
    full_ml = _fit(endog, exog, group_values, exog_re, reml=False)

    rng = np.random.default_rng(seed)
    rows = []
    for term_name, columns in design_info.term_name_slices.items():
        if term_name == "Intercept":
            continue
        reduced_exog = exog.drop(columns=exog.columns[columns])
        logger.debug("Refitting without %s.", term_name)
        reduced_ml = _fit(endog, reduced_exog, group_values, exog_re, reml=False)
        chisq = _lrt(full_ml, reduced_ml)
        df = columns.stop - columns.start
        row = {
            "Effect": clean_term_name(term_name),
            "Df": df,
            "Chisq": chisq,
            "Pr(>Chisq)": float(stats.chi2.sf(chisq, df)),
        }
        if method == "PB":
            logger.info("Parametric bootstrap for %s (%d samples).", row["Effect"], nsim)
            row["Pr(>PB)"] = _parametric_bootstrap(
                chisq,
                reduced_ml,
                endog,
                exog,
                reduced_exog,
                group_values,
                exog_re,
                nsim,
                rng,
            )
        rows.append(row)
    columns_out = ["Effect", "Df", "Chisq", "Pr(>Chisq)"] + (["Pr(>PB)"] if method == "PB" else [])
    table = pd.DataFrame(rows, columns=columns_out).set_index("Effect")

    return MixedResult(
        formula=formula,
        fixed_formula=fixed_formula,
        dv=dv,
        groups=groups,
        re_formula=re_formula,
        method=method,
        factors=[name for name in predictors if name in factors],
        covariates=covariates,
        data=frame,
        full_model=full_model,
        design_info=design_info,
        anova_table=table,
    )


__all__ = [
    "MixedResult",
    "clean_term_name",
    "formula_factors",
    "formula_variables",
    "is_wrapped_factor",
    "mixed",
    "sum_coded_formula",
]
