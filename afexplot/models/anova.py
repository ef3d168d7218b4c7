#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Factorial ANOVA for between, within and mixed between-within designs.

``aov_ez`` aggregates long-format data to one row per id and design cell,
fits the multivariate linear model ``Y = XB + E`` (one column of ``Y`` per
within-subject cell, sum-to-zero coded between-subject design ``X``) and
derives univariate type-III tests for every effect from orthonormal
within-subject contrasts. Sphericity corrections (Greenhouse-Geisser,
Huynh-Feldt), Mauchly tests and effect sizes (generalized or partial eta
squared) are computed from the same fit.
"""

from __future__ import annotations

import logging
import re
import warnings
from dataclasses import dataclass, field
from itertools import combinations
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from patsy.contrasts import Sum
from scipy import stats

from ..common.design import (
    AfexWarning,
    aggregate_cells,
    as_list,
    check_columns,
    factorize,
    level_grid,
)
from .mixed import formula_variables


logger = logging.getLogger(__name__)

CORRECTIONS = ("GG", "HF", "none")
EFFECT_SIZES = ("ges", "pes", "none")

Term = Tuple[str, ...]


# ---------------------------------------------------------------------------
# Design coding helpers
# ---------------------------------------------------------------------------


def _row_kron(left: np.ndarray, right: np.ndarray) -> np.ndarray:
    """Row-wise Kronecker product used to build interaction columns."""
    return (left[:, :, None] * right[:, None, :]).reshape(left.shape[0], -1)


def _sum_block(column: pd.Series, levels: Sequence) -> np.ndarray:
    """Sum-to-zero coded columns for one factor."""
    matrix = Sum().code_without_intercept(list(levels)).matrix
    codes = pd.Categorical(column, categories=list(levels)).codes
    if (codes < 0).any():
        raise ValueError(f"Unknown level in factor '{column.name}'.")
    return matrix[codes]


def factor_terms(factors: Sequence[str]) -> List[Term]:
    """All factor combinations ordered by degree, the empty term first."""
    terms: List[Term] = [()]
    for degree in range(1, len(factors) + 1):
        terms.extend(combinations(factors, degree))
    return terms


def between_design(
    frame: pd.DataFrame,
    between: Sequence[str],
    levels: Dict[str, List],
) -> Tuple[np.ndarray, Dict[Term, slice]]:
    """
    Full-factorial sum-coded design matrix for the between-subject factors.

    :returns: ``(matrix, slices)`` where ``slices`` maps each term (``()`` for
        the intercept) to its column range.
    """
    blocks = {name: _sum_block(frame[name], levels[name]) for name in between}
    columns: List[np.ndarray] = []
    slices: Dict[Term, slice] = {}
    start = 0
    for term in factor_terms(between):
        if not term:
            block = np.ones((len(frame), 1))
        else:
            block = blocks[term[0]]
            for name in term[1:]:
                block = _row_kron(block, blocks[name])
        slices[term] = slice(start, start + block.shape[1])
        start += block.shape[1]
        columns.append(block)
    return np.hstack(columns), slices


def _orthonormal_contrasts(n_levels: int) -> np.ndarray:
    """Orthonormal basis of the contrasts orthogonal to the constant."""
    sum_coding = Sum().code_without_intercept(list(range(n_levels))).matrix
    basis, _ = np.linalg.qr(np.column_stack([np.ones(n_levels), sum_coding]))
    return basis[:, 1:]


def within_transform(
    within: Sequence[str],
    levels: Dict[str, List],
    effect: Term,
) -> np.ndarray:
    """
    Contrast matrix (cells x contrasts) isolating one within-subject effect.

    Factors in ``effect`` get orthonormal contrasts, the others are averaged.
    Cells are ordered with the first within factor varying slowest.
    """
    transform = np.ones((1, 1))
    for name in within:
        n_levels = len(levels[name])
        if name in effect:
            block = _orthonormal_contrasts(n_levels)
        else:
            block = np.ones((n_levels, 1)) / np.sqrt(n_levels)
        transform = np.kron(transform, block)
    return transform


# ---------------------------------------------------------------------------
# Result container
# ---------------------------------------------------------------------------


@dataclass
class _EffectTest:
    """Raw (uncorrected) univariate test for one effect."""

    name: str
    between_term: Term
    within_term: Term
    ss: float
    num_df: float
    ss_error: float
    den_df: float
    n_contrasts: int
    error_sscp: np.ndarray


@dataclass
class AovResult:
    """
    Fitted factorial ANOVA.

    ``data`` holds the aggregated long-format data actually analysed (one row
    per id and design cell). The fitted multivariate model is kept so that
    marginal means can be derived without refitting.
    """

    id: str
    dv: str
    between: List[str]
    within: List[str]
    observed: List[str]
    levels: Dict[str, List]
    data: pd.DataFrame
    response: np.ndarray
    design: np.ndarray
    coefficients: np.ndarray
    xtx_inv: np.ndarray
    residual_sscp: np.ndarray
    df_resid: int
    within_cells: pd.DataFrame
    between_cells: pd.DataFrame
    tests: List[_EffectTest] = field(repr=False)
    correction: str = "GG"
    es: str = "ges"

    @property
    def factors(self) -> List[str]:
        """Between factors followed by within factors."""
        return list(self.between) + list(self.within)

    @property
    def residual_cov(self) -> np.ndarray:
        """Residual covariance of the within-subject cells."""
        return self.residual_sscp / self.df_resid

    @property
    def anova_table(self) -> pd.DataFrame:
        """ANOVA table using the correction and effect size chosen at fit time."""
        return self.anova()

    def between_rows(self, cells: pd.DataFrame) -> np.ndarray:
        """Design rows for arbitrary between-subject cells."""
        matrix, _ = between_design(cells, self.between, self.levels)
        return matrix

    def epsilons(self) -> pd.DataFrame:
        """Greenhouse-Geisser and Huynh-Feldt epsilon for multi-df within effects."""
        rows = []
        for test in self._multi_df_tests():
            gg_eps, hf_eps = _sphericity_epsilons(
                test.error_sscp,
                test.n_contrasts,
                self.df_resid,
            )
            rows.append({"Effect": test.name, "GG eps": gg_eps, "HF eps": hf_eps})
        return pd.DataFrame(rows, columns=["Effect", "GG eps", "HF eps"]).set_index("Effect")

    def sphericity_tests(self) -> pd.DataFrame:
        """Mauchly tests of sphericity for multi-df within effects."""
        rows = []
        for test in self._multi_df_tests():
            statistic, p_value = mauchly_test(test.error_sscp, self.df_resid)
            rows.append({"Effect": test.name, "Test statistic": statistic, "p-value": p_value})
        return pd.DataFrame(rows, columns=["Effect", "Test statistic", "p-value"]).set_index("Effect")

    def anova(self, correction: Optional[str] = None, es: Optional[str] = None) -> pd.DataFrame:
        """
        Build the ANOVA table.

        :param correction: ``"GG"``, ``"HF"`` or ``"none"``; defaults to the
            value given at fit time.
        :param es: ``"ges"``, ``"pes"`` or ``"none"``; defaults to the value
            given at fit time.
        """
        correction = self.correction if correction is None else correction
        es = self.es if es is None else es
        _check_option("correction", correction, CORRECTIONS)
        _check_option("es", es, EFFECT_SIZES)

        effects = [test for test in self.tests if test.name != "(Intercept)"]
        stratum_errors = {test.within_term: test.ss_error for test in self.tests}
        error_total = float(sum(stratum_errors.values()))
        is_observed = [
            any(name in self.observed for name in test.between_term + test.within_term)
            for test in effects
        ]
        observed_total = float(
            sum(test.ss for test, flag in zip(effects, is_observed) if flag)
        )

        rows = []
        for test, observed_flag in zip(effects, is_observed):
            eps = 1.0
            if test.n_contrasts > 1 and correction != "none":
                gg_eps, hf_eps = _sphericity_epsilons(
                    test.error_sscp,
                    test.n_contrasts,
                    self.df_resid,
                )
                eps = gg_eps if correction == "GG" else hf_eps
            num_df = test.num_df * eps
            den_df = test.den_df * eps
            f_value = (test.ss / test.num_df) / (test.ss_error / test.den_df)
            row = {
                "Effect": test.name,
                "num Df": num_df,
                "den Df": den_df,
                "MSE": test.ss_error / den_df,
                "F": f_value,
            }
            if es == "ges":
                own = test.ss if observed_flag else 0.0
                row["ges"] = test.ss / (test.ss + error_total + observed_total - own)
            elif es == "pes":
                row["pes"] = test.ss / (test.ss + test.ss_error)
            row["Pr(>F)"] = float(stats.f.sf(f_value, num_df, den_df))
            rows.append(row)
        return pd.DataFrame(rows).set_index("Effect")

    def _multi_df_tests(self) -> List[_EffectTest]:
        # Interactions with between terms share the within term's error matrix.
        return [
            test
            for test in self.tests
            if test.n_contrasts > 1 and not test.between_term
        ]


def _check_option(name: str, value: str, allowed: Sequence[str]) -> None:
    if value not in allowed:
        raise ValueError(f"{name} must be one of {', '.join(allowed)}; got {value!r}.")


def _sphericity_epsilons(
    error_sscp: np.ndarray,
    n_contrasts: int,
    df_resid: int,
) -> Tuple[float, float]:
    """Greenhouse-Geisser epsilon and the Huynh-Feldt epsilon capped at 1."""
    trace = float(np.trace(error_sscp))
    gg_eps = trace**2 / (n_contrasts * float(np.trace(error_sscp @ error_sscp)))
    denominator = n_contrasts * (df_resid - n_contrasts * gg_eps)
    if denominator <= 0:
        return gg_eps, 1.0
    hf_eps = ((df_resid + 1) * n_contrasts * gg_eps - 2) / denominator
    return gg_eps, float(min(1.0, hf_eps))


def mauchly_test(error_sscp: np.ndarray, df_resid: int) -> Tuple[float, float]:
    """
    Mauchly's test of sphericity for a transformed error SSCP matrix.

    :returns: ``(W, p_value)``.
    """
    n_contrasts = error_sscp.shape[0]
    sign, log_det = np.linalg.slogdet(error_sscp)
    if sign <= 0:
        return float("nan"), float("nan")
    log_w = log_det - n_contrasts * np.log(np.trace(error_sscp) / n_contrasts)
    rho = 1 - (2 * n_contrasts**2 + n_contrasts + 2) / (6 * n_contrasts * df_resid)
    omega2 = (
        (n_contrasts + 2)
        * (n_contrasts - 1)
        * (n_contrasts - 2)
        * (2 * n_contrasts**3 + 6 * n_contrasts**2 + 3 * n_contrasts + 2)
        / (288 * (df_resid * n_contrasts * rho) ** 2)
    )
    statistic = -df_resid * rho * log_w
    dof = n_contrasts * (n_contrasts + 1) / 2 - 1
    pr1 = stats.chi2.sf(statistic, dof)
    pr2 = stats.chi2.sf(statistic, dof + 4)
    return float(np.exp(log_w)), float(pr1 + omega2 * (pr2 - pr1))


# ---------------------------------------------------------------------------
# Fitting
# ---------------------------------------------------------------------------


def _check_between_constant(data: pd.DataFrame, id_col: str, between: Sequence[str]) -> None:
    for name in between:
        n_levels = data.groupby(id_col, observed=True)[name].nunique()
        if (n_levels > 1).any():
            bad = n_levels[n_levels > 1].index.tolist()
            raise ValueError(
                f"Between-subjects factor '{name}' varies within id(s): "
                f"{', '.join(map(str, bad[:10]))}."
            )


def _to_wide(
    data: pd.DataFrame,
    id_col: str,
    dv: str,
    between: Sequence[str],
    within: Sequence[str],
    levels: Dict[str, List],
) -> Tuple[pd.Index, np.ndarray, pd.DataFrame]:
    """Pivot aggregated data to an id x within-cell response matrix."""
    ids = pd.Index(pd.unique(data[id_col]), name=id_col)
    n_cells = int(np.prod([len(levels[name]) for name in within])) if within else 1
    column = np.zeros(len(data), dtype=int)
    for name in within:
        column = column * len(levels[name]) + data[name].cat.codes.to_numpy()
    response = np.full((len(ids), n_cells), np.nan)
    response[ids.get_indexer(data[id_col]), column] = data[dv].to_numpy(dtype=float)
    if between:
        between_frame = data.drop_duplicates(id_col).set_index(id_col).loc[ids, list(between)]
    else:
        between_frame = pd.DataFrame(index=ids)
    return ids, response, between_frame.reset_index()


def _effect_name(between_term: Term, within_term: Term) -> str:
    names = list(between_term) + list(within_term)
    return ":".join(names) if names else "(Intercept)"


def aov_ez(
    data: pd.DataFrame,
    id: str,  # pylint: disable=redefined-builtin
    dv: str,
    between: Union[None, str, Sequence[str]] = None,
    within: Union[None, str, Sequence[str]] = None,
    observed: Union[None, str, Sequence[str]] = None,
    fun_aggregate: Union[None, str, Callable] = None,
    correction: str = "GG",
    es: str = "ges",
) -> AovResult:
    """
    Fit a between, within, or mixed between-within ANOVA from long data.

    :param data: Long-format data, one observation per row.
    :param id: Column identifying the unit of observation (participant).
    :param dv: Dependent variable column.
    :param between: Between-subjects factor column(s).
    :param within: Within-subjects (repeated-measures) factor column(s).
    :param observed: Factors that are measured rather than manipulated; they
        enter the denominator of generalized eta squared.
    :param fun_aggregate: Aggregation for multiple observations per id and
        cell. When omitted, ``"mean"`` is used and a warning is emitted if any
        aggregation took place.
    :param correction: Sphericity correction, ``"GG"``, ``"HF"`` or ``"none"``.
    :param es: Effect size, ``"ges"``, ``"pes"`` or ``"none"``.
    :returns: :class:`AovResult`.
    """
    between = as_list(between)
    within = as_list(within)
    observed = as_list(observed)
    _check_option("correction", correction, CORRECTIONS)
    _check_option("es", es, EFFECT_SIZES)
    if not between and not within:
        raise ValueError("Specify at least one between or within factor.")
    overlap = set(between) & set(within)
    if overlap:
        raise ValueError(f"Factor(s) both between and within: {', '.join(sorted(overlap))}.")
    check_columns(data, [id, dv] + between + within)
    unknown_observed = [name for name in observed if name not in between + within]
    if unknown_observed:
        raise ValueError(f"observed variable(s) not in the design: {', '.join(unknown_observed)}.")

    frame = data.loc[:, [id, dv] + between + within].dropna()
    frame = factorize(frame, between + within)
    _check_between_constant(frame, id, between)

    aggregated, collapsed = aggregate_cells(
        frame,
        id,
        dv,
        between + within,
        fun="mean" if fun_aggregate is None else fun_aggregate,
    )
    if collapsed and fun_aggregate is None:
        warnings.warn(
            "More than one observation per design cell, aggregating data using "
            "`fun_aggregate = 'mean'`. To turn off this warning, pass "
            "`fun_aggregate='mean'` explicitly.",
            AfexWarning,
            stacklevel=2,
        )
    levels = {name: list(frame[name].cat.categories) for name in between + within}

    ids, response, between_frame = _to_wide(aggregated, id, dv, between, within, levels)
    complete = ~np.isnan(response).any(axis=1)
    if not complete.all():
        dropped = ids[~complete].tolist()
        warnings.warn(
            "Missing values for following ID(s): "
            f"{', '.join(map(str, dropped))}. Removing those cases from the analysis.",
            AfexWarning,
            stacklevel=2,
        )
        logger.info("Dropped %d incomplete id(s) from the ANOVA.", len(dropped))
        ids = ids[complete]
        response = response[complete]
        between_frame = between_frame.loc[complete].reset_index(drop=True)
        aggregated = aggregated[aggregated[id].isin(ids)].reset_index(drop=True)

    design, slices = between_design(between_frame, between, levels)
    n_ids, n_params = design.shape
    if np.linalg.matrix_rank(design) < n_params:
        raise ValueError("Empty cells in the between-subjects design; cannot estimate all effects.")
    df_resid = n_ids - n_params
    if df_resid < 1:
        raise ValueError("Not enough ids to estimate the error term.")

    xtx_inv = np.linalg.inv(design.T @ design)
    coefficients = xtx_inv @ design.T @ response
    residuals = response - design @ coefficients
    residual_sscp = residuals.T @ residuals

    tests: List[_EffectTest] = []
    for within_term in factor_terms(within):
        transform = within_transform(within, levels, within_term)
        n_contrasts = transform.shape[1]
        transformed = coefficients @ transform
        error_sscp = transform.T @ residual_sscp @ transform
        ss_error = float(np.trace(error_sscp))
        for between_term in factor_terms(between):
            cols = slices[between_term]
            estimate = transformed[cols, :]
            hypothesis = estimate.T @ np.linalg.solve(xtx_inv[cols, cols], estimate)
            q_rows = cols.stop - cols.start
            tests.append(
                _EffectTest(
                    name=_effect_name(between_term, within_term),
                    between_term=tuple(between_term),
                    within_term=tuple(within_term),
                    ss=float(np.trace(hypothesis)),
                    num_df=float(q_rows * n_contrasts),
                    ss_error=ss_error,
                    den_df=float(df_resid * n_contrasts),
                    n_contrasts=n_contrasts,
                    error_sscp=error_sscp,
                )
            )
    logger.info(
        "Fitted ANOVA on %d ids (%d between, %d within factor(s)).",
        n_ids,
        len(between),
        len(within),
    )
    between_cells = level_grid(between, levels)
    return AovResult(
        id=id,
        dv=dv,
        between=between,
        within=within,
        observed=observed,
        levels=levels,
        data=aggregated,
        response=response,
        design=design,
        coefficients=coefficients,
        xtx_inv=xtx_inv,
        residual_sscp=residual_sscp,
        df_resid=df_resid,
        within_cells=level_grid(within, levels),
        between_cells=between_cells,
        tests=tests,
        correction=correction,
        es=es,
    )


# ---------------------------------------------------------------------------
# Formula interfaces
# ---------------------------------------------------------------------------

_RANDOM_TERM = re.compile(r"\(([^()|]*)\|\s*([^()|]*?)\s*\)")


def _split_formula(formula: str) -> Tuple[str, str]:
    response, sep, rhs = formula.partition("~")
    if not sep or not response.strip():
        raise ValueError(f"formula needs a response on the left-hand side: {formula!r}.")
    return response.strip(), rhs


def _extract_call(rhs: str, name: str) -> Tuple[Optional[str], str]:
    """``(arguments, remainder)`` of the first ``name(...)`` call in ``rhs``."""
    match = re.search(rf"\b{name}\(", rhs)
    if match is None:
        return None, rhs
    depth = 0
    for pos in range(match.end() - 1, len(rhs)):
        if rhs[pos] == "(":
            depth += 1
        elif rhs[pos] == ")":
            depth -= 1
            if depth == 0:
                return rhs[match.end() : pos], rhs[: match.start()] + rhs[pos + 1 :]
    raise ValueError(f"Unbalanced parentheses in {name}() term.")


def _formula_columns(text: str, columns) -> List[str]:
    return formula_variables(f"~ {text}", columns)[1]


def _id_column(text: str) -> str:
    name = text.strip()
    if not name.isidentifier():
        raise ValueError(f"Invalid id term {name!r}; expected a single column name.")
    return name


def aov_car(
    formula: str,
    data: pd.DataFrame,
    observed: Union[None, str, Sequence[str]] = None,
    fun_aggregate: Union[None, str, Callable] = None,
    correction: str = "GG",
    es: str = "ges",
) -> AovResult:
    """
    :func:`aov_ez` with the design given as ``dv ~ between + Error(id/within)``.

    ``Error(id)`` alone describes a purely between-subjects design; within
    factors follow the slash, e.g. ``Error(id/(cond*block))``. All factors
    enter the full factorial model regardless of how they are joined.
    """
    dv, rhs = _split_formula(formula)
    error, between_part = _extract_call(rhs, "Error")
    if error is None:
        raise ValueError("aov_car formula needs an Error(id/within) term.")
    id_part, _, within_part = error.partition("/")
    return aov_ez(
        data,
        id=_id_column(id_part),
        dv=dv,
        between=_formula_columns(between_part, data.columns),
        within=_formula_columns(within_part, data.columns),
        observed=observed,
        fun_aggregate=fun_aggregate,
        correction=correction,
        es=es,
    )


def aov_4(
    formula: str,
    data: pd.DataFrame,
    observed: Union[None, str, Sequence[str]] = None,
    fun_aggregate: Union[None, str, Callable] = None,
    correction: str = "GG",
    es: str = "ges",
) -> AovResult:
    """
    :func:`aov_ez` with the design given as ``dv ~ between + (within | id)``.

    Use ``(1 | id)`` for a purely between-subjects design.
    """
    dv, rhs = _split_formula(formula)
    terms = _RANDOM_TERM.findall(rhs)
    if len(terms) != 1:
        raise ValueError("aov_4 formula needs exactly one (within | id) term.")
    within_part, id_part = terms[0]
    return aov_ez(
        data,
        id=_id_column(id_part),
        dv=dv,
        between=_formula_columns(_RANDOM_TERM.sub("", rhs), data.columns),
        within=_formula_columns(within_part, data.columns),
        observed=observed,
        fun_aggregate=fun_aggregate,
        correction=correction,
        es=es,
    )


__all__ = [
    "AovResult",
    "aov_4",
    "aov_car",
    "aov_ez",
    "between_design",
    "factor_terms",
    "mauchly_test",
    "within_transform",
]
