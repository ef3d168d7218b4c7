#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Shared helpers for factor handling, per-id aggregation and level relabelling.

Everything downstream (ANOVA fitting, marginal means, error bars, plots)
operates on long-format frames whose design factors are pandas categoricals,
so the conversion rules live here in one place.
"""

from __future__ import annotations

import logging
from itertools import product
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd


logger = logging.getLogger(__name__)


class AfexWarning(UserWarning):
    """Warning category for statistically questionable requests."""


FactorSpec = Union[None, str, Sequence[str]]
LevelSpec = Union[Sequence[str], Mapping[str, str]]


def as_list(value: FactorSpec) -> List[str]:
    """Normalize ``None``, a single name, or a sequence of names to a list."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(item) for item in value]


def as_factor(series: pd.Series) -> pd.Series:
    """
    Return ``series`` as an unordered categorical.

    Existing categoricals keep their level order and drop unused levels; other
    dtypes get sorted levels (mirroring how R's ``factor()`` orders them).
    """
    if isinstance(series.dtype, pd.CategoricalDtype):
        return series.cat.remove_unused_categories()
    levels = sorted(series.dropna().unique().tolist(), key=_level_sort_key)
    return pd.Series(
        pd.Categorical(series, categories=levels),
        index=series.index,
        name=series.name,
    )


def _level_sort_key(value) -> Tuple[int, object]:
    if isinstance(value, (int, float)):
        return (0, value)
    return (1, str(value))


def factor_levels(data: pd.DataFrame, name: str) -> List:
    """Ordered level list for a factor column."""
    return list(as_factor(data[name]).cat.categories)


def check_columns(data: pd.DataFrame, columns: Sequence[str]) -> None:
    """Raise ``ValueError`` listing any ``columns`` absent from ``data``."""
    missing = [col for col in columns if col not in data.columns]
    if missing:
        raise ValueError(f"Column(s) not found in data: {', '.join(missing)}")


def factorize(data: pd.DataFrame, factors: Sequence[str]) -> pd.DataFrame:
    """Return a copy of ``data`` with every column in ``factors`` categorical."""
    converted = data.copy()
    for name in factors:
        converted[name] = as_factor(converted[name])
    return converted


def aggregate_cells(
    data: pd.DataFrame,
    id_col: Optional[str],
    dv: str,
    factors: Sequence[str],
    fun: Union[str, Callable] = "mean",
) -> Tuple[pd.DataFrame, bool]:
    """
    Collapse ``data`` to one row per ``id_col`` and design cell.

    :returns: ``(aggregated, collapsed)`` where ``collapsed`` is ``True`` when
        at least one id × cell had more than one observation.
    """
    keys = ([id_col] if id_col else []) + list(factors)
    if not keys:
        frame = pd.DataFrame({dv: [data[dv].agg(fun)]})
        return frame, len(data) > 1
    grouped = data.groupby(keys, observed=True, sort=True)[dv]
    collapsed = bool((grouped.size() > 1).any())
    aggregated = grouped.agg(fun).reset_index()
    for name in factors:
        if isinstance(data[name].dtype, pd.CategoricalDtype):
            aggregated[name] = pd.Categorical(
                aggregated[name],
                categories=data[name].cat.categories,
            )
    if collapsed:
        logger.debug(
            "Aggregated %d rows into %d id x cell rows.",
            len(data),
            len(aggregated),
        )
    return aggregated, collapsed


def within_between(
    data: pd.DataFrame,
    id_col: Optional[str],
    factors: Sequence[str],
) -> Tuple[List[str], List[str]]:
    """
    Split ``factors`` into within-id and between-id factors.

    A factor is within-subject when at least one id is observed at more than
    one of its levels. Without an id every factor counts as between.
    """
    if not id_col:
        return [], list(factors)
    within: List[str] = []
    between: List[str] = []
    for name in factors:
        n_levels = data.groupby(id_col, observed=True)[name].nunique()
        if (n_levels > 1).any():
            within.append(name)
        else:
            between.append(name)
    return within, between


def level_grid(factors: Sequence[str], levels: Mapping[str, Sequence]) -> pd.DataFrame:
    """All level combinations as categoricals, the first factor varying slowest."""
    if not factors:
        return pd.DataFrame(index=range(1))
    frame = pd.DataFrame(list(product(*[levels[name] for name in factors])), columns=list(factors))
    for name in factors:
        frame[name] = pd.Categorical(frame[name], categories=list(levels[name]))
    return frame


def relabel_levels(
    frame: pd.DataFrame,
    factor_levels_map: Optional[Mapping[str, LevelSpec]],
) -> pd.DataFrame:
    """
    Rename factor levels in ``frame``.

    Each entry maps a factor name either to a sequence of new labels (one per
    existing level, in level order) or to a mapping ``old -> new``.
    """
    if not factor_levels_map:
        return frame
    relabelled = frame.copy()
    for name, spec in factor_levels_map.items():
        if name not in relabelled.columns:
            raise ValueError(f"factor_levels refers to unknown factor '{name}'.")
        column = relabelled[name]
        if not isinstance(column.dtype, pd.CategoricalDtype):
            column = as_factor(column)
        current = list(column.cat.categories)
        if isinstance(spec, Mapping):
            rename: Dict = {old: spec.get(str(old), spec.get(old, old)) for old in current}
        else:
            labels = list(spec)
            if len(labels) != len(current):
                raise ValueError(
                    f"factor_levels for '{name}' has {len(labels)} labels "
                    f"but the factor has {len(current)} levels."
                )
            rename = dict(zip(current, labels))
        relabelled[name] = column.cat.rename_categories(rename)
    return relabelled


__all__ = [
    "AfexWarning",
    "aggregate_cells",
    "as_factor",
    "as_list",
    "check_columns",
    "factor_levels",
    "factorize",
    "level_grid",
    "relabel_levels",
    "within_between",
]
