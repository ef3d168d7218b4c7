"""Publication-style formatting of ANOVA and mixed-model tables."""

from __future__ import annotations

from typing import Optional, Union

import numpy as np
import pandas as pd

from .anova import AovResult
from .mixed import MixedResult


SIGNIFICANCE = ((0.001, " ***"), (0.01, " **"), (0.05, " *"), (0.1, " +"))


def _strip_zero(text: str) -> str:
    if text.startswith("0."):
        return text[1:]
    if text.startswith("-0."):
        return "-" + text[2:]
    return text


def format_p(p_value: float) -> str:
    """``<.001``, three decimals below .01, otherwise two; no leading zero."""
    if pd.isna(p_value):
        return ""
    if p_value < 0.001:
        return "<.001"
    if p_value < 0.01:
        return _strip_zero(f"{p_value:.3f}")
    return _strip_zero(f"{p_value:.2f}")


def significance_stars(p_value: float) -> str:
    if pd.isna(p_value):
        return ""
    for threshold, symbol in SIGNIFICANCE:
        if p_value < threshold:
            return symbol
    return ""


def _format_df(value: float) -> str:
    if np.isclose(value, round(value)):
        return str(int(round(value)))
    return f"{value:.2f}"


def nice(
    result: Union[AovResult, MixedResult],
    correction: Optional[str] = None,
    es: Optional[str] = None,
) -> pd.DataFrame:
    """
    Format a fitted model's tests as strings for reporting.

    ANOVAs give ``Effect``, ``df`` (``"num, den"``), ``MSE``, ``F`` (with
    significance symbols), the effect size and ``p.value``; mixed models give
    ``Effect``, ``df``, ``Chisq`` and ``p.value`` (bootstrap p-values when
    fitted with ``method="PB"``).
    """
    if isinstance(result, AovResult):
        table = result.anova(correction=correction, es=es)
        es_column = next((name for name in ("ges", "pes") if name in table.columns), None)
        rows = []
        for effect, row in table.iterrows():
            formatted = {
                "Effect": effect,
                "df": f"{_format_df(row['num Df'])}, {_format_df(row['den Df'])}",
                "MSE": f"{row['MSE']:.2f}",
                "F": f"{row['F']:.2f}{significance_stars(row['Pr(>F)'])}",
            }
            if es_column:
                formatted[es_column] = _strip_zero(f"{row[es_column]:.3f}")
            formatted["p.value"] = format_p(row["Pr(>F)"])
            rows.append(formatted)
        columns = ["Effect", "df", "MSE", "F"] + ([es_column] if es_column else []) + ["p.value"]
        return pd.DataFrame(rows, columns=columns)

    if isinstance(result, MixedResult):
        table = result.anova_table
        p_column = "Pr(>PB)" if "Pr(>PB)" in table.columns else "Pr(>Chisq)"
        rows = [
            {
                "Effect": effect,
                "df": _format_df(row["Df"]),
                "Chisq": f"{row['Chisq']:.2f}{significance_stars(row[p_column])}",
                "p.value": format_p(row[p_column]),
            }
            for effect, row in table.iterrows()
        ]
        return pd.DataFrame(rows, columns=["Effect", "df", "Chisq", "p.value"])

    raise TypeError(f"nice() expects an AovResult or MixedResult, got {type(result).__name__}.")


__all__ = ["format_p", "nice", "significance_stars"]
