#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

from types import SimpleNamespace

import numpy as np
import pytest
from scipy import stats
from statsmodels.formula.api import ols

from afexplot.models.anova import aov_ez
from afexplot.models.emmeans import emmeans, formula_design_info, is_ols_result
from afexplot.models.mixed import mixed


def test_emmeans_between_anova(between_data):
    result = aov_ez(between_data, id="id", dv="y", between=["a", "b"])
    cells = emmeans(result, ["a", "b"])
    observed = between_data.groupby(["a", "b"])["y"].mean()
    mse = result.anova_table.loc["a", "MSE"]
    counts = between_data.groupby(["a", "b"]).size()
    for _, row in cells.iterrows():
        key = (row["a"], row["b"])
        assert row["emmean"] == pytest.approx(observed[key])
        assert row["SE"] == pytest.approx(np.sqrt(mse / counts[key]))
        assert row["df"] == result.df_resid

    # marginal means weight cells equally, not by cell size
    margins = emmeans(result, "a").set_index("a")
    expected = observed.groupby(level="a").mean()
    assert margins.loc["a1", "emmean"] == pytest.approx(expected["a1"])


def test_emmeans_confidence_limits(between_data):
    result = aov_ez(between_data, id="id", dv="y", between="a")
    cells = emmeans(result, "a", level=0.9)
    crit = stats.t.ppf(0.95, result.df_resid)
    assert np.allclose(cells["upper"] - cells["emmean"], crit * cells["SE"])
    assert np.allclose(cells["emmean"] - cells["lower"], crit * cells["SE"])


def test_emmeans_within_and_mixed_design(mixed_design_data):
    result = aov_ez(mixed_design_data, id="id", dv="rt", between="group", within="cond")
    cond = emmeans(result, "cond")
    assert list(cond.columns) == ["cond", "emmean", "SE", "df", "lower", "upper"]
    expected = mixed_design_data.groupby("cond")["rt"].mean()
    assert cond["emmean"].to_numpy() == pytest.approx(expected.to_numpy())

    cells = emmeans(result, ["group", "cond"])
    assert len(cells) == 6
    observed = mixed_design_data.groupby(["group", "cond"])["rt"].mean().to_numpy()
    assert cells["emmean"].to_numpy() == pytest.approx(observed)


def test_emmeans_ols_formula_result(between_data):
    fit = ols("y ~ C(a) * C(b)", data=between_data).fit()
    assert is_ols_result(fit)
    cells = emmeans(fit, ["a", "b"])
    observed = between_data.groupby(["a", "b"])["y"].mean().to_numpy()
    assert cells["emmean"].to_numpy() == pytest.approx(observed)
    assert (cells["df"] == fit.df_resid).all()


class _ModelSpecOnlyData:
    """Formula data container without the legacy design_info attribute."""

    def __init__(self, data):
        self._data = data
        self.model_spec = formula_design_info(data)

    def __getattr__(self, name):
        if name == "design_info":
            raise AttributeError(name)
        return getattr(self._data, name)


def test_emmeans_ols_reads_design_from_model_spec(between_data, monkeypatch):
    fit = ols("y ~ C(a) * C(b)", data=between_data).fit()
    expected = emmeans(fit, "a")
    monkeypatch.setattr(fit.model, "data", _ModelSpecOnlyData(fit.model.data))
    assert getattr(fit.model.data, "design_info", None) is None
    result = emmeans(fit, "a")
    assert result["emmean"].to_numpy() == pytest.approx(expected["emmean"].to_numpy())
    assert result["SE"].to_numpy() == pytest.approx(expected["SE"].to_numpy())


def test_formula_design_info_lookup():
    assert formula_design_info(SimpleNamespace(design_info="legacy")) == "legacy"
    assert formula_design_info(SimpleNamespace(model_spec="current")) == "current"
    with pytest.raises(TypeError, match="formula"):
        formula_design_info(SimpleNamespace())


def test_emmeans_mixed_model_uses_asymptotic_df(mixed_design_data):
    result = mixed("rt ~ cond", mixed_design_data, groups="id")
    cond = emmeans(result, "cond")
    assert np.isinf(cond["df"]).all()
    expected = mixed_design_data.groupby("cond")["rt"].mean().to_numpy()
    assert cond["emmean"].to_numpy() == pytest.approx(expected, rel=1e-4)
    crit = stats.norm.ppf(0.975)
    assert np.allclose(cond["upper"] - cond["emmean"], crit * cond["SE"])


def test_emmeans_errors(between_data):
    result = aov_ez(between_data, id="id", dv="y", between="a")
    with pytest.raises(ValueError, match="not in the ANOVA design"):
        emmeans(result, "b")
    with pytest.raises(ValueError, match="level"):
        emmeans(result, "a", level=1.5)
    with pytest.raises(TypeError):
        emmeans(object(), "a")
