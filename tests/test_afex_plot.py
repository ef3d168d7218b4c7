#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import warnings

import matplotlib.pyplot as plt
import numpy as np
import pytest
from statsmodels.formula.api import ols

from afexplot.afex_plot import AfexPlot, AfexPlotData, afex_plot, interaction_plot, oneway_plot
from afexplot.common.design import AfexWarning
from afexplot.core.geoms import GEOMS
from afexplot.models.anova import aov_ez
from afexplot.models.mixed import mixed


@pytest.fixture
def anova_result(mixed_design_data):
    return aov_ez(mixed_design_data, id="id", dv="rt", between="group", within="cond")


def test_afex_plot_returns_data_frames(anova_result):
    with pytest.warns(AfexWarning):
        result = afex_plot(anova_result, x="cond", trace="group", return_="data")
    assert isinstance(result, AfexPlotData)
    assert len(result.means) == 6
    for column in ("cond", "group", "y", "SE", "lower", "upper"):
        assert column in result.means.columns
    assert list(result.data.columns) == ["id", "cond", "group", "y"]
    assert len(result.data) == 36


def test_afex_plot_warns_for_within_factor_with_model_error(anova_result):
    with pytest.warns(AfexWarning, match="not within-subjects error bars"):
        afex_plot(anova_result, x="cond", return_="data")


def test_afex_plot_warns_for_mixed_design(anova_result):
    with pytest.warns(AfexWarning, match="mixed within-between-design"):
        afex_plot(anova_result, x="cond", trace="group", error="within", return_="data")


def test_afex_plot_quiet_cases(anova_result):
    with warnings.catch_warnings():
        warnings.simplefilter("error", AfexWarning)
        afex_plot(anova_result, x="group", return_="data")
        afex_plot(anova_result, x="cond", error="within", return_="data")
        afex_plot(anova_result, x="cond", trace="group", error="none", return_="data")


def test_afex_plot_within_error_bars_are_narrower(anova_result):
    with pytest.warns(AfexWarning):
        model_bars = afex_plot(anova_result, x="cond", return_="data").means
    within_bars = afex_plot(anova_result, x="cond", error="within", return_="data").means
    assert np.isfinite(within_bars["lower"]).all()
    assert ((within_bars["upper"] - within_bars["lower"]) < (model_bars["upper"] - model_bars["lower"])).all()
    assert (within_bars["error"] == "within").all()


def test_afex_plot_error_none_and_se(anova_result):
    none = afex_plot(anova_result, x="group", error="none", return_="data").means
    assert none["lower"].isna().all()
    se = afex_plot(anova_result, x="group", error_ci=False, return_="data").means
    assert np.allclose(se["upper"] - se["y"], se["SE"])
    mean = afex_plot(anova_result, x="group", error="between", return_="data").means
    assert (mean["error"] == "mean").all()


@pytest.mark.parametrize("geom", GEOMS)
def test_afex_plot_draws_every_geom(anova_result, geom):
    with pytest.warns(AfexWarning):
        plot = afex_plot(anova_result, x="cond", trace="group", data_geom=geom, mapping=["color", "fill"])
    assert isinstance(plot, AfexPlot)
    assert plot.trace == "group"
    assert plot.ax.get_legend() is not None
    assert [tick.get_text() for tick in plot.ax.get_xticklabels()] == ["a", "b", "c"]


def test_afex_plot_layers_geoms_and_saves(anova_result, tmp_path):
    plot = afex_plot(anova_result, x="group", data_geom=["violin", "jitter"], dv_label="RT (s)")
    assert plot.ax.get_ylabel() == "RT (s)"
    written = plot.save(str(tmp_path / "out" / "plot.png"), width=8, height=6, units="cm", dpi=50)
    assert (tmp_path / "out" / "plot.png").exists()
    assert written == [str(tmp_path / "out" / "plot.png")]


def test_afex_plot_panels_and_relabelled_levels(anova_result):
    with pytest.warns(AfexWarning):
        plot = afex_plot(
            anova_result,
            x="cond",
            panel="group",
            error="within",
            factor_levels={"cond": ["A", "B", "C"], "group": {"control": "Control"}},
        )
    assert list(plot.axes) == ["Control", "treatment"]
    assert list(plot.means["cond"].cat.categories) == ["A", "B", "C"]
    assert plot.axes["Control"].get_title() == "Control"


def test_afex_plot_combines_multiple_x_factors(anova_result):
    with pytest.warns(AfexWarning):
        result = afex_plot(anova_result, x=["group", "cond"], return_="data")
    assert "group:cond" in result.means.columns
    assert list(result.means["group:cond"].cat.categories)[0] == "control\na"


def test_afex_plot_draws_into_existing_axes(anova_result):
    fig, axes = plt.subplots(1, 2)
    plot = afex_plot(anova_result, x="group", ax=axes[1], legend_title="Group")
    assert plot.figure is fig
    assert plot.ax is axes[1]
    with pytest.raises(ValueError, match="panel"):
        afex_plot(anova_result, x="cond", panel="group", error="none", ax=axes[0])


def test_afex_plot_ols_shows_rows(between_data):
    fit = ols("y ~ C(a) * C(b)", data=between_data).fit()
    result = afex_plot(fit, x="a", trace="b", return_="data")
    assert len(result.data) == len(between_data)
    assert "row" in result.data.columns
    with pytest.raises(ValueError, match="requires an id"):
        afex_plot(fit, x="a", error="within")


def test_afex_plot_mixed_model_aggregates_by_groups(mixed_design_data):
    result = mixed("rt ~ cond * group", mixed_design_data, groups="id")
    with pytest.warns(AfexWarning):
        data = afex_plot(result, x="cond", trace="group", error="within", return_="data")
    assert data.data["id"].nunique() == 12
    assert np.isinf(data.means["df"]).all()


def test_afex_plot_argument_errors(anova_result):
    with pytest.raises(ValueError, match="data_geom"):
        afex_plot(anova_result, x="group", data_geom="hexbin")
    with pytest.raises(ValueError, match="return_"):
        afex_plot(anova_result, x="group", return_="table")
    with pytest.raises(ValueError, match="only be used once"):
        afex_plot(anova_result, x="group", trace="group")
    with pytest.raises(ValueError, match="mapping"):
        afex_plot(anova_result, x="group", trace="cond", mapping=["size"], error="none")
    with pytest.raises(ValueError, match="unplotted"):
        afex_plot(anova_result, x="group", factor_levels={"cond": ["x", "y", "z"]})


def test_renderers_accept_precomputed_frames(anova_result):
    with pytest.warns(AfexWarning):
        data = afex_plot(anova_result, x="cond", trace="group", return_="data")
    fig, axes = interaction_plot(data.means, data.data, "cond", "group")
    assert list(axes) == [None]
    assert len(axes[None].get_lines()) > 0

    between = afex_plot(anova_result, x="group", return_="data")
    fig, axes = oneway_plot(between.means, between.data, "group")
    assert axes[None].get_xlabel() == "group"


def test_afex_plot_ols_transformed_response(between_data):
    data = between_data.assign(y=between_data["y"].abs() + 1.0)
    fit = ols("np.log(y) ~ C(a) * C(b)", data=data).fit()
    result = afex_plot(fit, x="a", trace="b", error="none", return_="data")
    assert len(result.data) == len(data)
    assert np.sort(result.data["y"].to_numpy()) == pytest.approx(np.sort(np.log(data["y"]).to_numpy()))
