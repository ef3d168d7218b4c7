#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import pandas as pd
import pytest

import afexplot.common.design as design


def test_as_list_normalizes_inputs():
    assert design.as_list(None) == []
    assert design.as_list("cond") == ["cond"]
    assert design.as_list(("a", "b")) == ["a", "b"]


def test_as_factor_sorts_plain_values_and_keeps_categorical_order():
    plain = design.as_factor(pd.Series(["b", "c", "a", "b"]))
    assert list(plain.cat.categories) == ["a", "b", "c"]

    numeric = design.as_factor(pd.Series([10, 2, 1]))
    assert list(numeric.cat.categories) == [1, 2, 10]

    ordered = pd.Series(pd.Categorical(["hi", "lo"], categories=["lo", "hi", "unused"]))
    kept = design.as_factor(ordered)
    assert list(kept.cat.categories) == ["lo", "hi"]


def test_check_columns_lists_missing():
    frame = pd.DataFrame({"x": [1]})
    with pytest.raises(ValueError, match="y, z"):
        design.check_columns(frame, ["x", "y", "z"])


def test_aggregate_cells_reports_collapsing():
    frame = design.factorize(
        pd.DataFrame({"id": [1, 1, 1, 2], "cond": ["a", "a", "b", "a"], "y": [1.0, 3.0, 5.0, 4.0]}),
        ["cond"],
    )
    aggregated, collapsed = design.aggregate_cells(frame, "id", "y", ["cond"])
    assert collapsed is True
    assert len(aggregated) == 3
    first = aggregated[(aggregated["id"] == 1) & (aggregated["cond"] == "a")]
    assert first["y"].iloc[0] == pytest.approx(2.0)
    assert isinstance(aggregated["cond"].dtype, pd.CategoricalDtype)

    _, collapsed = design.aggregate_cells(aggregated, "id", "y", ["cond"])
    assert collapsed is False


def test_aggregate_cells_custom_function():
    frame = pd.DataFrame({"id": [1, 1, 1], "cond": ["a", "a", "a"], "y": [1.0, 2.0, 9.0]})
    aggregated, _ = design.aggregate_cells(frame, "id", "y", ["cond"], fun="median")
    assert aggregated["y"].iloc[0] == pytest.approx(2.0)


def test_within_between_split(mixed_design_data):
    within, between = design.within_between(mixed_design_data, "id", ["group", "cond"])
    assert within == ["cond"]
    assert between == ["group"]
    assert design.within_between(mixed_design_data, None, ["cond"]) == ([], ["cond"])


def test_level_grid_first_factor_slowest():
    grid = design.level_grid(["a", "b"], {"a": ["x", "y"], "b": [1, 2, 3]})
    assert list(grid["a"]) == ["x", "x", "x", "y", "y", "y"]
    assert list(grid["b"]) == [1, 2, 3, 1, 2, 3]
    assert len(design.level_grid([], {})) == 1


def test_relabel_levels_list_and_mapping():
    frame = design.factorize(pd.DataFrame({"cond": ["a", "b", "a"]}), ["cond"])
    by_list = design.relabel_levels(frame, {"cond": ["Alpha", "Beta"]})
    assert list(by_list["cond"]) == ["Alpha", "Beta", "Alpha"]

    by_map = design.relabel_levels(frame, {"cond": {"b": "Beta"}})
    assert list(by_map["cond"].cat.categories) == ["a", "Beta"]


def test_relabel_levels_errors():
    frame = design.factorize(pd.DataFrame({"cond": ["a", "b"]}), ["cond"])
    with pytest.raises(ValueError, match="has 3 labels"):
        design.relabel_levels(frame, {"cond": ["x", "y", "z"]})
    with pytest.raises(ValueError, match="unknown factor"):
        design.relabel_levels(frame, {"other": ["x"]})
