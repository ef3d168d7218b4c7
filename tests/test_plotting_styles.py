#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

from types import SimpleNamespace

import pytest

import afexplot.plotting_styles as styles


def test_parse_color_overrides_handles_empty():
    assert styles.parse_color_overrides(None) == {}
    assert styles.parse_color_overrides("") == {}


def test_parse_color_overrides_parses_pairs():
    overrides = styles.parse_color_overrides("data:#000, mean: #fff , invalid")
    assert overrides["data"] == "#000"
    assert overrides["mean"] == "#fff"
    assert "invalid" not in overrides


def test_cmap_colors_uses_listed_colors(monkeypatch):
    fake_colors = [(0.1, 0.2, 0.3, 0.9), (0.4, 0.5, 0.6, 0.7)]

    class FakeColormaps:
        def __getitem__(self, name):
            return SimpleNamespace(colors=fake_colors)

    monkeypatch.setattr(styles.matplotlib, "colormaps", FakeColormaps())
    assert styles.cmap_colors("any") == [(0.1, 0.2, 0.3), (0.4, 0.5, 0.6)]


def test_cmap_colors_samples_continuous_maps():
    colors = styles.cmap_colors("viridis", 5)
    assert len(colors) == 5
    assert all(len(color) == 3 for color in colors)
    assert len(styles.cmap_colors("tab10")) == 10


def test_cmap_colors_unknown_name():
    with pytest.raises(ValueError, match="Unknown matplotlib colormap"):
        styles.cmap_colors("no-such-map")


def test_darken_colors_scales_channels():
    assert styles.darken_colors([(1.0, 0.5, 0.0)], factor=0.5) == [(0.5, 0.25, 0.0)]


def test_trace_styles_mapping():
    plain = styles.trace_styles(3, [])
    assert {style["marker"] for style in plain} == {styles.SHAPES[0]}
    assert {style["color"] for style in plain} == {"black"}
    assert plain[0]["data_color"] == styles.DEFAULT_COLORS["data"]

    mapped = styles.trace_styles(3, ["shape", "linetype", "color"], palette="tab10")
    assert [style["marker"] for style in mapped] == styles.SHAPES[:3]
    assert [style["linestyle"] for style in mapped] == styles.LINETYPES[:3]
    assert mapped[0]["color"] != mapped[1]["color"]
    assert mapped[1]["data_color"] == mapped[1]["color"]

    filled = styles.trace_styles(2, ["fill"], data_color="grey")
    assert filled[0]["color"] == "black"
    assert filled[0]["fill"] != filled[1]["fill"]
    assert filled[0]["data_color"] == "grey"


def test_check_mapping_rejects_unknown():
    assert styles.check_mapping("color") == ["color"]
    with pytest.raises(ValueError, match="size"):
        styles.check_mapping(["shape", "size"])
