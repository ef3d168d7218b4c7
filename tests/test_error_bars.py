#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest
from scipy import stats

import afexplot.error_bars as bars


def test_normalize_error_type_aliases():
    assert bars.normalize_error_type("between") == "mean"
    assert bars.normalize_error_type("CMO") == "within"
    assert bars.normalize_error_type("none") == "none"
    with pytest.raises(ValueError, match="error must be one of"):
        bars.normalize_error_type("sd")


def test_mean_error_ci_and_se():
    frame = pd.DataFrame({"cond": ["a"] * 4 + ["b"] * 3, "y": [1.0, 2.0, 3.0, 4.0, 2.0, 2.5, 3.0]})
    summary = bars.mean_error(frame, "y", ["cond"], level=0.95, ci=True).set_index("cond")
    se_a = np.std([1.0, 2.0, 3.0, 4.0], ddof=1) / 2
    assert summary.loc["a", "n"] == 4
    assert summary.loc["a", "half_width"] == pytest.approx(se_a * stats.t.ppf(0.975, 3))

    se_only = bars.mean_error(frame, "y", ["cond"], ci=False).set_index("cond")
    assert se_only.loc["a", "half_width"] == pytest.approx(se_a)


def test_within_error_removes_between_id_variance():
    # each id is an offset of the same profile: no within-id noise
    rows = []
    for subject, offset in enumerate([0.0, 5.0, -3.0, 10.0]):
        for cond, effect in (("a", 0.0), ("b", 1.0), ("c", 2.5)):
            rows.append({"id": subject, "cond": cond, "y": offset + effect})
    frame = pd.DataFrame(rows)
    summary = bars.within_error(frame, "id", "y", ["cond"])
    assert np.allclose(summary["half_width"], 0.0)

    between_only = bars.mean_error(frame, "y", ["cond"])
    assert (between_only["half_width"] > 1.0).all()


def test_within_error_morey_correction_and_incomplete_ids():
    rng = np.random.default_rng(3)
    rows = []
    for subject in range(8):
        for cond in ("a", "b"):
            rows.append({"id": subject, "group": "g1" if subject < 4 else "g2", "cond": cond, "y": rng.normal()})
    frame = pd.DataFrame(rows)
    incomplete = frame[~((frame["id"] == 0) & (frame["cond"] == "b"))]

    summary = bars.within_error(incomplete, "id", "y", ["cond"], ["group"], ci=False)
    assert summary.set_index(["group", "cond"]).loc[("g1", "a"), "n"] == 3

    complete = incomplete[incomplete["id"] != 0].copy()
    id_mean = complete.groupby("id")["y"].transform("mean")
    group_mean = complete.groupby("group")["y"].transform("mean")
    complete["norm"] = complete["y"] - id_mean + group_mean
    cell = complete[(complete["group"] == "g2") & (complete["cond"] == "b")]["norm"]
    expected = cell.std(ddof=1) / np.sqrt(len(cell)) * np.sqrt(2.0)
    got = summary.set_index(["group", "cond"]).loc[("g2", "b"), "half_width"]
    assert got == pytest.approx(expected)


def test_model_error_uses_se_without_ci():
    means = pd.DataFrame({"emmean": [1.0, 2.0], "SE": [0.1, 0.2], "lower": [0.5, 1.5], "upper": [1.5, 2.5]})
    kept = bars.model_error(means, ci=True)
    assert kept["lower"].tolist() == [0.5, 1.5]
    se_bars = bars.model_error(means, ci=False)
    assert se_bars["lower"].tolist() == pytest.approx([0.9, 1.8])
    assert se_bars["upper"].tolist() == pytest.approx([1.1, 2.2])
