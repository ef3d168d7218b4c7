import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402
import pytest  # noqa: E402


CONDITIONS = ["a", "b", "c"]


@pytest.fixture(autouse=True)
def _close_figures():
    yield
    plt.close("all")


@pytest.fixture
def mixed_design_data():
    """Long data: 12 ids in two groups, three within conditions, one row per cell."""
    rng = np.random.default_rng(2024)
    rows = []
    for subject in range(12):
        group = "control" if subject < 6 else "treatment"
        base = rng.normal(0.0, 1.0)
        slope = 0.8 + (0.6 if group == "treatment" else 0.0)
        for index, cond in enumerate(CONDITIONS):
            rows.append(
                {
                    "id": f"s{subject:02d}",
                    "group": group,
                    "cond": cond,
                    "rt": 10.0 + base + slope * index + rng.normal(0.0, 0.5),
                }
            )
    return pd.DataFrame(rows)


@pytest.fixture
def between_data():
    """Unbalanced two-factor between-subjects data, one row per id."""
    rng = np.random.default_rng(7)
    rows = []
    counter = 0
    for a_level, b_level, n_cell in [("a1", "b1", 5), ("a1", "b2", 6), ("a2", "b1", 7), ("a2", "b2", 5)]:
        shift = (1.0 if a_level == "a2" else 0.0) + (0.5 if b_level == "b2" else 0.0)
        for _ in range(n_cell):
            rows.append(
                {
                    "id": counter,
                    "a": a_level,
                    "b": b_level,
                    "y": 3.0 + shift + rng.normal(0.0, 1.0),
                }
            )
            counter += 1
    return pd.DataFrame(rows)
