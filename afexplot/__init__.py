"""afexplot package initialization.

Fit factorial ANOVAs and linear mixed models and plot their estimated
marginal means with error bars and raw data. The public functions are
resolved lazily so that importing the package does not load matplotlib or
statsmodels until they are used.
"""

from __future__ import annotations

import importlib
from typing import Any


__version__ = "0.1.0"

__all__ = [
    "AfexPlot",
    "AfexPlotData",
    "AfexWarning",
    "AovResult",
    "MixedResult",
    "afex_plot",
    "aov_4",
    "aov_car",
    "aov_ez",
    "emmeans",
    "interaction_plot",
    "load_plot_config",
    "mixed",
    "nice",
    "oneway_plot",
]

_EXPORTS = {
    "AfexPlot": "afexplot.afex_plot",
    "AfexPlotData": "afexplot.afex_plot",
    "afex_plot": "afexplot.afex_plot",
    "interaction_plot": "afexplot.afex_plot",
    "oneway_plot": "afexplot.afex_plot",
    "AfexWarning": "afexplot.common.design",
    "load_plot_config": "afexplot.common.config",
    "AovResult": "afexplot.models.anova",
    "aov_4": "afexplot.models.anova",
    "aov_car": "afexplot.models.anova",
    "aov_ez": "afexplot.models.anova",
    "MixedResult": "afexplot.models.mixed",
    "mixed": "afexplot.models.mixed",
    "emmeans": "afexplot.models.emmeans",
    "nice": "afexplot.models.nice",
}

_SUBMODULES = {"afex_plot", "cli", "common", "core", "error_bars", "models", "plotting", "plotting_styles"}


def __getattr__(name: str) -> Any:
    """Lazily import public functions and submodules on demand."""
    if name in _EXPORTS:
        value = getattr(importlib.import_module(_EXPORTS[name]), name)
        globals()[name] = value
        return value
    if name in _SUBMODULES:
        module = importlib.import_module(f"afexplot.{name}")
        globals()[name] = module
        return module
    raise AttributeError(name)
