"""Model fitting (ANOVA, mixed models), marginal means and table formatting."""

from __future__ import annotations

from .anova import AovResult, aov_4, aov_car, aov_ez
from .emmeans import emmeans
from .mixed import MixedResult, mixed
from .nice import nice


__all__ = ["AovResult", "MixedResult", "aov_4", "aov_car", "aov_ez", "emmeans", "mixed", "nice"]
