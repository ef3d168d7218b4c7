"""Common helper modules shared across model fitting and plotting."""

from __future__ import annotations

from . import config, design  # type: ignore F401
from .design import AfexWarning

__all__ = ["AfexWarning", "config", "design"]
