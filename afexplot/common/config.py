"""Lightweight config loader for plot export and style defaults.

Loads built-in defaults, then an optional YAML file (``configs/afexplot.yml``,
``$AFEXPLOT_CONFIG`` or a user-specified path), then environment variables.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("configs/afexplot.yml")

DEFAULTS: Dict[str, Any] = {
    "dpi": 300,
    # None keeps the size computed from the panel grid
    "width": None,
    "height": None,
    "units": "in",
    "palette": "tab10",
    "data_color": "darkgrey",
    "font_size": 12,
    "font_family": "serif",
}

# Environment variable -> (config key, converter)
_ENV_OVERRIDES = {
    "AFEXPLOT_DPI": ("dpi", int),
    "AFEXPLOT_WIDTH": ("width", float),
    "AFEXPLOT_HEIGHT": ("height", float),
    "AFEXPLOT_UNITS": ("units", str),
    "AFEXPLOT_PALETTE": ("palette", str),
    "AFEXPLOT_DATA_COLOR": ("data_color", str),
    "AFEXPLOT_FONT_SIZE": ("font_size", int),
}


def load_yaml(path: Path) -> Dict[str, Any]:
    """
    Read a YAML mapping from disk.

    :param path: Path to a YAML file.
    :returns: Parsed mapping, or an empty dict if the file does not exist.
    :raises ValueError: if the file does not contain a mapping.
    """
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as file_handle:
        loaded = yaml.safe_load(file_handle) or {}
    if not isinstance(loaded, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(loaded).__name__}.")
    return loaded


def load_plot_config(yaml_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Resolve plot settings.

    Precedence: environment variables override YAML, YAML overrides built-in
    defaults. Unknown YAML keys are kept so callers can carry extra settings
    (e.g. ``colors``) through.

    :param yaml_path: Optional path to a YAML config file. When omitted,
        ``$AFEXPLOT_CONFIG`` or ``configs/afexplot.yml`` is used if present.
    :returns: Mapping with at least the keys of :data:`DEFAULTS`.
    """
    if yaml_path:
        ypath = Path(yaml_path)
        if not ypath.exists():
            raise ValueError(f"Config file not found: {ypath}")
    else:
        ypath = Path(os.getenv("AFEXPLOT_CONFIG", str(DEFAULT_CONFIG_PATH)))
    cfg = dict(DEFAULTS)
    ycfg = load_yaml(ypath)
    if ycfg:
        logger.debug("Loaded plot config from %s", ypath)
    cfg.update(ycfg)
    for env_name, (key, convert) in _ENV_OVERRIDES.items():
        raw = os.getenv(env_name)
        if raw is None or raw == "":
            continue
        try:
            cfg[key] = convert(raw)
        except ValueError as exc:
            raise ValueError(f"Invalid value for {env_name}: {raw!r}") from exc
    return cfg


__all__ = ["DEFAULTS", "load_plot_config", "load_yaml"]
