#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Command line entrypoint: fit ANOVAs and mixed models from CSV files and plot them.

Subcommands::

    afexplot anova data.csv --id id --dv rt --between group --within cond
    afexplot mixed data.csv "rt ~ cond * group" --groups id --method PB
    afexplot plot data.csv --id id --dv rt --within cond --x cond -o plot.pdf
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

import pandas as pd

from .common.config import load_plot_config
from .plotting import apply_default_style, style_from_config
from .plotting_styles import parse_color_overrides


def _split(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("data", help="CSV file with long-format data.")
    parser.add_argument("--loglevel", default="INFO")


def _add_design(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--id", required=True, help="Participant / unit id column.")
    parser.add_argument("--dv", required=True, help="Dependent variable column.")
    parser.add_argument("--between", default=None, help="Comma-separated between-subjects factors.")
    parser.add_argument("--within", default=None, help="Comma-separated within-subjects factors.")
    parser.add_argument("--observed", default=None, help="Comma-separated observed (measured) factors.")
    parser.add_argument(
        "--fun_aggregate",
        default=None,
        help="Aggregation for repeated observations per cell (e.g. 'mean', 'median').",
    )


def build_arg_parser() -> argparse.ArgumentParser:
    """CLI argument builder with ``anova``, ``mixed`` and ``plot`` subcommands."""
    parser = argparse.ArgumentParser(
        prog="afexplot",
        description="Fit factorial ANOVAs or mixed models and plot marginal means.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    anova_parser = subparsers.add_parser("anova", help="Fit a between/within ANOVA and print the table.")
    _add_common(anova_parser)
    _add_design(anova_parser)
    anova_parser.add_argument("--correction", choices=["GG", "HF", "none"], default="GG")
    anova_parser.add_argument("--es", choices=["ges", "pes", "none"], default="ges")
    anova_parser.add_argument("--output", default=None, help="Optional CSV path for the numeric table.")

    mixed_parser = subparsers.add_parser("mixed", help="Fit a linear mixed model and test fixed effects.")
    _add_common(mixed_parser)
    mixed_parser.add_argument("formula", help="Fixed-effects formula, e.g. 'rt ~ cond * group'.")
    mixed_parser.add_argument("--groups", required=True, help="Random-effects grouping column.")
    mixed_parser.add_argument("--re_formula", default="1", help="Random-effects formula, e.g. '~cond'.")
    mixed_parser.add_argument("--method", choices=["LRT", "PB"], default="LRT")
    mixed_parser.add_argument("--nsim", type=int, default=1000)
    mixed_parser.add_argument("--seed", type=int, default=None)
    mixed_parser.add_argument("--output", default=None, help="Optional CSV path for the numeric table.")

    plot_parser = subparsers.add_parser("plot", help="Fit an ANOVA and save an afex_plot figure.")
    _add_common(plot_parser)
    _add_design(plot_parser)
    plot_parser.add_argument("--x", required=True, help="Comma-separated x-axis factor(s).")
    plot_parser.add_argument("--trace", default=None, help="Comma-separated trace factor(s).")
    plot_parser.add_argument("--panel", default=None, help="Comma-separated panel factor(s).")
    plot_parser.add_argument(
        "--error",
        choices=["model", "mean", "between", "within", "CMO", "none"],
        default="model",
    )
    plot_parser.add_argument("--data_geom", default="point", help="Comma-separated raw-data geoms.")
    plot_parser.add_argument("--mapping", default=None, help="Comma-separated aesthetics for the trace.")
    plot_parser.add_argument("--dodge", type=float, default=0.5)
    plot_parser.add_argument("--data_alpha", type=float, default=0.5)
    plot_parser.add_argument("--dv_label", default=None)
    plot_parser.add_argument("--legend_title", default=None)
    plot_parser.add_argument("-o", "--output", required=True, help="Figure path; format from extension.")
    plot_parser.add_argument("--config", default=None, help="YAML plot config (size, dpi, palette, fonts).")
    plot_parser.add_argument(
        "--colors",
        default=None,
        help="Colour overrides as 'data:#777777'.",
    )
    plot_parser.add_argument("--width", type=float, default=None)
    plot_parser.add_argument("--height", type=float, default=None)
    plot_parser.add_argument("--dpi", type=int, default=None)
    return parser


def _run_anova(args: argparse.Namespace, data: pd.DataFrame) -> None:
    from .models.anova import aov_ez
    from .models.nice import nice

    result = aov_ez(
        data,
        id=args.id,
        dv=args.dv,
        between=_split(args.between),
        within=_split(args.within),
        observed=_split(args.observed),
        fun_aggregate=args.fun_aggregate,
        correction=args.correction,
        es=args.es,
    )
    print(nice(result).to_string(index=False))
    if args.output:
        result.anova_table.to_csv(args.output)
        logging.info("Wrote %s", args.output)


def _run_mixed(args: argparse.Namespace, data: pd.DataFrame) -> None:
    from .models.mixed import mixed
    from .models.nice import nice

    result = mixed(
        args.formula,
        data,
        groups=args.groups,
        re_formula=args.re_formula,
        method=args.method,
        nsim=args.nsim,
        seed=args.seed,
    )
    print(nice(result).to_string(index=False))
    if args.output:
        result.anova_table.to_csv(args.output)
        logging.info("Wrote %s", args.output)


def _run_plot(args: argparse.Namespace, data: pd.DataFrame) -> None:
    from .afex_plot import afex_plot
    from .models.anova import aov_ez

    config = load_plot_config(args.config)
    overrides = parse_color_overrides(args.colors or config.get("colors"))
    unknown = sorted(set(overrides) - {"data"})
    if unknown:
        logging.warning("Ignoring unknown colour key(s): %s", ", ".join(unknown))
    apply_default_style(style_from_config(config))

    result = aov_ez(
        data,
        id=args.id,
        dv=args.dv,
        between=_split(args.between),
        within=_split(args.within),
        observed=_split(args.observed),
        fun_aggregate=args.fun_aggregate,
    )
    mapping = _split(args.mapping) if args.mapping is not None else None
    plot = afex_plot(
        result,
        x=_split(args.x),
        trace=_split(args.trace),
        panel=_split(args.panel),
        mapping=mapping,
        error=args.error,
        data_geom=_split(args.data_geom),
        data_alpha=args.data_alpha,
        dodge=args.dodge,
        dv_label=args.dv_label,
        legend_title=args.legend_title,
        palette=config["palette"],
        data_color=overrides.get("data", config["data_color"]),
    )
    plot.save(
        args.output,
        width=args.width if args.width is not None else config["width"],
        height=args.height if args.height is not None else config["height"],
        units=config["units"],
        dpi=args.dpi if args.dpi is not None else config["dpi"],
    )
    plot.close()


_COMMANDS = {"anova": _run_anova, "mixed": _run_mixed, "plot": _run_plot}


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entrypoint."""
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.loglevel.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        data = pd.read_csv(args.data)
    except FileNotFoundError:
        parser.error(f"data file not found: {args.data}")
    try:
        _COMMANDS[args.command](args, data)
    except ValueError as exc:
        parser.error(str(exc))
    return 0


__all__ = ["build_arg_parser", "main"]

if __name__ == "__main__":
    sys.exit(main())
