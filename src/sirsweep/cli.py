#!/usr/bin/env python3
# src/sirsweep/cli.py - command-line runner for R0 sweeps

import argparse
import logging
import os
import sys
import time
from pathlib import Path
from typing import List, Optional

from .config import SweepConfig, load_config
from .errors import InvalidInput
from .integrator import METHODS
from .results import summarize
from .sweep import ScenarioRunner

logger = logging.getLogger(__name__)

LOG_FORMAT = '[ %(asctime)s %(levelname)s %(process)d ] %(message)s'

# argparse dest -> SweepConfig field
OVERRIDES = ("r0_values", "infectious_period", "initial_infected", "days",
             "atol", "rtol", "max_step", "initial_step", "method", "workers")


def configure_logging(verbosity: int = 0):
    default = os.environ.get('PYTHONLOGLEVEL', 'WARNING').upper()
    level = {0: default, 1: 'INFO'}.get(verbosity, 'DEBUG')
    logging.basicConfig(format=LOG_FORMAT, datefmt="%d %H:%M:%S", level=level, stream=sys.stderr)
    logging.getLogger('matplotlib').setLevel(logging.CRITICAL)
    logging.captureWarnings(True)


def scenario_options() -> argparse.ArgumentParser:
    """Options shared by every sub-command"""
    p = argparse.ArgumentParser(add_help=False)
    p.add_argument("--config", metavar="PATH",
                   help="JSON sweep configuration; explicit flags override it")
    p.add_argument("--r0", dest="r0_values", type=float, action="append", metavar="R0",
                   help="Basic reproduction number, repeat for a sweep (default: 1 2 3 4 5)")
    p.add_argument("--infectious-period", type=float, metavar="DAYS",
                   help="Mean infectious period in days (default: 14)")
    p.add_argument("--days", type=int, metavar="DAYS",
                   help="Observe days 1..DAYS (default: 365)")
    p.add_argument("--i0", dest="initial_infected", type=float, metavar="FRACTION",
                   help="Initial infectious fraction (default: 0.01)")
    p.add_argument("--atol", type=float, help="Absolute tolerance (default: 1e-6)")
    p.add_argument("--rtol", type=float, help="Relative tolerance (default: 1e-6)")
    p.add_argument("--max-step", type=float, metavar="DAYS", help="Largest internal step")
    p.add_argument("--initial-step", type=float, metavar="DAYS", help="First internal step")
    p.add_argument("--method", choices=METHODS, help="Stepping formula (default: auto)")
    p.add_argument("--workers", type=int, help="Worker processes (default: 1)")
    p.add_argument("-v", "--verbose", action="count", default=0,
                   help="-v for progress, -vv for solver detail (on stderr)")
    return p


def build_config(args: argparse.Namespace) -> SweepConfig:
    values = load_config(args.config).to_dict() if args.config else {}
    for key in OVERRIDES:
        value = getattr(args, key, None)
        if value is not None:
            values[key] = value
    return SweepConfig.from_dict(values)


def build_parser() -> argparse.ArgumentParser:
    parent = scenario_options()
    p = argparse.ArgumentParser(prog="sirsweep", description="Deterministic SIR scenario sweeps")
    sub = p.add_subparsers(dest="cmd", required=True)

    # ---------- simulate ----------
    sim_p = sub.add_parser("simulate", parents=[parent],
                           help="Print the long-form result table (scenario_id, time, compartment, value)")
    sim_p.add_argument("--sep", default=",", help="Field delimiter (default: ',')")

    # ---------- summary ----------
    sum_p = sub.add_parser("summary", parents=[parent],
                           help="Print peak day, peak prevalence, final size and duration per scenario")
    sum_p.add_argument("--sep", default=",", help="Field delimiter (default: ',')")

    # ---------- plot ----------
    plot_p = sub.add_parser("plot", parents=[parent], help="Plot one compartment across scenarios")
    plot_p.add_argument("--compartment", choices=("S", "I", "R"), default="I")
    plot_p.add_argument("--out", default="figs/sweep.png", metavar="PATH",
                        help="Output PNG path (default: figs/sweep.png)")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    configure_logging(args.verbose)

    try:
        cfg = build_config(args)
        integrator_config = cfg.integrator_config()
    except (InvalidInput, OSError) as exc:
        p.error(str(exc))
    logger.info("sweep configuration:\n%s", cfg.describe())

    t0 = time.perf_counter()
    try:
        table, failures = ScenarioRunner(integrator_config, workers=cfg.workers).run(cfg.scenarios())
    except InvalidInput as exc:
        p.error(str(exc))

    if args.cmd == "simulate":
        table.to_csv(sys.stdout, sep=args.sep)

    elif args.cmd == "summary":
        summarize(table).to_csv(sys.stdout, sep=args.sep, index=False)

    elif args.cmd == "plot":
        import matplotlib
        matplotlib.use("Agg")
        from .plotting import plot_compartment

        out = Path(args.out)
        out.parent.mkdir(parents=True, exist_ok=True)
        plot_compartment(table, compartment=args.compartment, save_path=str(out))
        print("Plot ->", out, file=sys.stderr)

    for scenario_id, error in failures:
        print(f"{scenario_id}: {type(error).__name__}: {error}", file=sys.stderr)

    logger.info("Done in %.2fs", time.perf_counter() - t0)
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
