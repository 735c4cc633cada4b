"""Command-line entry point: ``luxor-engine simulate``."""

import argparse
import json
import logging
import sys
from typing import List, Optional

from .config.loader import load_config
from .reporting.export import export_csv, export_json, summarize
from .simulation.runner import ScenarioRunner

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="luxor-engine",
        description="Stake and reward accounting engine",
    )
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    subparsers = parser.add_subparsers(dest="command", required=True)

    simulate = subparsers.add_parser("simulate", help="Run a random scenario and check invariants")
    simulate.add_argument("--config", help="YAML config (defaults to the bundled defaults)")
    simulate.add_argument("--seed", type=int, help="Override simulation.random_seed")
    simulate.add_argument("--steps", type=int, help="Override simulation.num_steps")
    simulate.add_argument("--csv", help="Write per-step snapshots to this CSV file")
    simulate.add_argument("--json", help="Write the full run to this JSON file")
    return parser


def run_simulate(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    result = ScenarioRunner(config).run(random_seed=args.seed, num_steps=args.steps)

    if args.csv:
        export_csv(result, args.csv)
        logger.info("Wrote snapshots to %s", args.csv)
    if args.json:
        export_json(result, args.json)
        logger.info("Wrote run to %s", args.json)

    print(json.dumps(summarize(result), indent=2))
    return 1 if result.errors else 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.command == "simulate":
        return run_simulate(args)
    return 2


if __name__ == "__main__":
    sys.exit(main())
