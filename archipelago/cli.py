"""
Command-line interface for archipelago
"""

import argparse
import logging
import sys

from archipelago.config import load_config
from archipelago.logging_utils import setup_logging
from archipelago.meta import MetaDriver
from archipelago.onemax import onemax_factory
from archipelago.selection import EmigrantSelection
from archipelago.topology import TopologyKind

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_REGISTRATION_TIMEOUT = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        description="archipelago - island model runner (OneMax reference islands)"
    )

    parser.add_argument("--config", "-c", help="Path to configuration file (YAML)", default=None)

    parser.add_argument(
        "--mode",
        "-m",
        help="Run islands in-process (meta) or as Ray actors (distributed)",
        choices=["meta", "distributed"],
        default="meta",
    )

    parser.add_argument(
        "--iterations", "-i", help="Maximum number of iterations", type=int, default=None
    )

    parser.add_argument("--islands", "-n", help="Number of islands", type=int, default=None)

    parser.add_argument(
        "--topology",
        help="Migration topology",
        choices=[t.value for t in TopologyKind],
        default=None,
    )

    parser.add_argument(
        "--emigrant-selection",
        help="How emigrants are chosen",
        choices=[s.value for s in EmigrantSelection],
        default=None,
    )

    parser.add_argument("--seed", help="Random seed", type=int, default=None)

    parser.add_argument(
        "--log-level",
        "-l",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
    )

    return parser.parse_args(argv)


def run_meta(config) -> int:
    driver = MetaDriver(config, onemax_factory(config))
    driver.generate_solution()

    print("\nSearch complete!")
    print(f"Iterations: {driver.iteration}, migrations: {driver.migrations}")
    for worker in driver.workers:
        info = worker.state_info()
        print(f"  {worker.island_id}: best fitness {info.best_fitness} after {info.generation} generations")
    return EXIT_OK


def run_distributed(config) -> int:
    from archipelago.utils.ray_backend import RayIslandFleet

    fleet = RayIslandFleet(config, onemax_factory(config))
    try:
        results = fleet.run(config.max_iterations)
        if results is None:
            print("Error: not all islands registered in time")
            return EXIT_REGISTRATION_TIMEOUT

        print("\nSearch complete!")
        for island_id, info in results.items():
            if info is None:
                print(f"  {island_id}: did not register")
            else:
                print(
                    f"  {island_id}: {info['state']}, best fitness {info['best_fitness']} "
                    f"after {info['generation']} generations"
                )
        print(f"Aggregated best solutions: {len(fleet.best_solutions())}")
        return EXIT_OK
    finally:
        fleet.shutdown()


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point

    Returns:
        Exit code
    """
    args = parse_args(argv)

    try:
        config = load_config(args.config)

        # Apply command-line overrides
        if args.iterations is not None:
            config.max_iterations = args.iterations
        if args.islands is not None:
            config.islands.num_clients = args.islands
        if args.topology:
            config.islands.topology = args.topology
        if args.emigrant_selection:
            config.islands.emigrant_selection = args.emigrant_selection
        if args.seed is not None:
            config.random_seed = args.seed
        if args.log_level:
            config.log_level = args.log_level

        setup_logging(config.log_level, config.log_dir)

        if args.mode == "distributed":
            return run_distributed(config)
        return run_meta(config)

    except Exception as e:
        print(f"Error: {e!s}")
        logger.debug("Run failed", exc_info=True)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
