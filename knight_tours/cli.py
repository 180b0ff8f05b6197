from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from knight_tours.control_plane.configuration import load_config
from knight_tours.control_plane.service import TourSearchService
from knight_tours.reporting.report import ReportPrinter
from knight_tours.reporting.visualize import format_tour_grid
from knight_tours.shared.models import RepeatStats
from tour_core.colony import AgentFailedError, ConfigurationError, CycleAbortedError

JOIN_POLL_S: float = 0.5


def build_argparser() -> argparse.ArgumentParser:
    '''Command-line parser for knight-tours'''
    p = argparse.ArgumentParser(
        prog="knight-tours",
        description="Enumerate open knight's tours with an Ant Colony algorithm.",
    )
    board = p.add_argument_group("Board")
    board.add_argument("--board-size", type=int, default=None, help="Grid dimension N (default 8)")

    aco = p.add_argument_group("Colony")
    aco.add_argument("--cycles", type=int, default=None, help="Cycles per repeat (default 27000)")
    aco.add_argument("--evaporation", type=float, default=None, help="Per-cycle pheromone factor, 0..1 (default 0.75)")
    aco.add_argument("--initial-pheromone", type=float, default=None, help="Seed intensity per move (default 1e-6)")
    aco.add_argument("--seed", type=int, default=None, help="Root seed for reproducible runs")
    aco.add_argument("--repeats", type=int, default=None, help="Stop after this many repeats (default: run until Ctrl-C)")

    out = p.add_argument_group("Output")
    out.add_argument("--show-tour", action="store_true", help="Print the latest complete tour after each repeat")
    out.add_argument("--log-level", default="WARNING",
                     choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging level (default WARNING)")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    '''Entry point for knight-tours'''
    parser = build_argparser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.repeats is not None and args.repeats < 1:
        parser.error("--repeats must be ≥ 1")

    try:
        config = load_config(
            board_size=args.board_size,
            cycles_per_repeat=args.cycles,
            evaporation_factor=args.evaporation,
            initial_pheromone=args.initial_pheromone,
            seed=args.seed,
        )
        service = TourSearchService(config)
    except ConfigurationError as e:
        print(f"knight-tours: {e}", file=sys.stderr)
        return 2

    printer = ReportPrinter(config)
    service.add_sink(printer)
    if args.show_tour:
        def show_tour(stats: RepeatStats) -> None:
            tour = service.colony.last_complete_tour
            if tour is not None:
                print(format_tour_grid(tour))

        service.add_sink(show_tour)

    printer.write_heading()
    service.start(max_repeats=args.repeats)
    try:
        _wait(service)
    except (AgentFailedError, CycleAbortedError) as e:
        print(f"knight-tours: {e}", file=sys.stderr)
        return 1
    return 0


def _wait(service: TourSearchService) -> None:
    try:
        while not service.join(JOIN_POLL_S):
            pass
    except KeyboardInterrupt:
        # Ctrl-C lands on this thread; the colony finishes its current repeat.
        service.request_stop()
        service.join()


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
