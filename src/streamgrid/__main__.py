"""Entry point for replaying multi-stream traces."""

import argparse
import asyncio
import os
import sys
from collections.abc import Mapping, MutableMapping
from typing import Any

import structlog

from streamgrid.config.loader import load_config
from streamgrid.replay import TraceReplay, load_trace
from streamgrid.scheduler import run_tick_loop

EventDict = MutableMapping[str, Any]
ProcessorReturn = Mapping[str, Any] | str | bytes | bytearray | tuple[Any, ...]

LOG_LEVELS = {
    "debug": 10,
    "info": 20,
    "warn": 30,
    "warning": 30,
    "error": 40,
    "critical": 50,
}


def make_level_filter(min_level: str) -> structlog.types.Processor:
    """Filter log messages below min_level.

    Args:
        min_level: Minimum log level to pass through (debug, info, warn, error).

    Returns:
        Processor function for structlog pipeline.
    """
    min_level_num = LOG_LEVELS.get(min_level.lower(), 20)

    def level_filter(
        logger: structlog.types.WrappedLogger,
        method_name: str,
        event_dict: EventDict,
    ) -> ProcessorReturn:
        level_num = LOG_LEVELS.get(method_name, 20)
        if level_num < min_level_num:
            raise structlog.DropEvent
        return event_dict

    return level_filter


def setup_logging(level: str = "info") -> None:
    """Configure structlog for the application.

    Uses console output for TTY, JSON for non-TTY.

    Args:
        level: Minimum log level to output.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            make_level_filter(level),
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            (
                structlog.dev.ConsoleRenderer()
                if sys.stderr.isatty()
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.BoundLogger,
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


def parse_args() -> argparse.Namespace:
    """Parse command line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        description="Replay a multi-stream telemetry trace through the quality and layout coordinator"
    )
    parser.add_argument(
        "--trace",
        type=str,
        required=True,
        help="Path to a YAML trace (container, slots, ticks)",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to config file (default: auto-discover, else built-in defaults)",
    )
    parser.add_argument(
        "--one-shot",
        action="store_true",
        help="Replay only the first tick",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=0.0,
        help="Seconds between ticks (default: 0)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warn", "error"],
        default=os.environ.get("SG_LOG_LEVEL", "info").lower(),
        help="Log level (default: info, or SG_LOG_LEVEL env var)",
    )
    return parser.parse_args()


async def replay(args: argparse.Namespace) -> int:
    """Load config and trace, then run every tick.

    Returns:
        Number of ticks completed.
    """
    config = load_config(args.config)
    trace = load_trace(args.trace)
    session = TraceReplay(trace, config)
    runner = await run_tick_loop(
        session.coordinator,
        session.next_tick,
        interval=args.interval,
        one_shot=args.one_shot,
    )
    return runner.ticks


def main() -> None:
    """Main entry point for streamgrid."""
    args = parse_args()
    setup_logging(args.log_level)

    logger = structlog.get_logger()
    logger.info("starting replay", trace=args.trace, interval=args.interval)

    try:
        ticks = asyncio.run(replay(args))
        logger.info("replay finished", ticks=ticks)
    except KeyboardInterrupt:
        logger.info("replay interrupted by user")
    except Exception as e:
        logger.error("replay failed", error=str(e), exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
