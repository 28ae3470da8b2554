"""
Command-line interface for triforge.

    triforge [-d] [-c PATH] dev       develop with watches, dev servers and restarts
    triforge [-d] [-c PATH] preview   build without minification and run once
    triforge [-d] [-c PATH] start     build for production and run once
    triforge [-d] [-c PATH] pack      build for production and package the app
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from ..config import get_config, set_config_path, set_mode_override
from ..orchestration import Orchestrator
from ..validation import TriforgeError, handle_cli_error

# --- Logging Setup ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)-5.5s] %(name)s:%(filename)s:%(lineno)d\t %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)

# Command name -> running mode
COMMAND_MODES = {
    "dev": "development",
    "preview": "preview",
    "start": "production",
    "pack": "production",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="triforge",
        description="Build, run and package multi-process desktop applications.",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Verbose logging and full error details (also enabled by the DEBUG environment variable).",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        help="Path to triforge.toml. Defaults to searching from the current directory upwards.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("dev", help="Run in development mode with watches and restarts.")
    subparsers.add_parser("preview", help="Build in preview mode and run the app.")
    subparsers.add_parser("start", help="Build in production mode and run the app.")
    subparsers.add_parser("pack", help="Build in production mode and package the app.")
    return parser


async def run_command(orchestrator: Orchestrator, command: str) -> int:
    """Run one command on an initialized orchestrator and return the exit status."""
    if command == "pack":
        await orchestrator.pack()
        return 0
    return await orchestrator.run()


def main_cli(argv: Optional[List[str]] = None) -> None:
    """
    Main command-line interface.

    Raises:
        SystemExit: Always, with 0 on a clean shutdown and 1 on any failure
    """
    args = build_parser().parse_args(argv)
    debug = args.debug or bool(os.environ.get("DEBUG"))
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)

    mode = COMMAND_MODES[args.command]
    set_config_path(args.config)
    set_mode_override(mode)

    try:
        project = get_config()
        orchestrator = Orchestrator(project, debug=debug, interactive=sys.stdin.isatty())
        orchestrator.initialize()
    except TriforgeError as e:
        handle_cli_error(error=e, context="initialization", exit_code=1, debug=debug, logger=logger)

    try:
        exit_code = asyncio.run(run_command(orchestrator, args.command))
    except TriforgeError as e:
        handle_cli_error(error=e, context=args.command, exit_code=1, debug=debug, logger=logger)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        exit_code = 0

    sys.exit(exit_code)


if __name__ == "__main__":
    main_cli()
