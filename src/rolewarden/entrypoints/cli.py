"""Command line interface.

    rolewarden resources {plan,apply,validate} --config-dir DIR --subscription-id ID
    rolewarden groups {plan,apply,validate} --config-dir DIR
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import TextIO

import structlog

from rolewarden import __version__
from rolewarden.config import get_settings
from rolewarden.core.exceptions import RolewardenError
from rolewarden.services import Mode, RunOptions, load_config, reconcile

from .report import render_header, render_intro, render_plan, render_summary

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_ERROR = 1


def configure_logging(level: str) -> None:
    """Route structlog events to stderr at the given level."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rolewarden",
        description="Reconcile Azure PIM role grants and policies with a config directory.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    modes = parser.add_subparsers(dest="mode", required=True)

    for mode, help_text in (
        (Mode.RESOURCES, "Azure resource role assignments and eligibilities"),
        (Mode.GROUPS, "PIM for Groups memberships and ownerships"),
    ):
        mode_parser = modes.add_parser(mode.value, help=help_text)
        commands = mode_parser.add_subparsers(dest="command", required=True)
        for command, command_help in (
            ("plan", "show the changes that apply would make"),
            ("apply", "make the changes"),
            ("validate", "validate the config directory without contacting Azure"),
        ):
            command_parser = commands.add_parser(command, help=command_help)
            command_parser.add_argument(
                "--config-dir", type=Path, required=True, help="config directory"
            )
            if mode is Mode.RESOURCES:
                command_parser.add_argument(
                    "--subscription-id", required=True, help="subscription to reconcile"
                )
    return parser


async def run_command(args: argparse.Namespace, out: TextIO) -> None:
    """Run a parsed command, writing the report to `out`."""
    options = RunOptions(
        mode=Mode(args.mode),
        config_dir=args.config_dir,
        subscription_id=getattr(args, "subscription_id", None),
        plan_only=args.command != "apply",
    )
    loaded = load_config(options)

    print(
        render_header(
            str(options.config_dir),
            options.mode.value,
            options.scope,
            options.plan_only,
            loaded.warnings,
        ),
        file=out,
    )

    if args.command == "validate":
        print("\nConfiguration is valid.", file=out)
        return

    result = await reconcile(options, loaded)
    managed_groups = options.mode is Mode.GROUPS

    print(f"\n{render_intro(result.plan, options.plan_only)}\n", file=out)
    if not result.plan.is_empty:
        print(render_plan(result.plan, managed_groups=managed_groups), file=out)
    if result.summary is not None:
        print(f"\n{render_summary(result.summary)}", file=out)


def main(argv: Sequence[str] | None = None, out: TextIO | None = None) -> int:
    """Entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)
    configure_logging(get_settings().log_level)
    out = out or sys.stdout

    try:
        asyncio.run(run_command(args, out))
    except RolewardenError as e:
        logger.error("run_failed", error_type=type(e).__name__, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    return EXIT_OK
