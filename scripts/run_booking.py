"""Entry point for manual booking runs.

Search only (safe, no charge)::

    BOOKING_BEARER_TOKEN=... python scripts/run_booking.py

Confirm and immediately cancel (charges the credit line, then refunds)::

    BOOKING_BEARER_TOKEN=... python scripts/run_booking.py --mode verify --config run.toml
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from booking_flow.config.run_config import RunConfig
from booking_flow.config.settings import Settings
from booking_flow.core.logging import configure_logging
from booking_flow.workflow import BookingWorkflow, ExecutionMode, WorkflowOutcome


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the hotel booking workflow once.")
    parser.add_argument("--config", type=Path, help="TOML run configuration (rooms, guests, contact)")
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in ExecutionMode],
        help="Override the execution mode from settings",
    )
    parser.add_argument("--destination", help="Free-text destination to resolve")
    parser.add_argument("--surface", choices=["tool", "graphql"], help="Remote dialect to use")
    parser.add_argument("--output", type=Path, help="Write the outcome JSON to this file")
    return parser.parse_args(argv)


async def _run(settings: Settings, run_config: Optional[RunConfig]) -> WorkflowOutcome:
    request = (
        run_config.booking_request(settings) if run_config else settings.booking_request()
    )
    surface = settings.build_surface()
    async with settings.build_invoker() as invoker:
        workflow = BookingWorkflow.from_settings(settings, invoker, surface)
        return await workflow.run(request)


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    overrides: dict[str, object] = {}
    if args.mode:
        overrides["execution_mode"] = args.mode
    if args.destination:
        overrides["destination"] = args.destination
    if args.surface:
        overrides["api_surface"] = args.surface
    settings = Settings()

    run_config: Optional[RunConfig] = None
    if args.config:
        run_config = RunConfig.load(args.config)
        settings = run_config.apply(settings)
    # command-line flags win over the run config
    if overrides:
        settings = Settings.model_validate({**settings.model_dump(), **overrides})

    settings.ensure_directories()
    configure_logging(settings.log_level, settings.log_dir)

    if not settings.bearer_token:
        logging.error("BOOKING_BEARER_TOKEN is required")
        return 2
    if settings.execution_mode.confirms:
        logging.warning(
            "Execution mode %s will charge the account", settings.execution_mode.value
        )

    outcome = asyncio.run(_run(settings, run_config))
    rendered = json.dumps(outcome.to_dict(), indent=2)
    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(rendered)
        logging.info("Wrote outcome to %s", args.output)
    print(rendered)

    if outcome.compensation_error is not None:
        logging.error("Manual cancellation required: %s", outcome.compensation_error)
    return 0 if outcome.succeeded else 1


if __name__ == "__main__":
    sys.exit(main())
