#!/usr/bin/env python3
"""CLI script to run one workflow sweep from an external scheduler.

Usage:
    uv run python scripts/run_sweep.py sent
    uv run python scripts/run_sweep.py drafts
    uv run python scripts/run_sweep.py agenda
    uv run python scripts/run_sweep.py agenda --ignore-business-hours
    uv run python scripts/run_sweep.py outlook

Each invocation is independent; all state is read from and written to the
client spreadsheet. The agenda sweep does nothing outside business hours
unless told otherwise. Exits non-zero if any item in the sweep errored.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone

# Ensure project root is on sys.path so we can import src.clientops
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))

SWEEPS = ("sent", "drafts", "agenda", "outlook")


async def run(sweep: str, ignore_business_hours: bool) -> int:
    """Build the components, run the sweep, and print its report."""
    import structlog

    from src.clientops.bootstrap import build_components
    from src.clientops.config import get_settings
    from src.clientops.core.logging import configure_structlog
    from src.clientops.core.schedule import within_business_hours

    settings = get_settings()
    configure_structlog()
    log = structlog.get_logger("run_sweep")

    components = build_components(settings)
    config = components.workflow_config
    orchestrator = components.orchestrator
    now = datetime.now(timezone.utc)

    if sweep == "sent":
        report = await orchestrator.sweep_sent(now)
    elif sweep == "drafts":
        report = await orchestrator.retry_pending_drafts()
    elif sweep == "agenda":
        if not ignore_business_hours and not within_business_hours(now, config.business_hours):
            log.info("agenda_sweep_skipped", reason="outside_business_hours")
            print("agenda: skipped (outside business hours)")
            return 0
        report = await orchestrator.run_agenda_sweep(now)
    else:
        report = await components.outlook_composer.send_outlook(
            now, now + timedelta(days=config.outlook_window_days)
        )

    print(
        f"{report.sweep}: scanned={report.scanned} advanced={report.advanced} "
        f"skipped={report.skipped} pending={report.pending} errors={report.errors}"
    )
    return 1 if report.errors else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Run one client meeting workflow sweep")
    parser.add_argument("sweep", choices=SWEEPS, help="Which sweep to run")
    parser.add_argument(
        "--ignore-business-hours",
        action="store_true",
        help="Run the agenda sweep even outside configured business hours",
    )
    args = parser.parse_args()

    sys.exit(asyncio.run(run(args.sweep, args.ignore_business_hours)))


if __name__ == "__main__":
    main()
