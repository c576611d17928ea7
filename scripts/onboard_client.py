#!/usr/bin/env python3
"""CLI script to onboard a new client.

Usage:
    uv run python scripts/onboard_client.py --name "Acme" --domain acme.com
    uv run python scripts/onboard_client.py --name "Acme" --contact ceo@acme.com --contact ops@acme.com
    uv run python scripts/onboard_client.py --name "Board" --contact a@us.com --internal-only

Registers the client in the spreadsheet, creates its running notes document
and task project, and prints the assigned client id.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Ensure project root is on sys.path so we can import src.clientops
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


async def onboard(name: str, contacts: list[str], domains: list[str], internal_only: bool) -> int:
    """Onboard the client and print the resulting record."""
    from src.clientops.bootstrap import build_components
    from src.clientops.config import get_settings
    from src.clientops.core.logging import configure_structlog

    settings = get_settings()
    configure_structlog()
    components = build_components(settings)

    record = await components.onboarding.onboard(
        name=name,
        contact_emails=contacts,
        domains=domains,
        internal_only=internal_only,
    )

    print("Client registered:")
    print(f"  ID:       {record.client_id}")
    print(f"  Name:     {record.name}")
    print(f"  Document: {record.document_id or '(not created)'}")
    print(f"  Project:  {record.task_project_id or '(not created)'}")
    print(f"  Ready:    {record.setup_complete}")
    return 0 if record.setup_complete else 1


def main() -> None:
    parser = argparse.ArgumentParser(description="Onboard a new client")
    parser.add_argument("--name", required=True, help="Client display name")
    parser.add_argument("--contact", action="append", default=[], help="Contact email (repeatable)")
    parser.add_argument("--domain", action="append", default=[], help="Email domain (repeatable)")
    parser.add_argument(
        "--internal-only",
        action="store_true",
        help="Match only when every participant is a listed contact",
    )
    args = parser.parse_args()

    if not args.contact and not args.domain:
        parser.error("at least one --contact or --domain is required")
    if args.internal_only and not args.contact:
        parser.error("--internal-only requires at least one --contact")

    sys.exit(asyncio.run(onboard(args.name, args.contact, args.domain, args.internal_only)))


if __name__ == "__main__":
    main()
