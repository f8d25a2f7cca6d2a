"""Local operation commands: schema setup, settings seeding, sweeps and simulation."""

from __future__ import annotations

import argparse
import json
import sys
import time

from cortex.core.dependencies import get_container
from cortex.core.logging_config import configure_logging
from cortex.database.init_db import init_db, seed_default_settings
from cortex.schemas.events import InboundMessageEvent
from cortex.tasks.maintenance_tasks import run_sweep
from cortex.tasks.pipeline_tasks import handle_inbound_event
from cortex.utils.ids import new_id


def _print(payload) -> None:
    json.dump(payload, sys.stdout, ensure_ascii=False, indent=2, default=str)
    sys.stdout.write("\n")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cortex", description="Conversation and booking engine operations.")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create database tables.")

    seed = commands.add_parser("seed-settings", help="Write default business settings.")
    seed.add_argument("--overwrite", action="store_true", help="Replace existing values.")

    commands.add_parser("sweep", help="Run the maintenance sweep once.")

    simulate = commands.add_parser("simulate", help="Push one inbound message through the pipeline synchronously.")
    simulate.add_argument("sender", help="Sender identifier (phone number).")
    simulate.add_argument("text", help="Message text.")
    simulate.add_argument("--name", default=None, help="Display name.")
    simulate.add_argument("--message-id", default=None, help="External message id (random when omitted).")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()

    if args.command == "init-db":
        _print({"tables": init_db()})
    elif args.command == "seed-settings":
        _print({"written": seed_default_settings(overwrite=args.overwrite)})
    elif args.command == "sweep":
        _print(run_sweep())
    elif args.command == "simulate":
        event = InboundMessageEvent(
            sender_id=args.sender,
            text=args.text,
            display_name=args.name,
            external_message_id=args.message_id or f"cli-{new_id()}",
            timestamp_epoch_seconds=time.time(),
        )
        result = handle_inbound_event(event.to_payload(), container=get_container())
        _print(result)
        return 0 if result["status"] != "failed" else 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
