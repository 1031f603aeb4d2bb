#!/usr/bin/env python3
"""
Checkpoint hunt server and admin commands.

  serve                 run the HTTP API (default)
  hash-secret FLAG      print the SHA-256 hex stored for a flag
  load-mission FILE     seed checkpoints, flags, teams and principals
  event start|pause|stop
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from checkpoint_hunt.config import HuntConfig
from checkpoint_hunt.errors import HuntError
from checkpoint_hunt.hunt import HuntSystem
from checkpoint_hunt.secret_validator import hash_secret

logger = logging.getLogger("checkpoint_hunt.app")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Checkpoint hunt scoring service",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--web-port",
        type=int,
        default=int(os.getenv("WEB_PORT", "8081")),
        help="HTTP API port (env: WEB_PORT)"
    )
    parser.add_argument(
        "--db",
        default=os.getenv("DB_PATH", "hunt.db"),
        help="SQLite database file path (env: DB_PATH)"
    )
    parser.add_argument(
        "--config",
        default=os.getenv("CONFIG_PATH", "hunt_config.json"),
        help="Configuration file path (env: CONFIG_PATH)"
    )
    parser.add_argument(
        "--host",
        default=os.getenv("HOST", "0.0.0.0"),
        help="Host to bind the server to (env: HOST)"
    )

    commands = parser.add_subparsers(dest="command")
    commands.add_parser("serve", help="Run the HTTP API")

    hash_cmd = commands.add_parser("hash-secret", help="Print the stored hash of a flag")
    hash_cmd.add_argument("flag")

    mission_cmd = commands.add_parser("load-mission", help="Load a mission JSON file")
    mission_cmd.add_argument("file")

    event_cmd = commands.add_parser("event", help="Change the event phase")
    event_cmd.add_argument("action", choices=["start", "pause", "stop"])

    return parser


async def run(args: argparse.Namespace, config: HuntConfig) -> int:
    system = HuntSystem(
        host=args.host,
        web_port=args.web_port,
        db_path=args.db,
        config=config,
    )
    await system.init_db()

    if args.command == "load-mission":
        counts = await system.load_mission(args.file)
        print(
            f"Loaded {counts['checkpoints']} checkpoints, {counts['secrets']} flags, "
            f"{counts['teams']} teams, {counts['principals']} principals"
        )
        return 0

    if args.command == "event":
        actions = {
            "start": system.events.start_event,
            "pause": system.events.pause_event,
            "stop": system.events.stop_event,
        }
        await actions[args.action]()
        phase = await system.events.current()
        print(f"Event phase: {phase.current_phase}")
        return 0

    await system.run_server()
    return 0


def main() -> int:
    """Main function with command line interface."""
    args = build_parser().parse_args()

    if args.command == "hash-secret":
        print(hash_secret(args.flag))
        return 0

    config_path = Path(args.config)
    if config_path.exists() and not config_path.is_file():
        print(f"Error: {args.config} exists but is not a file", file=sys.stderr)
        return 1

    config = HuntConfig(args.config)
    logging.basicConfig(
        level=getattr(logging, str(config.get("logging", "level")).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return asyncio.run(run(args, config))
    except KeyboardInterrupt:
        logger.info("Server interrupted")
        return 0
    except (HuntError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
