"""Interactive CLI for the charter agent."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys

import yaml

from charter_agent.config.loader import load_config
from charter_agent.orchestration.errors import CharterSessionError
from charter_agent.orchestration.runtime import CharterRuntime


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Guided charter agent interactive demo")
    p.add_argument("--config", "-c", required=True, help="Path to agent YAML config")
    p.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "WARNING"),
        help="Logging level (default: LOG_LEVEL env or WARNING)",
    )
    p.add_argument(
        "--show-document",
        action="store_true",
        help="Print the confirmed charter fields as JSON on exit",
    )
    return p.parse_args(argv)


def _print_messages(messages: list[str]) -> None:
    for message in messages:
        print(f"Agent: {message}")
    if messages:
        print()


async def run_interactive(runtime: CharterRuntime, show_document: bool = False) -> None:
    conversation_id, opening = await runtime.start_conversation()
    _print_messages(opening.assistant_messages)
    while True:
        try:
            line = input("You: ").strip()
        except EOFError:
            break
        if not line:
            continue
        if line.lower() in ("quit", "exit", "q"):
            print("Goodbye.")
            break
        try:
            result = await runtime.interact(conversation_id, message=line)
        except CharterSessionError as e:
            # The session is gone (expired or closed); nothing left to show or close.
            print(f"Error: {e}", file=sys.stderr)
            return
        _print_messages(result.assistant_messages)

    if show_document:
        document = await runtime.document(conversation_id)
        print(json.dumps(document, indent=2))
    await runtime.close_conversation(conversation_id)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=str(args.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except yaml.YAMLError as e:
        print(f"Error: malformed YAML in {args.config}: {e}", file=sys.stderr)
        return 1

    runtime = CharterRuntime.from_config(config)
    asyncio.run(run_interactive(runtime, show_document=args.show_document))
    return 0


if __name__ == "__main__":
    sys.exit(main())
