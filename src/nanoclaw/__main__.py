"""Entry point for `python -m nanoclaw` / `nanoclaw`.

Subcommands:
    nanoclaw run --group-folder <f> --prompt <text>    Run one agent invocation
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from nanoclaw.agent_runner import run_agent
from nanoclaw.agent_runner._serialization import output_to_dict
from nanoclaw.types import AgentInput, AgentOutput, RegisteredGroup


def _run(args: argparse.Namespace) -> int:
    group = RegisteredGroup(name=args.group_folder, folder=args.group_folder, trigger="")
    input_data = AgentInput(
        prompt=args.prompt,
        group_folder=args.group_folder,
        chat_jid=args.chat_jid or f"cli:{args.group_folder}",
        is_main=args.main,
        session_id=args.session_id,
    )
    output: AgentOutput = asyncio.run(run_agent(group, input_data, timeout=args.timeout))
    print(json.dumps(output_to_dict(output), indent=2))
    return 0 if output.status == "success" else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nanoclaw",
        description="Run agent invocations for a group",
    )
    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Run one agent invocation and print the result as JSON")
    run.add_argument("--group-folder", required=True, help="Group folder under groups/")
    run.add_argument("--prompt", required=True, help="Prompt to send to the agent")
    run.add_argument("--main", action="store_true", help="Run with main-group privileges")
    run.add_argument("--session-id", default=None, help="Session id to resume")
    run.add_argument("--chat-jid", default=None, help="Chat id the agent replies to")
    run.add_argument(
        "--timeout", type=float, default=None, help="Timeout in seconds (default: from config)"
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    match args.command:
        case "run":
            sys.exit(_run(args))
        case _:
            parser.print_help()
            sys.exit(2)


if __name__ == "__main__":
    main()
