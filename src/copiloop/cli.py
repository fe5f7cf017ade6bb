"""Console entrypoint for copiloop.

Runs a single agent turn from the terminal, lists the tool catalog and shows
the resolved configuration.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import uuid
from typing import Any

from pydantic import ValidationError

from copiloop import __version__
from copiloop.agent.events import EventStream
from copiloop.agent.loop import AgentLoop, RunInput, RunResult
from copiloop.agent.prompts import SessionMode
from copiloop.chat.client import ChatClient
from copiloop.config import LogLevel, Settings, load_settings
from copiloop.errors import CopiloopError
from copiloop.logging import configure_console_logging, configure_session_logger
from copiloop.paths import default_config_path
from copiloop.tools import ToolRegistry, load_tool_module


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="copiloop",
        description="Workflow copilot agent loop",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
        help="Show version and exit.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode (root=INFO, copiloop=DEBUG).",
    )
    parser.add_argument("--model", help="Override default model id")
    parser.add_argument(
        "--log-level",
        choices=[e.value for e in LogLevel],
        dest="log_level",
        help="Log level override",
    )
    parser.add_argument("--config-path", dest="config_path", help="Path to config.toml")
    parser.add_argument(
        "--tools-module",
        action="append",
        default=[],
        dest="tools_modules",
        metavar="MODULE",
        help="Import MODULE and call its register_tools(registry); may be repeated.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run one agent turn for a message")
    run_parser.add_argument("message", help="User message")
    run_parser.add_argument("--mode", choices=[e.value for e in SessionMode], help="Session mode")
    run_parser.add_argument("--project-id", dest="project_id", help="Target workflow/project id")
    run_parser.add_argument("--tenant-id", dest="tenant_id", default="local", help="Tenant id passed to tools")
    run_parser.add_argument("--user-id", dest="user_id", default="cli", help="User id passed to tools")
    run_parser.add_argument("--session-id", dest="session_id", help="Session id (defaults to a new one)")
    run_parser.add_argument("--max-iterations", dest="max_iterations", type=int, help="Iteration cap override")
    run_parser.add_argument("--events", action="store_true", help="Print progress events as JSON lines")
    run_parser.add_argument("--json", dest="as_json", action="store_true", help="Print the result as JSON")

    subparsers.add_parser("tools", help="Print registered tool definitions as JSON")

    config_parser = subparsers.add_parser("config", help="Config helpers")
    config_sub = config_parser.add_subparsers(dest="config_cmd", required=True)
    config_sub.add_parser("path", help="Print config path")
    config_sub.add_parser("print", help="Print resolved settings")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(cli_overrides=_collect_overrides(args), config_path=args.config_path)
    except ValidationError as exc:
        print(f"error: invalid settings: {exc}", file=sys.stderr)
        return 1

    configure_console_logging(debug_enabled=args.debug, level=settings.log_level)

    try:
        registry = _build_registry(args.tools_modules)
        if args.command == "run":
            result = asyncio.run(_run_agent(settings, registry, args))
            _print_result(result, as_json=args.as_json)
            return 0
        if args.command == "tools":
            print(json.dumps([d.to_dict() for d in registry.list_definitions()], indent=2))
            return 0
    except (CopiloopError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if args.command == "config":
        return _run_config(settings, args)

    parser.error(f"unknown command {args.command}")
    return 1


def _build_registry(modules: list[str]) -> ToolRegistry:
    registry = ToolRegistry()
    for module_name in modules:
        load_tool_module(registry, module_name)
    return registry


async def _run_agent(settings: Settings, registry: ToolRegistry, args: argparse.Namespace) -> RunResult:
    session_id = args.session_id or uuid.uuid4().hex
    run_input = RunInput(
        tenant_id=args.tenant_id,
        user_id=args.user_id,
        message=args.message,
        mode=args.mode,
        project_id=args.project_id,
        session_id=session_id,
    )
    logger = configure_session_logger(session_id, log_level=settings.log_level)

    client = ChatClient.from_settings(settings, logger=logger)
    agent = AgentLoop(client, registry, settings.agent, logger=logger)

    stream = EventStream(settings.event_buffer_size) if args.events else None
    printer = asyncio.create_task(_print_events(stream)) if stream is not None else None
    try:
        return await agent.run(run_input, stream)
    finally:
        if stream is not None and printer is not None:
            stream.close()
            await printer
        await client.aclose()


async def _print_events(stream: EventStream) -> None:
    async for event in stream:
        print(event.to_json(), flush=True)


def _print_result(result: RunResult, *, as_json: bool) -> None:
    if as_json:
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
        return
    print(result.response)


def _run_config(settings: Settings, args: argparse.Namespace) -> int:
    if args.config_cmd == "path":
        print(args.config_path or default_config_path())
        return 0
    if args.config_cmd == "print":
        print(settings.model_dump_json(indent=2, exclude={"api_key"}))
        return 0
    return 1


def _collect_overrides(args: argparse.Namespace) -> dict[str, Any]:
    default_log_level = LogLevel.DEBUG.value if args.debug else None
    return {
        "model": args.model,
        "log_level": args.log_level or default_log_level,
        "max_iterations": getattr(args, "max_iterations", None),
    }


if __name__ == "__main__":
    sys.exit(main())
