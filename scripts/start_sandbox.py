#!/usr/bin/env python3
"""Run a built server bundle in a sandbox and print its public URL.

Usage:
    python scripts/start_sandbox.py ./dist --port 3000 --env NODE_ENV=production
    python scripts/start_sandbox.py ./dist --stop   # smoke test, then tear down

The provider (E2B or BoxLite) and its credentials come from .env, the same
settings the runner uses everywhere else.
"""

import argparse
import asyncio
import sys

from sandbox_runner.config import get_settings
from sandbox_runner.core.logging import setup_logging
from sandbox_runner.runner import RunnerStartOptions, SandboxRunner
from sandbox_runner.sandbox import is_provider_available


def parse_env(pairs: list[str]) -> dict[str, str]:
    """Turn KEY=VALUE arguments into a dict."""
    env: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"Expected KEY=VALUE, got: {pair}")
        env[key] = value
    return env


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a server bundle in a sandbox.")
    parser.add_argument("output_directory", help="Build output directory to upload")
    parser.add_argument("--port", type=int, default=None, help="Port the server listens on")
    parser.add_argument("--start-command", default=None, help="Command that starts the server")
    parser.add_argument("--timeout", type=int, default=None, help="Readiness timeout (seconds)")
    parser.add_argument(
        "--env", action="append", default=[], metavar="KEY=VALUE", help="Server env var"
    )
    parser.add_argument(
        "--stop", action="store_true", help="Stop the sandbox after the smoke check"
    )
    return parser


async def run(args: argparse.Namespace) -> int:
    runner = SandboxRunner()
    options = RunnerStartOptions(
        output_directory=args.output_directory,
        env_vars=parse_env(args.env),
        port=args.port,
        start_command=args.start_command,
        timeout=args.timeout,
    )

    session = await runner.start(options)
    print(f"Session: {session.id}")
    print(f"Status:  {session.status.value}")
    print(f"URL:     {session.url}")

    check = await runner.exec(
        session.id,
        f"curl -s -o /dev/null -w '%{{http_code}}' http://localhost:{session.port}/",
    )
    print(f"Smoke check (HTTP status inside sandbox): {check.stdout.strip() or check.output}")

    if args.stop:
        logs = await runner.get_logs(session.id, tail=20)
        if logs.strip():
            print("\nLast server log lines:\n" + logs)
        await runner.stop(session.id)
        print("Sandbox stopped.")
    return 0


def main() -> int:
    args = build_parser().parse_args()
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)

    available, issue = is_provider_available(settings)
    if not available:
        print(f"Error: {issue}", file=sys.stderr)
        return 1

    try:
        return asyncio.run(run(args))
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
