"""Main CLI entry point for rfqflow."""

from __future__ import annotations

import argparse
import sys

from rfqflow.cli import commands
from rfqflow.engine import Engine
from rfqflow.errors import RfqflowError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rfqflow",
        description="rfqflow - RFQ workflow orchestration engine",
    )
    parser.add_argument(
        "--db",
        help="Database URL (sqlite:///path.db or memory://); defaults to RFQFLOW_DATABASE_URL",
    )
    parser.add_argument(
        "--registry",
        help="Stage registry to load, as module:attribute",
    )
    parser.add_argument(
        "--pipeline",
        help="Comma-separated stage names (default: the RFQ pipeline)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("worker", help="Run stage consumers until interrupted")

    create_parser = subparsers.add_parser("create", help="Create an execution")
    create_parser.add_argument("--input", default="{}", help="Input payload as a JSON object")
    create_parser.add_argument("--metadata", help="Metadata as a JSON object")
    create_parser.add_argument("--external-ref", help="Caller reference, e.g. an email id")

    status_parser = subparsers.add_parser("status", help="Show an execution and its current state")
    status_parser.add_argument("execution_id")

    history_parser = subparsers.add_parser("history", help="Show stage tasks, events and snapshots")
    history_parser.add_argument("execution_id")

    resume_parser = subparsers.add_parser("resume", help="Resume an execution awaiting human input")
    resume_parser.add_argument("execution_id")
    resume_parser.add_argument("--state", help="Updated state fields as a JSON object")
    resume_parser.add_argument("--from-stage", help="Stage to resume from")

    replay_parser = subparsers.add_parser("replay", help="Fork an execution from a stage")
    replay_parser.add_argument("execution_id")
    replay_parser.add_argument("--from-stage", required=True, help="Stage to replay from")

    cancel_parser = subparsers.add_parser("cancel", help="Cancel an execution")
    cancel_parser.add_argument("execution_id")

    subparsers.add_parser("queues", help="Show per-stage job counts and health")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    try:
        engine = commands.build_engine(args.db, args.registry, args.pipeline)
        try:
            _dispatch(args, engine)
        finally:
            engine.close()
    except RfqflowError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)


def _dispatch(args: argparse.Namespace, engine: Engine) -> None:
    if args.command == "worker":
        commands.worker(engine)
    elif args.command == "create":
        commands.create(engine, args.input, args.metadata, args.external_ref)
    elif args.command == "status":
        commands.status(engine, args.execution_id)
    elif args.command == "history":
        commands.history(engine, args.execution_id)
    elif args.command == "resume":
        commands.resume(engine, args.execution_id, args.state, args.from_stage)
    elif args.command == "replay":
        commands.replay(engine, args.execution_id, args.from_stage)
    elif args.command == "cancel":
        commands.cancel(engine, args.execution_id)
    elif args.command == "queues":
        commands.queues(engine)


if __name__ == "__main__":
    main()
