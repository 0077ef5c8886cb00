"""Operator CLI for converging project IP access-list entries."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Callable, Sequence
from typing import TypeAlias

from atlas_acl.config import AppSettings, get_settings
from atlas_acl.convergence import (
    AccessListConvergenceEngine,
    Clock,
    ConvergenceError,
    ConvergenceOutcome,
    DeadlineExceededError,
    DesiredEntry,
    decode_id,
    encode_id,
)
from atlas_acl.logging_config import setup_logging
from atlas_acl.providers import AccessListApi, AccessListRecord, create_access_list_api

ApiFactory: TypeAlias = "Callable[[AppSettings], AccessListApi]"

EXIT_OK = 0
EXIT_FAILED = 2
EXIT_DEADLINE_EXCEEDED = 3


class CliValidationError(ValueError):
    """Raised when access-list CLI input validation fails."""


def main(
    argv: Sequence[str] | None = None,
    *,
    api_factory: ApiFactory | None = None,
    clock: Clock | None = None,
) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        if args.command == "encode-id":
            print(encode_id(args.project_id, args.entry))
            return EXIT_OK

        if args.command == "decode-id":
            project_id, entry = decode_id(args.id)
            print(f"project_id={project_id} entry={entry}")
            return EXIT_OK

        settings = get_settings()
        setup_logging(settings)
        api = (api_factory or create_access_list_api)(settings)
        engine = AccessListConvergenceEngine.from_settings(api, settings, clock=clock)

        if args.command == "create":
            desired = DesiredEntry(
                cidr_block=args.cidr_block or "",
                ip_address=args.ip_address or "",
                aws_security_group=args.aws_security_group or "",
                comment=args.comment or "",
            )
            outcome = engine.create_and_converge(
                project_id=args.project_id,
                desired=desired,
                timeout_seconds=args.timeout_seconds,
            )
            outcome.raise_for_outcome()
            _print_outcome("created", outcome)
            return EXIT_OK

        if args.command == "delete":
            outcome = engine.delete_and_converge(
                args.id,
                timeout_seconds=args.timeout_seconds,
            )
            outcome.raise_for_outcome()
            _print_outcome("deleted", outcome)
            return EXIT_OK

        if args.command == "read":
            record = engine.reconcile(args.id, is_newly_created=args.new)
            if record is None:
                print("absent: entry no longer exists, clear the stored id")
                return EXIT_OK
            _print_record(record)
            return EXIT_OK

        if args.command == "import":
            composite_id = engine.import_entry(args.import_id)
            print(f"imported id={composite_id}")
            return EXIT_OK

        raise CliValidationError(f"unsupported command: {args.command}")
    except DeadlineExceededError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_DEADLINE_EXCEEDED
    except (CliValidationError, ConvergenceError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_FAILED


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m atlas_acl.cli.access_list")
    subparsers = parser.add_subparsers(dest="command", required=True)

    create_parser = subparsers.add_parser(
        "create",
        help="create an entry and wait until it is visible in the access list",
    )
    create_parser.add_argument("--project-id", required=True)
    identifier_group = create_parser.add_mutually_exclusive_group(required=True)
    identifier_group.add_argument("--cidr-block")
    identifier_group.add_argument("--ip-address")
    identifier_group.add_argument("--aws-security-group")
    create_parser.add_argument("--comment")
    create_parser.add_argument("--timeout-seconds", type=float)

    delete_parser = subparsers.add_parser(
        "delete",
        help="delete an entry and wait until reads confirm it is gone",
    )
    delete_parser.add_argument("--id", required=True)
    delete_parser.add_argument("--timeout-seconds", type=float)

    read_parser = subparsers.add_parser("read", help="refresh an entry by its stored id")
    read_parser.add_argument("--id", required=True)
    read_parser.add_argument(
        "--new",
        action="store_true",
        help="treat not-found as not yet visible instead of deleted",
    )

    import_parser = subparsers.add_parser(
        "import",
        help="adopt an existing entry given as {project_id}-{entry}",
    )
    import_parser.add_argument("--import-id", required=True)

    encode_parser = subparsers.add_parser("encode-id", help="build a composite entry id")
    encode_parser.add_argument("--project-id", required=True)
    encode_parser.add_argument("--entry", required=True)

    decode_parser = subparsers.add_parser("decode-id", help="split a composite entry id")
    decode_parser.add_argument("--id", required=True)

    return parser


def _print_outcome(verb: str, outcome: ConvergenceOutcome) -> None:
    print(f"access list entry {verb} id={outcome.composite_id} attempts={outcome.attempts}")


def _print_record(record: AccessListRecord) -> None:
    print(
        f"project_id={record.project_id} cidr_block={record.cidr_block} "
        f"ip_address={record.ip_address} aws_security_group={record.aws_security_group} "
        f"comment={record.comment}"
    )


if __name__ == "__main__":
    raise SystemExit(main())
