# ruff: noqa: T201

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from signal import SIGINT, getsignal, signal
from typing import TYPE_CHECKING, Final

from dotenv import load_dotenv

from driftwood import __version__
from driftwood.app import ProviderKind, open_session, read_document
from driftwood.config import ConfigurationError, configure_logging, get_state_store_config
from driftwood.domain.errors import (
    BuildError,
    DocumentError,
    PlanError,
    ReconcilerError,
    StateConflictError,
)
from driftwood.domain.model import ActionKind, NodeStatus

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from driftwood.app import ReconcilerSession
    from driftwood.domain.model import StateEntry
    from driftwood.domain.reconciliation import ApplyReport, Plan

log = logging.getLogger(__name__)

EXIT_OK: Final = 0
EXIT_FAILED: Final = 1
EXIT_USAGE: Final = 2
EXIT_CONFLICT: Final = 3

DEFAULT_DOCUMENT: Final = "driftwood.toml"

ACTION_SYMBOLS: Final[dict[ActionKind, str]] = {
    ActionKind.CREATE: "+",
    ActionKind.UPDATE: "~",
    ActionKind.REPLACE: "-/+",
    ActionKind.DELETE: "-",
    ActionKind.NOOP: " ",
}


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--document",
        type=Path,
        default=Path(DEFAULT_DOCUMENT),
        help="Path to the TOML or JSON document (default: %(default)s)",
    )
    common.add_argument(
        "--provider",
        type=ProviderKind,
        choices=list(ProviderKind),
        default=ProviderKind.MEMORY,
        help="Provider backend (default: %(default)s)",
    )
    common.add_argument(
        "--state-uri",
        type=str,
        help="SQLAlchemy URI of the state store (defaults to config)",
    )

    cycle = argparse.ArgumentParser(add_help=False, parents=[common])
    cycle.add_argument(
        "--refresh",
        action="store_true",
        help="Read every resource from its provider before planning",
    )
    cycle.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Maximum number of provider operations in flight (defaults to config)",
    )

    parser = argparse.ArgumentParser(
        prog="driftwood", description="Reconcile declared infrastructure"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("plan", parents=[cycle], help="Show the changes an apply would make")
    subparsers.add_parser("apply", parents=[cycle], help="Apply the document")
    subparsers.add_parser("destroy", parents=[cycle], help="Delete every resource in state")
    subparsers.add_parser("outputs", parents=[common], help="Print document outputs")

    state = subparsers.add_parser("state", help="Inspect persisted state")
    state_sub = state.add_subparsers(dest="state_command", required=True)
    state_sub.add_parser("list", parents=[common], help="List resource addresses in state")
    state_show = state_sub.add_parser("show", parents=[common], help="Show one state entry")
    state_show.add_argument("address", type=str, help="Resource address, e.g. storage_bucket.site")

    args = parser.parse_args(list(argv))
    concurrency = getattr(args, "concurrency", None)
    if concurrency is not None and concurrency < 1:
        parser.error("--concurrency must be at least 1")
    return args


def _render_plan(plan: Plan) -> None:
    if not plan.has_changes:
        print("No changes. Infrastructure matches the document.")
        return
    for action in plan.actions:
        if action.kind is ActionKind.NOOP:
            continue
        suffix = " (create before destroy)" if action.create_before_destroy else ""
        print(f"{ACTION_SYMBOLS[action.kind]} {action.address}{suffix}")
        for change in action.changes:
            marker = " # forces replacement" if change.forces_replacement else ""
            print(f"    {change.attribute}: {change.before!r} -> {change.after!r}{marker}")
    summary = plan.summary()
    print(
        f"Plan: {summary[ActionKind.CREATE]} to create, {summary[ActionKind.UPDATE]} to update, "
        f"{summary[ActionKind.REPLACE]} to replace, {summary[ActionKind.DELETE]} to delete."
    )


def _render_report(report: ApplyReport) -> None:
    for address, result in sorted(report.results.items()):
        if result.kind is ActionKind.NOOP and result.status is NodeStatus.APPLIED:
            continue
        line = f"{result.status:<11} {result.kind:<7} {address}"
        if result.error:
            line = f"{line}: {result.error}"
        elif result.blocked_by is not None:
            line = f"{line} (blocked by {result.blocked_by})"
        print(line)
    counts = report.counts()
    print(
        f"Apply: {counts[NodeStatus.APPLIED]} applied, {counts[NodeStatus.FAILED]} failed, "
        f"{counts[NodeStatus.BLOCKED]} blocked, {counts[NodeStatus.CANCELLED]} cancelled."
    )


def _entry_as_dict(entry: StateEntry) -> dict[str, object]:
    return {
        "address": str(entry.address),
        "external_id": entry.external_id,
        "version": entry.version,
        "attributes": dict(entry.attributes),
        "outputs": dict(entry.outputs),
        "dependencies": sorted(str(dependency) for dependency in entry.dependencies),
    }


def _print_json(value: object) -> None:
    print(json.dumps(value, indent=2, sort_keys=True, default=repr))


class _CancelOnInterrupt:
    """Turn the first Ctrl+C into a graceful cancel; the second one aborts."""

    def __init__(self, session: ReconcilerSession) -> None:
        self._session = session
        self._interrupted = False

    def __call__(self, _signal_received: int, _frame: FrameType | None) -> None:
        if self._interrupted:
            raise KeyboardInterrupt
        self._interrupted = True
        log.warning("Interrupted: finishing in-flight operations (Ctrl+C again to abort)")
        self._session.cancel()


class _InterruptScope:
    def __init__(self, session: ReconcilerSession) -> None:
        self._handler = _CancelOnInterrupt(session)
        self._previous: object = None

    def __enter__(self) -> None:
        self._previous = getsignal(SIGINT)
        signal(SIGINT, self._handler)

    def __exit__(self, *_exc: object) -> None:
        signal(SIGINT, self._previous)  # type: ignore[arg-type]


def _run_cycle(session: ReconcilerSession, args: argparse.Namespace) -> int:
    document = read_document(args.document)
    destroy = args.command == "destroy"
    if args.command == "plan":
        planned = session.plan(document, refresh=args.refresh)
        _render_plan(planned.plan)
        return EXIT_OK

    with _InterruptScope(session):
        try:
            result = session.apply(document, refresh=args.refresh, destroy=destroy)
        except StateConflictError as exc:
            if exc.report is not None:
                _render_report(exc.report)
            raise
    _render_plan(result.plan)
    _render_report(result.report)
    if result.outputs:
        _print_json(result.outputs)
    return result.report.exit_code


def _run_state(session: ReconcilerSession, args: argparse.Namespace) -> int:
    if args.state_command == "list":
        for entry in session.state_entries():
            print(f"{entry.address}\t{entry.external_id}\tv{entry.version}")
        return EXIT_OK
    try:
        entry = session.state_entry(args.address)
    except ValueError as exc:
        log.error("%s", exc)  # noqa: TRY400
        return EXIT_USAGE
    if entry is None:
        log.error("No state entry for %s", args.address)
        return EXIT_FAILED
    _print_json(_entry_as_dict(entry))
    return EXIT_OK


def _state_uri(args: argparse.Namespace) -> str | None:
    """Resolve the state store; memory-provider cycles stay in memory unless one is named."""
    if args.state_uri:
        return args.state_uri
    if args.command in {"state", "outputs"} or args.provider is ProviderKind.HTTP:
        return get_state_store_config().uri
    return os.getenv("DRIFTWOOD_STATE_URI")


def _dispatch(args: argparse.Namespace) -> int:
    with open_session(
        provider=args.provider,
        state_uri=_state_uri(args),
        concurrency=getattr(args, "concurrency", None),
    ) as session:
        if args.command in {"plan", "apply", "destroy"}:
            return _run_cycle(session, args)
        if args.command == "state":
            return _run_state(session, args)
        if args.command == "outputs":
            _print_json(session.outputs(read_document(args.document)))
            return EXIT_OK
    raise ValueError(f"Unsupported command: {args.command}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args = _parse_args(list(argv) if argv is not None else sys.argv[1:])

    try:
        configure_logging()
        code = _dispatch(args)
    except (DocumentError, BuildError, PlanError, ConfigurationError):
        log.exception("Validation error")
        sys.exit(EXIT_USAGE)
    except StateConflictError:
        log.exception("State conflict: resolve it manually before applying again")
        sys.exit(EXIT_CONFLICT)
    except ReconcilerError:
        log.exception("Fatal error during reconciliation")
        sys.exit(EXIT_FAILED)
    except Exception:
        log.exception("Fatal error")
        sys.exit(EXIT_FAILED)

    if code != EXIT_OK:
        sys.exit(code)


def run() -> None:
    load_dotenv()
    main()


if __name__ == "__main__":
    run()
