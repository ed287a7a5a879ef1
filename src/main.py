# src/main.py — v2
"""CLI entry point: inspect pipelines and approvals in the configured store.

Usage:
    thegrid pipelines [--limit N] [--offset N]
    thegrid show <pipeline_id>
    thegrid approvals [--status pending|approved|rejected]
    thegrid reject <approval_id> --reason TEXT

Only the sqlite backend persists between invocations.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from thegrid.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="thegrid",
        description=f"thegrid v{__version__} — pipeline and approval workflow core",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- pipelines ---
    p_list = subparsers.add_parser("pipelines", help="List pipelines, newest first")
    p_list.add_argument("--limit", type=int, default=20, help="Page size (default: 20)")
    p_list.add_argument("--offset", type=int, default=0, help="Rows to skip (default: 0)")
    p_list.set_defaults(func=_cmd_pipelines)

    # --- show ---
    p_show = subparsers.add_parser("show", help="Show one pipeline with its steps")
    p_show.add_argument("pipeline_id", help="Pipeline ID")
    p_show.set_defaults(func=_cmd_show)

    # --- approvals ---
    p_approvals = subparsers.add_parser("approvals", help="List approvals")
    p_approvals.add_argument(
        "--status", choices=["pending", "approved", "rejected"], default=None,
        help="Only approvals with this status",
    )
    p_approvals.set_defaults(func=_cmd_approvals)

    # --- reject ---
    p_reject = subparsers.add_parser("reject", help="Reject a pending approval")
    p_reject.add_argument("approval_id", help="Approval ID")
    p_reject.add_argument("--reason", required=True, help="Why the approval is rejected")
    p_reject.set_defaults(func=_cmd_reject)

    return parser


async def _cmd_pipelines(args: argparse.Namespace) -> int:
    """Print a page of pipelines."""
    runtime = _runtime(args)
    try:
        pipelines, total = await runtime.store.list_pipelines(args.limit, args.offset)
        print(f"\nPipelines ({len(pipelines)} of {total}):")
        for p in pipelines:
            print(f"  {p.id}  {p.status:<10} {p.type}/{p.source}  {p.name}")
        return 0
    finally:
        runtime.close()


async def _cmd_show(args: argparse.Namespace) -> int:
    """Print a pipeline and its steps."""
    runtime = _runtime(args)
    try:
        pipeline = await runtime.store.get_pipeline(args.pipeline_id)
        if pipeline is None:
            logger.error("Pipeline not found: %s", args.pipeline_id)
            return 1
        print(f"\n{pipeline.name}")
        print(f"  ID:      {pipeline.id}")
        print(f"  Type:    {pipeline.type} (source: {pipeline.source})")
        print(f"  Status:  {pipeline.status}")
        print(f"  Created: {pipeline.created_at.isoformat()}")
        print("  Steps:")
        for step in pipeline.steps:
            duration = f" [{step.duration}]" if step.duration else ""
            print(f"    - {step.status:<16} {step.name}{duration}")
        return 0
    finally:
        runtime.close()


async def _cmd_approvals(args: argparse.Namespace) -> int:
    """Print approvals with their pipeline names."""
    from thegrid.pipeline.approvals import ApprovalFilter

    runtime = _runtime(args)
    try:
        page = await runtime.approvals.list(ApprovalFilter(status=args.status, limit=100))
        print(f"\nApprovals ({len(page.items)} of {page.total}):")
        for view in page.items:
            a = view.approval
            print(f"  {a.id}  {a.status:<9} risk={a.risk:<6} {view.pipeline_name} / {view.step_name}")
        return 0
    finally:
        runtime.close()


async def _cmd_reject(args: argparse.Namespace) -> int:
    """Reject an approval from the command line."""
    runtime = _runtime(args)
    try:
        approval = await runtime.approvals.reject(args.approval_id, args.reason, origin="api")
        print(f"Rejected approval {approval.id}")
        return 0
    finally:
        runtime.close()


def _runtime(args: argparse.Namespace):
    from thegrid.api.facade import build_runtime
    from thegrid.config.settings import load_settings
    from thegrid.logging.logger import add_file_handler

    settings = load_settings()
    if settings.log_file:
        add_file_handler(
            settings.log_file,
            level="DEBUG" if args.verbose else settings.log_level,
            log_format=settings.log_format,
            rotation=settings.log_rotation,
            retention=settings.log_retention,
        )
    if settings.store_backend == "memory":
        logger.warning(
            "store_backend is 'memory': nothing persists between commands "
            "(set STORE_BACKEND=sqlite and STORE_SQLITE_PATH)"
        )
    return build_runtime(settings)


def _setup_logging(verbose: bool) -> None:
    """Configure logging for CLI usage. Console goes to stderr, tables to stdout."""
    from thegrid.logging.logger import setup_logging

    setup_logging(level="DEBUG" if verbose else "WARNING", log_format="text", stream=sys.stderr)
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


if __name__ == "__main__":
    sys.exit(main())
