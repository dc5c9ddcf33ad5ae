"""ScreenFlow command line: import screens, interpret them and run action packs."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from screenflow.config import ScreenFlowConfig
from screenflow.errors import ActionPackValidationError, ConfigurationError, ScreenFlowError
from screenflow.models import ActionPackRun, ActionRunStatus, ScreenRecord, ScreenSource
from screenflow.packs import all_packs
from screenflow.pipeline import ScreenFlow
from screenflow.reporting import catalog_report, history_report, run_report, selection_report

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="ScreenFlow screen-to-action pipeline")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    process = subparsers.add_parser("process", help="Import an image and interpret it")
    process.add_argument("image", type=Path, help="Path to the captured screen image")
    process.add_argument(
        "--source",
        default=ScreenSource.PHOTO_PICKER.value,
        choices=[source.value for source in ScreenSource],
        help="Where the image came from",
    )

    ingest = subparsers.add_parser("ingest-shared", help="Import screens waiting in the share inbox")
    ingest.add_argument("--dir", type=Path, default=None, help="Inbox directory (defaults to SCREENFLOW_SHARED_DIR)")

    subparsers.add_parser("packs", help="List available action packs")

    run_pack = subparsers.add_parser("run-pack", help="Run an action pack against a processed screen")
    run_pack.add_argument("screen_id")
    run_pack.add_argument("pack_id")

    subparsers.add_parser("history", help="Show imported screens and their runs")
    return parser


def run(args: argparse.Namespace, flow: ScreenFlow) -> int:
    if args.command == "process":
        result = flow.process(args.image.read_bytes(), ScreenSource(args.source))
        print(selection_report(result.screen, result.selections).render_text())
        print(f"Resolved by {result.interpretation.resolution.value} tier")
        return 0
    if args.command == "ingest-shared":
        count = flow.ingest_shared(args.dir)
        print(f"Ingested {count} shared screen(s)")
        return 0
    if args.command == "packs":
        print(catalog_report(all_packs(flow.registry)).render_text())
        return 0
    if args.command == "run-pack":
        try:
            outcome = flow.run_pack(args.screen_id, args.pack_id)
        except ActionPackValidationError as exc:
            sys.stderr.write(f"Pack validation failed: {exc}\n")
            return 1
        except ValueError as exc:
            sys.stderr.write(f"{exc}\n")
            return 1
        print(run_report(outcome).render_text())
        return 0 if outcome.run.status is ActionRunStatus.SUCCESS else 1
    if args.command == "history":
        screens = flow.repository.list(ScreenRecord)
        runs = flow.repository.list(ActionPackRun)
        print(history_report(screens, runs).render_text())
        return 0
    raise AssertionError(f"unhandled command: {args.command}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        flow = ScreenFlow(ScreenFlowConfig.from_env())
    except ConfigurationError as exc:
        sys.stderr.write(f"Configuration error: {exc}\n")
        return 2
    try:
        return run(args, flow)
    except ConfigurationError as exc:
        sys.stderr.write(f"Configuration error: {exc}\n")
        return 2
    except ScreenFlowError as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1
    finally:
        flow.close()


if __name__ == "__main__":
    sys.exit(main())
