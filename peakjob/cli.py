"""Command line front end: ``peakjob submit|fetch|check|delete BATCH``."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .batch import load_batch, save_batch
from .errors import PeakJobError, ServiceError, TransportError, ValidationError
from .orchestrator import JobOrchestrator
from .progress import RichProgress
from .settings import Settings, default_settings_path
from .transfers import PeakJobService
from .utils.job_logger import JobLogger
from .workflow.types import Mode

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_VALIDATION = 2
EXIT_SERVICE = 3
EXIT_TRANSPORT = 4

AUTH_ATTEMPTS = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="peakjob", description="Submit batches to the remote peak-picking service.")
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {__version__}")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("batch", type=Path, help="batch JSON file")
    common.add_argument("--settings", type=Path, default=None, help="settings file (default: %s)" % default_settings_path())
    common.add_argument(
        "--sandbox",
        nargs="?",
        const="",
        default=None,
        metavar="FORCED",
        help="fabricate service answers locally; FORCED overrides the job status",
    )
    common.add_argument("--debug", action="store_true", help="print redacted requests and responses")

    sub = parser.add_subparsers(dest="command", required=True)

    p_submit = sub.add_parser("submit", parents=[common], help="upload a batch and start a job")
    p_submit.add_argument("-c", "--calibration", type=Path, default=None, help="calibration batch JSON file")
    p_submit.add_argument("-o", "--output", type=Path, default=None, help="write the updated batch here")
    p_submit.add_argument("--pi-version", default=None, help="current, last, ask or a version label")
    p_submit.add_argument("--rto", default=None, help="ask or a response time objective label")

    p_fetch = sub.add_parser("fetch", parents=[common], help="download results when the job is done")
    p_fetch.add_argument("-o", "--output", type=Path, default=None, help="write the updated batch here")
    p_fetch.add_argument("--wait", type=int, default=None, metavar="N", help="poll up to N times with backoff")

    sub.add_parser("check", parents=[common], help="report the job status")
    sub.add_parser("delete", parents=[common], help="delete the job on the service")
    return parser


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    if args.sandbox is not None:
        settings.sandbox = args.sandbox
    if args.debug:
        settings.debug = True
    if getattr(args, "pi_version", None):
        settings.version = args.pi_version
    if getattr(args, "rto", None):
        settings.rto = args.rto
    if getattr(args, "wait", None):
        settings.poll_attempts = max(int(args.wait), 1)
    return settings


def exit_code_for(exc: PeakJobError) -> int:
    if isinstance(exc, ValidationError):
        return EXIT_VALIDATION
    if isinstance(exc, ServiceError):
        return EXIT_SERVICE
    if isinstance(exc, TransportError):
        return EXIT_TRANSPORT
    return EXIT_FAILURE


def run_with_auth_retry(orchestrator: JobOrchestrator, logger, attempts: int = AUTH_ATTEMPTS):
    """Run, asking for a new password when the service rejects the current one."""
    for attempt in range(1, attempts + 1):
        try:
            return orchestrator.run()
        except ServiceError as exc:
            if not exc.is_auth_failure or attempt == attempts:
                raise
            logger.warning("Authentication failed, please enter your password again")
            orchestrator.forget_credentials()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = apply_overrides(Settings.load(args.settings).apply_environment(), args)
    logger = JobLogger(debug=settings.debug)
    mode = Mode(args.command)
    output = getattr(args, "output", None) or args.batch

    orchestrator = None
    try:
        batch = load_batch(args.batch)
        calibration = load_batch(args.calibration) if getattr(args, "calibration", None) else None
        service = PeakJobService(
            settings.server,
            timeout=settings.timeout,
            debug=settings.debug,
            logger=logger,
            expected_fingerprint=settings.host_fingerprint,
        )
        orchestrator = JobOrchestrator(
            mode,
            settings,
            batch,
            service,
            calibration=calibration,
            logger=logger,
            progress=RichProgress(console=logger.console),
        )
        outcome = run_with_auth_retry(orchestrator, logger)
    except PeakJobError as exc:
        if orchestrator is None:
            logger.error(str(exc))
        return exit_code_for(exc)
    finally:
        # Merged results must reach disk even when the final DELETE fails.
        if orchestrator is not None and orchestrator.modified:
            save_batch(orchestrator.batch, output)
            logger.info(f"Batch written to {output}")

    if mode is Mode.SUBMIT and orchestrator.modified:
        # Only the remembered version is persisted, never command line overrides.
        stored = Settings.load(args.settings)
        stored.last_version = settings.last_version
        stored.save(args.settings)
    logger.debug(f"Outcome: {outcome.value}")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
