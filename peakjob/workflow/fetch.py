"""Stage runners for the fetch, check and delete workflows."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from ..actions import DeleteAction, JobStatus, SftpAction, StatusAction
from ..archive import iter_results
from ..constants import META_JOB, META_VERSION, SOFTWARE_NAME
from ..errors import ValidationError
from .types import DownloadResult, FlowControl, MergeResult, RunOutcome, StatusResult

PROCESSING_ACTION = "peak_picking"


def resolve_job(*, batch, job: str = "") -> str:
    job = job or str(batch.get_meta(META_JOB) or "")
    if not job:
        raise ValidationError("The batch carries no job id; submit it first")
    return job


def check_status(
    *,
    credentials,
    perform,
    job: str,
    logger,
    sleep_fn,
    attempts: int = 1,
    interval: float = 30.0,
    max_interval: float = 600.0,
) -> StatusResult:
    """Ask for the job status, optionally polling with exponential backoff.

    One attempt (the default) never sleeps. Several attempts that all see
    Preparing/Running end with STILL_PENDING.
    """
    attempts = max(int(attempts), 1)
    delay = float(interval)
    action = None

    for attempt in range(1, attempts + 1):
        action = perform(StatusAction(credentials, job))
        status = action.status
        logger.info(f"Job {job}: {status.value}")

        if status is JobStatus.DONE:
            return StatusResult(action=action, attempts=attempt)
        if status is JobStatus.DELETED:
            return StatusResult(
                action=action,
                attempts=attempt,
                flow=FlowControl.stop(RunOutcome.DELETED_REMOTELY, f"Job {job} was deleted"),
            )
        if attempt < attempts:
            logger.debug(f"Waiting {delay:.0f}s before asking again ({attempt}/{attempts})")
            sleep_fn(delay)
            delay = min(delay * 2, float(max_interval))

    outcome = RunOutcome.STILL_RUNNING if attempts == 1 else RunOutcome.STILL_PENDING
    reason = f"Job {job} is still {action.status.value.lower()}"
    if attempts > 1:
        reason += f" after {attempts} attempts"
    return StatusResult(action=action, attempts=attempts, flow=FlowControl.stop(outcome, reason))


def download_results(
    *,
    credentials,
    perform,
    service,
    status_action,
    work_dir: Path,
    log_dir: Optional[Path],
    logger,
    progress=None,
) -> DownloadResult:
    transfer = perform(SftpAction(credentials)).transfer

    results_remote = status_action.results_file
    results_path = Path(work_dir) / Path(results_remote).name
    service.download_file(transfer, results_remote, results_path, progress)

    log_path = None
    if status_action.log_file:
        target = Path(log_dir) if log_dir else Path(work_dir)
        log_path = target / Path(status_action.log_file).name
        service.download_file(transfer, status_action.log_file, log_path, progress)

    logger.success(f"Downloaded {results_path.name}")
    return DownloadResult(results_path=results_path, log_path=log_path)


def completion_metadata(
    *,
    version: str,
    server: str,
    job: str,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    return {
        "action": PROCESSING_ACTION,
        "completed": now.isoformat(timespec="seconds"),
        "software": SOFTWARE_NAME,
        "version": version,
        "server": server,
        "job": job,
    }


def merge_results(
    *,
    batch,
    results_path: Path,
    processing: Dict[str, Any],
    logger,
    strict: bool = True,
) -> MergeResult:
    result = MergeResult()
    seen = set()
    for index, rows in iter_results(results_path, strict=strict, on_warning=logger.warning):
        batch.merge_results(index, rows, processing)
        seen.add(index)
        result.merged += 1
        result.rows += len(rows)

    result.missing = len(batch) - len(seen)
    if result.missing:
        logger.warning(f"{result.missing} records received no results")
    logger.success(f"Merged {result.rows} peaks into {result.merged} records")
    return result


def clear_job_metadata(*, batch) -> None:
    batch.remove_meta(META_JOB)
    batch.remove_meta(META_VERSION)


def delete_job(*, credentials, perform, job: str, logger) -> None:
    perform(DeleteAction(credentials, job))
    logger.success(f"Job {job} deleted on the service")
