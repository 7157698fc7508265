"""Stage runners for the submit workflow."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple

from ..actions import InitAction, JobAttributes, PiVersionsAction, RunAction, SftpAction
from ..archive import pack_records
from ..constants import (
    ASK,
    CALIB_SUFFIX,
    META_JOB,
    META_VERSION,
    SCANS_SUFFIX,
    VERSION_CURRENT,
    VERSION_LAST,
)
from ..errors import ValidationError
from .types import FlowControl, InitResult, QuoteResult, RunOutcome, UploadResult, VersionResult


def validate_batch(*, batch, label: str = "batch") -> None:
    if len(batch) == 0:
        raise ValidationError(f"The {label} contains no records")
    if batch.is_centroided():
        raise ValidationError(f"The {label} is already centroided")


def resolve_version(
    *,
    credentials,
    perform,
    preference: str,
    selector,
    logger,
    remembered: str = "",
) -> VersionResult:
    """``preference`` is ``current``, ``last``, ``ask`` or an explicit label."""
    action = perform(PiVersionsAction(credentials))
    current = action.current_version
    last_used = action.last_used_version or remembered

    if preference == VERSION_CURRENT:
        version = current
    elif preference == VERSION_LAST:
        version = last_used or current
        if not last_used:
            logger.info(f"No previously used version, using current ({current})")
    elif preference == ASK:
        version = selector.choose(action.versions, current, last_used)
        if not version:
            return VersionResult(flow=FlowControl.stop(RunOutcome.CANCELLED, "No version selected"))
    else:
        version = preference
        if action.versions and version not in action.versions:
            raise ValidationError(
                f"Version {version} is not available (choose from {', '.join(action.versions)})"
            )

    logger.success(f"Processing version {version}")
    return VersionResult(version=version)


def initialize_job(
    *,
    credentials,
    perform,
    batch,
    version: str,
    mass_range: Tuple[Optional[int], Optional[int]],
    logger,
    calibration=None,
) -> InitResult:
    attributes = JobAttributes.from_records(batch, mass_range)
    logger.info(
        f"{len(batch)} records, up to {attributes.max_points} points, "
        f"mass {attributes.start_mass}:{attributes.end_mass}"
    )
    action = perform(
        InitAction(
            credentials,
            version,
            len(batch),
            attributes,
            calibration_count=len(calibration) if calibration is not None else 0,
        )
    )
    logger.success(f"Job {action.job} initialized")
    logger.cost_table(action.estimated_costs, action.funds)
    return InitResult(
        job=action.job,
        funds=action.funds,
        costs=action.estimated_costs,
        attributes=attributes,
    )


def resolve_rto(*, costs, funds: float, preference: str, selector, logger) -> QuoteResult:
    if preference == ASK:
        rto = selector.choose(costs, funds)
        if not rto:
            return QuoteResult(flow=FlowControl.stop(RunOutcome.CANCELLED, "No response time objective selected"))
    else:
        rto = preference
        if rto not in costs.rtos:
            raise ValidationError(f"{rto} is not offered (choose from {', '.join(costs.rtos)})")

    if costs.max_cost(rto) > funds:
        logger.warning(f"{rto} may cost up to {costs.max_cost(rto):.2f}, more than the available {funds:.2f}")
    logger.success(f"Response time objective {rto}")
    return QuoteResult(rto=rto)


def upload_batches(
    *,
    credentials,
    perform,
    service,
    job: str,
    batch,
    work_dir: Path,
    logger,
    progress=None,
    calibration=None,
) -> UploadResult:
    action = perform(SftpAction(credentials))
    transfer = action.transfer

    input_file = f"{job}{SCANS_SUFFIX}"
    scans = Path(work_dir) / input_file
    count = pack_records(scans, batch.records, progress=progress)
    logger.info(f"Packed {count} records into {input_file}")
    service.upload_file(transfer, scans, transfer.remote_path(input_file), progress)

    calibration_file = ""
    if calibration is not None:
        calibration_file = f"{job}{CALIB_SUFFIX}"
        calib = Path(work_dir) / calibration_file
        pack_records(calib, calibration.records, progress=progress)
        service.upload_file(transfer, calib, transfer.remote_path(calibration_file), progress)

    logger.success("Upload complete")
    return UploadResult(
        transfer=transfer,
        input_file=input_file,
        calibration_file=calibration_file,
        entry_count=count,
    )


def start_job(
    *,
    credentials,
    perform,
    batch,
    job: str,
    version: str,
    rto: str,
    upload: UploadResult,
    logger,
) -> None:
    perform(
        RunAction(
            credentials,
            job,
            rto,
            upload.input_file,
            calibration_file=upload.calibration_file or None,
        )
    )
    # Raw data now lives on the service; only the metadata has to survive.
    batch.drop_data()
    batch.set_meta(META_JOB, job)
    batch.set_meta(META_VERSION, version)
    logger.success(f"Job {job} is running at {rto}")
