"""Typed stage contracts for the submit and fetch workflows."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from ..actions import Credentials, EstimatedCosts, JobAttributes, JobStatus, TransferCredentials


class Mode(Enum):
    SUBMIT = "submit"
    FETCH = "fetch"
    CHECK = "check"
    DELETE = "delete"


class RunOutcome(Enum):
    SUBMITTED = "submitted"
    CANCELLED = "cancelled"
    STILL_RUNNING = "still_running"
    STILL_PENDING = "still_pending"
    DELETED_REMOTELY = "deleted_remotely"
    RESULTS_DOWNLOADED = "results_downloaded"
    STATUS_REPORTED = "status_reported"
    JOB_DELETED = "job_deleted"


@dataclass(frozen=True)
class FlowControl:
    """Outcome contract for stage control flow."""

    outcome: Optional[RunOutcome] = None
    reason: str = ""

    @property
    def should_stop(self) -> bool:
        return self.outcome is not None

    @classmethod
    def continue_flow(cls) -> "FlowControl":
        return cls(outcome=None, reason="")

    @classmethod
    def stop(cls, outcome: RunOutcome, reason: str = "") -> "FlowControl":
        return cls(outcome=outcome, reason=str(reason or ""))


@dataclass
class SessionContext:
    """Everything one ``run()`` accumulates, threaded through the stages."""

    credentials: Credentials
    job: str = ""
    version: str = ""
    rto: str = ""
    attributes: Optional[JobAttributes] = None
    costs: Optional[EstimatedCosts] = None
    funds: float = 0.0
    transfer: Optional[TransferCredentials] = None
    input_file: str = ""
    calibration_file: str = ""
    status: Optional[JobStatus] = None


@dataclass
class VersionResult:
    version: str = ""
    flow: FlowControl = field(default_factory=FlowControl.continue_flow)


@dataclass
class InitResult:
    job: str
    funds: float
    costs: EstimatedCosts
    attributes: JobAttributes


@dataclass
class QuoteResult:
    rto: str = ""
    flow: FlowControl = field(default_factory=FlowControl.continue_flow)


@dataclass
class UploadResult:
    transfer: TransferCredentials
    input_file: str
    calibration_file: str = ""
    entry_count: int = 0


@dataclass
class StatusResult:
    action: Any = None
    attempts: int = 0
    flow: FlowControl = field(default_factory=FlowControl.continue_flow)

    @property
    def status(self) -> Optional[JobStatus]:
        return getattr(self.action, "status", None)


@dataclass
class DownloadResult:
    results_path: Path
    log_path: Optional[Path] = None


@dataclass
class MergeResult:
    merged: int = 0
    rows: int = 0
    missing: int = 0
