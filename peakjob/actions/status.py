from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from .base import BaseAction, JsonMap, QueryParams, ResponseFormatError, require, require_number

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


class JobStatus(Enum):
    PREPARING = "Preparing"
    RUNNING = "Running"
    DELETED = "Deleted"
    DONE = "Done"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DELETED, JobStatus.DONE)

    @classmethod
    def from_label(cls, label: str) -> "JobStatus":
        wanted = str(label).strip().lower()
        for status in cls:
            if status.value.lower() == wanted:
                return status
        raise ResponseFormatError(f"Unknown job status {label!r}")


class StatusAction(BaseAction):
    ACTION = "STATUS"
    SANDBOX_FIELD = "Status"

    def __init__(self, credentials, job: str, **kwargs):
        super().__init__(credentials, **kwargs)
        self.job = job
        self.status: Optional[JobStatus] = None
        self.results_file = ""
        self.log_file = ""
        self.actual_cost = 0.0
        self.date_updated: Optional[datetime] = None

    def parameters(self) -> QueryParams:
        return [("Job", self.job)]

    def _parse(self, data: JsonMap) -> None:
        self.status = JobStatus.from_label(require(data, "Status"))

        stamp = data.get("Datetime")
        if stamp:
            try:
                self.date_updated = datetime.strptime(str(stamp), DATETIME_FORMAT)
            except ValueError:
                raise ResponseFormatError(f"Malformed 'Datetime': {stamp!r}") from None

        if self.status is JobStatus.DONE:
            self.results_file = str(require(data, "ResultsFile"))
            self.log_file = str(require(data, "JobLogFile"))
            self.actual_cost = round(require_number(data, "ActualCost"), 2)

    def sandbox_response(self) -> JsonMap:
        return {
            "Action": self.ACTION,
            "Job": self.job,
            "Status": JobStatus.RUNNING.value,
            "Datetime": "2016-02-03 18:25:09",
        }

    def apply_sandbox_override(self, response: JsonMap, forced: str) -> JsonMap:
        response["Status"] = forced
        if str(forced).lower() == JobStatus.DONE.value.lower():
            response.update(
                {
                    "ScansInput": 3,
                    "ScansComplete": 3,
                    "ActualCost": 0.36,
                    "JobLogFile": f"/files/{self.job}/{self.job}.log.txt",
                    "ResultsFile": f"/files/{self.job}/{self.job}.mass_list.tar.gz",
                }
            )
        return response
