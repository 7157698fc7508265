from __future__ import annotations

from .base import BaseAction, JsonMap, QueryParams, require


class DeleteAction(BaseAction):
    """Release the remote storage held by a job."""

    ACTION = "DELETE"
    SANDBOX_FIELD = "Job"

    def __init__(self, credentials, job: str, **kwargs):
        super().__init__(credentials, **kwargs)
        self.job = job
        self.confirmed_job = ""
        self.date_updated = ""

    def parameters(self) -> QueryParams:
        return [("Job", self.job)]

    def _parse(self, data: JsonMap) -> None:
        self.confirmed_job = str(require(data, "Job"))
        self.date_updated = str(data.get("Datetime") or "")

    def sandbox_response(self) -> JsonMap:
        return {"Action": self.ACTION, "Job": self.job, "Datetime": "2016-02-03 18:35:06"}
