from __future__ import annotations

from typing import Optional

from .base import BaseAction, JsonMap, QueryParams, require


class RunAction(BaseAction):
    """Start processing of uploaded archives at the chosen RTO."""

    ACTION = "RUN"
    SANDBOX_FIELD = "Job"

    def __init__(
        self,
        credentials,
        job: str,
        rto: str,
        input_file: str,
        calibration_file: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(credentials, **kwargs)
        self.job = job
        self.rto = rto
        self.input_file = input_file
        self.calibration_file = calibration_file
        self.confirmed_job = ""

    def parameters(self) -> QueryParams:
        params = [
            ("Job", self.job),
            ("RTO", self.rto),
            ("InputFile", self.input_file),
        ]
        if self.calibration_file:
            params.append(("CalibrationFile", self.calibration_file))
        return params

    def _parse(self, data: JsonMap) -> None:
        self.confirmed_job = str(require(data, "Job"))

    def sandbox_response(self) -> JsonMap:
        return {"Action": self.ACTION, "Job": self.job}
