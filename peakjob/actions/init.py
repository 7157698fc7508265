"""INIT: open a job on the service and receive the cost quote."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from ..errors import ValidationError
from .base import BaseAction, Credentials, JsonMap, QueryParams, ResponseFormatError, require, require_number


@dataclass(frozen=True)
class JobAttributes:
    min_mass: int
    max_mass: int
    start_mass: int
    end_mass: int
    max_points: int

    @classmethod
    def from_records(
        cls,
        records: Iterable,
        mass_range: Optional[Tuple[Optional[int], Optional[int]]] = None,
    ) -> "JobAttributes":
        """Single pass over the batch. Each record is sorted by position
        first so its extremes sit at the ends.

        ``mass_range`` narrows start/end mass; it never widens them.
        """
        min_mass: Optional[int] = None
        max_mass: Optional[int] = None
        max_points = 0

        for record in records:
            record.sort_by_position()
            points = record.points
            if not points:
                continue
            low = math.floor(points[0][0])
            high = math.ceil(points[-1][0])
            min_mass = low if min_mass is None else min(min_mass, low)
            max_mass = high if max_mass is None else max(max_mass, high)
            max_points = max(max_points, len(points))

        if min_mass is None or max_mass is None:
            raise ValidationError("The batch contains no data points")

        start_mass, end_mass = min_mass, max_mass
        low, high = mass_range or (None, None)
        if low is not None or high is not None:
            if low is not None:
                start_mass = max(start_mass, int(low))
            if high is not None:
                end_mass = min(end_mass, int(high))
            if start_mass > end_mass:
                raise ValidationError(
                    f"Mass range {start_mass}:{end_mass} does not overlap the data "
                    f"({min_mass}:{max_mass})"
                )

        return cls(
            min_mass=min_mass,
            max_mass=max_mass,
            start_mass=start_mass,
            end_mass=end_mass,
            max_points=max_points,
        )


class ResponseTimeCosts(Dict[str, float]):
    """RTO label -> cost for one instrument class, in service order."""

    @property
    def rtos(self) -> List[str]:
        return list(self.keys())

    def cost(self, rto: str) -> float:
        return self[rto]


class EstimatedCosts(Dict[str, ResponseTimeCosts]):
    """Instrument class -> ResponseTimeCosts.

    The table is rectangular: every instrument carries the same RTO labels.
    """

    @classmethod
    def from_entries(cls, entries: Iterable[JsonMap]) -> "EstimatedCosts":
        costs = cls()
        for entry in entries:
            if not isinstance(entry, dict):
                raise ResponseFormatError("Cost entry is not an object")
            instrument = str(require(entry, "Instrument"))
            rto = str(require(entry, "RTO"))
            cost = round(require_number(entry, "Cost"), 2)
            if cost < 0:
                raise ResponseFormatError(f"Negative cost for {instrument}/{rto}")
            costs.setdefault(instrument, ResponseTimeCosts())[rto] = cost

        label_sets = {frozenset(row.keys()) for row in costs.values()}
        if len(label_sets) > 1:
            raise ResponseFormatError("Instruments do not share the same RTO labels")
        return costs

    @property
    def instruments(self) -> List[str]:
        return list(self.keys())

    @property
    def rtos(self) -> List[str]:
        for row in self.values():
            return row.rtos
        return []

    def max_cost(self, rto: str) -> float:
        return max((row[rto] for row in self.values()), default=0.0)


class InitAction(BaseAction):
    ACTION = "INIT"
    SANDBOX_FIELD = "Job"

    def __init__(
        self,
        credentials: Credentials,
        version_label: str,
        record_count: int,
        attributes: JobAttributes,
        calibration_count: int = 0,
        **kwargs,
    ):
        super().__init__(credentials, **kwargs)
        self.version_label = version_label
        self.record_count = int(record_count)
        self.attributes = attributes
        self.calibration_count = int(calibration_count)

        self.job = ""
        self.project_id = 0
        self.funds = 0.0
        self.estimated_costs = EstimatedCosts()

    def parameters(self) -> QueryParams:
        attrs = self.attributes
        return [
            ("ID", str(self.credentials.project)),
            ("PI_Version", self.version_label),
            ("ScanCount", str(self.record_count)),
            ("MaxPoints", str(attrs.max_points)),
            ("MinMass", str(attrs.min_mass)),
            ("MaxMass", str(attrs.max_mass)),
            ("StartMass", str(attrs.start_mass)),
            ("EndMass", str(attrs.end_mass)),
            ("CalibrationCount", str(self.calibration_count)),
        ]

    def _parse(self, data: JsonMap) -> None:
        self.job = str(require(data, "Job"))
        self.project_id = int(require_number(data, "ProjectID"))
        self.funds = round(require_number(data, "Funds"), 2)
        entries = require(data, "EstimatedCost")
        if not isinstance(entries, list):
            raise ResponseFormatError("Field 'EstimatedCost' is not a list")
        self.estimated_costs = EstimatedCosts.from_entries(entries)

    def sandbox_response(self) -> JsonMap:
        return {
            "Action": self.ACTION,
            "Job": "P-504.1463",
            "ProjectID": self.credentials.project,
            "Funds": 115.01,
            "EstimatedCost": [
                {"Instrument": "TOF", "RTO": "RTO-24", "Cost": 27.60},
                {"Instrument": "TOF", "RTO": "RTO-0", "Cost": 46.92},
                {"Instrument": "Orbitrap", "RTO": "RTO-24", "Cost": 36.22},
                {"Instrument": "Orbitrap", "RTO": "RTO-0", "Cost": 61.57},
            ],
        }
