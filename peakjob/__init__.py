"""Client for the remote pay-per-use peak-picking service."""

__version__ = "1.0.0"

from .errors import PeakJobError, ServiceError, TransportError, UserCancelled, ValidationError  # noqa: E402
from .orchestrator import JobOrchestrator  # noqa: E402
from .workflow.types import Mode, RunOutcome  # noqa: E402

__all__ = [
    "JobOrchestrator",
    "Mode",
    "PeakJobError",
    "RunOutcome",
    "ServiceError",
    "TransportError",
    "UserCancelled",
    "ValidationError",
    "__version__",
]
