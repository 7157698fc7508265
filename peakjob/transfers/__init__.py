from .sandbox import SandboxTransfers
from .service import PeakJobService

__all__ = ["PeakJobService", "SandboxTransfers"]
