from .base import BaseAction, Credentials
from .delete import DeleteAction
from .init import EstimatedCosts, InitAction, JobAttributes, ResponseTimeCosts
from .run import RunAction
from .sandbox import SandboxAction
from .sftp import SftpAction, TransferCredentials
from .status import JobStatus, StatusAction
from .versions import PiVersionsAction

__all__ = [
    "BaseAction",
    "Credentials",
    "DeleteAction",
    "EstimatedCosts",
    "InitAction",
    "JobAttributes",
    "JobStatus",
    "PiVersionsAction",
    "ResponseTimeCosts",
    "RunAction",
    "SandboxAction",
    "SftpAction",
    "StatusAction",
    "TransferCredentials",
]
