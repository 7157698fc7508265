from .types import FlowControl, Mode, RunOutcome, SessionContext

__all__ = ["FlowControl", "Mode", "RunOutcome", "SessionContext"]
