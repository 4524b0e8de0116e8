from .dialer import RunCreate, RunControlRequest, RunStateOut, RunStatsOut
from .calls import ManualCallRequest, PendingCallOut
from .disposition import (
    DispositionActionIn,
    DispositionActionOut,
    DispositionCreate,
    DispositionOut,
    DispositionApply,
    DispositionApplyResult,
    ActionResultOut,
)

__all__ = [
    "RunCreate",
    "RunControlRequest",
    "RunStateOut",
    "RunStatsOut",
    "ManualCallRequest",
    "PendingCallOut",
    "DispositionActionIn",
    "DispositionActionOut",
    "DispositionCreate",
    "DispositionOut",
    "DispositionApply",
    "DispositionApplyResult",
    "ActionResultOut",
]
