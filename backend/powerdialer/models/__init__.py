from .contact import Contact, Tag, ContactTag, Task, ScheduledMessage, SequenceEnrollment, Deal
from .dialer_list import DialerList, DialerListEntry, ListEntryStatus
from .dialer_run import DialerRun, DialerRunLeg, RunStatus, CallerIdStrategy
from .disposition import CallDisposition, DispositionAction, DispositionActionType, DispositionLog

__all__ = [
    "Contact",
    "Tag",
    "ContactTag",
    "Task",
    "ScheduledMessage",
    "SequenceEnrollment",
    "Deal",
    "DialerList",
    "DialerListEntry",
    "ListEntryStatus",
    "DialerRun",
    "DialerRunLeg",
    "RunStatus",
    "CallerIdStrategy",
    "CallDisposition",
    "DispositionAction",
    "DispositionActionType",
    "DispositionLog",
]
