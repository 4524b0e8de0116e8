from pydantic import BaseModel, Field

from ..services.pending_calls import AmdResult, CallStatus


class ManualCallRequest(BaseModel):
    to_number: str = Field(..., min_length=3, max_length=32)
    from_number: str | None = Field(default=None, max_length=32)
    contact_id: str | None = None
    user_id: str | None = None


class PendingCallOut(BaseModel):
    session_id: str
    contact_id: str | None = None
    run_id: str | None = None
    from_number: str
    to_number: str
    line_number: int
    status: CallStatus
    amd_result: AmdResult | None = None
