from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict

from ..models.disposition import DispositionActionType


class DispositionActionIn(BaseModel):
    action_type: DispositionActionType
    config: dict = Field(default_factory=dict)
    sort_order: int = 0
    is_active: bool = True


class DispositionActionOut(DispositionActionIn):
    id: int

    model_config = ConfigDict(from_attributes=True)


class DispositionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    description: str | None = None
    color: str | None = Field(default=None, max_length=16)
    sort_order: int = 0
    is_active: bool = True
    marks_dnc: bool = False
    actions: list[DispositionActionIn] = Field(default_factory=list)


class DispositionOut(BaseModel):
    id: int
    name: str
    description: str | None = None
    color: str | None = None
    sort_order: int
    is_active: bool
    is_default: bool
    marks_dnc: bool
    actions: list[DispositionActionOut] = Field(default_factory=list)
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class DispositionApply(BaseModel):
    """Body posted by the agent UI once a call has an outcome; camelCase keys are accepted."""
    model_config = ConfigDict(populate_by_name=True)

    contact_id: str = Field(..., alias="contactId", min_length=1)
    disposition_id: int = Field(..., alias="dispositionId")
    notes: str | None = None
    list_id: str | None = Field(default=None, alias="listId")
    run_id: str | None = Field(default=None, alias="dialerRunId")
    leg_id: str | None = Field(default=None, alias="legId")
    caller_id_number: str | None = Field(default=None, alias="callerIdNumber")
    is_update: bool = Field(default=False, alias="isUpdate")
    previous_disposition_id: int | None = Field(default=None, alias="previousDispositionId")


class ActionResultOut(BaseModel):
    action_type: str
    success: bool
    error: str | None = None
    details: dict = Field(default_factory=dict)


class DispositionApplyResult(BaseModel):
    success: bool = True
    disposition: str
    actions_executed: int
    dnc_applied: bool = False
    results: list[ActionResultOut]
