from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..api.deps import get_dialer_auth
from ..core.db import get_db
from ..schemas.disposition import DispositionApply, DispositionApplyResult, DispositionCreate, DispositionOut
from ..services import disposition_service

router = APIRouter(dependencies=[Depends(get_dialer_auth)])


@router.get("", response_model=list[DispositionOut])
def list_dispositions(include_inactive: bool = False, db: Session = Depends(get_db)):
    return disposition_service.list_dispositions(db, include_inactive=include_inactive)


@router.post("", response_model=DispositionOut)
def create_disposition(payload: DispositionCreate, db: Session = Depends(get_db)):
    return disposition_service.create_disposition(db, payload)


@router.delete("/{disposition_id}")
def delete_disposition(disposition_id: int, db: Session = Depends(get_db)):
    disposition_service.delete_disposition(db, disposition_id)
    return {"deleted": True}


@router.post("/seed")
def seed_dispositions(db: Session = Depends(get_db)):
    created, updated = disposition_service.seed_default_dispositions(db)
    return {"created": created, "updated": updated}


@router.post("/apply", response_model=DispositionApplyResult)
def apply_disposition(payload: DispositionApply, db: Session = Depends(get_db)):
    """Record the agent's outcome for a call and run the disposition's actions."""
    return disposition_service.apply_disposition(db, payload)
