"""
Call dispositions: the catalogue and what happens when an agent applies one.

Actions run in ascending ``sort_order``. Each action succeeds or fails on its
own; a failure is recorded and the next action still runs. A disposition that
means "do not call" always sets the contact's DNC flag, whether or not an
ADD_TO_DNC action is configured.
"""
import logging
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone

from fastapi import HTTPException
from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from ..core.config import get_settings
from ..models.contact import Contact, Task
from ..models.dialer_list import DialerListEntry, ListEntryStatus
from ..models.disposition import CallDisposition, DispositionAction, DispositionActionType, DispositionLog
from ..schemas.disposition import DispositionApply, DispositionCreate
from .crm_service import CrmBackend, SqlCrmBackend

logger = logging.getLogger(__name__)
settings = get_settings()

_TEMPLATE_VAR = re.compile(r"\{(firstName|lastName|phone|email|companyName|propertyAddress)\}", re.IGNORECASE)
_NO_ANSWER_WORDS = ("no answer", "no contact", "voicemail", "busy")
_DNC_WORDS = ("dnc", "do not call")
_REMOVE_WORDS = _DNC_WORDS + ("bad number", "wrong number")

DEFAULT_DISPOSITIONS = [
    {
        "name": "Interested",
        "description": "Contact showed interest",
        "color": "#22c55e",
        "actions": [{"action_type": "ADD_TAG", "config": {"tagName": "Interested"}}],
    },
    {
        "name": "Not Interested",
        "description": "Contact not interested",
        "color": "#ef4444",
        "actions": [
            {"action_type": "ADD_TO_DNC", "config": {"reason": "Not interested"}},
            {"action_type": "ADD_TAG", "config": {"tagName": "Not Interested"}},
        ],
    },
    {
        "name": "Callback",
        "description": "Contact requested a callback",
        "color": "#3b82f6",
        "actions": [
            {"action_type": "ADD_TAG", "config": {"tagName": "Callback"}},
            {"action_type": "CREATE_TASK", "config": {"taskTitle": "Call back {firstName} {lastName}", "taskDueInDays": 1}},
        ],
    },
    {
        "name": "No Answer",
        "description": "Contact did not answer; back into the queue",
        "color": "#f97316",
        "actions": [{"action_type": "REQUEUE_CONTACT", "config": {"delayMinutes": 30}}],
    },
    {
        "name": "Voicemail",
        "description": "Left voicemail; back into the queue",
        "color": "#8b5cf6",
        "actions": [{"action_type": "REQUEUE_CONTACT", "config": {"delayMinutes": 60}}],
    },
    {
        "name": "Wrong Number",
        "description": "Wrong number or disconnected",
        "color": "#6b7280",
        "actions": [
            {"action_type": "ADD_TAG", "config": {"tagName": "Wrong Number"}},
            {"action_type": "MARK_BAD_NUMBER", "config": {"reason": "Wrong number"}},
        ],
    },
    {
        "name": "Bad Number",
        "description": "Invalid number or wrong person",
        "color": "#991b1b",
        "actions": [
            {"action_type": "MARK_BAD_NUMBER", "config": {"reason": "Bad number"}},
            {"action_type": "ADD_TAG", "config": {"tagName": "Bad Number"}},
        ],
    },
    {
        "name": "Do Not Call",
        "description": "Contact asked not to be called again",
        "color": "#000000",
        "marks_dnc": True,
        "actions": [
            {"action_type": "ADD_TO_DNC", "config": {"reason": "Requested via phone"}},
            {"action_type": "ADD_TAG", "config": {"tagName": "DNC"}},
        ],
    },
]


class ActionError(Exception):
    pass


@dataclass
class ActionContext:
    list_id: str | None = None
    run_id: str | None = None
    leg_id: str | None = None
    caller_id_number: str | None = None
    from_email: str | None = None


@dataclass
class ActionResult:
    action_type: str
    success: bool
    error: str | None = None
    details: dict = field(default_factory=dict)

    def as_dict(self) -> dict:
        return asdict(self)


def render_template(text: str | None, fields: dict) -> str:
    if not text:
        return ""

    def _sub(match):
        key = match.group(1)
        for name, value in fields.items():
            if name.lower() == key.lower():
                return value or ""
        return ""

    return _TEMPLATE_VAR.sub(_sub, text)


def _delayed(config: dict) -> datetime:
    return datetime.now(timezone.utc) + timedelta(minutes=int(config.get("delayMinutes") or 0))


def _add_tag(crm: CrmBackend, contact_id, config, context):
    name = config.get("tagName")
    if not name:
        raise ActionError("No tag specified")
    return {"tagId": crm.add_tag(contact_id, name), "tagName": name}


def _remove_tag(crm, contact_id, config, context):
    name = config.get("tagName")
    if not name or not crm.remove_tag(contact_id, name):
        raise ActionError("Tag not found")
    return {"tagName": name}


def _add_to_dnc(crm, contact_id, config, context):
    crm.set_dnc(contact_id, True, config.get("reason") or "Added via disposition")
    return {}


def _remove_from_dnc(crm, contact_id, config, context):
    crm.set_dnc(contact_id, False)
    return {}


def _trigger_sequence(crm, contact_id, config, context):
    sequence_id = config.get("sequenceId")
    if not sequence_id:
        raise ActionError("No sequence specified")
    enrolled = crm.enroll_in_sequence(contact_id, str(sequence_id))
    return {"sequenceId": sequence_id, "alreadyEnrolled": not enrolled}


def _send_sms(crm, contact_id, config, context):
    if not config.get("smsMessage"):
        raise ActionError("No SMS message specified")
    fields = crm.contact_fields(contact_id)
    if not fields["phone"]:
        raise ActionError("Contact has no phone number")
    # reply from the number that placed the call when it is known
    from_number = context.caller_id_number or config.get("fromNumber")
    if not from_number:
        raise ActionError("No from number specified")
    crm.schedule_message(
        contact_id,
        "SMS",
        render_template(config["smsMessage"], fields),
        _delayed(config),
        from_number=from_number,
        to_number=fields["phone"],
    )
    return {"fromNumber": from_number, "toNumber": fields["phone"], "delayMinutes": config.get("delayMinutes")}


def _send_email(crm, contact_id, config, context):
    if not config.get("emailBody"):
        raise ActionError("No email body specified")
    fields = crm.contact_fields(contact_id)
    if not fields["email"]:
        raise ActionError("Contact has no email address")
    from_email = config.get("fromEmail") or context.from_email
    if not from_email:
        raise ActionError("No sender email configured")
    crm.schedule_message(
        contact_id,
        "EMAIL",
        render_template(config["emailBody"], fields),
        _delayed(config),
        from_email=from_email,
        to_email=fields["email"],
        subject=render_template(config.get("emailSubject"), fields) or "Following up on our call",
    )
    return {"toEmail": fields["email"], "delayMinutes": config.get("delayMinutes")}


def _create_task(crm, contact_id, config, context):
    due = datetime.now(timezone.utc) + timedelta(days=int(config.get("taskDueInDays") or 1))
    if config.get("taskDueTime"):
        hours, minutes = (int(part) for part in str(config["taskDueTime"]).split(":", 1))
        due = due.replace(hour=hours, minute=minutes, second=0, microsecond=0)
    fields = crm.contact_fields(contact_id)
    task_type = config.get("taskType") or "follow_up"
    crm.create_task(
        contact_id,
        render_template(config.get("taskTitle"), fields) or "Follow up",
        description=render_template(config.get("taskDescription"), fields) or None,
        type=task_type,
        status="planned",
        priority=config.get("taskPriority") or "medium",
        due_date=due,
        assigned_to=config.get("assignToUserId"),
    )
    return {"taskType": task_type, "dueDate": due.isoformat()}


def _update_deal_stage(crm, contact_id, config, context):
    stage = config.get("dealStage")
    if not stage:
        raise ActionError("No deal stage specified")
    crm.update_deal_stage(contact_id, stage, config.get("pipelineId"))
    return {"dealStage": stage}


def _requeue_contact(crm, contact_id, config, context):
    updated = crm.set_entry_status(contact_id, ListEntryStatus.PENDING, context.list_id, count_attempt=True)
    return {"delayMinutes": config.get("delayMinutes") or 30, "entries": updated}


def _remove_from_queue(crm, contact_id, config, context):
    scope = config.get("scope") or "current"
    list_id = context.list_id if scope == "current" else None
    updated = crm.set_entry_status(contact_id, ListEntryStatus.REMOVED, list_id)
    return {"scope": scope, "entries": updated}


def _mark_bad_number(crm, contact_id, config, context):
    crm.mark_bad_number(contact_id, config.get("reason") or "Marked as bad via disposition")
    return {}


_HANDLERS = {
    DispositionActionType.ADD_TAG.value: _add_tag,
    DispositionActionType.REMOVE_TAG.value: _remove_tag,
    DispositionActionType.ADD_TO_DNC.value: _add_to_dnc,
    DispositionActionType.REMOVE_FROM_DNC.value: _remove_from_dnc,
    DispositionActionType.TRIGGER_SEQUENCE.value: _trigger_sequence,
    DispositionActionType.SEND_SMS.value: _send_sms,
    DispositionActionType.SEND_EMAIL.value: _send_email,
    DispositionActionType.CREATE_TASK.value: _create_task,
    DispositionActionType.UPDATE_DEAL_STAGE.value: _update_deal_stage,
    DispositionActionType.REQUEUE_CONTACT.value: _requeue_contact,
    DispositionActionType.REMOVE_FROM_QUEUE.value: _remove_from_queue,
    DispositionActionType.MARK_BAD_NUMBER.value: _mark_bad_number,
}


def execute_actions(actions, contact_id: str, context: ActionContext, crm: CrmBackend) -> list[ActionResult]:
    results: list[ActionResult] = []
    for action in sorted(actions, key=lambda a: a.sort_order or 0):
        action_type = str(getattr(action.action_type, "value", action.action_type))
        handler = _HANDLERS.get(action_type)
        try:
            if handler is None:
                raise ActionError(f"Unknown action type {action_type}")
            with crm.action_scope():
                details = handler(crm, contact_id, action.config or {}, context)
        except Exception as exc:
            # one broken action must not stop the rest
            logger.warning("Disposition action %s failed for contact %s: %s", action_type, contact_id, exc)
            results.append(ActionResult(action_type, False, error=str(exc) or exc.__class__.__name__))
            continue
        results.append(ActionResult(action_type, True, details=details or {}))
    return results


def is_dnc_disposition(disposition: CallDisposition) -> bool:
    name = disposition.name.lower()
    return bool(disposition.marks_dnc) or any(word in name for word in _DNC_WORDS)


def final_entry_status(disposition_name: str) -> ListEntryStatus:
    name = disposition_name.lower()
    if any(word in name for word in _REMOVE_WORDS):
        return ListEntryStatus.REMOVED
    if "callback" in name or any(word in name for word in _NO_ANSWER_WORDS):
        return ListEntryStatus.PENDING
    return ListEntryStatus.COMPLETED


def _remove_previous_tags(db: Session, crm: CrmBackend, contact_id: str, previous_id: int) -> None:
    previous = db.get(CallDisposition, previous_id)
    if previous is None:
        return
    for action in previous.actions:
        if action.is_active and action.action_type == DispositionActionType.ADD_TAG.value:
            tag_name = (action.config or {}).get("tagName")
            if tag_name and crm.remove_tag(contact_id, tag_name):
                logger.info("Removed tag %r of previous disposition %r from %s", tag_name, previous.name, contact_id)


def apply_disposition(db: Session, payload: DispositionApply, crm: CrmBackend | None = None) -> dict:
    disposition = db.get(CallDisposition, payload.disposition_id)
    if not disposition:
        raise HTTPException(status_code=404, detail="Disposition not found")
    contact = db.get(Contact, payload.contact_id)
    if not contact:
        raise HTTPException(status_code=404, detail="Contact not found")
    crm = crm or SqlCrmBackend(db)

    if payload.is_update and payload.previous_disposition_id and payload.previous_disposition_id != disposition.id:
        _remove_previous_tags(db, crm, contact.id, payload.previous_disposition_id)

    context = ActionContext(
        list_id=payload.list_id,
        run_id=payload.run_id,
        leg_id=payload.leg_id,
        caller_id_number=payload.caller_id_number,
        from_email=settings.default_from_email,
    )
    actions = [a for a in disposition.actions if a.is_active]
    results = execute_actions(actions, contact.id, context, crm)

    dnc_applied = is_dnc_disposition(disposition)
    if dnc_applied:
        contact.dnc = True
        contact.dnc_reason = contact.dnc_reason or f"Disposition: {disposition.name}"

    db.add(
        DispositionLog(
            disposition_id=disposition.id,
            contact_id=contact.id,
            run_id=payload.run_id,
            list_id=payload.list_id,
            notes=payload.notes,
            actions_executed=[r.as_dict() for r in results],
        )
    )

    now = datetime.now(timezone.utc)
    name_lower = disposition.name.lower()
    custom_fields = dict(contact.custom_fields or {})
    custom_fields["lastDisposition"] = disposition.name
    if not payload.is_update:
        note = f"[{now.isoformat()}] Disposition: {disposition.name}"
        if payload.notes:
            note = f"{note} - {payload.notes}"
        contact.notes = f"{contact.notes}\n{note}" if contact.notes else note
        custom_fields["dialAttempts"] = int(custom_fields.get("dialAttempts") or 0) + 1
        custom_fields["lastDialedAt"] = now.isoformat()
        if any(word in name_lower for word in _NO_ANSWER_WORDS):
            contact.no_answer_count = (contact.no_answer_count or 0) + 1
    contact.custom_fields = custom_fields

    db.add(
        Task(
            contact_id=contact.id,
            type="call",
            status="completed",
            priority="medium",
            title=(
                f"Disposition Changed to {disposition.name}"
                if payload.is_update
                else f"Power Dialer Call - {disposition.name}"
            ),
            description=f"Notes: {payload.notes}" if payload.notes else f"Disposition: {disposition.name}",
        )
    )

    if payload.list_id:
        db.execute(
            update(DialerListEntry)
            .where(DialerListEntry.list_id == payload.list_id, DialerListEntry.contact_id == contact.id)
            .values(status=final_entry_status(disposition.name).value, disposition=disposition.name, last_called_at=now)
            .execution_options(synchronize_session=False)
        )

    db.commit()
    failed = sum(1 for r in results if not r.success)
    logger.info(
        "Disposition %r applied to %s: %s actions, %s failed, dnc=%s",
        disposition.name,
        contact.id,
        len(results),
        failed,
        dnc_applied,
    )
    return {
        "success": True,
        "disposition": disposition.name,
        "actions_executed": len(results),
        "dnc_applied": dnc_applied,
        "results": [r.as_dict() for r in results],
    }


def list_dispositions(db: Session, include_inactive: bool = False) -> list[CallDisposition]:
    stmt = select(CallDisposition).options(selectinload(CallDisposition.actions))
    if not include_inactive:
        stmt = stmt.where(CallDisposition.is_active.is_(True))
    return db.execute(stmt.order_by(CallDisposition.sort_order, CallDisposition.name)).scalars().all()


def create_disposition(db: Session, data: DispositionCreate, is_default: bool = False) -> CallDisposition:
    existing = db.execute(select(CallDisposition).where(CallDisposition.name == data.name)).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=400, detail="Disposition name already exists")
    disposition = CallDisposition(
        name=data.name,
        description=data.description,
        color=data.color,
        sort_order=data.sort_order,
        is_active=data.is_active,
        is_default=is_default,
        marks_dnc=data.marks_dnc,
    )
    disposition.actions = [
        DispositionAction(
            action_type=action.action_type.value,
            config=action.config,
            sort_order=action.sort_order if action.sort_order else index,
            is_active=action.is_active,
        )
        for index, action in enumerate(data.actions)
    ]
    db.add(disposition)
    db.commit()
    db.refresh(disposition)
    return disposition


def delete_disposition(db: Session, disposition_id: int) -> None:
    disposition = db.get(CallDisposition, disposition_id)
    if not disposition:
        raise HTTPException(status_code=404, detail="Disposition not found")
    if disposition.is_default:
        raise HTTPException(status_code=400, detail="Default dispositions cannot be deleted")
    db.delete(disposition)
    db.commit()


def seed_default_dispositions(db: Session) -> tuple[list[str], list[str]]:
    """Create the built-in dispositions, refreshing the actions of any that already exist."""
    created, updated = [], []
    for order, default in enumerate(DEFAULT_DISPOSITIONS, start=1):
        data = DispositionCreate(sort_order=order, **default)
        existing = db.execute(select(CallDisposition).where(CallDisposition.name == data.name)).scalar_one_or_none()
        if existing is None:
            create_disposition(db, data, is_default=True)
            created.append(data.name)
            continue
        existing.description = data.description
        existing.color = data.color
        existing.sort_order = order
        existing.is_default = True
        existing.marks_dnc = data.marks_dnc
        existing.actions = [
            DispositionAction(action_type=a.action_type.value, config=a.config, sort_order=index, is_active=True)
            for index, a in enumerate(data.actions)
        ]
        db.commit()
        updated.append(data.name)
    logger.info("Seeded dispositions: %s created, %s updated", len(created), len(updated))
    return created, updated
