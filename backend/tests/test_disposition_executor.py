from types import SimpleNamespace

from powerdialer.models.dialer_list import ListEntryStatus
from powerdialer.services.crm_service import CrmBackend
from powerdialer.services.disposition_service import (
    ActionContext,
    execute_actions,
    final_entry_status,
    is_dnc_disposition,
    render_template,
)


class FakeCrm(CrmBackend):
    def __init__(self, fields=None):
        self.fields = fields or {
            "firstName": "Dana",
            "lastName": "Reyes",
            "phone": "+15551230000",
            "email": "",
            "companyName": "",
            "propertyAddress": "12 Elm St",
        }
        self.calls = []

    def contact_fields(self, contact_id):
        return dict(self.fields)

    def add_tag(self, contact_id, tag_name):
        self.calls.append(("add_tag", tag_name))
        return 1

    def remove_tag(self, contact_id, tag_name):
        self.calls.append(("remove_tag", tag_name))
        return tag_name == "Known"

    def set_dnc(self, contact_id, dnc, reason=None):
        self.calls.append(("set_dnc", dnc, reason))

    def enroll_in_sequence(self, contact_id, sequence_id):
        self.calls.append(("enroll", sequence_id))
        return True

    def schedule_message(self, contact_id, channel, body, scheduled_at, **fields):
        self.calls.append(("message", channel, body, fields))

    def create_task(self, contact_id, title, **fields):
        self.calls.append(("task", title, fields))

    def update_deal_stage(self, contact_id, stage, pipeline_id=None):
        self.calls.append(("deal", stage, pipeline_id))

    def set_entry_status(self, contact_id, status, list_id=None, count_attempt=False):
        self.calls.append(("entry", status, list_id, count_attempt))
        return 1

    def mark_bad_number(self, contact_id, reason):
        self.calls.append(("bad_number", reason))


def _action(action_type, config=None, sort_order=0):
    return SimpleNamespace(action_type=action_type, config=config or {}, sort_order=sort_order)


def test_failed_action_does_not_stop_the_rest():
    crm = FakeCrm()
    actions = [
        _action("REMOVE_TAG", {"tagName": "Missing"}, sort_order=1),
        _action("ADD_TAG", {"tagName": "Hot Lead"}, sort_order=2),
    ]
    results = execute_actions(actions, "c1", ActionContext(), crm)

    assert [(r.action_type, r.success) for r in results] == [("REMOVE_TAG", False), ("ADD_TAG", True)]
    assert results[0].error == "Tag not found"
    assert ("add_tag", "Hot Lead") in crm.calls


def test_actions_run_in_sort_order():
    crm = FakeCrm()
    actions = [
        _action("ADD_TAG", {"tagName": "second"}, sort_order=5),
        _action("ADD_TAG", {"tagName": "first"}, sort_order=1),
    ]
    execute_actions(actions, "c1", ActionContext(), crm)
    assert crm.calls == [("add_tag", "first"), ("add_tag", "second")]


def test_unknown_action_type_is_reported():
    results = execute_actions([_action("FAX_CONTACT")], "c1", ActionContext(), FakeCrm())
    assert not results[0].success
    assert "FAX_CONTACT" in results[0].error


def test_sms_prefers_the_calls_caller_id():
    crm = FakeCrm()
    action = _action("SEND_SMS", {"smsMessage": "Hi {firstName}, about {propertyAddress}", "fromNumber": "+15559990000"})
    results = execute_actions([action], "c1", ActionContext(caller_id_number="+15550001111"), crm)

    assert results[0].success
    _, channel, body, fields = crm.calls[0]
    assert channel == "SMS"
    assert body == "Hi Dana, about 12 Elm St"
    assert fields["from_number"] == "+15550001111"


def test_email_without_contact_address_fails():
    action = _action("SEND_EMAIL", {"emailBody": "Hello", "fromEmail": "agent@example.com"})
    results = execute_actions([action], "c1", ActionContext(), FakeCrm())
    assert results[0].error == "Contact has no email address"


def test_create_task_renders_title():
    crm = FakeCrm()
    action = _action("CREATE_TASK", {"taskTitle": "Call back {firstName} {lastName}", "taskDueTime": "09:30"})
    results = execute_actions([action], "c1", ActionContext(), crm)

    assert results[0].success
    _, title, fields = crm.calls[0]
    assert title == "Call back Dana Reyes"
    assert fields["due_date"].hour == 9


def test_requeue_and_remove_from_queue_scope():
    crm = FakeCrm()
    context = ActionContext(list_id="list-1")
    execute_actions(
        [_action("REQUEUE_CONTACT", sort_order=1), _action("REMOVE_FROM_QUEUE", {"scope": "all"}, sort_order=2)],
        "c1",
        context,
        crm,
    )
    assert crm.calls == [
        ("entry", ListEntryStatus.PENDING, "list-1", True),
        ("entry", ListEntryStatus.REMOVED, None, False),
    ]


def test_render_template_is_case_insensitive_and_blanks_unknown_values():
    assert render_template("Hi {FIRSTNAME} {email}!", {"firstName": "Dana", "email": None}) == "Hi Dana !"
    assert render_template(None, {}) == ""


def test_dnc_detection_and_final_entry_status():
    assert is_dnc_disposition(SimpleNamespace(name="DNC - Lawyer", marks_dnc=False))
    assert is_dnc_disposition(SimpleNamespace(name="Hostile", marks_dnc=True))
    assert not is_dnc_disposition(SimpleNamespace(name="Interested", marks_dnc=False))

    assert final_entry_status("Do Not Call") is ListEntryStatus.REMOVED
    assert final_entry_status("Wrong Number") is ListEntryStatus.REMOVED
    assert final_entry_status("Callback") is ListEntryStatus.PENDING
    assert final_entry_status("Voicemail") is ListEntryStatus.PENDING
    assert final_entry_status("Interested") is ListEntryStatus.COMPLETED
