import asyncio

from powerdialer.services.pending_calls import AmdResult, CallStatus, PendingCall, PendingCallRegistry


def _call(session_id="cc-1", run_id="run-1", started_at=0.0):
    return PendingCall(
        session_id=session_id,
        contact_id="c1",
        from_number="+15550001111",
        to_number="+15551230000",
        run_id=run_id,
        started_at=started_at,
    )


def test_register_keeps_first_entry():
    registry = PendingCallRegistry()
    first = registry.register(_call())
    second = registry.register(_call())
    assert second is first
    assert len(registry) == 1


def test_amd_result_is_set_once():
    registry = PendingCallRegistry()
    registry.register(_call())
    registry.update_status("cc-1", CallStatus.HUMAN_DETECTED, amd_result=AmdResult.HUMAN)
    registry.update_status("cc-1", CallStatus.HUMAN_DETECTED, amd_result=AmdResult.UNKNOWN)
    registry.update_status("cc-1", CallStatus.VOICEMAIL, amd_result=AmdResult.MACHINE)
    assert registry.get("cc-1").amd_result is AmdResult.HUMAN


def test_unknown_amd_result_can_be_upgraded():
    registry = PendingCallRegistry()
    registry.register(_call())
    registry.update_status("cc-1", CallStatus.AMD_CHECKING, amd_result=AmdResult.UNKNOWN)
    registry.update_status("cc-1", CallStatus.VOICEMAIL, amd_result=AmdResult.MACHINE)
    assert registry.get("cc-1").amd_result is AmdResult.MACHINE


def test_update_status_stamps_answer_and_human_times():
    now = [50.0]
    registry = PendingCallRegistry(clock=lambda: now[0])
    registry.register(_call())
    registry.update_status("cc-1", CallStatus.AMD_CHECKING)
    now[0] = 52.0
    registry.update_status("cc-1", CallStatus.HUMAN_DETECTED)
    call = registry.get("cc-1")
    assert call.answered_at == 50.0
    assert call.human_at == 52.0


def test_update_status_of_unknown_call_is_noop():
    assert PendingCallRegistry().update_status("ghost", CallStatus.ANSWERED) is None


def test_active_counts_skip_terminal_calls():
    registry = PendingCallRegistry()
    registry.register(_call("a"))
    registry.register(_call("b"))
    registry.register(_call("c", run_id="run-2"))
    registry.update_status("b", CallStatus.VOICEMAIL)
    assert registry.count_active("run-1") == 1
    assert {c.session_id for c in registry.for_run("run-1")} == {"a", "b"}


def test_sweep_removes_only_stale_calls():
    registry = PendingCallRegistry(clock=lambda: 1000.0)
    registry.register(_call("old", started_at=100.0))
    registry.register(_call("new", started_at=900.0))
    stale = registry.sweep(600)
    assert [c.session_id for c in stale] == ["old"]
    assert "old" not in registry
    assert "new" in registry


async def test_remove_cancels_fallback_timer():
    registry = PendingCallRegistry()
    call = registry.register(_call())
    call.fallback_task = asyncio.create_task(asyncio.sleep(10))
    task = call.fallback_task
    registry.remove("cc-1")
    await asyncio.sleep(0)
    assert task.cancelled()
    assert call.fallback_task is None


async def test_locked_serializes_handlers_for_one_call():
    registry = PendingCallRegistry()
    registry.register(_call())
    order = []

    async def handler(name):
        async with registry.locked("cc-1") as call:
            assert call is not None
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(handler("a"), handler("b"))
    assert order == ["a-in", "a-out", "b-in", "b-out"]
