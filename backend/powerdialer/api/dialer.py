from fastapi import APIRouter, Depends

from ..api.deps import get_controller, get_dialer_auth
from ..schemas.dialer import RunControlRequest, RunCreate, RunStateOut, RunStatsOut
from ..services.dialer_service import DialerController
from ..services.run_registry import RunState

router = APIRouter(dependencies=[Depends(get_dialer_auth)])


def _run_out(controller: DialerController, run: RunState) -> RunStateOut:
    return RunStateOut(
        id=run.id,
        list_id=run.list_id,
        status=run.status,
        max_lines=run.max_lines,
        caller_id_strategy=run.strategy,
        caller_ids=run.numbers,
        cursor=run.cursor,
        total_contacts=run.total_contacts,
        active_calls=controller.calls.count_active(run.id),
        stats=RunStatsOut(**run.counters()),
        started_at=run.started_at,
        paused_at=run.paused_at,
        completed_at=run.completed_at,
    )


@router.post("/runs", response_model=RunStateOut)
async def create_run(payload: RunCreate, controller: DialerController = Depends(get_controller)):
    run = controller.create_run(
        payload.list_id,
        numbers=payload.caller_ids,
        max_lines=payload.max_lines,
        strategy=payload.caller_id_strategy.value if payload.caller_id_strategy else None,
        user_id=payload.user_id,
        draft=payload.draft,
    )
    if payload.start:
        run = await controller.start(run.id, force=payload.force)
    return _run_out(controller, run)


@router.get("/runs", response_model=list[RunStateOut])
def list_runs(controller: DialerController = Depends(get_controller)):
    return [_run_out(controller, run) for run in controller.list_runs()]


@router.get("/runs/{run_id}", response_model=RunStateOut)
def get_run(run_id: str, controller: DialerController = Depends(get_controller)):
    return _run_out(controller, controller.get_run(run_id))


@router.post("/runs/{run_id}", response_model=RunStateOut)
async def control_run(
    run_id: str,
    payload: RunControlRequest,
    controller: DialerController = Depends(get_controller),
):
    """Apply a lifecycle action; invalid transitions answer 409 with the current status."""
    if payload.action == "start":
        run = await controller.start(run_id, force=payload.force)
    elif payload.action == "pause":
        run = await controller.pause(run_id)
    elif payload.action == "resume":
        run = await controller.resume(run_id, force=payload.force)
    else:
        run = await controller.stop(run_id)
    return _run_out(controller, run)


@router.delete("/runs/{run_id}", response_model=RunStateOut)
async def stop_run(run_id: str, controller: DialerController = Depends(get_controller)):
    run = await controller.stop(run_id)
    return _run_out(controller, run)
