from fastapi import APIRouter, Depends, Request

from ..api.deps import get_controller, get_dialer_auth
from ..api.webhooks import read_webhook_body
from ..schemas.calls import ManualCallRequest, PendingCallOut
from ..services.dialer_service import DialerController
from ..services.webhook_service import ACK, handle_call_webhook

router = APIRouter()


@router.post("/manual-with-amd", response_model=PendingCallOut, dependencies=[Depends(get_dialer_auth)])
async def manual_call_with_amd(payload: ManualCallRequest, controller: DialerController = Depends(get_controller)):
    """Place one agent-initiated call that goes through the same AMD screening as the power dialer."""
    call = await controller.dial_manual(
        payload.to_number,
        from_number=payload.from_number,
        contact_id=payload.contact_id,
        user_id=payload.user_id,
    )
    return PendingCallOut(
        session_id=call.session_id,
        contact_id=call.contact_id,
        run_id=call.run_id,
        from_number=call.from_number,
        to_number=call.to_number,
        line_number=call.line_number,
        status=call.status,
        amd_result=call.amd_result,
    )


@router.post("/manual-amd-webhook")
async def manual_amd_webhook(request: Request, controller: DialerController = Depends(get_controller)):
    body = await read_webhook_body(request)
    if body is None:
        return ACK
    return await handle_call_webhook(controller, body)
