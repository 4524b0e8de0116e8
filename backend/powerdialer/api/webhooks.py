import logging

from fastapi import APIRouter, Depends, Request

from ..api.deps import get_controller
from ..services.dialer_service import DialerController
from ..services.webhook_service import ACK, handle_call_webhook

logger = logging.getLogger(__name__)

router = APIRouter()


async def read_webhook_body(request: Request):
    try:
        return await request.json()
    except ValueError:
        raw = await request.body()
        logger.warning("Call webhook body is not JSON: %.200r", raw)
        return None


@router.post("/webhooks/calls")
async def call_webhook(request: Request, controller: DialerController = Depends(get_controller)):
    body = await read_webhook_body(request)
    if body is None:
        return ACK
    return await handle_call_webhook(controller, body)
