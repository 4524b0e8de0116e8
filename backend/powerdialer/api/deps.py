from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..core.config import get_settings
from ..services.dialer_service import DialerController

settings = get_settings()
http_bearer = HTTPBearer(auto_error=False)


def get_dialer_auth(credentials: HTTPAuthorizationCredentials = Depends(http_bearer)):
    if not credentials or credentials.credentials != settings.dialer_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid dialer token")
    return True


def get_controller(request: Request) -> DialerController:
    controller = getattr(request.app.state, "controller", None)
    if controller is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Dialer is not running")
    return controller
