class DialerError(Exception):
    status_code = 400

    def __init__(self, detail: str, **context):
        super().__init__(detail)
        self.detail = detail
        self.context = context

    def to_dict(self) -> dict:
        return {"detail": self.detail, **self.context}


class RunNotFoundError(DialerError):
    status_code = 404

    def __init__(self, run_id: str):
        super().__init__("Run not found", run_id=run_id)


class InvalidTransitionError(DialerError):
    status_code = 409

    def __init__(self, run_id: str, action: str, current_status: str):
        super().__init__(
            f"Cannot {action} run in status {current_status}",
            run_id=run_id,
            action=action,
            current_status=current_status,
        )


class RunConflictError(DialerError):
    status_code = 409

    def __init__(self, run_id: str, blocking_run_id: str):
        super().__init__(
            "Another dialer run is already running",
            run_id=run_id,
            blocking_run_id=blocking_run_id,
        )


class NoCallerIdError(DialerError):
    def __init__(self):
        super().__init__("No phone numbers available for outbound calls")


class GatewayError(Exception):
    """Raised when the telephony provider rejects or cannot be reached for a command."""

    def __init__(self, message: str, status_code: int | None = None, payload: dict | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}

    @property
    def already_ended(self) -> bool:
        # Provider answers 404/422 for commands against a finished call.
        return self.status_code in (404, 422)


class ListNotFoundError(DialerError):
    status_code = 404

    def __init__(self, list_id: str):
        super().__init__("Dialer list not found", list_id=list_id)


class NoRemainingContactsError(DialerError):
    status_code = 409

    def __init__(self, run_id: str):
        super().__init__("Run has no remaining contacts to dial", run_id=run_id)
