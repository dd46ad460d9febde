from __future__ import annotations


class BemEstarError(RuntimeError):
    pass


class NotAuthenticated(BemEstarError):
    pass


class ProfileMissing(BemEstarError):
    def __init__(self, caller_id: str) -> None:
        super().__init__(f"profile not found for caller {caller_id}")
        self.caller_id = caller_id


class StoreUnavailable(BemEstarError):
    def __init__(self, operation: str, detail: str = "") -> None:
        message = f"store unavailable during {operation}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.operation = operation


class AdvisoryUnavailable(BemEstarError):
    """The reasoning engine cannot answer right now; callers show a 'try later' state."""

    REASONS = ("quota", "timeout", "not_configured", "engine_error")

    def __init__(self, reason: str, detail: str = "") -> None:
        if reason not in self.REASONS:
            reason = "engine_error"
        super().__init__(detail or reason)
        self.reason = reason


class MalformedAdvisoryResponse(BemEstarError):
    pass
