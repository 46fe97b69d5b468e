"""Error codes and exceptions for the HTTP adapter."""
from enum import Enum

from fastapi.responses import JSONResponse
from pydantic import BaseModel

from treasure_reels.config import settings
from treasure_reels.logic.models import RejectReason, TriggerResult


class ErrorCode(str, Enum):
    """Error codes returned to the client."""

    INVALID_REQUEST = "INVALID_REQUEST"
    INVALID_BET = "INVALID_BET"
    FEATURE_DISABLED = "FEATURE_DISABLED"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    ROUND_IN_PROGRESS = "ROUND_IN_PROGRESS"
    BONUS_IN_PROGRESS = "BONUS_IN_PROGRESS"
    NOTHING_TO_CONFIRM = "NOTHING_TO_CONFIRM"
    NOTHING_TO_ACKNOWLEDGE = "NOTHING_TO_ACKNOWLEDGE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


ERROR_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.INVALID_BET: 400,
    ErrorCode.FEATURE_DISABLED: 409,
    ErrorCode.INSUFFICIENT_FUNDS: 402,
    ErrorCode.ROUND_IN_PROGRESS: 409,
    ErrorCode.BONUS_IN_PROGRESS: 409,
    ErrorCode.NOTHING_TO_CONFIRM: 409,
    ErrorCode.NOTHING_TO_ACKNOWLEDGE: 409,
    ErrorCode.INTERNAL_ERROR: 500,
}

# Whether the client can expect the same request to succeed later
ERROR_RECOVERABLE: dict[ErrorCode, bool] = {
    ErrorCode.INVALID_REQUEST: False,
    ErrorCode.INVALID_BET: False,
    ErrorCode.FEATURE_DISABLED: False,
    ErrorCode.INSUFFICIENT_FUNDS: True,
    ErrorCode.ROUND_IN_PROGRESS: True,
    ErrorCode.BONUS_IN_PROGRESS: True,
    ErrorCode.NOTHING_TO_CONFIRM: False,
    ErrorCode.NOTHING_TO_ACKNOWLEDGE: False,
    ErrorCode.INTERNAL_ERROR: True,
}


class ErrorBody(BaseModel):
    code: str
    message: str
    recoverable: bool


class ErrorResponse(BaseModel):
    protocolVersion: str = settings.protocol_version
    error: ErrorBody


class GameError(Exception):
    """Base game error that maps to an error response."""

    def __init__(self, code: ErrorCode, message: str | None = None):
        self.code = code
        self.message = message or f"Error: {code.value}"
        self.status_code = ERROR_HTTP_STATUS[code]
        self.recoverable = ERROR_RECOVERABLE[code]
        super().__init__(self.message)

    @classmethod
    def from_rejection(cls, result: TriggerResult) -> "GameError":
        """Turn a rejected core trigger into the matching HTTP error."""
        reason = result.reason or RejectReason.INVALID_REQUEST
        return cls(ErrorCode(reason.value), result.message or None)

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.status_code,
            content=ErrorResponse(
                error=ErrorBody(
                    code=self.code.value,
                    message=self.message,
                    recoverable=self.recoverable,
                )
            ).model_dump(),
        )


def raise_if_rejected(result: TriggerResult) -> TriggerResult:
    if not result.accepted:
        raise GameError.from_rejection(result)
    return result
