"""
auth/errors.py -- Failure taxonomy and user-visible result shapes.

Backend call sites never let ApiError escape to the caller of a flow. They
classify it here and turn it into either a global Notice or a field-level
error, then leave the flow where it was.

Classification uses the backend's structured status code first and falls back
to HTTP semantics only when no structured code applies.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from core.backend import ApiError


class ErrorKind(str, Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    RESOURCE_ALREADY_EXISTS = "resource_already_exists"
    INVALID_OTP = "invalid_otp"
    OTP_NOT_VERIFIED = "otp_not_verified"
    NETWORK = "network"
    BACKEND = "backend"  # any other structured rejection


_STATUS_KINDS: dict[str, ErrorKind] = {
    "INVALID_OTP": ErrorKind.INVALID_OTP,
    "OTP_EXPIRED": ErrorKind.INVALID_OTP,
    "OTP_NOT_VERIFIED": ErrorKind.OTP_NOT_VERIFIED,
    "RESOURCE_ALREADY_EXISTS": ErrorKind.RESOURCE_ALREADY_EXISTS,
    "INVALID_CREDENTIALS": ErrorKind.INVALID_CREDENTIALS,
    "BAD_CREDENTIALS": ErrorKind.INVALID_CREDENTIALS,
    "CLIENT_ERROR": ErrorKind.NETWORK,
    "UNKNOWN_ERROR": ErrorKind.NETWORK,
}


def classify(error: BaseException) -> ErrorKind:
    if not isinstance(error, ApiError):
        return ErrorKind.NETWORK
    kind = _STATUS_KINDS.get(error.code.upper())
    if kind is not None:
        return kind
    if error.status_code == 401:
        return ErrorKind.INVALID_CREDENTIALS
    return ErrorKind.BACKEND


GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again."
NETWORK_ERROR_MESSAGE = "Could not reach the server. Please try again."


def describe(error: BaseException) -> str:
    """User-facing message for a failure that has no dedicated wording."""
    if classify(error) is ErrorKind.NETWORK:
        return NETWORK_ERROR_MESSAGE
    if isinstance(error, ApiError) and error.message:
        return error.message
    return GENERIC_ERROR_MESSAGE


class NoticeLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    """A non-blocking global notification (toast)."""

    level: NoticeLevel
    title: str
    message: str

    @classmethod
    def success(cls, title: str, message: str) -> "Notice":
        return cls(NoticeLevel.SUCCESS, title, message)

    @classmethod
    def error(cls, title: str, message: str) -> "Notice":
        return cls(NoticeLevel.ERROR, title, message)


class SessionExpired(Exception):
    """The access token could not be refreshed; the local session was cleared."""
