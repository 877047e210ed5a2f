"""Request error taxonomy shared by the extractor, ceremonies and router."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    MISSING_PARAMETER = "missing_parameter"
    INVALID_PARAMETER = "invalid_parameter"
    MALFORMED_REQUEST_BODY = "malformed_request_body"
    VERIFICATION_FAILED = "verification_failed"
    NOT_FOUND = "not_found"

    @property
    def status(self) -> int:
        return ERROR_STATUS[self]


ERROR_STATUS = {
    ErrorKind.MISSING_PARAMETER: 400,
    ErrorKind.INVALID_PARAMETER: 400,
    ErrorKind.MALFORMED_REQUEST_BODY: 400,
    ErrorKind.VERIFICATION_FAILED: 400,
    ErrorKind.NOT_FOUND: 404,
}


class RequestError(Exception):
    """A failure attributable to the request, classified by ``kind``."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def status(self) -> int:
        return self.kind.status

    @classmethod
    def missing_parameter(cls, name: str) -> "RequestError":
        return cls(ErrorKind.MISSING_PARAMETER, f'Missing required parameter "{name}"')

    @classmethod
    def invalid_parameter(cls, name: str) -> "RequestError":
        return cls(ErrorKind.INVALID_PARAMETER, f'Invalid value for parameter "{name}"')

    @classmethod
    def malformed_request_body(cls) -> "RequestError":
        return cls(ErrorKind.MALFORMED_REQUEST_BODY, "Malformed request body")

    @classmethod
    def verification_failed(cls) -> "RequestError":
        return cls(ErrorKind.VERIFICATION_FAILED, "Verification failed")

    @classmethod
    def not_found(cls) -> "RequestError":
        return cls(ErrorKind.NOT_FOUND, "Not found")
