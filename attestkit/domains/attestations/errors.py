"""Tagged failures raised by the attestation services."""

from __future__ import annotations

from typing import Any, Dict

INVALID_DATA = "INVALID_DATA"
INVALID_FORMAT = "INVALID_FORMAT"
VALIDATION_FAILED = "VALIDATION_FAILED"
MISMATCH_ADDRESS = "MISMATCH_ADDRESS"
MISMATCH_DATA = "MISMATCH_DATA"
ALREADY_EXISTS = "ALREADY_EXISTS"
ALREADY_ATTESTED = "ALREADY_ATTESTED"
ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
ADDRESS_NOT_FOUND = "ADDRESS_NOT_FOUND"
ISSUANCE_FAILURE = "ISSUANCE_FAILURE"
ISSUANCE_IN_PROGRESS = "ISSUANCE_IN_PROGRESS"


class AttestationError(Exception):
    """Base error; ``code`` is the taxonomy tag, ``context`` structured detail."""

    code = "ATTESTATION_ERROR"
    retryable = False

    def __init__(self, message: str | None = None, **context: Any) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.context}


class InvalidDataError(AttestationError):
    code = INVALID_DATA


class InvalidFormatError(AttestationError):
    code = INVALID_FORMAT


class ValidationFailedError(AttestationError):
    code = VALIDATION_FAILED


class MismatchAddressError(AttestationError):
    code = MISMATCH_ADDRESS


class MismatchDataError(AttestationError):
    code = MISMATCH_DATA


class AlreadyExistsError(AttestationError):
    """Carries the existing order's ``order_id``, ``status``, ``unit`` and ``wallet_address``."""

    code = ALREADY_EXISTS


class AlreadyAttestedError(AttestationError):
    code = ALREADY_ATTESTED


class OrderNotFoundError(AttestationError):
    code = ORDER_NOT_FOUND


class AddressNotFoundError(AttestationError):
    code = ADDRESS_NOT_FOUND


class IssuanceFailureError(AttestationError):
    code = ISSUANCE_FAILURE
    retryable = True


class IssuanceInProgressError(AttestationError):
    """The order is open but another verifier holds its issuance lease."""

    code = ISSUANCE_IN_PROGRESS
    retryable = True


__all__ = [
    "AttestationError",
    "InvalidDataError",
    "InvalidFormatError",
    "ValidationFailedError",
    "MismatchAddressError",
    "MismatchDataError",
    "AlreadyExistsError",
    "AlreadyAttestedError",
    "OrderNotFoundError",
    "AddressNotFoundError",
    "IssuanceFailureError",
    "IssuanceInProgressError",
]
