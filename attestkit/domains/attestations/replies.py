"""Catalog of replies sent back to a paired device."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

INVALID_FORMAT = "invalid_format"
VALIDATION_FAILED = "validation_failed"
MISMATCH_ADDRESS = "mismatch_address"
MISMATCH_DATA = "mismatch_data"
ALREADY_ATTESTED = "already_attested"
ORDER_NOT_FOUND = "order_not_found"
GENERIC_ERROR = "generic_error"
ATTESTED = "attested"
ADDRESS_SAVED = "address_saved"
INSTRUCTIONS = "instructions"


@dataclass(frozen=True)
class Reply:
    code: str
    text: str
    unit: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.code in (ATTESTED, ALREADY_ATTESTED, ADDRESS_SAVED, INSTRUCTIONS)

    def as_dict(self) -> dict:
        return {"code": self.code, "text": self.text, "unit": self.unit}


def invalid_format() -> Reply:
    return Reply(
        INVALID_FORMAT,
        "The signed message has an invalid format. Please sign the message again from your wallet.",
    )


def validation_failed() -> Reply:
    return Reply(VALIDATION_FAILED, "Signed message validation failed.")


def mismatch_address() -> Reply:
    return Reply(MISMATCH_ADDRESS, "The address in the message does not match the address that signed it.")


def mismatch_data() -> Reply:
    return Reply(MISMATCH_DATA, "The signed data does not match your attestation order.")


def already_attested(provider: Optional[str], address: Optional[str], unit: Optional[str] = None) -> Reply:
    where = f" by {provider}" if provider else ""
    return Reply(ALREADY_ATTESTED, f"Address {address} is already attested{where}.", unit=unit)


def order_not_found() -> Reply:
    return Reply(ORDER_NOT_FOUND, "We could not find an attestation order for this data.")


def generic_error() -> Reply:
    return Reply(GENERIC_ERROR, "Unknown error! Please try again.")


def attested(unit: str) -> Reply:
    return Reply(ATTESTED, f"Your data was attested successfully! Attestation unit: {unit}", unit=unit)


def address_saved(address: str) -> Reply:
    return Reply(ADDRESS_SAVED, f"Thanks, address {address} saved. Now sign the ownership message in your wallet.")


def instructions() -> Reply:
    return Reply(
        INSTRUCTIONS,
        "Send your wallet address, then a signed message \"I own the address: <address>\" with your data.",
    )
