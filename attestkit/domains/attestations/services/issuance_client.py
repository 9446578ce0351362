"""HTTP client for the credential issuance backend."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Protocol

import requests

from attestkit.core.utils.validation import is_valid_unit
from attestkit.domains.attestations.errors import IssuanceFailureError

logger = logging.getLogger(__name__)


class IssuanceError(IssuanceFailureError):
    """Raised when the issuance backend fails; the call may be retried."""


class Issuer(Protocol):
    def issue(self, provider: Optional[str], address: str, data: Mapping[str, str]) -> str: ...


class HttpIssuanceClient:
    """POSTs ``{provider, address, data}`` and expects ``{"unit": "..."}`` back."""

    def __init__(
        self,
        url: str,
        token: str = "",
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.token = token
        self.timeout = timeout
        self.http = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def issue(self, provider: Optional[str], address: str, data: Mapping[str, str]) -> str:
        payload: Dict[str, Any] = {"provider": provider, "address": address, "data": dict(data)}
        try:
            response = self.http.post(self.url, json=payload, headers=self._headers(), timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as exc:
            raise IssuanceError(f"Issuance request failed: {exc}") from exc
        except ValueError as exc:
            raise IssuanceError("Issuance response is not JSON") from exc

        unit = body.get("unit") if isinstance(body, dict) else None
        if not is_valid_unit(unit):
            raise IssuanceError("Issuance response carries no valid unit")
        logger.info("Issued attestation unit %s for %s", unit, address)
        return unit


class UnconfiguredIssuer:
    """Placeholder used when ISSUANCE_URL is empty; every call fails."""

    def issue(self, provider: Optional[str], address: str, data: Mapping[str, str]) -> str:
        raise IssuanceError("ISSUANCE_URL is not configured")


def issuer_from_config(config: Mapping[str, Any]) -> Issuer:
    url = config.get("ISSUANCE_URL") or ""
    if not url:
        return UnconfiguredIssuer()
    return HttpIssuanceClient(
        url,
        token=config.get("ISSUANCE_TOKEN") or "",
        timeout=float(config.get("ISSUANCE_TIMEOUT_SECONDS") or 30),
    )
