"""Order store and matcher.

Orders are matched on their canonical attribute set: the caller's data and the
stored data must be the same set of key/value pairs. ``data_fingerprint``
narrows the query and the child rows confirm the match, so slot order and
partial overlaps never produce a hit.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple

from sqlalchemy.exc import IntegrityError

from attestkit.core.crypto.signed_message import canonical_json
from attestkit.core.utils.validation import is_valid_address, is_valid_provider
from attestkit.domains.attestations.errors import (
    AlreadyExistsError,
    AttestationError,
    InvalidDataError,
)
from attestkit.domains.attestations.models.attestation_models import (
    STATUS_ADDRESSED,
    STATUS_ATTESTED,
    STATUS_PENDING,
    AttestationOrder,
    AttestationOrderAttribute,
)
from attestkit.extensions import db

logger = logging.getLogger(__name__)

MAX_KEY_LENGTH = 64
MAX_VALUE_LENGTH = 255
CREATE_ATTEMPTS = 3


@dataclass
class OrderFilter:
    """Selects orders. ``provider=None`` is a wildcard unless ``strict_provider``."""

    provider: Optional[str] = None
    data: Optional[Mapping[str, Any]] = None
    address: Optional[str] = None
    order_id: Optional[int] = None
    status: Optional[str] = None
    exclude_attested: bool = False
    strict_provider: bool = False


def _coerce_value(key: str, value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    if isinstance(value, str):
        return value
    raise InvalidDataError("Invalid data value", key=key)


def canonicalize_data(data: Any, max_pairs: Optional[int] = None) -> dict[str, str]:
    """Validate an attribute mapping and coerce its values to strings."""
    if not isinstance(data, Mapping) or not data:
        raise InvalidDataError("Invalid data object")
    if max_pairs is not None and len(data) > max_pairs:
        raise InvalidDataError("Too many data pairs", limit=max_pairs, size=len(data))
    canonical: dict[str, str] = {}
    for key, value in data.items():
        if not isinstance(key, str) or not key.strip() or len(key) > MAX_KEY_LENGTH:
            raise InvalidDataError("Invalid data key", key=str(key))
        coerced = _coerce_value(key, value)
        if len(coerced) > MAX_VALUE_LENGTH:
            raise InvalidDataError("Data value too long", key=key)
        canonical[key] = coerced
    return dict(sorted(canonical.items()))


def data_fingerprint(canonical: Mapping[str, str]) -> str:
    return hashlib.sha256(canonical_json(dict(canonical))).hexdigest()


def identity_key(provider: Optional[str], fingerprint: str) -> str:
    return hashlib.sha256(f"{provider or ''}\x00{fingerprint}".encode("utf-8")).hexdigest()


def normalize_provider(provider: Optional[str]) -> Optional[str]:
    if provider is None or provider == "":
        return None
    if not is_valid_provider(provider):
        raise InvalidDataError("Invalid service provider")
    return provider.strip()


class OrderStore:
    """Persistence and lookup for attestation orders."""

    def __init__(self, session=None, max_data_pairs: Optional[int] = None):
        self._session = session or db.session
        self.max_data_pairs = max_data_pairs

    @property
    def session(self):
        return self._session

    def _build_query(self, order_filter: OrderFilter) -> Tuple[Any, Optional[dict[str, str]]]:
        query = self._session.query(AttestationOrder)
        canonical = None

        if order_filter.order_id is not None:
            query = query.filter(AttestationOrder.id == order_filter.order_id)

        provider = normalize_provider(order_filter.provider)
        if provider is not None:
            query = query.filter(AttestationOrder.provider == provider)
        elif order_filter.strict_provider:
            query = query.filter(AttestationOrder.provider.is_(None))

        if order_filter.data is not None:
            canonical = canonicalize_data(order_filter.data, self.max_data_pairs)
            query = query.filter(AttestationOrder.data_fingerprint == data_fingerprint(canonical))

        if order_filter.address:
            if not is_valid_address(order_filter.address):
                raise InvalidDataError("Invalid wallet address")
            query = query.filter(AttestationOrder.wallet_address == order_filter.address)

        if order_filter.status:
            query = query.filter(AttestationOrder.status == order_filter.status)

        if order_filter.exclude_attested:
            query = query.filter(AttestationOrder.status != STATUS_ATTESTED)

        return query.order_by(AttestationOrder.id.asc()), canonical

    def find_orders(self, order_filter: OrderFilter) -> List[AttestationOrder]:
        query, canonical = self._build_query(order_filter)
        orders = query.all()
        if canonical is not None:
            orders = [order for order in orders if order.data == canonical]
        return orders

    def find_order(self, order_filter: OrderFilter) -> Optional[AttestationOrder]:
        orders = self.find_orders(order_filter)
        return orders[0] if orders else None

    def get(self, order_id: int) -> Optional[AttestationOrder]:
        return self._session.get(AttestationOrder, order_id)

    def list_orders(
        self, order_filter: OrderFilter, *, page: int = 1, per_page: int = 50
    ) -> Tuple[List[AttestationOrder], int]:
        if order_filter.data is not None:
            items = self.find_orders(order_filter)
            return items[(page - 1) * per_page : page * per_page], len(items)
        query, _ = self._build_query(order_filter)
        total = query.count()
        items = query.offset((page - 1) * per_page).limit(per_page).all()
        return items, total

    def create_order(
        self,
        provider: Optional[str],
        data: Mapping[str, Any],
        address: Optional[str] = None,
        allow_duplicates: bool = True,
        device_address: Optional[str] = None,
    ) -> int:
        """Get-or-create an order for (provider, data); returns its id.

        With ``allow_duplicates`` an open match is reused. Without it any
        existing match, attested or not, raises ``AlreadyExistsError``.
        """
        provider = normalize_provider(provider)
        canonical = canonicalize_data(data, self.max_data_pairs)
        if address is not None and not is_valid_address(address):
            raise InvalidDataError("Invalid wallet address")
        fingerprint = data_fingerprint(canonical)
        lookup = OrderFilter(
            provider=provider,
            data=canonical,
            exclude_attested=allow_duplicates,
            strict_provider=True,
        )

        for attempt in range(1, CREATE_ATTEMPTS + 1):
            existing = self.find_order(lookup)
            if existing is not None:
                if allow_duplicates:
                    return existing.id
                raise AlreadyExistsError(
                    "Order already exists",
                    order_id=existing.id,
                    status=existing.status,
                    unit=existing.unit,
                    wallet_address=existing.wallet_address,
                )

            order = AttestationOrder(
                provider=provider,
                data_fingerprint=fingerprint,
                identity_key=identity_key(provider, fingerprint),
                wallet_address=address,
                device_address=device_address,
                status=STATUS_ADDRESSED if address else STATUS_PENDING,
            )
            order.attributes = [
                AttestationOrderAttribute(key=key, value=value) for key, value in canonical.items()
            ]
            self._session.add(order)
            try:
                self._session.commit()
            except IntegrityError:
                # A concurrent create won the unique identity_key; re-read it.
                self._session.rollback()
                logger.info(
                    "Concurrent create for fingerprint %s lost the race (attempt %s)",
                    fingerprint,
                    attempt,
                )
                continue
            logger.info("Created attestation order %s (provider=%s)", order.id, provider)
            return order.id

        raise AttestationError("Order creation kept conflicting", fingerprint=fingerprint)
