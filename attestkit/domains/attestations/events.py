"""Attestation domain event catalog."""

from __future__ import annotations

ADDRESS_BOUND = "attestation.address.bound"
ORDER_ATTESTED = "attestation.order.attested"

EVENT_CATALOG = {
    ADDRESS_BOUND: {
        "version": "v1",
        "payload": {
            "device_address": "str?",
            "address": "str",
            "order_id": "int?",
        },
    },
    ORDER_ATTESTED: {
        "version": "v1",
        "payload": {
            "order_id": "int",
            "provider": "str?",
            "address": "str",
            "unit": "str",
            "data": "dict",
            "device_address": "str?",
        },
    },
}

__all__ = ["ADDRESS_BOUND", "ORDER_ATTESTED", "EVENT_CATALOG"]
