"""Attestation order API controllers."""

from __future__ import annotations

import math

from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError

from attestkit.core.utils.decorators import require_api_key
from attestkit.domains.attestations import errors, services
from attestkit.domains.attestations.mappers import map_order
from attestkit.domains.attestations.schemas.attestation_schemas import (
    BindRequest,
    DeviceRebind,
    OrderCreate,
    OrderListFilter,
    OrderSelector,
)
from attestkit.domains.attestations.services import OrderFilter

order_api_bp = Blueprint("order_api", __name__)

_STATUS_BY_CODE = {
    errors.INVALID_DATA: 400,
    errors.INVALID_FORMAT: 400,
    errors.ORDER_NOT_FOUND: 404,
    errors.ADDRESS_NOT_FOUND: 404,
    errors.ALREADY_EXISTS: 409,
    errors.ALREADY_ATTESTED: 409,
    errors.ISSUANCE_IN_PROGRESS: 409,
    errors.ISSUANCE_FAILURE: 503,
}


def _validation_error(exc: ValidationError):
    return (
        jsonify({"ok": False, "error": "validation_error", "details": exc.errors(include_url=False)}),
        400,
    )


def _attestation_error(exc: errors.AttestationError):
    body = {
        "ok": False,
        "error": exc.code,
        "message": exc.message,
        "retryable": exc.retryable,
        "context": exc.context,
    }
    return jsonify(body), _STATUS_BY_CODE.get(exc.code, 400)


def _parse_body(schema_cls):
    payload = request.get_json(silent=True) or {}
    try:
        return schema_cls.model_validate(payload), None
    except ValidationError as exc:
        return None, exc


def _selector_filter(selector: OrderSelector) -> OrderFilter:
    return OrderFilter(
        provider=selector.provider,
        data=selector.data,
        address=selector.address,
        order_id=selector.order_id,
    )


def _require_selector(selector: OrderSelector):
    if selector.order_id is None and not selector.data:
        return jsonify({"ok": False, "error": "validation_error", "message": "order_id or data required"}), 400
    return None


@order_api_bp.get("")
@require_api_key
def list_orders():
    try:
        params = OrderListFilter.model_validate(dict(request.args.items()))
    except ValidationError as exc:
        return _validation_error(exc)
    order_filter = OrderFilter(
        provider=params.provider,
        address=params.address,
        status=params.status,
        exclude_attested=params.exclude_attested,
    )
    try:
        items, total = services.order_store().list_orders(order_filter, page=params.page, per_page=params.per_page)
    except errors.AttestationError as exc:
        return _attestation_error(exc)
    pages = math.ceil(total / params.per_page) if params.per_page else 1
    return jsonify(
        {
            "ok": True,
            "items": [map_order(o) for o in items],
            "page": params.page,
            "pages": pages,
            "total": total,
        }
    )


@order_api_bp.post("")
@require_api_key
def create_order():
    data, err = _parse_body(OrderCreate)
    if err:
        return _validation_error(err)
    allow_duplicates = data.allow_duplicates
    if allow_duplicates is None:
        allow_duplicates = current_app.config.get("ALLOW_DUPLICATE_ORDERS", True)
    store = services.order_store()
    try:
        order_id = store.create_order(
            data.provider,
            data.data,
            address=data.address,
            allow_duplicates=allow_duplicates,
            device_address=data.device_address,
        )
    except errors.AttestationError as exc:
        return _attestation_error(exc)
    return jsonify({"ok": True, "order": map_order(store.get(order_id))}), 201


@order_api_bp.get("/<int:order_id>")
@require_api_key
def get_order(order_id: int):
    order = services.order_store().get(order_id)
    if not order:
        return jsonify({"ok": False, "error": "not_found"}), 404
    return jsonify({"ok": True, "order": map_order(order)})


@order_api_bp.post("/lookup")
@require_api_key
def lookup_order():
    selector, err = _parse_body(OrderSelector)
    if err:
        return _validation_error(err)
    missing = _require_selector(selector)
    if missing:
        return missing
    try:
        order = services.order_store().find_order(_selector_filter(selector))
    except errors.AttestationError as exc:
        return _attestation_error(exc)
    if not order:
        return jsonify({"ok": False, "error": "not_found"}), 404
    return jsonify({"ok": True, "order": map_order(order)})


@order_api_bp.post("/bind")
@require_api_key
def bind_address():
    data, err = _parse_body(BindRequest)
    if err:
        return _validation_error(err)
    missing = _require_selector(data)
    if missing:
        return missing
    selector = OrderFilter(provider=data.provider, data=data.data, order_id=data.order_id)
    try:
        order = services.lifecycle_service().bind_address(selector, data.address, device_address=data.device_address)
    except errors.AttestationError as exc:
        return _attestation_error(exc)
    return jsonify({"ok": True, "order": map_order(order)})


@order_api_bp.post("/unbind")
@require_api_key
def unbind_address():
    selector, err = _parse_body(OrderSelector)
    if err:
        return _validation_error(err)
    missing = _require_selector(selector)
    if missing:
        return missing
    try:
        order = services.lifecycle_service().unbind_address(_selector_filter(selector))
    except errors.AttestationError as exc:
        return _attestation_error(exc)
    return jsonify({"ok": True, "order": map_order(order)})


@order_api_bp.patch("/<int:order_id>/device")
@require_api_key
def rebind_device(order_id: int):
    data, err = _parse_body(DeviceRebind)
    if err:
        return _validation_error(err)
    try:
        order = services.lifecycle_service().rebind_device_address(order_id, data.device_address)
    except errors.AttestationError as exc:
        return _attestation_error(exc)
    return jsonify({"ok": True, "order": map_order(order)})
