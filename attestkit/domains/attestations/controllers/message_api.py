"""Inbound device message adapter."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from pydantic import ValidationError

from attestkit.core.utils.decorators import require_api_key
from attestkit.domains.attestations import services
from attestkit.domains.attestations.schemas.attestation_schemas import InboundMessage

message_api_bp = Blueprint("message_api", __name__)


@message_api_bp.post("")
@require_api_key
def receive_message():
    payload = request.get_json(silent=True) or {}
    try:
        message = InboundMessage.model_validate(payload)
    except ValidationError as exc:
        return (
            jsonify({"ok": False, "error": "validation_error", "details": exc.errors(include_url=False)}),
            400,
        )
    router = services.message_router()
    if message.paired:
        reply = router.on_paired(message.device_address)
    else:
        reply = router.handle(message.device_address, message.text)
    return jsonify({"ok": reply.ok, "reply": reply.as_dict()})
