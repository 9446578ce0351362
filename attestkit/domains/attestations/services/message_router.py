"""Routes free-text device messages to the pairing store or the verifier."""

from __future__ import annotations

import logging

from attestkit.core.pairing.session_store import PairingSessionStore
from attestkit.core.utils.validation import is_valid_address
from attestkit.domains.attestations import replies
from attestkit.domains.attestations.events import ADDRESS_BOUND
from attestkit.domains.attestations.services.verification_service import VerificationService
from attestkit.extensions import db
from attestkit.platform.outbox import enqueue as enqueue_outbox

logger = logging.getLogger(__name__)


class MessageRouter:
    def __init__(self, sessions: PairingSessionStore, verification: VerificationService) -> None:
        self.sessions = sessions
        self.verification = verification

    def on_paired(self, device_address: str) -> replies.Reply:
        self.sessions.sweep()
        self.sessions.get_or_create(device_address, replace=True)
        return replies.instructions()

    def handle(self, device_address: str, text: str) -> replies.Reply:
        self.sessions.get_or_create(device_address)
        text = (text or "").strip()

        if is_valid_address(text):
            self.sessions.set_address(device_address, text)
            enqueue_outbox(ADDRESS_BOUND, {"device_address": device_address, "address": text})
            db.session.commit()
            logger.info("Device %s claimed address %s", device_address, text)
            return replies.address_saved(text)

        if "signed-message" in text:
            reply = self.verification.verify(device_address, text)
            if reply.code == replies.ATTESTED:
                self.sessions.clear_address(device_address)
            return reply
        return replies.instructions()
