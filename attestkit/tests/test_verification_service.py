"""Tests for the signed-message verification protocol."""

import json

import pytest

pytestmark = pytest.mark.integration

from attestkit.core.crypto.signed_message import address_from_definition, encode_signed_message
from attestkit.domains.attestations import replies, services
from attestkit.domains.attestations.models.attestation_models import (
    STATUS_ATTESTED,
    STATUS_PENDING,
    AttestationOrder,
)
from attestkit.domains.attestations.services.order_store import OrderFilter
from attestkit.extensions import db
from attestkit.platform.outbox.models import OutboxMessage

DATA = {"username": "alice", "userId": "42"}
OTHER = "B" * 32


@pytest.fixture
def verifier(app, issuer):
    return services.verification_service()


@pytest.fixture
def order_id(app):
    return services.order_store().create_order("default", DATA)


def _snapshot(order_id):
    order = db.session.get(AttestationOrder, order_id)
    db.session.refresh(order)
    outbox = db.session.query(OutboxMessage).count()
    return (order.status, order.wallet_address, order.unit, order.issuance_lease_id, order.updated_at, outbox)


class TestHappyPath:
    def test_end_to_end_attestation(self, verifier, issuer, wallet, order_id):
        reply = verifier.verify("device-1", wallet.ownership_text(DATA))

        assert reply.code == replies.ATTESTED
        assert reply.unit == "unit0001"
        assert "unit0001" in reply.text
        order = db.session.get(AttestationOrder, order_id)
        db.session.refresh(order)
        assert order.status == STATUS_ATTESTED
        assert order.wallet_address == wallet.address
        assert order.unit == "unit0001"
        assert order.issuance_lease_id is None
        assert issuer.calls == [("default", wallet.address, {"userId": "42", "username": "alice"})]

    def test_numeric_values_match_string_order_data(self, verifier, wallet, order_id):
        reply = verifier.verify("device-1", wallet.ownership_text({"username": "alice", "userId": 42}))
        assert reply.code == replies.ATTESTED

    def test_address_key_instead_of_phrase(self, verifier, wallet, order_id):
        payload = {"address": wallet.address, "provider": "default", **DATA}
        reply = verifier.verify("device-1", wallet.signed_text(payload))
        assert reply.code == replies.ATTESTED

    def test_resubmit_after_attestation_is_idempotent(self, verifier, issuer, wallet, order_id):
        text = wallet.ownership_text(DATA)
        assert verifier.verify("device-1", text).code == replies.ATTESTED
        before = _snapshot(order_id)

        reply = verifier.verify("device-1", text)

        assert reply.code == replies.ALREADY_ATTESTED
        assert reply.unit == "unit0001"
        assert wallet.address in reply.text
        assert _snapshot(order_id) == before
        assert len(issuer.calls) == 1

    def test_providerless_deployment(self, app, issuer, wallet):
        app.config["SERVICE_PROVIDER"] = ""
        order_id = services.order_store().create_order(None, DATA)
        reply = services.verification_service().verify("device-1", wallet.ownership_text(DATA, provider=None))
        assert reply.code == replies.ATTESTED
        assert issuer.calls[0][0] is None
        assert db.session.get(AttestationOrder, order_id).status == STATUS_ATTESTED


class TestFailClosed:
    def test_missing_block_is_invalid_format(self, verifier, order_id):
        before = _snapshot(order_id)
        assert verifier.verify("device-1", "hello signed-message").code == replies.INVALID_FORMAT
        assert _snapshot(order_id) == before

    def test_undecodable_envelope_is_invalid_format(self, verifier, order_id):
        reply = verifier.verify("device-1", "(signed-message:!!not-base64!!)")
        assert reply.code == replies.INVALID_FORMAT

    def test_invalid_claimed_address_is_invalid_format(self, verifier, wallet, order_id):
        reply = verifier.verify("device-1", wallet.ownership_text(DATA, address="not-an-address"))
        assert reply.code == replies.INVALID_FORMAT

    def test_non_json_payload_is_invalid_format(self, verifier, wallet, order_id):
        reply = verifier.verify("device-1", wallet.signed_text("I own the address: " + wallet.address))
        assert reply.code == replies.INVALID_FORMAT

    def test_tampered_signature_fails_validation(self, verifier, issuer, wallet, order_id):
        before = _snapshot(order_id)
        envelope = wallet.envelope({"message": f"I own the address: {wallet.address}", **DATA})
        envelope["signed_message"] = json.dumps(
            {"message": f"I own the address: {wallet.address}", "username": "alice", "userId": "43"}
        )

        reply = verifier.verify("device-1", f"(signed-message:{encode_signed_message(envelope)})")

        assert reply.code == replies.VALIDATION_FAILED
        assert _snapshot(order_id) == before
        assert issuer.calls == []

    def test_empty_authors_fails_validation(self, verifier, wallet, order_id):
        envelope = wallet.envelope({"message": f"I own the address: {wallet.address}", **DATA})
        envelope["authors"] = []
        reply = verifier.verify("device-1", f"(signed-message:{encode_signed_message(envelope)})")
        assert reply.code == replies.VALIDATION_FAILED

    @pytest.mark.parametrize(
        "author_update",
        [
            {"definition": ["sig", {"pubkey": 5}], "address": address_from_definition(["sig", {"pubkey": 5}])},
            {"authentifiers": ["x"]},
            {"authentifiers": {"r": None}},
            {"address": 12},
        ],
        ids=["int-pubkey", "list-authentifiers", "missing-signature", "int-address"],
    )
    def test_malformed_author_is_invalid_format(self, verifier, issuer, wallet, order_id, author_update):
        before = _snapshot(order_id)
        envelope = wallet.envelope({"message": f"I own the address: {wallet.address}", **DATA})
        envelope["authors"][0].update(author_update)

        reply = verifier.verify("device-1", f"(signed-message:{encode_signed_message(envelope)})")

        assert reply.code == replies.INVALID_FORMAT
        assert _snapshot(order_id) == before
        assert issuer.calls == []

    def test_claimed_address_not_signer(self, verifier, issuer, wallet, other_wallet, order_id):
        before = _snapshot(order_id)
        reply = verifier.verify("device-1", wallet.ownership_text(DATA, address=other_wallet.address))
        assert reply.code == replies.MISMATCH_ADDRESS
        assert _snapshot(order_id) == before
        assert issuer.calls == []

    def test_mismatched_data_for_bound_order(self, verifier, issuer, wallet, order_id):
        services.lifecycle_service().bind_address(OrderFilter(order_id=order_id), wallet.address)
        before = _snapshot(order_id)

        reply = verifier.verify("device-1", wallet.ownership_text({"username": "alice", "userId": "43"}))

        assert reply.code == replies.MISMATCH_DATA
        assert _snapshot(order_id) == before
        assert issuer.calls == []

    def test_mismatched_declared_provider(self, verifier, issuer, wallet, order_id):
        before = _snapshot(order_id)
        reply = verifier.verify("device-1", wallet.ownership_text(DATA, provider="other"))
        assert reply.code == replies.MISMATCH_DATA
        assert _snapshot(order_id) == before

    def test_order_bound_to_other_wallet(self, verifier, issuer, wallet, order_id):
        services.lifecycle_service().bind_address(OrderFilter(order_id=order_id), OTHER)
        before = _snapshot(order_id)
        reply = verifier.verify("device-1", wallet.ownership_text(DATA))
        assert reply.code == replies.MISMATCH_ADDRESS
        assert _snapshot(order_id) == before

    def test_unknown_data(self, verifier, wallet, order_id):
        reply = verifier.verify("device-1", wallet.ownership_text({"username": "mallory"}))
        assert reply.code == replies.ORDER_NOT_FOUND


class TestIssuance:
    def test_issuance_failure_leaves_order_untouched(self, verifier, issuer, wallet, order_id):
        before = _snapshot(order_id)
        issuer.fail = True

        reply = verifier.verify("device-1", wallet.ownership_text(DATA))

        assert reply.code == replies.GENERIC_ERROR
        assert _snapshot(order_id) == before
        assert before[0] == STATUS_PENDING

        issuer.fail = False
        assert verifier.verify("device-1", wallet.ownership_text(DATA)).code == replies.ATTESTED

    def test_lease_held_elsewhere_skips_issuance(self, verifier, issuer, wallet, order_id):
        assert services.lifecycle_service().claim_issuance(order_id) is not None
        reply = verifier.verify("device-1", wallet.ownership_text(DATA))
        assert reply.code == replies.GENERIC_ERROR
        assert issuer.calls == []
