"""Signed-message envelopes: extraction, decoding and Ed25519 verification.

An envelope is the JSON object::

    {
      "signed_message": "<payload string>",
      "authors": [
        {
          "address": "<32-char base32 address>",
          "definition": ["sig", {"pubkey": "<base64 raw ed25519 key>"}],
          "authentifiers": {"r": "<base64 signature>"}
        }
      ]
    }

Wallets transmit it base64-encoded inside ``(signed-message:...)``. The
signature covers the SHA-256 of the canonical JSON of the envelope with every
``authentifiers`` entry stripped, and an author's address is the base32 of the
first 160 bits of the SHA-256 of its canonical definition.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import re
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from attestkit.core.utils.validation import require_fields

SIGNED_MESSAGE_RE = re.compile(r"\(signed-message:(.+?)\)")


class SignedMessageFormatError(ValueError):
    """Raised when an envelope cannot be decoded into the expected structure."""


class SignatureError(Exception):
    """Raised when an envelope's signature does not verify."""


def canonical_json(value: Any) -> bytes:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def address_from_definition(definition: Any) -> str:
    digest = hashlib.sha256(canonical_json(definition)).digest()[:20]
    return base64.b32encode(digest).decode("ascii")


def extract_signed_message(text: str) -> Optional[str]:
    """Return the base64 block of the first ``(signed-message:...)`` in text."""
    if not isinstance(text, str):
        return None
    match = SIGNED_MESSAGE_RE.search(text)
    if not match:
        return None
    return match.group(1).strip() or None


def decode_signed_message(encoded: str) -> Dict[str, Any]:
    """Decode a base64 envelope and check its shape (not its signature)."""
    try:
        raw = base64.b64decode(encoded, validate=True)
        envelope = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise SignedMessageFormatError("envelope is not base64 JSON") from exc

    if not isinstance(envelope, dict):
        raise SignedMessageFormatError("envelope must be an object")
    try:
        require_fields(envelope, "signed_message", "authors")
    except ValueError as exc:
        raise SignedMessageFormatError(str(exc)) from exc
    if not isinstance(envelope["signed_message"], str):
        raise SignedMessageFormatError("signed_message must be a string")
    authors = envelope["authors"]
    if not isinstance(authors, list) or not all(isinstance(a, dict) for a in authors):
        raise SignedMessageFormatError("authors must be a list of objects")
    for author in authors:
        _check_author(author)
    try:
        canonical_json(envelope)
    except UnicodeEncodeError as exc:
        raise SignedMessageFormatError("envelope holds text that is not valid unicode") from exc
    return envelope


def _check_author(author: Dict[str, Any]) -> None:
    if not isinstance(author.get("address"), str):
        raise SignedMessageFormatError("author address must be a string")
    definition = author.get("definition")
    if (
        not isinstance(definition, list)
        or len(definition) != 2
        or definition[0] != "sig"
        or not isinstance(definition[1], dict)
        or not isinstance(definition[1].get("pubkey"), str)
    ):
        raise SignedMessageFormatError('author definition must be ["sig", {"pubkey": <str>}]')
    authentifiers = author.get("authentifiers")
    if not isinstance(authentifiers, dict) or not isinstance(authentifiers.get("r"), str):
        raise SignedMessageFormatError('author authentifiers must hold a string "r"')


def encode_signed_message(envelope: Dict[str, Any]) -> str:
    return base64.b64encode(canonical_json(envelope)).decode("ascii")


def signing_digest(envelope: Dict[str, Any]) -> bytes:
    unsigned = {
        "signed_message": envelope.get("signed_message"),
        "authors": [
            {k: v for k, v in author.items() if k != "authentifiers"}
            for author in envelope.get("authors") or []
        ],
    }
    return hashlib.sha256(canonical_json(unsigned)).digest()


def _public_key_from_definition(definition: Any) -> ed25519.Ed25519PublicKey:
    if (
        not isinstance(definition, list)
        or len(definition) != 2
        or definition[0] != "sig"
        or not isinstance(definition[1], dict)
    ):
        raise SignatureError("unsupported address definition")
    try:
        raw = base64.b64decode(definition[1].get("pubkey") or "", validate=True)
        return ed25519.Ed25519PublicKey.from_public_bytes(raw)
    except (binascii.Error, ValueError) as exc:
        raise SignatureError("invalid public key") from exc


class Ed25519SignedMessageVerifier:
    """Verifies every author of an envelope against its own definition."""

    def verify(self, envelope: Dict[str, Any]) -> None:
        authors = envelope.get("authors") or []
        if not authors:
            raise SignatureError("no authors")
        # Envelopes that skipped decode_signed_message can be any shape.
        try:
            digest = signing_digest(envelope)
            for author in authors:
                self._verify_author(author, digest)
        except (TypeError, AttributeError, ValueError) as exc:
            raise SignatureError("malformed envelope") from exc

    def _verify_author(self, author: Dict[str, Any], digest: bytes) -> None:
        definition = author.get("definition")
        if address_from_definition(definition) != author.get("address"):
            raise SignatureError("definition does not match address")
        public_key = _public_key_from_definition(definition)
        signature_b64 = (author.get("authentifiers") or {}).get("r") or ""
        try:
            signature = base64.b64decode(signature_b64, validate=True)
            public_key.verify(signature, digest)
        except (binascii.Error, InvalidSignature) as exc:
            raise SignatureError("invalid signature") from exc


def definition_for_key(public_key: ed25519.Ed25519PublicKey) -> list:
    raw = public_key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return ["sig", {"pubkey": base64.b64encode(raw).decode("ascii")}]


def sign_message(private_key: ed25519.Ed25519PrivateKey, signed_message: str) -> Dict[str, Any]:
    """Build a single-author envelope over ``signed_message``."""
    definition = definition_for_key(private_key.public_key())
    envelope = {
        "signed_message": signed_message,
        "authors": [{"address": address_from_definition(definition), "definition": definition}],
    }
    signature = private_key.sign(signing_digest(envelope))
    envelope["authors"][0]["authentifiers"] = {"r": base64.b64encode(signature).decode("ascii")}
    return envelope
