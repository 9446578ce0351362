import json
import os
import sys
import tempfile
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config as AlembicConfig
from cryptography.hazmat.primitives.asymmetric import ed25519

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Config classes read the environment at import time.
_DB_DIR = Path(tempfile.mkdtemp(prefix="attestkit-tests-"))
os.environ.setdefault("TEST_DATABASE_URL", f"sqlite:///{_DB_DIR / 'test.db'}")

from attestkit import create_app  # noqa: E402
from attestkit.core.crypto.signed_message import (  # noqa: E402
    address_from_definition,
    definition_for_key,
    encode_signed_message,
    sign_message,
)
from attestkit.domains.attestations.services.issuance_client import IssuanceError  # noqa: E402
from attestkit.extensions import db  # noqa: E402


# ==================== Pytest Markers ====================
def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (database, API)")


def _alembic_config() -> AlembicConfig:
    cfg = AlembicConfig()
    cfg.set_main_option("script_location", str(ROOT / "attestkit" / "migrations"))
    cfg.set_main_option("attestkit_env", "testing")
    cfg.set_main_option("sqlalchemy.url", os.environ["TEST_DATABASE_URL"])
    return cfg


@pytest.fixture(scope="session", autouse=True)
def migrated_db():
    """Apply migrations once per session to mirror production schema."""
    cfg = _alembic_config()
    command.upgrade(cfg, "head")
    yield
    command.downgrade(cfg, "base")


@pytest.fixture()
def app(migrated_db):
    """Per-test app; every table is emptied afterwards."""
    app = create_app("testing")
    ctx = app.app_context()
    ctx.push()
    try:
        yield app
    finally:
        db.session.rollback()
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.remove()
        db.engine.dispose()
        ctx.pop()


@pytest.fixture()
def client(app):
    return app.test_client()


class FakeIssuer:
    """Issues sequential units; set ``fail`` to make every call raise."""

    def __init__(self) -> None:
        self.calls = []
        self.fail = False

    def issue(self, provider, address, data):
        self.calls.append((provider, address, dict(data)))
        if self.fail:
            raise IssuanceError("issuer unavailable")
        return f"unit{len(self.calls):04d}"


@pytest.fixture()
def issuer(app):
    fake = FakeIssuer()
    app.extensions["issuer"] = fake
    return fake


class Wallet:
    """Ed25519 key pair plus the address derived from its definition."""

    def __init__(self) -> None:
        self.private_key = ed25519.Ed25519PrivateKey.generate()
        self.address = address_from_definition(definition_for_key(self.private_key.public_key()))

    def envelope(self, payload) -> dict:
        signed = payload if isinstance(payload, str) else json.dumps(payload)
        return sign_message(self.private_key, signed)

    def signed_text(self, payload) -> str:
        return f"(signed-message:{encode_signed_message(self.envelope(payload))})"

    def ownership_text(self, data: dict, provider: str = "default", address=None) -> str:
        payload = {"message": f"I own the address: {address or self.address}"}
        if provider is not None:
            payload["provider"] = provider
        payload.update(data)
        return self.signed_text(payload)


@pytest.fixture()
def wallet():
    return Wallet()


@pytest.fixture()
def other_wallet():
    return Wallet()
