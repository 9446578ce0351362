"""attestkit application factory and bootstrap."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from flask import Flask

from attestkit.config import config_by_name
from attestkit.core.crypto.signed_message import Ed25519SignedMessageVerifier
from attestkit.core.events.event_bus import event_bus
from attestkit.core.pairing.session_store import PairingSessionStore
from attestkit.extensions import init_extensions


def create_app(config_name: Optional[str] = None) -> Flask:
    """Create and configure the attestkit Flask application."""
    env_name = (config_name or os.environ.get("APP_ENV") or "development").lower()
    project_root = Path(__file__).resolve().parent.parent
    instance_root = project_root / "instance"

    app = Flask(__name__, instance_path=str(instance_root), instance_relative_config=True)
    config_cls = config_by_name.get(env_name, config_by_name["development"])
    app.config.from_object(config_cls)

    # Normalize sqlite path to absolute to avoid "unable to open database file"
    db_uri = app.config.get("SQLALCHEMY_DATABASE_URI")
    if db_uri and db_uri.startswith("sqlite:///") and not db_uri.startswith("sqlite:////"):
        db_path = db_uri.replace("sqlite:///", "", 1)
        abs_path = project_root / db_path
        abs_path.parent.mkdir(parents=True, exist_ok=True)
        app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{abs_path}"

    init_extensions(app)
    _register_blueprints(app)
    _register_error_handlers(app)
    _register_collaborators(app)

    @app.get("/health")
    def health():
        return {"ok": True}, 200

    from attestkit.scripts.cli import register_commands

    register_commands(app)

    return app


def _register_blueprints(app: Flask) -> None:
    """Lazy import and register all controllers."""
    from attestkit.domains.attestations.controllers.message_api import message_api_bp
    from attestkit.domains.attestations.controllers.order_api import order_api_bp

    app.register_blueprint(order_api_bp, url_prefix="/api/orders")
    app.register_blueprint(message_api_bp, url_prefix="/api/messages")


def _register_error_handlers(app: Flask) -> None:
    """Basic JSON error responses."""
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        return {"ok": False, "error": exc.description}, exc.code

    @app.errorhandler(Exception)
    def _generic_error(exc: Exception):
        app.logger.exception("Unhandled error: %s", exc)
        if app.debug or app.testing:
            return {"ok": False, "error": str(exc)}, 500
        return {"ok": False, "error": "unexpected_error"}, 500


def _register_collaborators(app: Flask) -> None:
    """Attach the per-process collaborators used by the attestation services."""
    from attestkit.domains.attestations.notifications import attestation_notifier
    from attestkit.domains.attestations.services.issuance_client import issuer_from_config

    app.extensions["event_bus"] = event_bus
    app.extensions["pairing_sessions"] = PairingSessionStore(
        ttl_seconds=app.config["PAIRING_SESSION_TTL_SECONDS"]
    )
    app.extensions["issuer"] = issuer_from_config(app.config)
    app.extensions["signature_verifier"] = Ed25519SignedMessageVerifier()

    attestation_notifier.dedupe_limit = app.config["NOTIFICATION_DEDUPE_LIMIT"]
    attestation_notifier.register_subscriptions(event_bus)
    app.extensions["attestation_notifier"] = attestation_notifier
