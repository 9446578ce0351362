"""Application configuration for attestkit."""

from __future__ import annotations

import os
from typing import Dict, Optional, Type

from dotenv import load_dotenv
from sqlalchemy.engine.url import make_url

load_dotenv()


def _engine_options_from_uri(uri: str) -> dict:
    url = make_url(uri)
    # Always keep pool_pre_ping, vary connect_args by dialect.
    if url.get_backend_name() == "sqlite":
        return {
            "pool_pre_ping": True,
            "connect_args": {"timeout": 30},
        }
    if url.get_backend_name() in {"postgresql", "postgres"}:
        timeout = int(os.environ.get("DB_CONNECT_TIMEOUT_SECONDS", "10"))
        return {"pool_pre_ping": True, "connect_args": {"connect_timeout": timeout}}
    return {"pool_pre_ping": True}


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


def _optional_int(name: str) -> Optional[int]:
    raw = os.environ.get(name, "").strip()
    return int(raw) if raw else None


class BaseConfig:
    """Base configuration loaded for all environments."""

    SECRET_KEY = os.environ.get("SECRET_KEY", "change-me")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///instance/attestkit.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options_from_uri(SQLALCHEMY_DATABASE_URI)
    MAX_CONTENT_LENGTH = int(os.environ.get("MAX_CONTENT_LENGTH", str(64 * 1024)))

    # Admin key for the HTTP API; empty disables the check.
    API_KEY = os.environ.get("API_KEY", "")

    # Empty string selects the providerless deployment variant.
    SERVICE_PROVIDER = os.environ.get("SERVICE_PROVIDER", "default")
    ALLOW_DUPLICATE_ORDERS = _env_flag("ALLOW_DUPLICATE_ORDERS", "true")
    MAX_DATA_PAIRS = _optional_int("MAX_DATA_PAIRS")

    ISSUANCE_URL = os.environ.get("ISSUANCE_URL", "")
    ISSUANCE_TOKEN = os.environ.get("ISSUANCE_TOKEN", "")
    ISSUANCE_TIMEOUT_SECONDS = float(os.environ.get("ISSUANCE_TIMEOUT_SECONDS", "30"))
    ISSUANCE_LEASE_SECONDS = int(os.environ.get("ISSUANCE_LEASE_SECONDS", "120"))

    PAIRING_SESSION_TTL_SECONDS = int(os.environ.get("PAIRING_SESSION_TTL_SECONDS", "3600"))
    # Outbox ids each notifier remembers for redelivery checks.
    NOTIFICATION_DEDUPE_LIMIT = int(os.environ.get("NOTIFICATION_DEDUPE_LIMIT", "10000"))

    OUTBOX_BATCH_SIZE = int(os.environ.get("OUTBOX_BATCH_SIZE", "50"))
    OUTBOX_POLL_INTERVAL = float(os.environ.get("OUTBOX_POLL_INTERVAL", "5"))
    OUTBOX_MAX_ATTEMPTS = int(os.environ.get("OUTBOX_MAX_ATTEMPTS", "5"))
    OUTBOX_MAX_BACKOFF_SECONDS = float(os.environ.get("OUTBOX_MAX_BACKOFF_SECONDS", "900"))


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    ENV = "development"


class TestingConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URL", "sqlite:///instance/test.db")
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options_from_uri(SQLALCHEMY_DATABASE_URI)
    API_KEY = ""
    SERVICE_PROVIDER = "default"
    ALLOW_DUPLICATE_ORDERS = True
    MAX_DATA_PAIRS = None
    ISSUANCE_URL = ""


class ProductionConfig(BaseConfig):
    ENV = "production"


config_by_name: Dict[str, Type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    # CI pipelines set APP_ENV=ci; map to testing defaults.
    "ci": TestingConfig,
}
