"""Reusable decorators for controllers."""

from __future__ import annotations

import hmac
from functools import wraps
from typing import Callable, TypeVar

from flask import current_app, jsonify, request

F = TypeVar("F", bound=Callable)


def require_api_key(fn: F) -> F:
    """Validate the X-API-Key header when API_KEY is configured."""

    @wraps(fn)
    def wrapper(*args, **kwargs):  # type: ignore[misc]
        expected = current_app.config.get("API_KEY") or ""
        if not expected:
            return fn(*args, **kwargs)
        supplied = request.headers.get("X-API-Key") or ""
        if not hmac.compare_digest(supplied, expected):
            return jsonify({"ok": False, "error": "unauthorized"}), 401
        return fn(*args, **kwargs)

    return wrapper  # type: ignore[return-value]
