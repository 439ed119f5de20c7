"""Bearer credential middleware for scradio-backend."""

import functools
from typing import Optional

from flask import g, jsonify, request


def bearer_token() -> Optional[str]:
    """Return the ``Authorization: Bearer`` value of the current request, or None."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    token = auth_header[len("Bearer "):].strip()
    return token or None


def require_host_credential(f):
    """Decorator that requires a Bearer host secret on the request.

    On success, sets ``g.host_secret`` to the presented secret. The secret is
    only checked against the session's stored hash by the authority manager.

    On a missing header, returns 401 JSON.
    """
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        secret = bearer_token()
        if secret is None:
            return jsonify({"error": "Missing authorization"}), 401

        g.host_secret = secret
        return f(*args, **kwargs)

    return wrapper
