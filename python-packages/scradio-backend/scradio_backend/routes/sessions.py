"""POST/GET /sessions and POST /sessions/<id>/state."""

import logging
from urllib.parse import urlparse

from flask import Blueprint, current_app, g, jsonify, request

from ..authority import AuthorityError, parse_requested_state
from ..middleware.auth import require_host_credential
from ..serializers import public_session, to_iso

logger = logging.getLogger(__name__)

sessions_bp = Blueprint("sessions", __name__)


def is_valid_track_url(raw: str) -> bool:
    """Accept only http(s) URLs hosted on soundcloud.com."""
    try:
        url = urlparse(raw)
    except ValueError:
        return False
    if url.scheme not in ("http", "https") or not url.hostname:
        return False
    return "soundcloud.com" in url.hostname


def _base_url() -> str:
    return (current_app.config["APP_URL"] or request.host_url).rstrip("/")


@sessions_bp.post("/", strict_slashes=False)
def create_session():
    """POST /sessions — Create a session and hand out its host secret once."""
    authority = current_app.config["AUTHORITY"]

    body = request.get_json(silent=True) or {}
    track_url = body.get("track_url")
    track_url = track_url.strip() if isinstance(track_url, str) else ""

    if not track_url or not is_valid_track_url(track_url):
        return jsonify({"error": "Invalid SoundCloud track URL"}), 400

    try:
        created = authority.create_session(track_url)
    except Exception:
        logger.exception("Failed to create session")
        return jsonify({"error": "Failed to create session"}), 500

    listener_url = f"{_base_url()}/session/{created.session_id}"
    return jsonify({
        "session_id": created.session_id,
        "host_secret": created.host_secret,
        "session_url_host": f"{listener_url}#host={created.host_secret}",
        "session_url_listener": listener_url,
    }), 200


@sessions_bp.get("/<session_id>")
def get_session(session_id: str):
    """GET /sessions/<id> — Public session row."""
    store = current_app.config["STORE"]
    row = store.get(session_id)
    if not row:
        return jsonify({"error": "Session not found"}), 404
    return jsonify(public_session(row)), 200


@sessions_bp.post("/<session_id>/state")
@require_host_credential
def update_state(session_id: str):
    """POST /sessions/<id>/state — Host playback report; renews the lease."""
    authority = current_app.config["AUTHORITY"]

    try:
        requested = parse_requested_state(request.get_json(silent=True))
        applied = authority.validate_and_apply(session_id, g.host_secret, requested)
    except AuthorityError as exc:
        return jsonify({"error": exc.message}), exc.status_code

    return jsonify({
        "ok": True,
        "server_time": to_iso(applied.server_time),
        "host_lease_expires_at": to_iso(applied.host_lease_expires_at),
    }), 200
