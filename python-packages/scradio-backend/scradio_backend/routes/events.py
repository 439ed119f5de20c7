"""GET /sessions/<id>/events — server-sent session change stream."""

import json
import queue

from flask import Blueprint, Response, current_app, jsonify

from ..serializers import public_session

events_bp = Blueprint("events", __name__)


def format_event(row: dict) -> str:
    """Encode a session row as one ``session`` SSE event."""
    return f"event: session\ndata: {json.dumps(public_session(row), separators=(',', ':'))}\n\n"


@events_bp.get("/<session_id>/events")
def session_events(session_id: str):
    """Stream the current row, then every update, until the client disconnects."""
    store = current_app.config["STORE"]
    keepalive = current_app.config["EVENTS_KEEPALIVE"]

    changes: queue.Queue = queue.Queue()
    unsubscribe = store.subscribe(session_id, changes.put)
    row = store.get(session_id)
    if not row:
        unsubscribe()
        return jsonify({"error": "Session not found"}), 404

    def stream():
        try:
            yield format_event(row)
            while True:
                try:
                    changed = changes.get(timeout=keepalive)
                except queue.Empty:
                    yield ": keepalive\n\n"
                    continue
                yield format_event(changed)
        finally:
            unsubscribe()

    return Response(
        stream(),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
