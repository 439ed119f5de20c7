"""Flask application factory for scradio-backend."""

import logging
import math
import os
import time
from typing import Callable, Optional

from flask import Flask, jsonify, request

from .authority import LeaseAuthorityManager
from .db import init_db
from .store import DEFAULT_CLEANUP_INTERVAL, DEFAULT_SESSION_TTL, SessionStore
from .middleware.cors import register_cors_middleware
from .routes.sessions import sessions_bp
from .routes.events import events_bp
from .routes.server_time import time_bp

logger = logging.getLogger(__name__)


def create_app(
    db_path: str | None = None,
    testing: bool = False,
    clock: Optional[Callable[[], int]] = None,
) -> Flask:
    """Flask application factory.

    Environment variables:
        SECRET_PEPPER    — Pepper mixed into host secret hashes.
                           If unset an empty pepper is used.
        APP_URL          — Public base URL used in generated session links,
                           and the only origin allowed to write state.
        DB_PATH          — Path to the SQLite database file.
        SESSION_TTL      — Session retention in seconds (default 86400).
        CLEANUP_INTERVAL — Retention sweep period in seconds (default 300, 0 = off).
        EVENTS_KEEPALIVE — Seconds between SSE keepalive comments (default 15).
        PORT             — Port for the dev server (used by run.py only).

    Args:
        db_path: Override the SQLite database path (useful in tests).
        testing: Set Flask testing mode (disables error catching).
        clock: Authority clock in epoch milliseconds (defaults to wall time).

    Returns:
        Configured Flask application.
    """
    app = Flask(__name__)
    app.config["TESTING"] = testing

    # -------------------------------------------------------------------------
    # Secret pepper
    # -------------------------------------------------------------------------
    pepper = os.environ.get("SECRET_PEPPER")
    if not pepper:
        pepper = ""
        logger.warning(
            "SECRET_PEPPER is not set — host secrets are hashed without a pepper. "
            "Set SECRET_PEPPER in your environment for production use."
        )

    # -------------------------------------------------------------------------
    # Public URL and streaming
    # -------------------------------------------------------------------------
    app.config["APP_URL"] = os.environ.get("APP_URL", "").rstrip("/")
    app.config["EVENTS_KEEPALIVE"] = float(os.environ.get("EVENTS_KEEPALIVE", "15"))

    # -------------------------------------------------------------------------
    # Database, session store and authority
    # -------------------------------------------------------------------------
    db = init_db(db_path)
    store = SessionStore(
        db,
        session_ttl=int(os.environ.get("SESSION_TTL", str(DEFAULT_SESSION_TTL))),
        cleanup_interval=int(os.environ.get("CLEANUP_INTERVAL", str(DEFAULT_CLEANUP_INTERVAL))),
    )
    app.config["DB"] = db
    app.config["STORE"] = store
    app.config["AUTHORITY"] = LeaseAuthorityManager(store, pepper=pepper, clock=clock)

    # -------------------------------------------------------------------------
    # CORS
    # -------------------------------------------------------------------------
    register_cors_middleware(app)

    # -------------------------------------------------------------------------
    # JSON body limit (64 KB), enforced by Flask via MAX_CONTENT_LENGTH
    # -------------------------------------------------------------------------
    app.config["MAX_CONTENT_LENGTH"] = 64 * 1024

    # -------------------------------------------------------------------------
    # Request logging
    # -------------------------------------------------------------------------
    @app.after_request
    def log_request(response):
        logger.info("%s %s %d", request.method, request.path, response.status_code)
        return response

    # -------------------------------------------------------------------------
    # Health check (no auth)
    # -------------------------------------------------------------------------
    @app.get("/health")
    def health():
        return jsonify({
            "ok": True,
            "uptime": math.floor(time.process_time()),
            "activeSessions": store.size(),
        })

    # -------------------------------------------------------------------------
    # Blueprints
    # -------------------------------------------------------------------------
    app.register_blueprint(sessions_bp, url_prefix="/sessions")
    app.register_blueprint(events_bp, url_prefix="/sessions")
    app.register_blueprint(time_bp, url_prefix="/time")

    return app
