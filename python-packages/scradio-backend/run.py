"""Development server entry point.

Usage:
    python run.py

Environment variables:
    PORT          — Port to listen on (default: 3000)
    SECRET_PEPPER — Pepper for host secret hashes (empty if not set)
    APP_URL       — Public base URL for session links
    DB_PATH       — SQLite database path
"""

import logging
import os

from scradio_backend.app import create_app

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    app = create_app()
    port = int(os.environ.get("PORT", 3000))
    app.run(host="0.0.0.0", port=port, debug=False, threaded=True)
