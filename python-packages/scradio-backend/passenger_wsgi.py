"""Phusion Passenger WSGI entry point for cPanel hosting.

cPanel's Application Manager (Passenger) looks for a module-level
``application`` callable that conforms to the WSGI spec (PEP 3333).

Setup on cPanel:
    1. In cPanel → Software → Setup Python App, set:
         - Python version: 3.10+ (or the highest available)
         - Application root: path/to/scradio-backend
         - Application URL: the URL you want (e.g. /api)
         - Application startup file: passenger_wsgi.py
         - Application Entry point: application
    2. Set environment variables in the Python App config:
         SECRET_PEPPER=<a long random string>
         APP_URL=https://radio.example.com
         DB_PATH=/home/<user>/scradio-backend.db   (writable path)
    3. Click "Run pip install", or run: pip install -e <repo root>

Environment variables:
    SECRET_PEPPER — Required for production. Long random string.
    APP_URL       — Public base URL for generated session links.
    DB_PATH       — Path to the SQLite database file (default: next to this file).
    SESSION_TTL   — Session retention in seconds (default: 86400).

Passenger buffers responses, so the /sessions/<id>/events stream is only
useful behind a server that supports streaming; listeners still converge
through their periodic poll.
"""

import sys
import os

# Ensure the package directory is on the path when Passenger runs this file
_here = os.path.dirname(os.path.abspath(__file__))
if _here not in sys.path:
    sys.path.insert(0, _here)

from scradio_backend.app import create_app

# Passenger expects a module-level 'application' variable
application = create_app()
