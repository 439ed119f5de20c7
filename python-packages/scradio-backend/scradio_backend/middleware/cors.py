"""CORS middleware for scradio-backend."""

from flask import Flask, current_app, request

_ALLOWED_HEADERS = "Content-Type, Authorization"
_ALLOWED_METHODS = "GET, POST, OPTIONS"


def register_cors_middleware(app: Flask) -> None:
    """Attach CORS logic to the Flask app via before/after request hooks.

    Rules:
      - GET routes, POST /sessions, OPTIONS — permissive (any origin)
      - POST /sessions/<id>/state — only the APP_URL origin, or any origin
        when APP_URL is not configured

    Args:
        app: Flask application instance.
    """

    @app.before_request
    def handle_preflight():
        """Short-circuit OPTIONS preflight requests."""
        if request.method != "OPTIONS":
            return None

        origin = request.headers.get("Origin", "")
        if not origin:
            return ("", 204)

        response_headers = {
            "Access-Control-Allow-Methods": _ALLOWED_METHODS,
            "Access-Control-Allow-Headers": _ALLOWED_HEADERS,
        }
        requested = request.headers.get("Access-Control-Request-Method", "GET")
        if _origin_allowed(requested, request.path, origin):
            response_headers["Access-Control-Allow-Origin"] = origin

        return ("", 204, response_headers)

    @app.after_request
    def add_cors_headers(response):
        """Add CORS headers to non-preflight responses."""
        origin = request.headers.get("Origin", "")
        if not origin or request.method == "OPTIONS":
            return response

        if _origin_allowed(request.method, request.path, origin):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Methods"] = _ALLOWED_METHODS
            response.headers["Access-Control-Allow-Headers"] = _ALLOWED_HEADERS
            response.headers["Vary"] = "Origin"
        # else: no match → omit CORS headers (browser will block the request)

        return response


def _origin_allowed(method: str, path: str, origin: str) -> bool:
    if _is_permissive_route(method, path):
        return True
    app_url = current_app.config.get("APP_URL") or ""
    if not app_url:
        return True
    return origin.rstrip("/") == app_url.rstrip("/")


def _is_permissive_route(method: str, path: str) -> bool:
    return method == "GET" or (method == "POST" and path.rstrip("/") == "/sessions")
