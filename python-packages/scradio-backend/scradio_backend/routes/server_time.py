"""GET /time — authority clock for client offset estimation."""

from flask import Blueprint, current_app, jsonify

from ..serializers import to_iso

time_bp = Blueprint("time", __name__)


@time_bp.get("/", strict_slashes=False)
def server_time():
    """GET /time — Current authority time."""
    authority = current_app.config["AUTHORITY"]
    return jsonify({"server_time": to_iso(authority.now())}), 200
