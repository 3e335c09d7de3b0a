from flask import jsonify

from ..errors import BistroError


def error_response(exc: BistroError):
    """JSON body + status for a service error."""
    return jsonify(exc.to_dict()), exc.status_code


def internal_error():
    return jsonify({"error": "Internal server error"}), 500
