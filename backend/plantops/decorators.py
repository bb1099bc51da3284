# Overview: Route decorators mapping domain errors to JSON responses.

from functools import wraps

from flask import current_app, jsonify

from .errors import PlantOpsError
from .validation import ValidationError


def json_errors(f):
    """
    Translate service-layer errors into {"error": ...} responses.

    - ValidationError -> 400
    - PlantOpsError subclasses -> their status_code (404 / 409 / 503)
    Anything else is logged with its traceback and returned as a 500.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except ValidationError as e:
            return jsonify({"error": str(e)}), 400
        except PlantOpsError as e:
            if e.status_code >= 500:
                current_app.logger.warning("%s: %s", type(e).__name__, e)
            return jsonify(e.to_dict()), e.status_code
        except Exception:
            current_app.logger.exception("Unhandled error in %s", f.__name__)
            return jsonify({"error": "Internal server error"}), 500

    return decorated_function
