# app.py
"""HTTP binding of the dispatch engine operations."""
import logging
import os
from datetime import datetime, timezone
from functools import wraps

from flask import Flask, jsonify, request
from werkzeug.exceptions import BadRequest

import notifier
from notifier.context import DispatchContext
from notifier.models import DispatchResult
from notifier.service import get_engine

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
LOGGER = logging.getLogger(__name__)

app = Flask(__name__)
app.json.sort_keys = False

DEBUG = os.getenv("FLASK_ENV") != "production"
SERVICE_NAME = "email-notifications"


def request_payload():
    if not request.get_data(cache=True).strip():
        return {}
    return request.get_json(force=True)


def request_context() -> DispatchContext:
    return DispatchContext(
        tenant_id=request.headers.get("X-Tenant-Id"),
        user_id=request.headers.get("X-User-Id"),
        secret_lookup=os.environ.get,
    )


def status_for(result: DispatchResult) -> int:
    if result.success:
        return 200
    if result.downstream:
        return 502
    if result.error_kind == "UnknownFailure":
        return 500
    return 400


def json_operation(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            payload = request_payload()
        except BadRequest as exc:
            LOGGER.error("Invalid JSON: %s", exc)
            return jsonify({"success": False, "error": "Invalid JSON in request body"}), 400
        result = fn(payload, request_context())
        return jsonify(result.to_dict()), status_for(result)
    return wrapper


# ------------------------------- Health -------------------------------
@app.get("/health")
def health():
    engine = get_engine()
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": notifier.__version__,
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "smtp_configured": engine.settings.smtp_configured,
    }, 200


# ------------------------------- Delivery -------------------------------
@app.post("/send")
@json_operation
def send(payload, context):
    return get_engine().send(payload, context)


@app.post("/digest/queue")
@json_operation
def digest_queue(payload, context):
    return get_engine().queue_for_digest(payload, context)


@app.post("/digest/send")
@json_operation
def digest_send(payload, context):
    return get_engine().flush_digests(context)


# ------------------------------- Preferences -------------------------------
@app.post("/preferences/update")
@json_operation
def preferences_update(payload, context):
    return get_engine().update_preference(payload, context)


@app.post("/preferences/check")
@json_operation
def preferences_check(payload, context):
    return get_engine().check_preference(payload, context)


# ------------------------------- Templates -------------------------------
@app.post("/template/validate")
@json_operation
def template_validate(payload, context):
    return get_engine().validate_template(payload, context)


# ------------- Run -------------
if __name__ == "__main__":
    app.run(debug=DEBUG)
