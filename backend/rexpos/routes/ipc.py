# backend/rexpos/routes/ipc.py
"""
HTTP transport for the request bridge.

POST /api/ipc/<name> with a JSON object body dispatches one operation and
returns its envelope. The HTTP status mirrors the envelope's error kind so
non-desktop clients can branch on it; the body is always the envelope.
"""

from flask import Blueprint, request

from ..bridge import (
    CONFLICT,
    GUARD,
    INTERNAL,
    NOT_FOUND,
    PERSISTENCE,
    VALIDATION,
    bridge,
)

ipc_bp = Blueprint("ipc", __name__, url_prefix="/api/ipc")

STATUS_BY_CODE = {
    VALIDATION: 400,
    CONFLICT: 409,
    NOT_FOUND: 404,
    GUARD: 409,
    PERSISTENCE: 409,
    INTERNAL: 500,
}


@ipc_bp.get("")
def list_operations():
    return {"operations": bridge.names()}


@ipc_bp.post("/<name>")
def invoke(name: str):
    payload = request.get_json(silent=True)
    envelope = bridge.dispatch(name, payload)
    if envelope["success"]:
        return envelope, 200
    return envelope, STATUS_BY_CODE.get(envelope["code"], 500)
