from flask import Blueprint, current_app, request
from flask_jwt_extended import jwt_required

from presence_api.common.http import ok, fail

bp = Blueprint("qr", __name__, url_prefix="/api/v1/qr")


@bp.post("/validate")
@jwt_required()
def validate_token():
    data = request.get_json(silent=True) or request.form.to_dict()
    token = (data.get("token") or data.get("qr_token") or "").strip()
    if not token:
        return fail("token is required", status=400, code="VALIDATION_ERROR")

    claims = current_app.extensions["qr_tokens"].verify(token)
    if not claims:
        return fail("Invalid or expired QR token", status=400, code="QR_INVALID")

    return ok({
        "valid": True,
        "data": {
            "office_id": claims["office_id"],
            "created_by": claims["created_by"],
            "expires_at": claims["expires_at"],
        },
    })
