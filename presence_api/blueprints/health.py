from flask import Blueprint
from sqlalchemy import text

from presence_api.common.http import ok, fail
from presence_api.extensions import db

bp = Blueprint("health", __name__, url_prefix="/api")


@bp.get("/health")
def health():
    try:
        db.session.execute(text("SELECT 1"))
    except Exception as e:
        return fail("Database unavailable", status=503, code="DB_UNAVAILABLE", detail={"error": str(e)})
    return ok({"status": "ok"})
