# presence_api/blueprints/attendance.py
from __future__ import annotations

import math
from typing import Any, Optional

from flask import Blueprint, current_app, request
from flask_jwt_extended import jwt_required

from presence_api.common.auth import current_employee_id
from presence_api.common.http import ok, fail
from presence_api.common.uploads import save_image, discard
from presence_api.services.attendance_recorder import (
    AttemptMeta,
    AttendanceRecorder,
    load_subject,
)
from presence_api.services.factors import FactorEvaluator, Signals

bp = Blueprint("attendance", __name__, url_prefix="/api/v1/attendance")

MAX_COMMENT_LEN = 500
MAX_USER_AGENT_LEN = 512  # attendance_events.user_agent
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


# ---------- helpers ----------

def get_recorder() -> AttendanceRecorder:
    ext = current_app.extensions
    policy = ext["attendance_policy"]
    evaluator = FactorEvaluator(policy, ext["qr_tokens"], ext["face_oracle"])
    return AttendanceRecorder(policy, evaluator, ext["attendance_store"], clock=ext["attendance_clock"])


def _payload() -> dict:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


def _num(v: Any) -> Optional[float]:
    """Lenient float parse; anything unparseable counts as absent."""
    if v is None or (isinstance(v, str) and not v.strip()):
        return None
    if isinstance(v, bool):
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def _str(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _device_info() -> dict:
    ua = request.user_agent
    return {
        "user_agent": ua.string or None,
        "platform": ua.platform,
        "browser": ua.browser,
        "version": ua.version,
    }


def _attempt(photo_path: Optional[str] = None):
    data = _payload()

    comment = _str(data.get("comment"))
    if comment and len(comment) > MAX_COMMENT_LEN:
        return None, None, fail(
            f"comment must be at most {MAX_COMMENT_LEN} characters",
            status=422,
            code="VALIDATION_ERROR",
            errors={"comment": "too long"},
        )

    signals = Signals(
        lat=_num(data.get("lat")),
        lng=_num(data.get("lng", data.get("lon"))),
        accuracy_m=_num(data.get("accuracy")),
        qr_token=_str(data.get("qr_token")),
        ip_address=request.remote_addr,
        photo_path=photo_path,
    )
    meta = AttemptMeta(
        comment=comment,
        user_agent=(request.user_agent.string or "")[:MAX_USER_AGENT_LEN] or None,
        device_info=_device_info(),
    )
    return signals, meta, None


# ---------- routes ----------

@bp.post("/check-in")
@jwt_required()
def check_in():
    emp_id = current_employee_id()
    if emp_id is None:
        return fail("Unauthorized", status=401)

    # reject bad input before touching the disk
    _, _, err = _attempt()
    if err:
        return err

    subject, workplace = load_subject(emp_id)

    photo_path = None
    f = request.files.get("photo")
    if f and f.filename:
        photo_path = save_image(f, emp_id, prefix="checkin_")

    signals, meta, _ = _attempt(photo_path)
    try:
        report = get_recorder().check_in(subject, workplace, signals, meta)
    except Exception:
        # nothing was recorded, so the upload has no owner
        discard(photo_path)
        raise

    message = "Check-in successful" if report.verified else "Check-in recorded but not fully verified"
    return ok(report.to_dict(), status=201, message=message)


@bp.post("/check-out")
@jwt_required()
def check_out():
    emp_id = current_employee_id()
    if emp_id is None:
        return fail("Unauthorized", status=401)

    signals, meta, err = _attempt()
    if err:
        return err

    subject, workplace = load_subject(emp_id)
    report = get_recorder().check_out(subject, workplace, signals, meta)

    message = "Check-out successful" if report.verified else "Check-out recorded but not fully verified"
    return ok(report.to_dict(), status=201, message=message)


@bp.get("/history")
@jwt_required()
def history():
    emp_id = current_employee_id()
    if emp_id is None:
        return fail("Unauthorized", status=401)

    page = max(request.args.get("page", 1, type=int) or 1, 1)
    size = request.args.get("size", request.args.get("limit", DEFAULT_PAGE_SIZE, type=int), type=int)
    size = max(1, min(size or DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE))
    items, total = current_app.extensions["attendance_store"].for_employee(emp_id, page, size)
    return ok([r.to_dict() for r in items], page=page, size=size, total=total)
