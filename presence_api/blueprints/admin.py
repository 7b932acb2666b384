# presence_api/blueprints/admin.py
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from flask import Blueprint, Response, current_app, request, send_file

from presence_api.common.auth import current_employee_id, requires_roles
from presence_api.common.http import ok, fail
from presence_api.extensions import db
from presence_api.models.employee import Employee
from presence_api.models.master import Office
from presence_api.services import reports
from presence_api.services.qr_token import QrTokenService

bp = Blueprint("admin", __name__, url_prefix="/api/v1/admin")


def _parse_date(s: Optional[str]) -> Optional[date]:
    if not s:
        return None
    try:
        return datetime.strptime(s.strip(), "%Y-%m-%d").date()
    except ValueError:
        return None


def _today(policy) -> date:
    return datetime.now(timezone.utc).astimezone(policy.tz).date()


# ---------- QR tokens ----------

@bp.post("/qr-tokens")
@requires_roles("admin")
def issue_qr_token():
    data = request.get_json(silent=True) or request.form.to_dict()
    policy = current_app.extensions["attendance_policy"]
    tokens = current_app.extensions["qr_tokens"]

    admin_id = current_employee_id()
    office_id = data.get("office_id")
    if office_id in (None, ""):
        admin = db.session.get(Employee, admin_id) if admin_id else None
        office_id = admin.office_id if admin else None
    if office_id in (None, ""):
        return fail("office_id is required", status=400, code="VALIDATION_ERROR")

    try:
        office_id = int(office_id)
    except (TypeError, ValueError):
        return fail("office_id must be an integer", status=400, code="VALIDATION_ERROR")

    office = db.session.get(Office, office_id)
    if not office or not office.is_active:
        return fail("Office not found", status=404, code="OFFICE_NOT_FOUND")

    now = datetime.now(timezone.utc)
    minutes = data.get("expires_in_minutes")
    if minutes in (None, ""):
        minutes = QrTokenService.minutes_until_end_of_day(now, policy.tz, policy.early_leave_cutoff_hour)

    try:
        issued = tokens.issue(office.id, admin_id, int(minutes), now=now)
    except (TypeError, ValueError) as e:
        return fail(str(e), status=400, code="VALIDATION_ERROR")

    current_app.logger.info("QR token issued for office %s by %s", office.id, admin_id)
    return ok(issued, status=201)


# ---------- reports ----------

@bp.get("/reports/daily")
@requires_roles("admin")
def daily_report():
    policy = current_app.extensions["attendance_policy"]
    raw = request.args.get("date")
    day = _parse_date(raw) if raw else _today(policy)
    if day is None:
        return fail("date must be YYYY-MM-DD", status=400, code="VALIDATION_ERROR")

    report = reports.daily_report(day, policy.tz, current_app.extensions["attendance_store"])
    return ok(report)


@bp.get("/reports/export")
@requires_roles("admin")
def export_report():
    policy = current_app.extensions["attendance_policy"]
    fmt = (request.args.get("format") or "csv").lower()
    if fmt not in ("csv", "xlsx"):
        return fail("format must be csv or xlsx", status=400, code="VALIDATION_ERROR")

    today = _today(policy)
    d_from = _parse_date(request.args.get("from")) if request.args.get("from") else today
    d_to = _parse_date(request.args.get("to")) if request.args.get("to") else d_from
    if d_from is None or d_to is None:
        return fail("from/to must be YYYY-MM-DD", status=400, code="VALIDATION_ERROR")
    if d_to < d_from:
        return fail("to must not be before from", status=400, code="VALIDATION_ERROR")

    rows = reports.export_rows(d_from, d_to, policy.tz, current_app.extensions["attendance_store"])
    filename = f"attendance_{d_from.isoformat()}_{d_to.isoformat()}.{fmt}"

    if fmt == "csv":
        return Response(
            reports.to_csv(rows),
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )

    return send_file(
        reports.to_xlsx(rows),
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        as_attachment=True,
        download_name=filename,
    )
