import csv
import io
import os
from datetime import datetime, timezone

import pytest
import pytz
from flask_jwt_extended import create_access_token
from openpyxl import load_workbook

from presence_api import create_app
from presence_api.extensions import db
from presence_api.models.employee import Employee
from presence_api.models.master import Office
from presence_api.services.face_oracle import FaceError, FaceMatchResult

from tests.fakes import FakeOracle

IST = pytz.timezone("Asia/Kolkata")
NEAR = {"lat": "12.97187", "lng": "77.5946", "accuracy": "15"}


def _at(day, h, m):
    return IST.localize(datetime(2025, 3, day, h, m)).astimezone(timezone.utc)


def _mk_app():
    return create_app(test_config={
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "JWT_SECRET_KEY": "test-jwt-secret-0123456789abcdef0123456789",
        "QR_TOKEN_SECRET": "test-qr-secret-0123456789abcdef0123456789",
        "ATTENDANCE_TIMEZONE": "Asia/Kolkata",
        "FACE_ENGINE_ENABLED": False,
    })


@pytest.fixture
def app():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def people(app):
    office = Office(name="HQ", geo_lat=12.9716, geo_lon=77.5946)
    db.session.add(office); db.session.commit()
    admin = Employee(office_id=office.id, code="A001", email="admin@test.local", full_name="Admin")
    emp = Employee(office_id=office.id, code="E001", email="e1@test.local", full_name="Test Emp")
    db.session.add_all([admin, emp]); db.session.commit()
    return office, admin, emp


def _auth(emp_id, roles=("employee",)):
    token = create_access_token(identity=str(emp_id), additional_claims={"roles": list(roles)})
    return {"Authorization": f"Bearer {token}"}


def _punch(app, client, emp_id, path, when):
    app.extensions["attendance_clock"] = lambda: when
    r = client.post(f"/api/v1/attendance/{path}", data=NEAR, headers=_auth(emp_id))
    assert r.status_code == 201


# ---------- QR tokens ----------

def test_admin_issues_token_for_own_office_and_it_validates(client, people):
    office, admin, emp = people
    r = client.post("/api/v1/admin/qr-tokens", json={"expires_in_minutes": 30}, headers=_auth(admin.id, ["admin"]))
    assert r.status_code == 201
    issued = r.get_json()["data"]
    assert issued["office_id"] == str(office.id)

    v = client.post("/api/v1/qr/validate", json={"token": issued["token"]}, headers=_auth(emp.id))
    assert v.status_code == 200
    data = v.get_json()["data"]
    assert data["valid"] is True
    assert data["data"]["office_id"] == str(office.id)
    assert data["data"]["created_by"] == str(admin.id)


def test_default_expiry_is_end_of_working_day(client, people):
    _, admin, _ = people
    r = client.post("/api/v1/admin/qr-tokens", json={}, headers=_auth(admin.id, ["admin"]))
    assert r.status_code == 201
    expires = datetime.fromtimestamp(r.get_json()["data"]["expires_at"] / 1000, tz=timezone.utc).astimezone(IST)
    assert (expires.hour, expires.minute) == (17, 0)


def test_invalid_lifetime_and_unknown_office_are_rejected(client, people):
    _, admin, _ = people
    h = _auth(admin.id, ["admin"])
    assert client.post("/api/v1/admin/qr-tokens", json={"expires_in_minutes": 5000}, headers=h).status_code == 400
    assert client.post("/api/v1/admin/qr-tokens", json={"office_id": 404}, headers=h).status_code == 404


def test_non_admin_cannot_issue_tokens(client, people):
    _, _, emp = people
    r = client.post("/api/v1/admin/qr-tokens", json={}, headers=_auth(emp.id))
    assert r.status_code == 403


def test_validate_rejects_garbage(client, people):
    _, _, emp = people
    r = client.post("/api/v1/qr/validate", json={"token": "nope"}, headers=_auth(emp.id))
    assert r.status_code == 400
    assert r.get_json()["error"]["code"] == "QR_INVALID"


# ---------- reports ----------

def test_daily_report_summary(app, client, people):
    _, admin, emp = people
    _punch(app, client, emp.id, "check-in", _at(10, 10, 15))     # late
    _punch(app, client, emp.id, "check-out", _at(10, 16, 30))    # early
    _punch(app, client, admin.id, "check-in", _at(10, 9, 0))
    _punch(app, client, emp.id, "check-in", _at(11, 9, 0))       # next day

    r = client.get("/api/v1/admin/reports/daily?date=2025-03-10", headers=_auth(admin.id, ["admin"]))
    assert r.status_code == 200
    report = r.get_json()["data"]
    assert report["date"] == "2025-03-10"
    s = report["summary"]
    assert s["total_check_ins"] == 2
    assert s["total_check_outs"] == 1
    assert s["late_check_ins"] == 1
    assert s["early_check_outs"] == 1
    assert s["unverified"] == 3
    assert s["total_records"] == 3
    assert [row["type"] for row in report["records"]] == ["check-in", "check-in", "check-out"]


def test_daily_report_bad_date(client, people):
    _, admin, _ = people
    r = client.get("/api/v1/admin/reports/daily?date=10-03-2025", headers=_auth(admin.id, ["admin"]))
    assert r.status_code == 400


def test_export_csv(app, client, people):
    _, admin, emp = people
    _punch(app, client, emp.id, "check-in", _at(10, 10, 15))

    r = client.get("/api/v1/admin/reports/export?format=csv&from=2025-03-10&to=2025-03-10",
                   headers=_auth(admin.id, ["admin"]))
    assert r.status_code == 200
    assert r.mimetype == "text/csv"
    rows = list(csv.reader(io.StringIO(r.get_data(as_text=True))))
    assert rows[0] == ["employee", "timestamp", "type", "verified", "isSuspicious", "isLate", "isEarlyLeave", "comment"]
    assert rows[1][0] == "Test Emp"
    assert rows[1][1].startswith("2025-03-10T10:15:00")
    assert rows[1][5] == "True"


def test_export_xlsx(app, client, people):
    _, admin, emp = people
    _punch(app, client, emp.id, "check-in", _at(10, 9, 0))
    _punch(app, client, emp.id, "check-out", _at(10, 18, 0))

    r = client.get("/api/v1/admin/reports/export?format=xlsx&from=2025-03-10&to=2025-03-10",
                   headers=_auth(admin.id, ["admin"]))
    assert r.status_code == 200
    ws = load_workbook(io.BytesIO(r.data)).active
    assert ws.max_row == 3
    assert ws.cell(row=2, column=3).value == "check-in"
    assert ws.cell(row=3, column=3).value == "check-out"


def test_export_rejects_unknown_format_and_reversed_range(client, people):
    _, admin, _ = people
    h = _auth(admin.id, ["admin"])
    assert client.get("/api/v1/admin/reports/export?format=pdf", headers=h).status_code == 400
    assert client.get("/api/v1/admin/reports/export?from=2025-03-11&to=2025-03-10", headers=h).status_code == 400


# ---------- face enrolment ----------

def test_face_status_and_register_when_engine_disabled(client, people):
    _, _, emp = people
    s = client.get("/api/v1/face/status", headers=_auth(emp.id))
    assert s.get_json()["data"] == {
        "employee_id": emp.id,
        "face_registered": False,
        "face_registered_at": None,
        "service_available": False,
    }

    r = client.post("/api/v1/face/register", data={"image": (io.BytesIO(b"jpeg"), "me.jpg")},
                    headers=_auth(emp.id), content_type="multipart/form-data")
    assert r.status_code == 503
    assert r.get_json()["error"]["code"] == "FACE_UNAVAILABLE"


def _image(name="me.jpg"):
    return {"image": (io.BytesIO(b"jpeg"), name)}


def _verify(client, emp_id, data=None):
    return client.post("/api/v1/face/verify", data=data if data is not None else _image(),
                       headers=_auth(emp_id), content_type="multipart/form-data")


def test_face_verify_requires_an_image(client, people):
    _, _, emp = people
    r = _verify(client, emp.id, data={})
    assert r.status_code == 400
    assert r.get_json()["error"]["code"] == "IMAGE_REQUIRED"


def test_face_verify_is_skipped_when_engine_disabled(client, people):
    _, _, emp = people
    r = _verify(client, emp.id)
    assert r.status_code == 200
    assert r.get_json()["data"] == {"verified": False, "skipped": True}


def test_face_verify_requires_enrolment(app, client, people):
    _, _, emp = people
    oracle = FakeOracle(FaceMatchResult(matched=True, similarity=95.0))
    app.extensions["face_oracle"] = oracle
    r = _verify(client, emp.id)
    assert r.status_code == 400
    assert r.get_json()["error"]["code"] == "FACE_NOT_REGISTERED"
    assert oracle.calls == []


def test_face_verify_reports_match_and_discards_image(app, client, people, tmp_path):
    _, _, emp = people
    emp.face_registered = True
    db.session.commit()
    app.config["UPLOAD_FOLDER"] = str(tmp_path)
    oracle = FakeOracle(FaceMatchResult(matched=True, similarity=91.234, confidence=99.5, matched_employee_id=emp.id))
    app.extensions["face_oracle"] = oracle

    r = _verify(client, emp.id)
    assert r.status_code == 200
    assert r.get_json()["data"] == {"matched": True, "similarity": 91.23, "confidence": 99.5}
    assert oracle.calls[0][0] == "verify"
    assert oracle.calls[0][2] == emp.id
    assert os.listdir(tmp_path) == []


def test_face_verify_engine_error_is_400(app, client, people, tmp_path):
    _, _, emp = people
    emp.face_registered = True
    db.session.commit()
    app.config["UPLOAD_FOLDER"] = str(tmp_path)
    app.extensions["face_oracle"] = FakeOracle(FaceError("No face detected in the image"))

    r = _verify(client, emp.id)
    assert r.status_code == 400
    err = r.get_json()["error"]
    assert err["code"] == "FACE_ERROR"
    assert err["detail"] == {"error": "No face detected in the image"}


def test_face_delete_clears_enrolment(app, client, people):
    _, _, emp = people
    emp.face_registered = True
    emp.face_template_id = 7
    emp.face_registered_at = datetime(2025, 3, 1, 9, 0)
    db.session.commit()
    oracle = FakeOracle()
    app.extensions["face_oracle"] = oracle

    r = client.delete("/api/v1/face", headers=_auth(emp.id))
    assert r.status_code == 200
    assert r.get_json()["data"] == {"employee_id": emp.id, "face_registered": False, "deactivated_profiles": 1}
    assert oracle.calls == [("unregister", emp.id)]

    db.session.refresh(emp)
    assert emp.face_registered is False
    assert emp.face_template_id is None
    assert emp.face_registered_at is None

    again = client.delete("/api/v1/face", headers=_auth(emp.id))
    assert again.status_code == 400
    assert again.get_json()["error"]["code"] == "FACE_NOT_REGISTERED"


def test_admin_can_delete_another_employees_face(app, client, people):
    _, admin, emp = people
    emp.face_registered = True
    db.session.commit()

    r = client.delete(f"/api/v1/face?employee_id={emp.id}", headers=_auth(admin.id, ["admin"]))
    assert r.status_code == 200
    assert r.get_json()["data"]["deactivated_profiles"] == 0
    db.session.refresh(emp)
    assert emp.face_registered is False
