import logging

from flask import Blueprint, current_app, request
from flask_jwt_extended import jwt_required, get_jwt

from presence_api.common.auth import current_employee_id
from presence_api.common.errors import SubjectNotFound
from presence_api.common.http import ok, fail
from presence_api.common.uploads import save_image, discard
from presence_api.extensions import db
from presence_api.models.employee import Employee
from presence_api.services.face_oracle import FaceError, FaceUnavailable

bp = Blueprint("face", __name__, url_prefix="/api/v1/face")

log = logging.getLogger(__name__)


def _target_employee_id():
    """Admins may act on another employee via `employee_id`; everyone else acts on themselves."""
    own = current_employee_id()
    requested = request.form.get("employee_id") or request.args.get("employee_id")
    if requested and "admin" in set((get_jwt() or {}).get("roles") or []):
        try:
            return int(requested)
        except ValueError:
            return None
    return own


@bp.post("/register")
@jwt_required()
def register_face():
    # multipart/form-data: image, [employee_id]
    emp_id = _target_employee_id()
    if emp_id is None:
        return fail("Unauthorized", status=401)

    emp = db.session.get(Employee, emp_id)
    if not emp:
        raise SubjectNotFound(emp_id)

    f = request.files.get("image") or request.files.get("photo")
    if not f or not f.filename:
        return fail("No image file provided", status=400, code="IMAGE_REQUIRED")

    oracle = current_app.extensions["face_oracle"]
    if not oracle.is_available():
        return fail("Face recognition service is not available", status=503, code="FACE_UNAVAILABLE")

    path = save_image(f, emp_id, prefix="face_")
    result = oracle.register(path, emp_id)

    if isinstance(result, FaceUnavailable):
        discard(path)
        return fail(result.reason, status=503, code="FACE_UNAVAILABLE")
    if isinstance(result, FaceError):
        discard(path)
        return fail("Face registration failed", status=400, code="FACE_ERROR", detail={"error": result.message})

    return ok(
        {
            "employee_id": emp_id,
            "face_template_id": result.face_template_id,
            "confidence": result.confidence,
        },
        status=201,
        message="Face registered successfully",
    )


@bp.get("/status")
@jwt_required()
def face_status():
    emp_id = _target_employee_id()
    if emp_id is None:
        return fail("Unauthorized", status=401)

    emp = db.session.get(Employee, emp_id)
    if not emp:
        raise SubjectNotFound(emp_id)

    return ok({
        "employee_id": emp.id,
        "face_registered": bool(emp.face_registered),
        "face_registered_at": emp.face_registered_at.isoformat() if emp.face_registered_at else None,
        "service_available": current_app.extensions["face_oracle"].is_available(),
    })


@bp.post("/verify")
@jwt_required()
def verify_face():
    # multipart/form-data: image; compares against the caller's enrolled face, records nothing
    emp_id = current_employee_id()
    if emp_id is None:
        return fail("Unauthorized", status=401)

    f = request.files.get("image") or request.files.get("photo")
    if not f or not f.filename:
        return fail("Face image is required for verification", status=400, code="IMAGE_REQUIRED")

    oracle = current_app.extensions["face_oracle"]
    if not oracle.is_available():
        log.warning("Face oracle unavailable. Face verification skipped for employee %s.", emp_id)
        return ok({"verified": False, "skipped": True}, message="Face verification skipped (service unavailable)")

    emp = db.session.get(Employee, emp_id)
    if not emp:
        raise SubjectNotFound(emp_id)
    if not emp.face_registered:
        return fail(
            "User has not registered their face. Please register first.",
            status=400,
            code="FACE_NOT_REGISTERED",
        )

    path = save_image(f, emp_id, prefix="verify_")
    try:
        result = oracle.verify(path, emp_id)
    finally:
        discard(path)

    if isinstance(result, FaceUnavailable):
        return ok({"verified": False, "skipped": True}, message="Face verification skipped (service unavailable)")
    if isinstance(result, FaceError):
        return fail("Failed to verify face", status=400, code="FACE_ERROR", detail={"error": result.message})

    log.info("Face verification for employee %s: matched=%s similarity=%.2f",
             emp_id, result.matched, result.similarity)
    return ok(result.to_dict(), message="Face verification completed")


@bp.delete("")
@jwt_required()
def delete_face():
    emp_id = _target_employee_id()
    if emp_id is None:
        return fail("Unauthorized", status=401)

    emp = db.session.get(Employee, emp_id)
    if not emp:
        raise SubjectNotFound(emp_id)
    if not emp.face_registered and emp.face_template_id is None:
        return fail("No face registered for this user", status=400, code="FACE_NOT_REGISTERED")

    removed = current_app.extensions["face_oracle"].unregister(emp_id)
    emp.face_registered = False
    emp.face_template_id = None
    emp.face_registered_at = None
    db.session.commit()

    log.info("Face unregistered for employee %s", emp_id)
    return ok(
        {"employee_id": emp_id, "face_registered": False, "deactivated_profiles": removed},
        message="Face deleted successfully",
    )
