# presence_api/common/errors.py
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from presence_api.common.http import fail


class APIError(Exception):
    """Custom API Error class."""
    def __init__(self, code, message, status_code=400, payload=None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.payload = payload


# ---------- attendance verification ----------

class SubjectNotFound(APIError):
    def __init__(self, employee_id):
        super().__init__("EMPLOYEE_NOT_FOUND", "Employee not found", 404, {"employee_id": employee_id})


class WorkplaceNotAssigned(APIError):
    def __init__(self, employee_id):
        super().__init__("OFFICE_NOT_ASSIGNED", "User or Office not found", 400, {"employee_id": employee_id})


class PresenceGateDenied(APIError):
    """Neither the location nor the network factor passed; nothing is recorded."""
    def __init__(self, detail):
        super().__init__(
            "PRESENCE_GATE_FAILED",
            "You must be at the office location or on the office network to record attendance.",
            403,
            detail,
        )


class FaceVerificationRequired(APIError):
    def __init__(self):
        super().__init__(
            "FACE_REQUIRED",
            "Face verification required. Please take a selfie to check in.",
            400,
        )


class FaceMismatch(APIError):
    def __init__(self, detail):
        super().__init__("FACE_MISMATCH", "Face does not match registered face. Access denied.", 403, detail)


class FaceVerificationFailed(APIError):
    def __init__(self, error):
        super().__init__(
            "FACE_ERROR",
            "Face verification failed. Please try again.",
            400,
            {"error": error},
        )


def register_error_handlers(app):
    @app.errorhandler(APIError)
    def _api_error(e: APIError):
        return fail(message=e.message, status=e.status_code, code=e.code, detail=e.payload)

    @app.errorhandler(HTTPException)
    def _http(e: HTTPException):
        return fail(e.description or e.name, status=e.code or 500)

    @app.errorhandler(IntegrityError)
    def _dup(e: IntegrityError):
        return fail("Duplicate or FK constraint failed", status=409, code="CONSTRAINT_ERROR")

    @app.errorhandler(Exception)
    def _500(e: Exception):
        app.logger.exception(e)
        return fail("Internal server error", status=500)
