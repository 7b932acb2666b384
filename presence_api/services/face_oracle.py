"""
Face similarity oracle.

`verify` always answers with exactly one of three outcomes, so callers have
to handle each explicitly:

    FaceUnavailable   - no engine configured / installed
    FaceError         - the engine was reachable but the call failed
    FaceMatchResult   - a comparison was made (matched or not)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from presence_api.extensions import db
from presence_api.models.employee import Employee
from presence_api.models.face_profile import EmployeeFaceProfile
from presence_api.services.face_engine import FaceEngine, FaceEngineError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FaceUnavailable:
    reason: str = "Face recognition service is not available"


@dataclass(frozen=True)
class FaceError:
    message: str


@dataclass(frozen=True)
class FaceMatchResult:
    matched: bool
    similarity: float                       # 0..100
    confidence: Optional[float] = None      # 0..100, detector confidence for the probe
    matched_employee_id: Optional[int] = None

    def to_dict(self):
        return {
            "matched": self.matched,
            "similarity": round(self.similarity, 2),
            "confidence": round(self.confidence, 2) if self.confidence is not None else None,
        }


@dataclass(frozen=True)
class FaceRegistration:
    face_template_id: int
    confidence: Optional[float] = None


FaceVerification = Union[FaceUnavailable, FaceError, FaceMatchResult]


class FaceOracle:
    """Capability interface; see EmbeddingFaceOracle for the real engine."""

    def is_available(self) -> bool:
        raise NotImplementedError

    def register(self, image_path: str, employee_id: int) -> Union[FaceRegistration, FaceUnavailable, FaceError]:
        raise NotImplementedError

    def verify(self, image_path: str, claimed_employee_id: int) -> FaceVerification:
        raise NotImplementedError

    def unregister(self, employee_id: int) -> int:
        """Drop stored templates for an employee; oracles without local templates have nothing to drop."""
        return 0


class EmbeddingFaceOracle(FaceOracle):
    """
    Searches every active enrolled face (like a collection search) and
    reports whether the best match above the threshold is the claimed
    employee.
    """

    def __init__(self, similarity_threshold: float = 60.0, enabled: bool = True) -> None:
        self.similarity_threshold = similarity_threshold
        self.enabled = enabled

    def is_available(self) -> bool:
        return self.enabled and FaceEngine.is_installed()

    def register(self, image_path: str, employee_id: int):
        if not self.is_available():
            return FaceUnavailable()

        emp = db.session.get(Employee, employee_id)
        if emp is None:
            return FaceError(f"Employee {employee_id} not found")

        try:
            face = FaceEngine.represent(image_path)
        except FaceEngineError as e:
            return FaceError(str(e))

        # one active template per employee; older ones are kept for audit
        EmployeeFaceProfile.query.filter_by(employee_id=employee_id, is_active=True).update(
            {"is_active": False}
        )
        profile = EmployeeFaceProfile(
            employee_id=employee_id,
            image_url=image_path,
            embedding=face["embedding"],
            embedding_version=FaceEngine.MODEL_NAME,
            confidence=face["confidence"],
            is_active=True,
        )
        db.session.add(profile)
        db.session.flush()

        emp.face_registered = True
        emp.face_template_id = profile.id
        emp.face_registered_at = datetime.utcnow()
        db.session.commit()

        log.info("Face registered for employee %s (profile %s)", employee_id, profile.id)
        return FaceRegistration(face_template_id=profile.id, confidence=face["confidence"])

    def verify(self, image_path: str, claimed_employee_id: int) -> FaceVerification:
        if not self.is_available():
            return FaceUnavailable()

        try:
            face = FaceEngine.represent(image_path)
        except FaceEngineError as e:
            log.error("Error verifying face for employee %s: %s", claimed_employee_id, e)
            return FaceError(str(e))

        profiles = EmployeeFaceProfile.query.filter_by(is_active=True).all()

        best_sim = -1.0
        best_profile = None
        for p in profiles:
            sim = FaceEngine.compute_similarity(face["embedding"], p.embedding)
            if sim > best_sim:
                best_sim = sim
                best_profile = p

        similarity = max(0.0, min(100.0, best_sim * 100))

        if best_profile is None or similarity < self.similarity_threshold:
            log.warning("No matching face found for employee %s", claimed_employee_id)
            return FaceMatchResult(matched=False, similarity=similarity, confidence=face["confidence"])

        if best_profile.employee_id != claimed_employee_id:
            log.warning(
                "Face matched to different employee: expected %s, got %s",
                claimed_employee_id, best_profile.employee_id,
            )
            return FaceMatchResult(
                matched=False,
                similarity=similarity,
                confidence=face["confidence"],
                matched_employee_id=best_profile.employee_id,
            )

        return FaceMatchResult(
            matched=True,
            similarity=similarity,
            confidence=face["confidence"],
            matched_employee_id=claimed_employee_id,
        )

    def unregister(self, employee_id: int) -> int:
        """Deactivate every active template of the employee. Caller commits."""
        removed = EmployeeFaceProfile.query.filter_by(employee_id=employee_id, is_active=True).update(
            {"is_active": False}
        )
        log.info("Deactivated %s face profile(s) for employee %s", removed, employee_id)
        return removed
