"""
Attendance event recorder.

Sequences the factor evaluator, the presence gate, the spoofing detector,
the MFA decision and the time classifier, then writes exactly one immutable
AttendanceEvent. Any hard-gate failure raises before the store is touched.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from presence_api.common.errors import PresenceGateDenied, SubjectNotFound, WorkplaceNotAssigned
from presence_api.extensions import db
from presence_api.models.employee import Employee
from presence_api.services.factors import (
    FactorEvaluator,
    FactorSet,
    LocationCheck,
    PhotoCheck,
    Signals,
    Subject,
    Workplace,
)
from presence_api.services.mfa import evaluate_mfa
from presence_api.services.policy import AttendancePolicy
from presence_api.services.spoofing import SpoofingDetector
from presence_api.services.time_rules import TimeClassifier

log = logging.getLogger(__name__)

CHECK_IN = "check-in"
CHECK_OUT = "check-out"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AttemptMeta:
    """Descriptive, non-verified context stored alongside the event."""
    comment: Optional[str] = None
    user_agent: Optional[str] = None
    device_info: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class VerificationReport:
    attendance_id: int
    kind: str
    timestamp: datetime
    factors: FactorSet
    passed_factors: int
    required_factors: int
    verified: bool
    reasons: Tuple[str, ...] = ()
    is_late: bool = False
    is_early_leave: bool = False
    face_verification: Optional[Dict[str, Any]] = None
    face_degraded: bool = False
    distance_m: Optional[float] = None

    @property
    def suspicious(self) -> bool:
        return len(self.reasons) > 0

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "attendance_id": self.attendance_id,
            "type": self.kind,
            "timestamp": self.timestamp.isoformat(),
            "verified": self.verified,
            "factors": self.factors.to_dict(),
            "passed_factors": self.passed_factors,
            "required_factors": self.required_factors,
            "suspicious": self.suspicious,
            "reasons": list(self.reasons),
            "distance_m": round(self.distance_m, 2) if self.distance_m is not None else None,
        }
        if self.kind == CHECK_IN:
            out["is_late"] = self.is_late
            out["face_verification"] = self.face_verification
            out["face_degraded"] = self.face_degraded
        else:
            out["is_early_leave"] = self.is_early_leave
        return out


def load_subject(employee_id: int) -> Tuple[Subject, Workplace]:
    emp = db.session.get(Employee, employee_id)
    if emp is None or emp.status != "active":
        raise SubjectNotFound(employee_id)
    office = emp.office
    if office is None or not office.is_active:
        raise WorkplaceNotAssigned(employee_id)

    subject = Subject(
        employee_id=emp.id,
        office_id=office.id,
        face_registered=bool(emp.face_registered),
    )
    workplace = Workplace(
        office_id=office.id,
        lat=float(office.geo_lat),
        lng=float(office.geo_lon),
        radius_m=float(office.geo_radius_m) if office.geo_radius_m is not None else None,
    )
    return subject, workplace


class AttendanceRecorder:
    def __init__(
        self,
        policy: AttendancePolicy,
        evaluator: FactorEvaluator,
        store,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.policy = policy
        self.evaluator = evaluator
        self.store = store
        self.clock = clock
        self.spoofing = SpoofingDetector(policy)
        self.time_rules = TimeClassifier(policy)

    # ---------- gates ----------

    def _presence_gate(self, kind, subject, workplace, signals, loc: LocationCheck, ip_verified):
        if loc.verified or ip_verified:
            return
        detail = {
            "type": kind,
            "distance_m": round(loc.distance_m, 2) if loc.distance_m is not None else None,
            "accuracy_m": loc.accuracy_m,
            "max_distance_m": self.policy.max_distance_m,
            "max_accuracy_m": self.policy.max_accuracy_m,
            "office_radius_m": workplace.radius_m,
            "ip_address": signals.ip_address,
            "gps_verified": loc.verified,
            "ip_verified": ip_verified,
        }
        log.warning("Presence gate failed for employee %s: %s", subject.employee_id, detail)
        raise PresenceGateDenied(detail)

    # ---------- operations ----------

    def check_in(self, subject: Subject, workplace: Workplace, signals: Signals,
                 meta: Optional[AttemptMeta] = None) -> VerificationReport:
        return self._record(CHECK_IN, subject, workplace, signals, meta or AttemptMeta())

    def check_out(self, subject: Subject, workplace: Workplace, signals: Signals,
                  meta: Optional[AttemptMeta] = None) -> VerificationReport:
        return self._record(CHECK_OUT, subject, workplace, signals, meta or AttemptMeta())

    def _record(self, kind, subject, workplace, signals, meta) -> VerificationReport:
        now = self.clock()
        if now.tzinfo is None:
            # naive clocks are UTC everywhere downstream
            now = now.replace(tzinfo=timezone.utc)

        if kind == CHECK_IN:
            self.evaluator.require_probe(signals, subject)

        loc = self.evaluator.location(signals, workplace)
        ip_verified = self.evaluator.network(signals)
        qr_verified = self.evaluator.token(signals, subject.office_id, now=now)

        self._presence_gate(kind, subject, workplace, signals, loc, ip_verified)

        photo = PhotoCheck(photo_verified=False)
        if kind == CHECK_IN:
            photo = self.evaluator.photo(signals, subject)

        factors = FactorSet(
            gps_verified=loc.verified,
            qr_verified=qr_verified,
            ip_verified=ip_verified,
            photo_verified=photo.photo_verified,
            face_verified=photo.face_verified,
        )
        spoof = self.spoofing.inspect(loc.distance_m, loc.accuracy_m)
        decision = evaluate_mfa(factors, self.policy.required_factors)

        is_late = kind == CHECK_IN and self.time_rules.is_late(now)
        is_early_leave = kind == CHECK_OUT and self.time_rules.is_early_leave(now)

        event = self.store.create(
            employee_id=subject.employee_id,
            office_id=subject.office_id,
            ts=now.astimezone(timezone.utc).replace(tzinfo=None),
            kind=kind,
            lat=float(signals.lat) if loc.distance_m is not None else None,
            lon=float(signals.lng) if loc.distance_m is not None else None,
            accuracy_m=loc.accuracy_m,
            distance_m=loc.distance_m,
            ip_address=signals.ip_address,
            user_agent=meta.user_agent,
            device_info=meta.device_info,
            photo_url=signals.photo_path if kind == CHECK_IN else None,
            qr_token=signals.qr_token,
            comment=meta.comment,
            gps_verified=factors.gps_verified,
            qr_verified=factors.qr_verified,
            ip_verified=factors.ip_verified,
            photo_verified=factors.photo_verified,
            face_verified=factors.face_verified,
            verified=decision.verified,
            face_similarity=photo.face.similarity if photo.face else None,
            face_confidence=photo.face.confidence if photo.face else None,
            is_suspicious=spoof.is_suspicious,
            suspicious_reasons=list(spoof.reasons),
            is_late=is_late,
            is_early_leave=is_early_leave,
        )

        log.info(
            "%s recorded for employee %s: verified=%s (%s/%s) suspicious=%s",
            kind, subject.employee_id, decision.verified, decision.passed, decision.required,
            spoof.is_suspicious,
        )

        return VerificationReport(
            attendance_id=event.id,
            kind=kind,
            timestamp=now,
            factors=factors,
            passed_factors=decision.passed,
            required_factors=decision.required,
            verified=decision.verified,
            reasons=spoof.reasons,
            is_late=is_late,
            is_early_leave=is_early_leave,
            face_verification=photo.face.to_dict() if photo.face else None,
            face_degraded=photo.degraded,
            distance_m=loc.distance_m,
        )
