# presence_api/services/factors.py
from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional

from presence_api.common.errors import (
    FaceMismatch,
    FaceVerificationFailed,
    FaceVerificationRequired,
)
from presence_api.services.face_oracle import (
    FaceError,
    FaceMatchResult,
    FaceOracle,
    FaceUnavailable,
)
from presence_api.services.geofence import GeofenceService, is_finite_number
from presence_api.services.policy import AttendancePolicy, WILDCARD
from presence_api.services.qr_token import QrTokenService

log = logging.getLogger(__name__)


# ---------- inputs ----------

@dataclass(frozen=True)
class Signals:
    """Raw, untrusted client-supplied signals for one attempt."""
    lat: Optional[float] = None
    lng: Optional[float] = None
    accuracy_m: Optional[float] = None
    qr_token: Optional[str] = None
    ip_address: Optional[str] = None
    photo_path: Optional[str] = None


@dataclass(frozen=True)
class Workplace:
    office_id: int
    lat: float
    lng: float
    radius_m: Optional[float] = None


@dataclass(frozen=True)
class Subject:
    employee_id: int
    office_id: int
    face_registered: bool = False


# ---------- outputs ----------

@dataclass(frozen=True)
class LocationCheck:
    verified: bool
    distance_m: Optional[float]       # None when coordinates are absent or malformed
    accuracy_m: Optional[float]       # None when accuracy is absent or malformed


@dataclass(frozen=True)
class PhotoCheck:
    photo_verified: bool
    face_verified: bool = False
    face: Optional[FaceMatchResult] = None
    degraded: bool = False


@dataclass(frozen=True)
class FactorSet:
    gps_verified: bool = False
    qr_verified: bool = False
    ip_verified: bool = False
    photo_verified: bool = False
    face_verified: bool = False

    @property
    def passed(self) -> int:
        # face identity is folded into the photo factor
        return sum((self.gps_verified, self.qr_verified, self.ip_verified, self.photo_verified))

    def to_dict(self):
        return asdict(self)


# ---------- helpers ----------

def valid_coordinates(lat, lng) -> bool:
    if not (is_finite_number(lat) and is_finite_number(lng)):
        return False
    return -90.0 <= float(lat) <= 90.0 and -180.0 <= float(lng) <= 180.0


def valid_accuracy(accuracy) -> bool:
    return is_finite_number(accuracy) and float(accuracy) >= 0.0


def ip_in_allow_list(ip: Optional[str], allow_list) -> bool:
    if WILDCARD in allow_list:
        return True
    if not ip:
        return False
    try:
        addr = ipaddress.ip_address(ip.strip())
    except ValueError:
        return False
    for entry in allow_list:
        if entry == WILDCARD:
            continue
        if "/" in entry:
            net = ipaddress.ip_network(entry, strict=False)
            if addr.version == net.version and addr in net:
                return True
        elif addr == ipaddress.ip_address(entry):
            return True
    return False


class FactorEvaluator:
    """
    Turns raw signals into independent boolean factors. Each check is
    side-effect free apart from the single face oracle call in `photo`.
    """

    def __init__(self, policy: AttendancePolicy, tokens: QrTokenService, face_oracle: FaceOracle) -> None:
        self.policy = policy
        self.tokens = tokens
        self.face_oracle = face_oracle

    def location(self, signals: Signals, workplace: Workplace) -> LocationCheck:
        accuracy = float(signals.accuracy_m) if valid_accuracy(signals.accuracy_m) else None

        if not valid_coordinates(signals.lat, signals.lng):
            return LocationCheck(verified=False, distance_m=None, accuracy_m=accuracy)

        inside, distance = GeofenceService.check_geofence(
            signals.lat, signals.lng, workplace.lat, workplace.lng, self.policy.max_distance_m
        )
        verified = inside and accuracy is not None and accuracy <= self.policy.max_accuracy_m
        return LocationCheck(verified=verified, distance_m=distance, accuracy_m=accuracy)

    def token(self, signals: Signals, office_id, now: Optional[datetime] = None) -> bool:
        if not signals.qr_token:
            return False
        return self.tokens.matches_office(signals.qr_token, office_id, now=now)

    def network(self, signals: Signals) -> bool:
        return ip_in_allow_list(signals.ip_address, self.policy.trusted_ips)

    def require_probe(self, signals: Signals, subject: Subject) -> None:
        """Enrolled subjects must always present a probe image."""
        if subject.face_registered and not signals.photo_path:
            raise FaceVerificationRequired()

    def photo(self, signals: Signals, subject: Subject) -> PhotoCheck:
        has_probe = bool(signals.photo_path)

        if not subject.face_registered:
            # presence only; no identity claim is made
            if has_probe:
                log.info("Employee %s has not registered face. Photo uploaded but not verified.", subject.employee_id)
            return PhotoCheck(photo_verified=has_probe)

        self.require_probe(signals, subject)

        outcome = self.face_oracle.verify(signals.photo_path, subject.employee_id)

        if isinstance(outcome, FaceUnavailable):
            log.warning(
                "Face oracle unavailable (%s). Falling back to photo presence check for employee %s.",
                outcome.reason, subject.employee_id,
            )
            return PhotoCheck(photo_verified=has_probe, degraded=True)

        if isinstance(outcome, FaceError):
            log.error("Face verification failed for employee %s: %s", subject.employee_id, outcome.message)
            raise FaceVerificationFailed(outcome.message)

        if not isinstance(outcome, FaceMatchResult):
            raise TypeError(f"unexpected face oracle outcome: {outcome!r}")

        if not outcome.matched or outcome.matched_employee_id not in (None, subject.employee_id):
            log.warning(
                "Face mismatch for employee %s (similarity %.2f, matched %s)",
                subject.employee_id, outcome.similarity, outcome.matched_employee_id,
            )
            raise FaceMismatch({
                "similarity": round(outcome.similarity, 2),
                "threshold": self.policy.face_similarity_threshold,
                "different_identity": outcome.matched_employee_id not in (None, subject.employee_id),
            })

        log.info("Face verified for employee %s (similarity %.2f)", subject.employee_id, outcome.similarity)
        return PhotoCheck(photo_verified=True, face_verified=True, face=outcome)
