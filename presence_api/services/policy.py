# presence_api/services/policy.py
from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from typing import Any, Mapping, Tuple

import pytz

WILDCARD = "*"

# Recognised config keys -> defaults. Values may come from env (strings) or
# from a test config mapping (native types).
DEFAULTS = {
    "ATTENDANCE_REQUIRED_FACTORS": 2,
    "ATTENDANCE_MAX_DISTANCE_M": 300.0,
    "ATTENDANCE_MAX_ACCURACY_M": 500.0,
    "ATTENDANCE_TRUSTED_IPS": "",
    "ATTENDANCE_LATE_CUTOFF_HOUR": 10,
    "ATTENDANCE_EARLY_LEAVE_CUTOFF_HOUR": 17,
    "ATTENDANCE_SPOOF_DISTANCE_M": 200.0,
    "ATTENDANCE_TIMEZONE": "UTC",
    "FACE_SIMILARITY_THRESHOLD": 60.0,
}


def _split_list(raw: Any) -> Tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        items = raw.split(",")
    else:
        items = list(raw)
    return tuple(str(i).strip() for i in items if str(i).strip())


@dataclass(frozen=True)
class AttendancePolicy:
    """
    Read-only thresholds used by the factor evaluator, spoofing detector,
    MFA decision and time classifier. Built once per application.

    Note: max_distance_m (location factor) and spoof_distance_m (plausibility
    ceiling) are independent; with the defaults an attempt 250m away passes
    the location factor and is still flagged `distance_out_of_range`.
    """

    required_factors: int = 2
    max_distance_m: float = 300.0
    max_accuracy_m: float = 500.0
    trusted_ips: Tuple[str, ...] = field(default_factory=tuple)
    late_cutoff_hour: int = 10
    early_leave_cutoff_hour: int = 17
    spoof_distance_m: float = 200.0
    timezone: str = "UTC"
    face_similarity_threshold: float = 60.0

    def __post_init__(self):
        if not 1 <= self.required_factors <= 4:
            raise ValueError("required_factors must be between 1 and 4")
        for name in ("max_distance_m", "max_accuracy_m", "spoof_distance_m"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")
        for name in ("late_cutoff_hour", "early_leave_cutoff_hour"):
            if not 0 <= getattr(self, name) <= 23:
                raise ValueError(f"{name} must be an hour between 0 and 23")
        if not 0 <= self.face_similarity_threshold <= 100:
            raise ValueError("face_similarity_threshold must be between 0 and 100")
        try:
            pytz.timezone(self.timezone)
        except pytz.UnknownTimeZoneError:
            raise ValueError(f"unknown timezone: {self.timezone!r}")
        for entry in self.trusted_ips:
            if entry == WILDCARD:
                continue
            try:
                ipaddress.ip_network(entry, strict=False)
            except ValueError:
                raise ValueError(f"invalid trusted address: {entry!r}")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "AttendancePolicy":
        def get(key):
            value = config.get(key)
            return DEFAULTS[key] if value is None or value == "" else value

        return cls(
            required_factors=int(get("ATTENDANCE_REQUIRED_FACTORS")),
            max_distance_m=float(get("ATTENDANCE_MAX_DISTANCE_M")),
            max_accuracy_m=float(get("ATTENDANCE_MAX_ACCURACY_M")),
            trusted_ips=_split_list(get("ATTENDANCE_TRUSTED_IPS")),
            late_cutoff_hour=int(get("ATTENDANCE_LATE_CUTOFF_HOUR")),
            early_leave_cutoff_hour=int(get("ATTENDANCE_EARLY_LEAVE_CUTOFF_HOUR")),
            spoof_distance_m=float(get("ATTENDANCE_SPOOF_DISTANCE_M")),
            timezone=str(get("ATTENDANCE_TIMEZONE")),
            face_similarity_threshold=float(get("FACE_SIMILARITY_THRESHOLD")),
        )

    @property
    def tz(self):
        return pytz.timezone(self.timezone)

    @property
    def trusts_any_network(self) -> bool:
        return WILDCARD in self.trusted_ips
