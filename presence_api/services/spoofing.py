from dataclasses import dataclass
from typing import Optional, Tuple

from presence_api.services.policy import AttendancePolicy

GPS_ACCURACY_TOO_LOW = "gps_accuracy_too_low"
DISTANCE_OUT_OF_RANGE = "distance_out_of_range"


@dataclass(frozen=True)
class SpoofCheck:
    reasons: Tuple[str, ...] = ()

    @property
    def is_suspicious(self) -> bool:
        return len(self.reasons) > 0


class SpoofingDetector:
    """
    Audit-only plausibility checks. Runs for every recorded attempt and
    never blocks one.
    """

    def __init__(self, policy: AttendancePolicy) -> None:
        self.policy = policy

    def inspect(self, distance_m: Optional[float], accuracy_m: Optional[float]) -> SpoofCheck:
        reasons = []

        if accuracy_m is not None and accuracy_m > self.policy.max_accuracy_m:
            reasons.append(GPS_ACCURACY_TOO_LOW)

        # absent coordinates count as distance 0
        if (distance_m or 0.0) > self.policy.spoof_distance_m:
            reasons.append(DISTANCE_OUT_OF_RANGE)

        return SpoofCheck(reasons=tuple(reasons))
