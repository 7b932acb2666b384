from datetime import datetime, time, timezone

from presence_api.services.policy import AttendancePolicy


class TimeClassifier:
    """Late / early-leave flags against local wall-clock time in the policy timezone."""

    def __init__(self, policy: AttendancePolicy) -> None:
        self.policy = policy

    def local_time(self, ts: datetime) -> time:
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts.astimezone(self.policy.tz).time()

    def is_late(self, ts: datetime) -> bool:
        return self.local_time(ts) >= time(self.policy.late_cutoff_hour)

    def is_early_leave(self, ts: datetime) -> bool:
        return self.local_time(ts) < time(self.policy.early_leave_cutoff_hour)
