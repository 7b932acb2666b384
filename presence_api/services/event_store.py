from datetime import datetime
from typing import List, Tuple

from sqlalchemy import desc

from presence_api.extensions import db
from presence_api.models.attendance_event import AttendanceEvent


class AttendanceEventStore:
    """Append-only access to attendance events."""

    def create(self, **fields) -> AttendanceEvent:
        ev = AttendanceEvent(**fields)
        db.session.add(ev)
        db.session.commit()
        return ev

    def for_employee(self, employee_id: int, page: int = 1, size: int = 20) -> Tuple[List[AttendanceEvent], int]:
        q = AttendanceEvent.query.filter(AttendanceEvent.employee_id == employee_id)
        total = q.count()
        items = (
            q.order_by(desc(AttendanceEvent.ts), desc(AttendanceEvent.id))
            .offset((page - 1) * size)
            .limit(size)
            .all()
        )
        return items, total

    def between(self, start: datetime, end: datetime) -> List[AttendanceEvent]:
        """Events with start <= ts < end (naive UTC bounds), oldest first."""
        return (
            AttendanceEvent.query
            .filter(AttendanceEvent.ts >= start, AttendanceEvent.ts < end)
            .order_by(AttendanceEvent.ts, AttendanceEvent.id)
            .all()
        )
