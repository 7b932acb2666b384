# presence_api/models/attendance_event.py
from __future__ import annotations

from datetime import datetime
from typing import Optional, Dict, Any, List

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    event,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from presence_api.extensions import db


class ImmutableEventError(RuntimeError):
    pass


class AttendanceEvent(db.Model):
    """
    One check-in / check-out verification attempt that passed every hard gate.

    The verification outcome is fixed when the row is written:
      gps/qr/ip/photo_verified -> independent factor flags
      face_verified            -> face identity confirmed by the oracle (folded into photo)
      verified                 -> passed factor count >= required factor count at write time
      is_suspicious / suspicious_reasons -> spoofing audit metadata
      is_late / is_early_leave -> time-of-day flags in the configured timezone

    Rows are never updated; see the before_update listener below.
    """

    __tablename__ = "attendance_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"), index=True, nullable=False
    )
    office_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("offices.id", ondelete="SET NULL"), index=True, nullable=True
    )

    # when & what
    ts: Mapped[datetime] = mapped_column(index=True, nullable=False)  # naive UTC
    kind: Mapped[str] = mapped_column(db.String(16), nullable=False)  # 'check-in' | 'check-out'

    # raw signals
    lat: Mapped[Optional[float]] = mapped_column(nullable=True)
    lon: Mapped[Optional[float]] = mapped_column(nullable=True)
    accuracy_m: Mapped[Optional[float]] = mapped_column(nullable=True)
    distance_m: Mapped[Optional[float]] = mapped_column(nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(db.String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(db.String(512), nullable=True)
    device_info: Mapped[Optional[Dict[str, Any]]] = mapped_column(db.JSON, nullable=True)
    photo_url: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True)
    qr_token: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True)
    comment: Mapped[Optional[str]] = mapped_column(db.String(500), nullable=True)

    # factor flags
    gps_verified: Mapped[bool] = mapped_column(default=False, nullable=False)
    qr_verified: Mapped[bool] = mapped_column(default=False, nullable=False)
    ip_verified: Mapped[bool] = mapped_column(default=False, nullable=False)
    photo_verified: Mapped[bool] = mapped_column(default=False, nullable=False)
    face_verified: Mapped[bool] = mapped_column(default=False, nullable=False)
    verified: Mapped[bool] = mapped_column(default=False, nullable=False)

    face_similarity: Mapped[Optional[float]] = mapped_column(nullable=True)
    face_confidence: Mapped[Optional[float]] = mapped_column(nullable=True)

    # spoofing
    is_suspicious: Mapped[bool] = mapped_column(default=False, nullable=False)
    suspicious_reasons: Mapped[List[str]] = mapped_column(db.JSON, nullable=False, default=list)

    # status flags
    is_late: Mapped[bool] = mapped_column(default=False, nullable=False)
    is_early_leave: Mapped[bool] = mapped_column(default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    employee = relationship("Employee", lazy="joined")

    __table_args__ = (
        CheckConstraint("kind in ('check-in','check-out')", name="ck_attendance_event_kind"),
        CheckConstraint("not (is_late and kind = 'check-out')", name="ck_attendance_event_late_in"),
        CheckConstraint("not (is_early_leave and kind = 'check-in')", name="ck_attendance_event_early_out"),
        Index("ix_attendance_event_employee_ts", "employee_id", "ts"),
    )

    @property
    def factors(self) -> Dict[str, bool]:
        return {
            "gps_verified": self.gps_verified,
            "qr_verified": self.qr_verified,
            "ip_verified": self.ip_verified,
            "photo_verified": self.photo_verified,
            "face_verified": self.face_verified,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "employee_name": self.employee.full_name if self.employee else None,
            "office_id": self.office_id,
            "ts": self.ts.isoformat(),
            "type": self.kind,
            "location": {
                "lat": self.lat,
                "lng": self.lon,
                "accuracy_m": self.accuracy_m,
            },
            "distance_m": round(self.distance_m, 2) if self.distance_m is not None else None,
            "ip_address": self.ip_address,
            "device_info": self.device_info,
            "photo_url": self.photo_url,
            "factors": self.factors,
            "verified": self.verified,
            "is_suspicious": self.is_suspicious,
            "suspicious_reasons": list(self.suspicious_reasons or []),
            "is_late": self.is_late,
            "is_early_leave": self.is_early_leave,
            "comment": self.comment,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@event.listens_for(AttendanceEvent, "before_update")
def _refuse_update(mapper, connection, target):
    raise ImmutableEventError(f"attendance event {target.id} is immutable once recorded")
