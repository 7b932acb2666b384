# presence_api/services/reports.py
from __future__ import annotations

import csv
import io
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Iterable, List, Tuple

from openpyxl import Workbook

from presence_api.models.attendance_event import AttendanceEvent
from presence_api.services.event_store import AttendanceEventStore

EXPORT_COLUMNS = [
    "employee",
    "timestamp",
    "type",
    "verified",
    "isSuspicious",
    "isLate",
    "isEarlyLeave",
    "comment",
]


def local_day_bounds(day: date, tz) -> Tuple[datetime, datetime]:
    """[start, end) of a local calendar day as naive UTC datetimes."""
    start = tz.localize(datetime.combine(day, time.min))
    end = tz.localize(datetime.combine(day + timedelta(days=1), time.min))
    return (
        start.astimezone(timezone.utc).replace(tzinfo=None),
        end.astimezone(timezone.utc).replace(tzinfo=None),
    )


def summarize(records: Iterable[AttendanceEvent]) -> Dict[str, int]:
    records = list(records)
    return {
        "total_check_ins": sum(1 for r in records if r.kind == "check-in"),
        "total_check_outs": sum(1 for r in records if r.kind == "check-out"),
        "late_check_ins": sum(1 for r in records if r.is_late),
        "early_check_outs": sum(1 for r in records if r.is_early_leave),
        "suspicious": sum(1 for r in records if r.is_suspicious),
        "unverified": sum(1 for r in records if not r.verified),
        "total_records": len(records),
    }


def daily_report(day: date, tz, store: AttendanceEventStore | None = None) -> Dict:
    store = store or AttendanceEventStore()
    start, end = local_day_bounds(day, tz)
    records = store.between(start, end)
    return {
        "date": day.isoformat(),
        "summary": summarize(records),
        "records": [r.to_dict() for r in records],
    }


def export_rows(date_from: date, date_to: date, tz, store: AttendanceEventStore | None = None) -> List[list]:
    store = store or AttendanceEventStore()
    start, _ = local_day_bounds(date_from, tz)
    _, end = local_day_bounds(date_to, tz)

    rows = []
    for r in store.between(start, end):
        local_ts = r.ts.replace(tzinfo=timezone.utc).astimezone(tz)
        rows.append([
            r.employee.full_name if r.employee else r.employee_id,
            local_ts.isoformat(),
            r.kind,
            r.verified,
            r.is_suspicious,
            r.is_late,
            r.is_early_leave,
            r.comment or "",
        ])
    return rows


def to_csv(rows: List[list]) -> str:
    sio = io.StringIO()
    writer = csv.writer(sio)
    writer.writerow(EXPORT_COLUMNS)
    writer.writerows(rows)
    return sio.getvalue()


def to_xlsx(rows: List[list]) -> io.BytesIO:
    wb = Workbook()
    ws = wb.active
    ws.title = "Attendance"
    ws.append(EXPORT_COLUMNS)
    for row in rows:
        ws.append(row)

    bio = io.BytesIO()
    wb.save(bio)
    bio.seek(0)
    return bio
