from datetime import datetime, timezone

import pytest
import pytz

from presence_api.common.errors import FaceMismatch, FaceVerificationFailed, FaceVerificationRequired, PresenceGateDenied
from presence_api.services.attendance_recorder import AttemptMeta, AttendanceRecorder
from presence_api.services.face_oracle import FaceError, FaceMatchResult, FaceUnavailable
from presence_api.services.factors import FactorEvaluator, Signals, Subject, Workplace
from presence_api.services.policy import AttendancePolicy
from presence_api.services.qr_token import QrTokenService
from presence_api.services.spoofing import DISTANCE_OUT_OF_RANGE, GPS_ACCURACY_TOO_LOW

from tests.fakes import FakeOracle, FakeStore

SECRET = "test-qr-secret-0123456789abcdef0123456789"
IST = pytz.timezone("Asia/Kolkata")
OFFICE = Workplace(office_id=1, lat=12.9716, lng=77.5946, radius_m=80)
UNENROLLED = Subject(employee_id=5, office_id=1, face_registered=False)
ENROLLED = Subject(employee_id=5, office_id=1, face_registered=True)

# ~30m from the office
NEAR = dict(lat=12.97187, lng=77.5946)


def _local(h, m):
    return IST.localize(datetime(2025, 3, 10, h, m)).astimezone(timezone.utc)


def _recorder(oracle=None, clock_at=(9, 0), **policy):
    policy.setdefault("timezone", "Asia/Kolkata")
    p = AttendancePolicy(**policy)
    tokens = QrTokenService(SECRET)
    store = FakeStore()
    ev = FactorEvaluator(p, tokens, oracle or FakeOracle())
    rec = AttendanceRecorder(p, ev, store, clock=lambda: _local(*clock_at))
    return rec, store, tokens


# ---------- scenarios ----------

def test_scenario_a_single_factor_is_recorded_unverified():
    rec, store, _ = _recorder(max_distance_m=100, max_accuracy_m=80)

    report = rec.check_in(UNENROLLED, OFFICE, Signals(accuracy_m=20, **NEAR))

    assert report.factors.gps_verified is True
    assert report.factors.qr_verified is False
    assert report.factors.ip_verified is False
    assert report.factors.photo_verified is False
    assert report.passed_factors == 1
    assert report.verified is False
    assert report.suspicious is False
    assert len(store.created) == 1
    assert store.created[0]["verified"] is False


def test_scenario_b_absent_and_untrusted_is_rejected_before_persisting():
    rec, store, _ = _recorder(max_distance_m=300, max_accuracy_m=500)
    far = Signals(lat=12.97610, lng=77.5946, accuracy_m=600, ip_address="8.8.8.8")

    with pytest.raises(PresenceGateDenied) as exc:
        rec.check_in(UNENROLLED, OFFICE, far)

    detail = exc.value.payload
    assert detail["gps_verified"] is False
    assert detail["ip_verified"] is False
    assert detail["max_distance_m"] == 300
    assert detail["ip_address"] == "8.8.8.8"
    assert detail["distance_m"] > 400
    assert store.created == []


def test_scenario_c_enrolled_face_match_is_verified():
    oracle = FakeOracle(FaceMatchResult(matched=True, similarity=97.0, confidence=99.5, matched_employee_id=5))
    rec, store, tokens = _recorder(oracle, face_similarity_threshold=90)
    token = tokens.issue(1, 1, expires_in_minutes=240, now=_local(8, 0))["token"]

    report = rec.check_in(ENROLLED, OFFICE, Signals(accuracy_m=10, qr_token=token, photo_path="/tmp/p.jpg", **NEAR))

    assert report.factors.photo_verified is True
    assert report.factors.face_verified is True
    assert report.passed_factors >= 3
    assert report.verified is True
    assert report.face_verification == {"matched": True, "similarity": 97.0, "confidence": 99.5}
    assert store.created[0]["face_similarity"] == 97.0


def test_scenario_d_late_check_in_regardless_of_verification():
    rec, store, _ = _recorder(clock_at=(10, 15))
    report = rec.check_in(UNENROLLED, OFFICE, Signals(accuracy_m=20, **NEAR))
    assert report.verified is False
    assert report.is_late is True
    assert store.created[0]["is_late"] is True
    assert store.created[0]["is_early_leave"] is False


def test_naive_clock_is_read_as_utc():
    rec, store, _ = _recorder()
    # 04:45 UTC is 10:15 in Kolkata
    rec.clock = lambda: datetime(2025, 3, 10, 4, 45)
    report = rec.check_in(UNENROLLED, OFFICE, Signals(accuracy_m=20, **NEAR))
    assert report.is_late is True
    assert store.created[0]["ts"] == datetime(2025, 3, 10, 4, 45)


def test_scenario_d_early_check_out():
    rec, store, _ = _recorder(clock_at=(16, 45))
    report = rec.check_out(UNENROLLED, OFFICE, Signals(accuracy_m=20, **NEAR))
    assert report.is_early_leave is True
    assert store.created[0]["is_early_leave"] is True
    assert store.created[0]["is_late"] is False
    assert "is_late" not in report.to_dict()


# ---------- gates ----------

def test_check_out_gate_also_blocks():
    rec, store, _ = _recorder(max_distance_m=100)
    with pytest.raises(PresenceGateDenied):
        rec.check_out(UNENROLLED, OFFICE, Signals())
    assert store.created == []


def test_trusted_network_alone_passes_the_gate():
    rec, store, _ = _recorder(trusted_ips=("10.0.0.0/8",))
    report = rec.check_in(UNENROLLED, OFFICE, Signals(ip_address="10.2.3.4"))
    assert report.factors.ip_verified is True
    assert report.factors.gps_verified is False
    assert report.distance_m is None
    assert len(store.created) == 1


def test_enrolled_without_probe_short_circuits_before_anything_else():
    oracle = FakeOracle(FaceMatchResult(matched=True, similarity=99.0))
    rec, store, _ = _recorder(oracle)
    # even the presence gate would fail here; the probe check comes first
    with pytest.raises(FaceVerificationRequired):
        rec.check_in(ENROLLED, OFFICE, Signals())
    assert oracle.calls == []
    assert store.created == []


def test_presence_gate_runs_before_the_face_oracle():
    oracle = FakeOracle(FaceMatchResult(matched=True, similarity=99.0, matched_employee_id=5))
    rec, store, _ = _recorder(oracle)
    with pytest.raises(PresenceGateDenied):
        rec.check_in(ENROLLED, OFFICE, Signals(photo_path="/tmp/p.jpg"))
    assert oracle.calls == []


@pytest.mark.parametrize("outcome,exc", [
    (FaceMatchResult(matched=False, similarity=30.0), FaceMismatch),
    (FaceMatchResult(matched=True, similarity=95.0, matched_employee_id=99), FaceMismatch),
    (FaceError("engine crashed"), FaceVerificationFailed),
])
def test_face_hard_failures_persist_nothing(outcome, exc):
    rec, store, _ = _recorder(FakeOracle(outcome))
    with pytest.raises(exc):
        rec.check_in(ENROLLED, OFFICE, Signals(accuracy_m=10, photo_path="/tmp/p.jpg", **NEAR))
    assert store.created == []


def test_oracle_unavailable_is_recorded_in_degraded_mode():
    rec, store, _ = _recorder(FakeOracle(FaceUnavailable()))
    report = rec.check_in(ENROLLED, OFFICE, Signals(accuracy_m=10, photo_path="/tmp/p.jpg", **NEAR))
    assert report.face_degraded is True
    assert report.factors.photo_verified is True
    assert report.factors.face_verified is False
    assert report.verified is True
    assert store.created[0]["face_verified"] is False


def test_check_out_never_calls_the_face_oracle():
    oracle = FakeOracle(FaceError("should not be called"))
    rec, store, _ = _recorder(oracle)
    report = rec.check_out(ENROLLED, OFFICE, Signals(accuracy_m=10, photo_path="/tmp/p.jpg", **NEAR))
    assert oracle.calls == []
    assert report.factors.photo_verified is False
    assert store.created[0]["photo_url"] is None


# ---------- audit fields ----------

def test_suspicion_is_recorded_but_never_blocks():
    # location passes at ~250m; beyond the 200m ceiling and with coarse accuracy, on a trusted network
    rec, store, _ = _recorder(trusted_ips=("*",), max_accuracy_m=80)
    signals = Signals(lat=12.97385, lng=77.5946, accuracy_m=120, ip_address="1.2.3.4")

    report = rec.check_in(UNENROLLED, OFFICE, signals)

    assert report.suspicious is True
    assert set(report.reasons) == {GPS_ACCURACY_TOO_LOW, DISTANCE_OUT_OF_RANGE}
    assert store.created[0]["is_suspicious"] is True
    assert store.created[0]["suspicious_reasons"] == [GPS_ACCURACY_TOO_LOW, DISTANCE_OUT_OF_RANGE]


def test_event_fields_carry_the_attempt():
    rec, store, tokens = _recorder(trusted_ips=("10.0.0.1",))
    token = tokens.issue(2, 1, now=_local(8, 0))["token"]  # another office
    meta = AttemptMeta(comment="traffic", user_agent="pytest", device_info={"platform": "linux"})

    report = rec.check_in(UNENROLLED, OFFICE, Signals(accuracy_m=10, qr_token=token, ip_address="10.0.0.1", **NEAR), meta)

    row = store.created[0]
    assert report.passed_factors == 2
    assert report.verified is True
    assert row["qr_verified"] is False
    assert row["qr_token"] == token
    assert row["comment"] == "traffic"
    assert row["device_info"] == {"platform": "linux"}
    assert row["kind"] == "check-in"
    assert row["ts"].tzinfo is None
    assert row["ts"] == datetime(2025, 3, 10, 3, 30)
