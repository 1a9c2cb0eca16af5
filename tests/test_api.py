import io

import pandas as pd
import pytest
from jose import jwt

from visiotrack.models.attendance import AttendanceRecord

RECORD = {"studentId": "S1", "date": "2024-03-10", "status": "Present"}


async def _record(api, **overrides):
    resp = await api.post("/api/attendance/record", json={**RECORD, **overrides})
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


async def test_health(api):
    resp = await api.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


async def test_requests_without_token_are_rejected(api):
    resp = await api.get("/api/attendance/student/S1")
    assert resp.status_code == 401
    assert resp.json()["success"] is False


async def test_bearer_token_identifies_user(api, student):
    token = jwt.encode({"sub": str(student.id)}, "test-secret", algorithm="HS256")

    resp = await api.get("/api/attendance/student/S1", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "data": []}


async def test_bad_token_is_rejected(api, student):
    token = jwt.encode({"sub": str(student.id)}, "wrong-secret", algorithm="HS256")
    resp = await api.get("/api/attendance/student/S1", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


async def test_record_attendance(api, login_as, student):
    login_as(student)

    data = await _record(api, arrivalTime="08:58", method="esp32cam", courseId="C101")

    assert data["studentId"] == "S1"
    assert data["status"] == "Present"
    assert data["method"] == "esp32cam"
    assert data["recordedBy"] == str(student.id)
    assert data["id"]
    assert data["createdAt"]


async def test_record_validation_errors_are_per_field(api, login_as, admin):
    login_as(admin)

    resp = await api.post(
        "/api/attendance/record",
        json={"studentId": "", "date": "yesterday", "status": "present", "arrivalTime": "25:00"},
    )

    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert {e["field"] for e in body["errors"]} == {"studentId", "date", "status", "arrivalTime"}


async def test_bulk_record(api, login_as, admin):
    login_as(admin)
    payload = {"attendanceRecords": [{**RECORD, "studentId": f"S{i}"} for i in range(3)]}

    resp = await api.post("/api/attendance/bulk-record", json=payload)

    assert resp.status_code == 201
    body = resp.json()
    assert [r["studentId"] for r in body["data"]] == ["S0", "S1", "S2"]
    assert {r["method"] for r in body["data"]} == {"bulk_manual"}
    assert body["message"] == "3 attendance records created successfully"


async def test_bulk_record_invalid_element_writes_nothing(api, login_as, admin):
    login_as(admin)
    payload = {"attendanceRecords": [RECORD, {**RECORD, "status": "Asleep"}]}

    resp = await api.post("/api/attendance/bulk-record", json=payload)

    assert resp.status_code == 400
    assert resp.json()["errors"][0]["field"] == "attendanceRecords.1.status"
    assert await AttendanceRecord.find_all().count() == 0


@pytest.mark.parametrize(
    "method,path,body",
    [
        ("POST", "/api/attendance/bulk-record", {"attendanceRecords": [RECORD]}),
        ("POST", "/api/attendance/bulk-record", {"nonsense": True}),
        ("GET", "/api/attendance/date/2024-03-10", None),
        ("PUT", "/api/attendance/65f0c0ffee0000000000abcd", {"status": "Absent"}),
        ("PUT", "/api/attendance/65f0c0ffee0000000000abcd", {"status": "bogus"}),
        ("DELETE", "/api/attendance/65f0c0ffee0000000000abcd", None),
        ("GET", "/api/attendance/report?startDate=2024-03-01&endDate=2024-03-31", None),
    ],
)
async def test_admin_only_routes_forbid_students(api, login_as, student, method, path, body):
    login_as(student)

    resp = await api.request(method, path, json=body)

    assert resp.status_code == 403
    assert resp.json()["message"] == "Access denied. Admin privileges required."


@pytest.mark.parametrize(
    "method,path",
    [
        ("POST", "/api/attendance/bulk-record"),
        ("PUT", "/api/attendance/65f0c0ffee0000000000abcd"),
        ("PUT", "/api/attendance/reviews/65f0c0ffee0000000000abcd"),
    ],
)
async def test_admin_only_routes_forbid_students_with_unparseable_body(api, login_as, student, method, path):
    login_as(student)

    resp = await api.request(method, path, content=b"{not json", headers={"Content-Type": "application/json"})

    assert resp.status_code == 403
    assert resp.json()["message"] == "Access denied. Admin privileges required."


async def test_admin_unparseable_body_is_a_validation_error(api, login_as, admin):
    login_as(admin)

    resp = await api.post(
        "/api/attendance/bulk-record", content=b"{not json", headers={"Content-Type": "application/json"}
    )

    assert resp.status_code == 400
    assert resp.json()["errors"] == [{"field": "body", "message": "Request body must be valid JSON"}]


async def test_students_only_see_their_own_attendance(api, login_as, admin, student):
    login_as(admin)
    await _record(api, studentId="S1")
    await _record(api, studentId="S2")

    login_as(student)
    own = await api.get("/api/attendance/student/S1")
    other = await api.get("/api/attendance/student/S2")
    other_stats = await api.get("/api/attendance/stats/S2")

    assert own.status_code == 200
    assert [r["studentId"] for r in own.json()["data"]] == ["S1"]
    assert other.status_code == 403
    assert other_stats.status_code == 403


async def test_student_query_rejects_bad_dates(api, login_as, admin):
    login_as(admin)
    resp = await api.get("/api/attendance/student/S1", params={"startDate": "01/03/2024"})
    assert resp.status_code == 400
    assert resp.json()["errors"][0]["field"] == "startDate"


async def test_attendance_by_date(api, login_as, admin):
    login_as(admin)
    await _record(api, studentId="S1", department="HNDIT", courseId="C1")
    await _record(api, studentId="S2", department="HNDA", courseId="C1")

    all_resp = await api.get("/api/attendance/date/2024-03-10")
    filtered = await api.get("/api/attendance/date/2024-03-10", params={"department": "HNDA", "course": ""})

    assert len(all_resp.json()["data"]) == 2
    assert [r["studentId"] for r in filtered.json()["data"]] == ["S2"]


async def test_stats_scenario(api, login_as, admin):
    login_as(admin)
    for status in ["Present", "Absent", "Late", "Excused"]:
        await _record(api, status=status)

    resp = await api.get("/api/attendance/stats/S1", params={"startDate": "2024-03-01", "endDate": "2024-03-31"})

    assert resp.status_code == 200
    assert resp.json()["data"] == {
        "total": 4,
        "present": 1,
        "absent": 1,
        "late": 1,
        "excused": 1,
        "attendancePercentage": 75,
    }


async def test_update_status(api, login_as, admin):
    login_as(admin)
    created = await _record(api, status="Absent")

    resp = await api.put(f"/api/attendance/{created['id']}", json={"status": "Excused", "remarks": "sick leave"})

    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "Excused"
    assert resp.json()["data"]["remarks"] == "sick leave"
    assert resp.json()["data"]["updatedAt"]


async def test_update_status_errors(api, login_as, admin):
    login_as(admin)
    created = await _record(api)

    invalid = await api.put(f"/api/attendance/{created['id']}", json={"status": "Gone"})
    missing = await api.put("/api/attendance/65f0c0ffee0000000000abcd", json={"status": "Absent"})

    assert invalid.status_code == 400
    assert missing.status_code == 404
    assert missing.json()["message"] == "Attendance record not found"


async def test_delete_record(api, login_as, admin):
    login_as(admin)
    created = await _record(api)

    first = await api.delete(f"/api/attendance/{created['id']}")
    second = await api.delete(f"/api/attendance/{created['id']}")

    assert first.status_code == 200
    assert second.status_code == 404


async def test_storage_failures_hide_driver_details(api, login_as, admin, monkeypatch):
    from pymongo.errors import AutoReconnect

    async def broken(self, *args, **kwargs):
        raise AutoReconnect("mongo-0.internal:27017: connection reset")

    monkeypatch.setattr(AttendanceRecord, "insert", broken)
    login_as(admin)

    resp = await api.post("/api/attendance/record", json=RECORD)

    assert resp.status_code == 500
    body = resp.json()
    assert "mongo-0" not in body["message"]
    assert body["correlationId"]


async def test_csv_report(api, login_as, admin):
    login_as(admin)
    await _record(api, studentId="S1", date="2024-03-10", status="Present")
    await _record(api, studentId="S1", date="2024-03-11", status="Absent")
    await _record(api, studentId="S2", date="2024-03-10", status="Late")
    await _record(api, studentId="S2", date="2024-04-01", status="Late")

    resp = await api.get("/api/attendance/report", params={"startDate": "2024-03-01", "endDate": "2024-03-31"})

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert "attendance_report_2024-03-01_2024-03-31.csv" in resp.headers["content-disposition"]
    df = pd.read_csv(io.StringIO(resp.text))
    assert len(df) == 3
    assert dict(zip(df["Student ID"], df["Attendance %"])) == {"S1": "50%", "S2": "100%"}


async def test_excel_and_pdf_reports(api, login_as, admin):
    login_as(admin)
    await _record(api)
    params = {"startDate": "2024-03-01", "endDate": "2024-03-31"}

    excel = await api.get("/api/attendance/report", params={**params, "format": "excel"})
    pdf = await api.get("/api/attendance/report", params={**params, "format": "pdf"})

    assert excel.status_code == 200
    assert len(pd.read_excel(io.BytesIO(excel.content))) == 1
    assert pdf.status_code == 200
    assert pdf.headers["content-type"] == "application/pdf"
    assert pdf.content.startswith(b"%PDF")


async def test_report_errors(api, login_as, admin):
    login_as(admin)

    empty = await api.get("/api/attendance/report", params={"startDate": "2024-03-01", "endDate": "2024-03-31"})
    missing = await api.get("/api/attendance/report")
    backwards = await api.get("/api/attendance/report", params={"startDate": "2024-03-31", "endDate": "2024-03-01"})
    bad_format = await api.get(
        "/api/attendance/report", params={"startDate": "2024-03-01", "endDate": "2024-03-31", "format": "docx"}
    )

    assert empty.status_code == 404
    assert missing.status_code == 400
    assert {e["field"] for e in missing.json()["errors"]} == {"startDate", "endDate"}
    assert backwards.status_code == 400
    assert bad_format.status_code == 400


async def test_review_flow(api, login_as, admin, student):
    login_as(admin)
    created = await _record(api, date="2024-03-12", status="Late")

    login_as(student)
    submitted = await api.post(
        "/api/attendance/reviews",
        json={"attendanceId": created["id"], "reason": "Medical issue", "comments": "Doctor's appointment"},
    )
    assert submitted.status_code == 201
    review = submitted.json()["data"]
    assert review["status"] == "pending"
    assert review["currentStatus"] == "Late"

    forbidden = await api.put(f"/api/attendance/reviews/{review['id']}", json={"decision": "approved"})
    assert forbidden.status_code == 403

    login_as(admin)
    decided = await api.put(
        f"/api/attendance/reviews/{review['id']}",
        json={"decision": "approved", "remarks": "verified doctor's note"},
    )
    assert decided.status_code == 200
    assert decided.json()["data"]["status"] == "approved"

    again = await api.put(f"/api/attendance/reviews/{review['id']}", json={"decision": "rejected"})
    assert again.status_code == 409

    records = await api.get("/api/attendance/student/S1")
    assert records.json()["data"][0]["remarks"] == "verified doctor's note"

    login_as(student)
    listed = await api.get("/api/attendance/reviews")
    assert [r["status"] for r in listed.json()["data"]] == ["approved"]
    fetched = await api.get(f"/api/attendance/reviews/{review['id']}")
    assert fetched.json()["data"]["adminRemarks"] == "verified doctor's note"


async def test_review_submission_validation(api, login_as, admin, student):
    login_as(admin)
    created = await _record(api)

    login_as(student)
    bad_reason = await api.post("/api/attendance/reviews", json={"attendanceId": created["id"], "reason": "Traffic"})
    unknown = await api.post(
        "/api/attendance/reviews", json={"attendanceId": "65f0c0ffee0000000000abcd", "reason": "Other"}
    )

    assert bad_reason.status_code == 400
    assert unknown.status_code == 404
