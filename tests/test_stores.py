import asyncio

import pytest
import requests

from core.attendance.stores import (
    AttendanceStoreError,
    DatabaseAttendanceStore,
    HttpAttendanceStore,
    identities_from_records,
)
from database import DatabaseManager

from conftest import make_descriptor, make_identity


class FakeResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def request(self, method, url, timeout=None, **kwargs):
        self.requests.append((method, url, timeout, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def db(tmp_path):
    return DatabaseManager(tmp_path / "attendance.db")


def test_identities_from_records_skips_invalid_rows():
    records = [
        {"id": 1, "nama": "Alice", "nim": "001", "descriptor": list(make_descriptor(0.1))},
        {"id": 2, "nama": "", "nim": "002", "descriptor": list(make_descriptor())},
        {"id": 3, "nama": "Bad", "nim": "003", "descriptor": [0.1, 0.2]},
    ]

    identities = identities_from_records(records)

    assert [i.label for i in identities] == ["Alice"]
    assert identities[0].student_id == "001"
    assert identities[0].record_id == 1


def test_database_store_loads_in_enrollment_order(db):
    db.add_user("Alice", "001", list(make_descriptor(0.1)))
    db.add_user("Bob", "002", list(make_descriptor(0.2)))
    store = DatabaseAttendanceStore(db)

    identities = asyncio.run(store.fetch_enrolled_identities())

    assert [(i.label, i.student_id) for i in identities] == [("Alice", "001"), ("Bob", "002")]


def test_database_store_commit_is_idempotent_per_day(db):
    db.add_user("Alice", "001", list(make_descriptor(0.1)))
    store = DatabaseAttendanceStore(db)
    alice = make_identity("Alice", make_descriptor(0.1), student_id="001")

    assert asyncio.run(store.commit(alice)) is True
    assert asyncio.run(store.commit(alice)) is True

    assert db.get_attendance_stats()["totalAbsensi"] == 1


def test_database_store_requires_student_number(db):
    store = DatabaseAttendanceStore(db)
    nameless = make_identity("Ghost", student_id="")

    with pytest.raises(AttendanceStoreError):
        asyncio.run(store.commit(nameless))


def test_http_store_fetches_descriptors():
    session = FakeSession([
        FakeResponse(200, {
            "success": True,
            "data": [{"id": 7, "nama": "Alice", "nim": "001", "descriptor": [0.5] * 128}],
        })
    ])
    store = HttpAttendanceStore("http://kiosk.local:3000/", timeout=2.0, session=session)

    identities = asyncio.run(store.fetch_enrolled_identities())

    assert identities[0].label == "Alice"
    assert session.requests[0][:3] == ("GET", "http://kiosk.local:3000/api/users/descriptors", 2.0)


def test_http_store_posts_attendance():
    session = FakeSession([FakeResponse(201, {"success": True, "message": "ok"})])
    store = HttpAttendanceStore("http://kiosk.local:3000", session=session)

    assert asyncio.run(store.commit(make_identity("Alice", student_id="001"))) is True

    method, url, _timeout, kwargs = session.requests[0]
    assert (method, url) == ("POST", "http://kiosk.local:3000/api/absen")
    assert kwargs["json"] == {"nama": "Alice", "nim": "001", "status": "Hadir"}


@pytest.mark.parametrize(
    "response",
    [
        FakeResponse(500, {"success": False, "message": "db down"}),
        FakeResponse(200, {"success": False, "message": "rejected"}),
        FakeResponse(502, None),
        FakeResponse(200, ["not", "an", "object"]),
        requests.exceptions.ConnectionError("refused"),
    ],
)
def test_http_store_failures_raise_store_error(response):
    store = HttpAttendanceStore("http://kiosk.local:3000", session=FakeSession([response]))

    with pytest.raises(AttendanceStoreError):
        asyncio.run(store.commit(make_identity("Alice", student_id="001")))


def test_http_store_registers_descriptor():
    session = FakeSession([FakeResponse(201, {"success": True, "message": "ok", "data": {"id": 7, "nim": "001"}})])
    store = HttpAttendanceStore("http://kiosk.local:3000", session=session)

    user = asyncio.run(store.register("Alice", "001", make_descriptor(0.5)))

    assert user == {"id": 7, "nim": "001"}
    method, url, _timeout, kwargs = session.requests[0]
    assert (method, url) == ("POST", "http://kiosk.local:3000/api/register")
    assert kwargs["json"]["descriptor"] == pytest.approx([0.5] * 128)


def test_http_store_register_conflict_raises():
    session = FakeSession([FakeResponse(409, {"success": False, "message": "NIM 001 sudah terdaftar"})])
    store = HttpAttendanceStore("http://kiosk.local:3000", session=session)

    with pytest.raises(AttendanceStoreError, match="sudah terdaftar"):
        asyncio.run(store.register("Alice", "001", make_descriptor(0.5)))
