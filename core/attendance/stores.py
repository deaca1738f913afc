"""Attendance stores: where enrolled identities come from and commits go to.

Stores never retry on their own; the coordinator owns the retry policy.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol

import requests

from core.types import EnrolledIdentity

DEFAULT_STATUS = "Hadir"


class AttendanceStoreError(RuntimeError):
    """Raised when a store cannot load identities or record attendance."""


class AttendanceStore(Protocol):
    async def fetch_enrolled_identities(self) -> List[EnrolledIdentity]:
        ...

    async def commit(self, identity: EnrolledIdentity) -> bool:
        ...


def identities_from_records(
    records: Iterable[Dict[str, Any]],
    logger: Optional[logging.Logger] = None,
) -> List[EnrolledIdentity]:
    """Build identities from ``{id, nama, nim, descriptor}`` records, skipping bad rows."""
    log = logger or logging.getLogger(__name__)
    identities: List[EnrolledIdentity] = []
    for record in records:
        label = (record.get("nama") or "").strip()
        if not label:
            log.warning("[Store] Record %s has no name, skipped", record.get("id"))
            continue
        try:
            identities.append(
                EnrolledIdentity(
                    label=label,
                    descriptor=record.get("descriptor") or [],
                    student_id=record.get("nim"),
                    record_id=record.get("id"),
                )
            )
        except ValueError as exc:
            log.warning("[Store] Invalid descriptor for %s: %s", label, exc)
    return identities


class DatabaseAttendanceStore:
    """Store backed by the local SQLite database."""

    def __init__(self, database: Any, status: str = DEFAULT_STATUS, logger: Optional[logging.Logger] = None) -> None:
        self._db = database
        self._status = status
        self._logger = logger or logging.getLogger(__name__)

    async def fetch_enrolled_identities(self) -> List[EnrolledIdentity]:
        try:
            records = await asyncio.to_thread(self._db.get_user_descriptors)
        except Exception as exc:
            raise AttendanceStoreError(f"Cannot load enrolled users: {exc}") from exc
        return identities_from_records(records, self._logger)

    async def commit(self, identity: EnrolledIdentity) -> bool:
        if not identity.student_id:
            raise AttendanceStoreError(f"{identity.label} has no student number")
        try:
            _row, created = await asyncio.to_thread(
                self._db.mark_attendance,
                identity.student_id,
                identity.label,
                self._status,
            )
        except Exception as exc:
            raise AttendanceStoreError(f"Cannot record attendance: {exc}") from exc
        if not created:
            self._logger.info("[Store] %s already recorded today", identity.student_id)
        return True

    async def register(self, label: str, student_id: str, descriptor: Any) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(self._db.add_user, label, student_id, list(descriptor))
        except Exception as exc:
            raise AttendanceStoreError(f"Cannot register {student_id}: {exc}") from exc


class HttpAttendanceStore:
    """Store that talks to the attendance HTTP API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        status: str = DEFAULT_STATUS,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._status = status
        self._session = session or requests.Session()
        self._logger = logger or logging.getLogger(__name__)

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            resp = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as exc:
            raise AttendanceStoreError(f"{method} {path} failed: {exc}") from exc

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        if resp.status_code >= 400 or not body.get("success", False):
            message = body.get("message") or f"HTTP {resp.status_code}"
            raise AttendanceStoreError(f"{method} {path} rejected: {message}")
        return body

    async def fetch_enrolled_identities(self) -> List[EnrolledIdentity]:
        body = await asyncio.to_thread(self._request, "GET", "/api/users/descriptors")
        return identities_from_records(body.get("data") or [], self._logger)

    async def commit(self, identity: EnrolledIdentity) -> bool:
        payload = {"nama": identity.label, "nim": identity.student_id, "status": self._status}
        body = await asyncio.to_thread(self._request, "POST", "/api/absen", json=payload)
        self._logger.info("[Store] Attendance accepted: %s", body.get("message"))
        return True

    async def register(self, label: str, student_id: str, descriptor: Any) -> Dict[str, Any]:
        payload = {
            "nama": label,
            "nim": student_id,
            "descriptor": [float(v) for v in descriptor],
        }
        body = await asyncio.to_thread(self._request, "POST", "/api/register", json=payload)
        self._logger.info("[Store] Registration accepted: %s", body.get("message"))
        return body.get("data") or {}
