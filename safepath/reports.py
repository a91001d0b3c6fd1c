"""
Incident-report stores.

The scoring engine only reads from a store, through `recent_reports(since)`.
`add_report` backs the report submission endpoint.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Protocol

import httpx

from .config import (
    PROVIDER_TIMEOUT_S,
    REPORTS_TABLE,
    SUPABASE_SERVICE_ROLE_KEY,
    SUPABASE_URL,
)
from .errors import ProviderError
from .models import ReportCreate, ReportRecord

logger = logging.getLogger(__name__)


class ReportStore(Protocol):
    async def recent_reports(self, since: datetime) -> List[ReportRecord]: ...

    async def add_report(self, report: ReportCreate) -> ReportRecord: ...


def _utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


class InMemoryReportStore:
    """Process-local store, used when Supabase is not configured."""

    def __init__(self, reports: Optional[List[ReportRecord]] = None):
        self._reports: List[ReportRecord] = list(reports or [])

    async def recent_reports(self, since: datetime) -> List[ReportRecord]:
        since = _utc(since)
        return [r for r in self._reports if _utc(r.timestamp) > since]

    async def add_report(self, report: ReportCreate) -> ReportRecord:
        record = ReportRecord(
            id=uuid.uuid4().hex,
            type=report.type,
            description=report.description,
            location=report.location,
            timestamp=datetime.now(timezone.utc),
        )
        self._reports.append(record)
        logger.info("[REPORTS] stored %s report at %s", record.type, record.location)
        return record


class SupabaseReportStore:
    """Reports table read/written through Supabase's PostgREST API."""

    def __init__(
        self,
        url: str = SUPABASE_URL,
        service_key: str = SUPABASE_SERVICE_ROLE_KEY,
        table: str = REPORTS_TABLE,
        timeout: float = PROVIDER_TIMEOUT_S,
    ):
        if not url or not service_key:
            raise ProviderError(
                "Supabase is not configured. Add SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY to .env"
            )
        self.endpoint = f"{url}/rest/v1/{table}"
        self.timeout = timeout
        self.headers = {
            "apikey": service_key,
            "Authorization": f"Bearer {service_key}",
            "Content-Type": "application/json",
        }

    async def recent_reports(self, since: datetime) -> List[ReportRecord]:
        params = {
            "select": "*",
            "timestamp": f"gt.{_utc(since).isoformat()}",
            "order": "timestamp.desc",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(self.endpoint, params=params, headers=self.headers)
        except httpx.HTTPError as exc:
            raise ProviderError(f"Report query failed: {exc}") from exc

        if resp.status_code != 200:
            raise ProviderError(f"Report query failed ({resp.status_code}): {resp.text}")

        return [ReportRecord.model_validate(row) for row in resp.json()]

    async def add_report(self, report: ReportCreate) -> ReportRecord:
        row = {
            "type": report.type,
            "description": report.description,
            "location": report.location.model_dump(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        headers = dict(self.headers, Prefer="return=representation")
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(self.endpoint, json=row, headers=headers)
        except httpx.HTTPError as exc:
            raise ProviderError(f"Report insert failed: {exc}") from exc

        if resp.status_code not in (200, 201):
            raise ProviderError(f"Report insert failed ({resp.status_code}): {resp.text}")

        created = resp.json()
        if isinstance(created, list):
            created = created[0] if created else row
        logger.info("[REPORTS] stored %s report at %s", report.type, report.location)
        return ReportRecord.model_validate(created)
