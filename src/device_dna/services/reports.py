from __future__ import annotations

import asyncio
import csv
import io
import time
import zipfile
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from device_dna.config import ReportPollSettings
from device_dna.data.models import ExportJob, IssueLog, ReportRow, SettingErrorRow
from device_dna.data.models.reports import ExportJobStatus, rows_from_table
from device_dna.data.validation import GraphResponseValidator
from device_dna.graph.client import GraphClientFactory
from device_dna.graph.errors import GraphAPIError, GraphErrorCategory, ReportTimeoutError
from device_dna.graph.requests import (
    GraphRequest,
    device_policy_report_request,
    export_job_request,
    export_job_status_request,
    setting_status_report_request,
)
from device_dna.services.base import GraphCollectionService, Phase
from device_dna.utils import get_logger


logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]

# Synchronous report endpoints cap a page at this many rows.
REPORT_PAGE_SIZE = 500


def parse_export_archive(content: bytes) -> list[dict[str, str]]:
    """Read the CSV inside an export job's zip (or a bare CSV body)."""

    if zipfile.is_zipfile(io.BytesIO(content)):
        with zipfile.ZipFile(io.BytesIO(content)) as archive:
            names = [name for name in archive.namelist() if name.lower().endswith(".csv")]
            if not names:
                return []
            raw = archive.read(names[0])
    else:
        raw = content
    text = raw.decode("utf-8-sig")
    return [dict(row) for row in csv.DictReader(io.StringIO(text))]


class ReportExportService(GraphCollectionService):
    """Run an Intune export job and wait for its CSV.

    Polls with bounded exponential backoff. Raises ``ReportTimeoutError``
    when the job is not finished within the configured timeout.
    """

    resource = "exportJobs"

    def __init__(
        self,
        client_factory: GraphClientFactory,
        *,
        poll: ReportPollSettings | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
    ) -> None:
        super().__init__(client_factory)
        self._poll = poll or ReportPollSettings()
        self._sleep = sleep
        self._clock = clock

    async def export(
        self,
        report_name: str,
        *,
        filter_expression: str | None = None,
        select: list[str] | None = None,
    ) -> list[dict[str, str]]:
        request = export_job_request(
            report_name,
            filter_expression=filter_expression,
            select=select,
        )
        job = await self._job(request)
        logger.debug("Export job submitted", report=report_name, job_id=job.id)

        deadline = self._clock() + self._poll.timeout
        delay = self._poll.initial_delay
        polls = 0
        while not job.is_finished:
            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.warning(
                    "Export job timed out",
                    report=report_name,
                    job_id=job.id,
                    polls=polls,
                    timeout=self._poll.timeout,
                )
                raise ReportTimeoutError(
                    f"Report {report_name} did not complete within "
                    f"{self._poll.timeout:g} seconds"
                )
            await self._sleep(min(delay, remaining))
            delay = min(delay * self._poll.growth_factor, self._poll.max_delay)
            polls += 1
            job = await self._job(export_job_status_request(job.id))

        if job.status == ExportJobStatus.FAILED or not job.url:
            raise GraphAPIError(
                message=f"Report {report_name} export job failed",
                category=GraphErrorCategory.SERVER,
            )
        content = await self._client_factory.download(job.url)
        rows = parse_export_archive(content)
        logger.info("Export job completed", report=report_name, rows=len(rows), polls=polls)
        return rows

    async def _job(self, request: GraphRequest) -> ExportJob:
        payload = await self._fetch_json(request)
        try:
            return ExportJob.from_graph(payload)
        except ValidationError as exc:
            raise GraphAPIError(
                message="Unexpected export job payload",
                category=GraphErrorCategory.PARSE,
                inner_error=exc,
            ) from exc


class DeploymentReportService(GraphCollectionService):
    """Per-device policy status and per-setting error reports."""

    resource = "reports"

    async def device_policy_report(
        self,
        managed_device_id: str,
        *,
        issues: IssueLog,
    ) -> list[ReportRow]:
        """Raises ``GraphAPIError`` when the report cannot be read."""

        payloads = await self._table_rows(device_policy_report_request(managed_device_id))
        validator = GraphResponseValidator(
            "policyReport",
            issues=issues,
            phase=Phase.DEPLOYMENT,
        )
        rows = validator.parse_many(ReportRow, payloads)
        logger.debug(
            "Device policy report loaded",
            managed_device_id=managed_device_id,
            rows=len(rows),
        )
        return rows

    async def setting_errors(
        self,
        managed_device_id: str,
        policy_id: str,
    ) -> list[SettingErrorRow]:
        payloads = await self._table_rows(
            setting_status_report_request(managed_device_id, policy_id)
        )
        validator = GraphResponseValidator("settingReport")
        return validator.parse_many(SettingErrorRow, payloads)

    async def _table_rows(self, request: GraphRequest) -> list[dict[str, Any]]:
        body = dict(request.body or {})
        top = int(body.get("top") or REPORT_PAGE_SIZE)
        rows: list[dict[str, Any]] = []
        while True:
            page_request = GraphRequest(
                method=request.method,
                url=request.url,
                body={**body, "skip": len(rows), "top": top},
                api_version=request.api_version,
            )
            payload = await self._fetch_json(page_request)
            page = rows_from_table(payload)
            rows.extend(page)
            total = payload.get("TotalRowCount")
            if not page or not isinstance(total, int) or len(rows) >= total:
                return rows


__all__ = [
    "DeploymentReportService",
    "ReportExportService",
    "parse_export_archive",
]
