from __future__ import annotations

import io
import zipfile

import pytest

from device_dna.config import ReportPollSettings
from device_dna.graph.errors import GraphAPIError, GraphErrorCategory, ReportTimeoutError
from device_dna.services.reports import (
    DeploymentReportService,
    ReportExportService,
    parse_export_archive,
)

from tests.factories import POLICY_REPORT_COLUMNS, policy_report_row, report_table


EXPORT_JOBS = "/deviceManagement/reports/exportJobs"
JOB_STATUS = "/deviceManagement/reports/exportJobs('job-1')"
POLICY_REPORT = "/deviceManagement/reports/getConfigurationPoliciesReportForDevice"
SETTINGS_REPORT = "/deviceManagement/reports/getConfigurationSettingsReport"


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay


def _zip(csv_text: str) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("report.csv", csv_text.encode("utf-8-sig"))
    return buffer.getvalue()


def _exporter(graph, clock: FakeClock, **poll: float) -> ReportExportService:
    return ReportExportService(
        graph,
        poll=ReportPollSettings(**poll),
        sleep=clock.sleep,
        clock=clock,
    )


def test_parse_export_archive_reads_zip_and_bare_csv() -> None:
    text = "PolicyId,DetectionStatus\nabc,Without issues\n"

    assert parse_export_archive(_zip(text)) == [{"PolicyId": "abc", "DetectionStatus": "Without issues"}]
    assert parse_export_archive(text.encode("utf-8")) == [
        {"PolicyId": "abc", "DetectionStatus": "Without issues"}
    ]


@pytest.mark.asyncio
async def test_export_polls_until_completed(graph) -> None:
    clock = FakeClock()
    graph.set_response("POST", EXPORT_JOBS, {"id": "job-1", "status": "notStarted"})
    graph.set_response(
        "GET",
        JOB_STATUS,
        {"id": "job-1", "status": "inProgress"},
        {"id": "job-1", "status": "completed", "url": "https://blob.example/report.zip"},
    )
    graph.set_download("https://blob.example/report.zip", _zip("PolicyId\np1\n"))

    rows = await _exporter(graph, clock, initial_delay=1.0, growth_factor=2.0, max_delay=1.5).export(
        "DeviceRunStatesByProactiveRemediation",
        filter_expression="(DeviceId eq 'mdm-1')",
        select=["PolicyId"],
    )

    assert rows == [{"PolicyId": "p1"}]
    assert clock.sleeps == [1.0, 1.5]
    body = graph.requests_to(EXPORT_JOBS)[0]["json"]
    assert body["reportName"] == "DeviceRunStatesByProactiveRemediation"
    assert body["filter"] == "(DeviceId eq 'mdm-1')"
    assert body["format"] == "csv"


@pytest.mark.asyncio
async def test_export_times_out(graph) -> None:
    clock = FakeClock()
    graph.set_response("POST", EXPORT_JOBS, {"id": "job-1", "status": "inProgress"})
    graph.set_response("GET", JOB_STATUS, {"id": "job-1", "status": "inProgress"})

    with pytest.raises(ReportTimeoutError) as excinfo:
        await _exporter(graph, clock, timeout=5.0, max_delay=2.0).export("AnyReport")

    assert excinfo.value.category is GraphErrorCategory.TIMEOUT
    assert clock.now == pytest.approx(5.0)
    assert all(delay <= 2.0 for delay in clock.sleeps)


@pytest.mark.asyncio
async def test_failed_export_job_raises(graph) -> None:
    clock = FakeClock()
    graph.set_response("POST", EXPORT_JOBS, {"id": "job-1", "status": "failed"})

    with pytest.raises(GraphAPIError) as excinfo:
        await _exporter(graph, clock).export("AnyReport")

    assert excinfo.value.category is GraphErrorCategory.SERVER


@pytest.mark.asyncio
async def test_device_policy_report_pages_until_total(graph, issues) -> None:
    first = report_table(POLICY_REPORT_COLUMNS, [policy_report_row("p1")], total=2)
    second = report_table(POLICY_REPORT_COLUMNS, [policy_report_row("p2", status=5)], total=2)
    graph.set_response("POST", POLICY_REPORT, first, second)

    rows = await DeploymentReportService(graph).device_policy_report("mdm-1", issues=issues)

    assert [row.policy_id for row in rows] == ["p1", "p2"]
    assert rows[1].status_code == 5
    skips = [request["json"]["skip"] for request in graph.requests_to(POLICY_REPORT)]
    assert skips == [0, 1]
    assert "IntuneDeviceId eq 'mdm-1'" in graph.requests_to(POLICY_REPORT)[0]["json"]["filter"]


@pytest.mark.asyncio
async def test_device_policy_report_propagates_failures(graph, issues) -> None:
    graph.set_response(
        "POST",
        POLICY_REPORT,
        GraphAPIError(message="forbidden", category=GraphErrorCategory.PERMISSION, status_code=403),
    )

    with pytest.raises(GraphAPIError):
        await DeploymentReportService(graph).device_policy_report("mdm-1", issues=issues)


@pytest.mark.asyncio
async def test_setting_errors_parse_rows(graph) -> None:
    graph.set_response(
        "POST",
        SETTINGS_REPORT,
        report_table(
            ["PolicyId", "SettingName", "SettingStatus", "ErrorCode", "SettingId"],
            [["p1", "Defender", 5, -2016281112, "s1"], ["p1", "", 2, "", "s2"]],
        ),
    )

    rows = await DeploymentReportService(graph).setting_errors("mdm-1", "p1")

    assert rows[0].error_code == -2016281112
    assert rows[1].setting_name is None
    assert rows[1].to_report()["settingName"] == "s2"
