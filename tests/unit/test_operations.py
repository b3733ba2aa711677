from unittest.mock import MagicMock

import pytest

from bulk_worker.database.models import AuditEntry, JobRecord, JobStatus, PauseKind
from bulk_worker.operations import JobOperations, JobSnapshot
from bulk_worker.processing.exceptions import JobNotFoundError


def _make_operations() -> tuple[JobOperations, MagicMock, MagicMock, MagicMock]:
    jobs = MagicMock()
    audit = MagicMock()
    controller = MagicMock()
    return JobOperations(jobs, audit, controller), jobs, audit, controller


def _make_job(**overrides: object) -> JobRecord:
    fields: dict = {
        "id": 1,
        "session_id": 9,
        "job_ref": "job-1",
        "status": JobStatus.PAUSED,
        "total_rows": 200,
        "processed_rows": 50,
        "success_count": 45,
        "failure_count": 5,
        "last_processed_row": 50,
        "pause_kind": PauseKind.MANUAL,
    }
    fields.update(overrides)
    return JobRecord(**fields)


class TestPauseResume:
    def test_pause_is_manual(self) -> None:
        ops, _jobs, _audit, controller = _make_operations()
        controller.pause.return_value = True

        assert ops.pause(1, "investigating") is True
        controller.pause.assert_called_once_with(1, "investigating", kind=PauseKind.MANUAL)

    def test_resume_delegates(self) -> None:
        ops, _jobs, _audit, controller = _make_operations()
        controller.resume.return_value = False

        assert ops.resume(1) is False
        controller.resume.assert_called_once_with(1)


class TestResumePoint:
    def test_is_row_after_checkpoint(self) -> None:
        ops, jobs, _audit, _controller = _make_operations()
        jobs.find_by_id.return_value = _make_job(last_processed_row=50)

        assert ops.resume_point(1) == 51

    def test_fresh_job_starts_at_first_row(self) -> None:
        ops, jobs, _audit, _controller = _make_operations()
        jobs.find_by_id.return_value = _make_job(last_processed_row=0)

        assert ops.resume_point(1) == 1

    def test_unknown_job_raises(self) -> None:
        ops, jobs, _audit, _controller = _make_operations()
        jobs.find_by_id.return_value = None

        with pytest.raises(JobNotFoundError, match="Job 7 not found"):
            ops.resume_point(7)


class TestStatus:
    def test_snapshot(self) -> None:
        ops, jobs, _audit, _controller = _make_operations()
        jobs.find_by_id.return_value = _make_job()

        snapshot = ops.status(1)

        assert isinstance(snapshot, JobSnapshot)
        assert snapshot.status is JobStatus.PAUSED
        assert snapshot.resume_row == 51
        assert snapshot.pause_kind is PauseKind.MANUAL
        assert snapshot.percent_complete == 25.0

    def test_percent_without_total(self) -> None:
        snapshot = JobSnapshot.of(_make_job(total_rows=0, status=JobStatus.COMPLETED))
        assert snapshot.percent_complete == 100.0

    def test_unknown_job_raises(self) -> None:
        ops, jobs, _audit, _controller = _make_operations()
        jobs.find_by_id.return_value = None

        with pytest.raises(JobNotFoundError):
            ops.status(1)


class TestAuditTrail:
    def test_returns_entries(self) -> None:
        ops, _jobs, audit, _controller = _make_operations()
        entries = [AuditEntry(job_id=1, action="JOB_STARTED", message="Job processing started")]
        audit.find_by_job_id.return_value = entries

        assert ops.audit_trail(1) == entries
        audit.find_by_job_id.assert_called_once_with(1)
