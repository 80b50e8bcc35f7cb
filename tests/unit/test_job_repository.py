from unittest.mock import MagicMock, patch

import pytest

from fileproc.database.exceptions import PersistenceError, StaleStateError
from fileproc.database.models import JobStatus
from fileproc.database.repositories.job_repository import JobRepository


def _make_row(status: str = "queued", **overrides: object) -> dict:
    row = {
        "id": 7,
        "file_id": 1,
        "job_type": "fileProcessing",
        "status": status,
        "error_message": None,
        "started_at": None,
        "completed_at": None,
        "created_at": None,
        "updated_at": None,
    }
    row.update(overrides)
    return row


def _mock_conn(rowcount: int = 1) -> tuple[MagicMock, MagicMock]:
    mock_cursor = MagicMock()
    mock_cursor.rowcount = rowcount
    mock_conn = MagicMock()
    mock_conn.cursor.return_value.__enter__ = MagicMock(return_value=mock_cursor)
    mock_conn.cursor.return_value.__exit__ = MagicMock(return_value=False)
    return mock_conn, mock_cursor


class TestCreate:
    def test_inserts_queued_job(self) -> None:
        conn, cursor = _mock_conn()
        cursor.fetchone.return_value = _make_row()

        job = JobRepository().create(conn, 1)

        assert cursor.execute.call_args.args[1] == (1, "fileProcessing", "queued")
        assert job.status is JobStatus.QUEUED
        assert job.is_terminal is False

    def test_missing_returned_row_raises_persistence_error(self) -> None:
        conn, cursor = _mock_conn()
        cursor.fetchone.return_value = None

        with pytest.raises(PersistenceError, match="returned no row"):
            JobRepository().create(conn, 1)


class TestFindById:
    @patch("fileproc.database.repositories.job_repository.get_connection")
    def test_returns_none_when_missing(self, mock_get_conn: MagicMock) -> None:
        conn, cursor = _mock_conn()
        mock_get_conn.return_value.__enter__ = MagicMock(return_value=conn)
        mock_get_conn.return_value.__exit__ = MagicMock(return_value=False)
        cursor.fetchone.return_value = None

        assert JobRepository().find_by_id(7) is None

    @patch("fileproc.database.repositories.job_repository.get_connection")
    def test_terminal_job(self, mock_get_conn: MagicMock) -> None:
        conn, cursor = _mock_conn()
        mock_get_conn.return_value.__enter__ = MagicMock(return_value=conn)
        mock_get_conn.return_value.__exit__ = MagicMock(return_value=False)
        cursor.fetchone.return_value = _make_row(status="completed")

        job = JobRepository().find_by_id(7)

        assert job is not None
        assert job.is_terminal is True


class TestListForFile:
    @patch("fileproc.database.repositories.job_repository.get_connection")
    def test_maps_every_row(self, mock_get_conn: MagicMock) -> None:
        conn, cursor = _mock_conn()
        mock_get_conn.return_value.__enter__ = MagicMock(return_value=conn)
        mock_get_conn.return_value.__exit__ = MagicMock(return_value=False)
        cursor.fetchall.return_value = [
            _make_row(id=3, status="failed", error_message="IOError: disk"),
            _make_row(id=4, status="queued"),
        ]

        jobs = JobRepository().list_for_file(1)

        assert [job.id for job in jobs] == [3, 4]
        assert jobs[0].status is JobStatus.FAILED
        assert jobs[0].error_message == "IOError: disk"
        assert cursor.execute.call_args.args[1] == (1,)


class TestHasActiveJob:
    def test_true_when_row_found(self) -> None:
        conn, cursor = _mock_conn()
        cursor.fetchone.return_value = (1,)

        assert JobRepository().has_active_job(conn, 1) is True
        assert cursor.execute.call_args.args[1] == (1, "queued", "processing")

    def test_false_when_no_row(self) -> None:
        conn, cursor = _mock_conn()
        cursor.fetchone.return_value = None

        assert JobRepository().has_active_job(conn, 1) is False


class TestGuardedTransitions:
    def test_mark_processing_accepts_queued_or_processing(self) -> None:
        conn, cursor = _mock_conn()

        JobRepository().mark_processing(conn, 7)

        sql, params = cursor.execute.call_args.args
        assert "started_at = COALESCE(started_at, NOW())" in sql
        assert params == ("processing", 7, "queued", "processing")

    def test_mark_completed_requires_processing(self) -> None:
        conn, cursor = _mock_conn()

        JobRepository().mark_completed(conn, 7)

        assert cursor.execute.call_args.args[1] == ("completed", 7, "processing")

    def test_mark_failed_sets_error_and_returns_file_id(self) -> None:
        conn, cursor = _mock_conn()
        cursor.fetchone.return_value = (1,)

        file_id = JobRepository().mark_failed(conn, 7, "IOError: boom")

        sql, params = cursor.execute.call_args.args
        assert file_id == 1
        assert "completed_at = NOW()" in sql
        assert "RETURNING file_id" in sql
        assert params == ("failed", "IOError: boom", 7, "queued", "processing")

    def test_record_attempt_error_keeps_status(self) -> None:
        conn, cursor = _mock_conn()

        JobRepository().record_attempt_error(conn, 7, "IOError: boom")

        sql, params = cursor.execute.call_args.args
        assert "status =" not in sql.split("WHERE")[0]
        assert params == ("IOError: boom", 7, "processing")

    @pytest.mark.parametrize(
        "call",
        [
            lambda repo, conn: repo.mark_processing(conn, 7),
            lambda repo, conn: repo.mark_completed(conn, 7),
            lambda repo, conn: repo.mark_failed(conn, 7, "x"),
            lambda repo, conn: repo.record_attempt_error(conn, 7, "x"),
        ],
    )
    def test_raises_stale_when_no_row_matched(self, call) -> None:
        conn, cursor = _mock_conn(rowcount=0)
        cursor.fetchone.return_value = None

        with pytest.raises(StaleStateError, match="Job 7"):
            call(JobRepository(), conn)
