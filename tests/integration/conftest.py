import os
from collections.abc import Generator
from importlib import resources
from pathlib import Path
from typing import Any

import psycopg
import pytest

from fileproc.config.settings import Settings
from fileproc.database.connection import close_pool, get_connection, init_pool
from fileproc.database.repositories.file_repository import FileRepository
from fileproc.database.repositories.job_repository import JobRepository
from fileproc.main import build_queue
from fileproc.producer.producer import Producer, Submission
from fileproc.queue.postgres_queue import PostgresDispatchQueue

TEST_QUEUE_NAME = "fileProcessingTest"


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "fileproc_test")
    return Settings(
        queue_name=TEST_QUEUE_NAME,
        queue_backoff_delay_ms=0,
        queue_wait_timeout_seconds=0.2,
        worker_concurrency=2,
    )


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        with get_connection() as conn:
            schema = resources.files("fileproc.database").joinpath("schema.sql").read_text()
            conn.execute(schema)
            conn.commit()
    except Exception as e:
        close_pool()
        pytest.skip(
            f"PostgreSQL test DB not available: {e}. "
            "Set DB_* env to point at a disposable database"
        )
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def integration_cleanup(integration_pool: None) -> Generator[list[int], None, None]:
    """Collects file IDs; their jobs and queue messages are removed after the test."""
    file_ids: list[int] = []
    yield file_ids
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("DELETE FROM file_processing_queue WHERE queue_name = %s", (TEST_QUEUE_NAME,))
            for file_id in file_ids:
                cur.execute("DELETE FROM jobs WHERE file_id = %s", (file_id,))
                cur.execute("DELETE FROM files WHERE id = %s", (file_id,))
        conn.commit()


@pytest.fixture
def queue(
    test_settings: Settings, integration_pool: None
) -> Generator[PostgresDispatchQueue, None, None]:
    dispatch_queue = build_queue(test_settings)
    yield dispatch_queue
    dispatch_queue.close()


@pytest.fixture
def producer(queue: PostgresDispatchQueue) -> Producer:
    return Producer(FileRepository(), JobRepository(), queue)


@pytest.fixture
def files_root(tmp_path: Path) -> Path:
    return tmp_path


@pytest.fixture
def submit_file(
    producer: Producer,
    files_root: Path,
    integration_cleanup: list[int],
):
    """Write content under files_root and submit it through the producer."""

    def _submit(content: bytes, original_filename: str = "report.txt") -> Submission:
        locator = f"10/{len(integration_cleanup)}-{original_filename}"
        path = files_root / locator
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        submission = producer.submit(10, original_filename, locator)
        integration_cleanup.append(submission.file_id)
        return submission

    return _submit
