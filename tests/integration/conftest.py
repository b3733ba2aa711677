import os
import uuid
from collections.abc import Generator
from pathlib import Path
from typing import Any

import psycopg
import pytest

from bulk_worker.config.settings import Settings
from bulk_worker.database.connection import close_pool, get_connection, init_pool
from bulk_worker.database.models import JobRecord, JobStatus
from bulk_worker.database.repositories.job_repository import JobRepository

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "sql" / "schema.sql"


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "bulk_worker_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        with get_connection() as conn:
            conn.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
            conn.commit()
    except Exception as e:
        close_pool()
        pytest.skip(
            f"PostgreSQL test DB not available: {e}. "
            "Set DB_* env to point at a bulk_worker_test database"
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
def integration_cleanup(integration_pool: None) -> Generator[list[tuple[str, int]], None, None]:
    cleanup: list[tuple[str, int]] = []
    yield cleanup
    if not cleanup:
        return
    with get_connection() as conn:
        with conn.cursor() as cur:
            for table, row_id in cleanup:
                if table == "bulk_jobs":
                    cur.execute("DELETE FROM bulk_job_messages WHERE job_id = %s", (row_id,))
                    cur.execute("DELETE FROM bulk_job_audit WHERE job_id = %s", (row_id,))
                    cur.execute("DELETE FROM bulk_jobs WHERE id = %s", (row_id,))
            for table, row_id in cleanup:
                if table == "bulk_sessions":
                    cur.execute("DELETE FROM bulk_sessions WHERE id = %s", (row_id,))
            for table, row_id in cleanup:
                if table == "decision_records":
                    cur.execute("DELETE FROM decision_records WHERE id = %s", (row_id,))
        conn.commit()


@pytest.fixture
def empty_queue(db_conn: psycopg.Connection[Any]) -> None:
    db_conn.execute("DELETE FROM bulk_job_messages")
    db_conn.commit()


@pytest.fixture
def seed_session(
    db_conn: psycopg.Connection[Any],
    integration_cleanup: list[tuple[str, int]],
) -> int:
    with db_conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO bulk_sessions (status, uploaded_by)
            VALUES ('CONFIRMED', 'ops@example.com')
            RETURNING id
            """
        )
        row = cur.fetchone()
    db_conn.commit()
    assert row is not None
    integration_cleanup.append(("bulk_sessions", row[0]))
    return row[0]


@pytest.fixture
def seed_job(
    seed_session: int,
    db_conn: psycopg.Connection[Any],
    integration_cleanup: list[tuple[str, int]],
) -> JobRecord:
    with db_conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO bulk_jobs (session_id, job_ref, status, total_rows)
            VALUES (%s, %s, 'PENDING', 3)
            RETURNING id
            """,
            (seed_session, f"job-{uuid.uuid4()}"),
        )
        row = cur.fetchone()
    db_conn.commit()
    assert row is not None
    integration_cleanup.append(("bulk_jobs", row[0]))
    job = JobRepository().find_by_id(row[0])
    assert job is not None
    assert job.status is JobStatus.PENDING
    return job


@pytest.fixture
def seed_decision_records(
    db_conn: psycopg.Connection[Any],
    integration_cleanup: list[tuple[str, int]],
) -> list[str]:
    """Three unresolved records; returns their unique keys in CSV order."""
    prefix = uuid.uuid4().hex[:8]
    keys = [f"{prefix}-K{n}" for n in (1, 2, 3)]
    with db_conn.cursor() as cur:
        for key in keys:
            cur.execute(
                "INSERT INTO decision_records (unique_key) VALUES (%s) RETURNING id",
                (key,),
            )
            row = cur.fetchone()
            assert row is not None
            integration_cleanup.append(("decision_records", row[0]))
    db_conn.commit()
    return keys
