from datetime import datetime
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from bulk_worker.database.connection import get_connection
from bulk_worker.logging.logger import Log
from bulk_worker.queue.models import Delivery, JobMessage


class PostgresJobQueue:
    """At-least-once job dispatch over the bulk_job_messages table.

    A received message stays in the table, invisible for the visibility
    timeout, until it is acknowledged. If the receiver dies first the message
    becomes visible again and is redelivered.
    """

    def __init__(self, visibility_timeout_seconds: int) -> None:
        self._visibility_timeout_seconds = visibility_timeout_seconds

    def publish(
        self,
        message: JobMessage,
        available_at: datetime | None = None,
        conn: psycopg.Connection[Any] | None = None,
    ) -> int:
        """Enqueue a message, optionally not deliverable before ``available_at``.

        With ``conn`` the insert joins the caller's transaction and becomes
        visible only when that transaction commits.
        """
        if conn is not None:
            message_id = self._insert(conn, message, available_at)
        else:
            with get_connection() as conn:
                message_id = self._insert(conn, message, available_at)
                conn.commit()

        Log.info(f"Published dispatch message {message_id} for job {message.job_id}")
        return message_id

    def _insert(
        self,
        conn: psycopg.Connection[Any],
        message: JobMessage,
        available_at: datetime | None,
    ) -> int:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO bulk_job_messages (job_id, payload, available_at)
                VALUES (%s, %s, COALESCE(%s, NOW()))
                RETURNING id
                """,
                (message.job_id, Jsonb(message.to_payload()), available_at),
            )
            row = cur.fetchone()
        assert row is not None
        return row[0]

    def receive(self) -> Delivery | None:
        """Take the oldest deliverable message, or None when the queue is idle."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, payload, delivery_count
                    FROM bulk_job_messages
                    WHERE available_at <= NOW()
                      AND (locked_until IS NULL OR locked_until < NOW())
                    ORDER BY available_at, id
                    LIMIT 1
                    FOR UPDATE SKIP LOCKED
                    """
                )
                row = cur.fetchone()
                if row is None:
                    conn.commit()
                    return None

                cur.execute(
                    """
                    UPDATE bulk_job_messages
                    SET locked_until = NOW() + %s * INTERVAL '1 second',
                        delivery_count = delivery_count + 1
                    WHERE id = %s
                    """,
                    (self._visibility_timeout_seconds, row["id"]),
                )
            conn.commit()

        return Delivery(
            message_id=row["id"],
            message=JobMessage.from_payload(row["payload"]),
            delivery_count=row["delivery_count"] + 1,
        )

    def ack(self, delivery: Delivery) -> None:
        """Remove a handled message. Acknowledging twice is harmless."""
        with get_connection() as conn:
            conn.execute(
                "DELETE FROM bulk_job_messages WHERE id = %s",
                (delivery.message_id,),
            )
            conn.commit()
