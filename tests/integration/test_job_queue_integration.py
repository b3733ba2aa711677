from datetime import datetime, timedelta, timezone

import pytest

from bulk_worker.queue.job_queue import PostgresJobQueue
from bulk_worker.queue.models import JobMessage


def _message(job_id: int = 1) -> JobMessage:
    return JobMessage(job_id=job_id, session_id=9, row_source="a.csv", initiated_by="ops")


@pytest.mark.integration
@pytest.mark.usefixtures("integration_pool", "empty_queue")
class TestJobQueueIntegration:
    def test_received_message_is_invisible_until_acked(self) -> None:
        queue = PostgresJobQueue(visibility_timeout_seconds=60)
        queue.publish(_message())

        delivery = queue.receive()

        assert delivery is not None
        assert delivery.message == _message()
        assert delivery.delivery_count == 1
        assert queue.receive() is None

        queue.ack(delivery)
        assert queue.receive() is None

    def test_unacked_message_is_redelivered(self) -> None:
        # A negative timeout makes the lock expire immediately.
        queue = PostgresJobQueue(visibility_timeout_seconds=-1)
        queue.publish(_message())
        first = queue.receive()
        assert first is not None

        second = queue.receive()

        assert second is not None
        assert second.message_id == first.message_id
        assert second.delivery_count == 2

    def test_future_message_not_delivered_early(self) -> None:
        queue = PostgresJobQueue(visibility_timeout_seconds=60)
        queue.publish(_message(), available_at=datetime.now(timezone.utc) + timedelta(hours=1))

        assert queue.receive() is None
