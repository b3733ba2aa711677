import time

from bulk_worker.config.settings import Settings
from bulk_worker.logging.logger import Log
from bulk_worker.queue.job_queue import PostgresJobQueue
from bulk_worker.queue.models import Delivery
from bulk_worker.worker.job_worker import JobWorker


class Worker:
    """Consume loop: receive -> handle -> ack, sleep when idle."""

    def __init__(
        self,
        queue: PostgresJobQueue,
        job_worker: JobWorker,
        settings: Settings,
    ) -> None:
        self._queue = queue
        self._job_worker = job_worker
        self._settings = settings

    def run(self, max_messages: int | None = None) -> None:
        """Main consume loop. Runs forever until interrupted.

        If max_messages is set, stop after handling that many messages (for testing).
        """
        Log.info("Worker started, waiting for job messages")
        handled = 0
        try:
            while True:
                if max_messages is not None and handled >= max_messages:
                    break
                delivery = self._try_receive()
                if delivery:
                    self._dispatch(delivery)
                    handled += 1
                else:
                    Log.debug("No messages available, sleeping")
                    time.sleep(self._settings.queue_poll_interval_seconds)
        except KeyboardInterrupt:
            Log.info("Worker shutting down gracefully")

    def _dispatch(self, delivery: Delivery) -> None:
        Log.info(
            f"Received message {delivery.message_id} for job {delivery.message.job_id} "
            f"(delivery {delivery.delivery_count})"
        )
        outcome = self._job_worker.handle(delivery.message)
        if not outcome.acknowledge:
            return
        try:
            self._queue.ack(delivery)
        except Exception as exc:
            Log.warning(f"Could not acknowledge message {delivery.message_id}: {exc}")

    def _try_receive(self) -> Delivery | None:
        """Attempt to receive the next message. Gracefully handle DB errors."""
        try:
            return self._queue.receive()
        except Exception as exc:
            Log.warning(f"Database error, will retry: {exc}")
            return None
