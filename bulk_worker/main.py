from dataclasses import dataclass
from pathlib import Path

from bulk_worker.config.retry_policy import RetryPolicy
from bulk_worker.config.settings import Settings
from bulk_worker.database.connection import close_pool, init_pool
from bulk_worker.database.repositories.audit_repository import AuditLog
from bulk_worker.database.repositories.checkpoint_store import CheckpointStore
from bulk_worker.database.repositories.job_repository import JobRepository
from bulk_worker.database.repositories.session_errors_repository import (
    SessionErrorsRepository,
)
from bulk_worker.database.repositories.session_repository import SessionRepository
from bulk_worker.logging.logger import Log
from bulk_worker.operations import JobOperations
from bulk_worker.processing.error_report import ErrorReportWriter
from bulk_worker.processing.row_source import RowSourceOpener
from bulk_worker.processing.stream_processor import RowStreamProcessor
from bulk_worker.queue.job_queue import PostgresJobQueue
from bulk_worker.recovery.failure_classifier import FailureClassifier
from bulk_worker.recovery.pause_resume import PauseResumeController
from bulk_worker.recovery.periodic import PeriodicScheduler
from bulk_worker.recovery.retry_scheduler import RetryScheduler
from bulk_worker.resolver.postgres_resolver import PostgresResolver
from bulk_worker.worker.job_worker import JobWorker
from bulk_worker.worker.worker import Worker


@dataclass
class Components:
    worker: Worker
    scheduler: PeriodicScheduler
    operations: JobOperations


def build_components(settings: Settings) -> Components:
    """Wire repositories, recovery and the consume loop from settings."""
    policy = RetryPolicy.from_settings(settings)
    classifier = FailureClassifier(policy)
    jobs = JobRepository()
    checkpoints = CheckpointStore()
    audit = AuditLog()
    sessions = SessionRepository()
    queue = PostgresJobQueue(settings.queue_visibility_timeout_seconds)

    controller = PauseResumeController(jobs, checkpoints, audit, sessions, queue)
    stream_processor = RowStreamProcessor(
        checkpoints=checkpoints,
        session_errors=SessionErrorsRepository(),
        resolver=PostgresResolver(),
        report_writer=ErrorReportWriter(Path(settings.error_reports_dir)),
        classifier=classifier,
        audit=audit,
    )
    job_worker = JobWorker(
        jobs=jobs,
        checkpoints=checkpoints,
        audit=audit,
        sessions=sessions,
        stream_processor=stream_processor,
        row_sources=RowSourceOpener(Path(settings.files_root)),
        classifier=classifier,
        controller=controller,
        policy=policy,
        settings=settings,
    )
    retry_scheduler = RetryScheduler(
        jobs=jobs,
        checkpoints=checkpoints,
        audit=audit,
        classifier=classifier,
        controller=controller,
        queue=queue,
        policy=policy,
        resume_manual_pauses=settings.resume_manual_pauses,
    )

    scheduler = PeriodicScheduler()
    if settings.retry_enabled:
        scheduler.add(
            "retry-sweep",
            retry_scheduler.retry_sweep,
            settings.retry_schedule_interval_seconds,
        )
    if settings.resume_enabled:
        scheduler.add(
            "resume-sweep",
            retry_scheduler.resume_sweep,
            settings.resume_schedule_interval_seconds,
        )

    return Components(
        worker=Worker(queue, job_worker, settings),
        scheduler=scheduler,
        operations=JobOperations(jobs, audit, controller),
    )


def main() -> None:
    """Entry point: initialize pool -> build dependencies -> start sweeps and worker loop."""
    settings = Settings()
    Log.configure(settings.log_level)
    init_pool(settings)

    scheduler: PeriodicScheduler | None = None
    try:
        components = build_components(settings)
        scheduler = components.scheduler
        scheduler.start()
        components.worker.run()
    finally:
        if scheduler is not None:
            scheduler.stop(timeout=10)
        close_pool()


if __name__ == "__main__":
    main()
