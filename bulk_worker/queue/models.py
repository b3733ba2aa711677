from dataclasses import dataclass
from typing import Any

from bulk_worker.database.models import JobRecord


@dataclass(frozen=True)
class JobMessage:
    """Job dispatch message. May be delivered more than once."""

    job_id: int
    session_id: int
    row_source: str
    initiated_by: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "session_id": self.session_id,
            "row_source": self.row_source,
            "initiated_by": self.initiated_by,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "JobMessage":
        return cls(
            job_id=int(payload["job_id"]),
            session_id=int(payload["session_id"]),
            row_source=str(payload["row_source"]),
            initiated_by=str(payload.get("initiated_by") or ""),
        )


@dataclass(frozen=True)
class Delivery:
    """A received message plus what is needed to acknowledge it."""

    message_id: int
    message: JobMessage
    delivery_count: int


def message_for_job(job: JobRecord) -> JobMessage:
    """Rebuild the dispatch message of an existing job for re-enqueueing."""
    return JobMessage(
        job_id=job.id,
        session_id=job.session_id,
        row_source=job.row_source or "",
        initiated_by=job.initiated_by or "",
    )
