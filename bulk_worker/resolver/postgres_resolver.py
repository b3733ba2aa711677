import psycopg
from psycopg import errors as pg_errors

from bulk_worker.database.connection import get_connection
from bulk_worker.logging.logger import Log
from bulk_worker.processing.exceptions import ConnectivityError, TransientError
from bulk_worker.processing.models import ResolvedStatus
from bulk_worker.resolver.base import BaseResolver


class PostgresResolver(BaseResolver):
    """Resolves rows of the decision_records table."""

    def update(
        self,
        unique_key: str,
        resolved_by: str,
        status: ResolvedStatus,
        proof_reference: str | None,
    ) -> int:
        try:
            with get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        UPDATE decision_records
                        SET status = %s,
                            resolved = TRUE,
                            resolved_by = %s,
                            proof_reference = %s,
                            resolved_at = NOW()
                        WHERE unique_key = %s AND resolved = FALSE
                        """,
                        (status.value, resolved_by, proof_reference, unique_key),
                    )
                    affected = cur.rowcount
                conn.commit()
        except (pg_errors.TransactionRollback, pg_errors.LockNotAvailable) as exc:
            raise TransientError(f"Record {unique_key} is locked: {exc}") from exc
        except psycopg.OperationalError as exc:
            raise ConnectivityError(f"Record store unavailable: {exc}") from exc

        Log.debug(f"Resolved {unique_key} as {status.value}: {affected} record(s) affected")
        return affected
