from collections import defaultdict

from bulk_worker.database.connection import get_connection
from bulk_worker.database.models import SessionError


class SessionErrorsRepository:
    """Read access to validation errors recorded when the CSV was uploaded.

    Row numbers are file line numbers: the header is line 1, so data row ``n``
    is stored as ``n + 1``.
    """

    def errors_by_row(self, session_id: int) -> dict[int, list[SessionError]]:
        """All stored errors for a session keyed by row number."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT row_number, column_name, error_message
                    FROM bulk_session_errors
                    WHERE session_id = %s
                    ORDER BY row_number, id
                    """,
                    (session_id,),
                )
                rows = cur.fetchall()

        grouped: dict[int, list[SessionError]] = defaultdict(list)
        for row_number, column_name, error_message in rows:
            grouped[row_number].append(
                SessionError(
                    row_number=row_number,
                    column_name=column_name,
                    error_message=error_message,
                )
            )
        return dict(grouped)
