from abc import ABC, abstractmethod

from bulk_worker.processing.models import ResolvedStatus


class BaseResolver(ABC):
    """Applies one row's decision to the external record store."""

    @abstractmethod
    def update(
        self,
        unique_key: str,
        resolved_by: str,
        status: ResolvedStatus,
        proof_reference: str | None,
    ) -> int:
        """Resolve the record identified by ``unique_key``.

        Must only touch records that are not yet resolved, so repeating a
        call is a no-op.

        Returns:
            Number of records affected (0 when nothing matched).
        """
        raise NotImplementedError
