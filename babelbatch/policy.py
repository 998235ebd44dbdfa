"""Error aggregation for translation jobs."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .errors import ErrorCategory, ErrorRecord, TranslationProviderError

logger = logging.getLogger(__name__)


def block_label(indices: Sequence[int]) -> str:
    """Render group indices the way status lines refer to them."""

    if len(indices) == 1:
        return f"Block {indices[0]}"
    return "Blocks " + ", ".join(str(index) for index in indices)


class ErrorLog:
    """Collects per-batch failures so they can be reported once per job.

    Nothing here raises: a failed batch never stops the job loop.
    """

    def __init__(self) -> None:
        self.records: List[ErrorRecord] = []

    def __len__(self) -> int:
        return len(self.records)

    def __bool__(self) -> bool:
        return bool(self.records)

    def record(
        self,
        category: ErrorCategory,
        message: str,
        *,
        group_indices: Sequence[int] = (),
        details: Optional[str] = None,
    ) -> ErrorRecord:
        record = ErrorRecord(
            category=category,
            message=message,
            group_indices=list(group_indices),
            details=details,
        )
        self.records.append(record)
        logger.debug("error.recorded %s: %s", category.name, message)
        return record

    def record_batch_failure(
        self,
        group_indices: Sequence[int],
        exc: TranslationProviderError,
    ) -> ErrorRecord:
        """Record one aggregated failure for every group of a batch."""

        return self.record(
            exc.category,
            f"{block_label(group_indices)}: {exc}",
            group_indices=group_indices,
            details=exc.provider,
        )

    @property
    def messages(self) -> List[str]:
        return [record.message for record in self.records]

    def report(self) -> None:
        """Log every collected failure once the job has finished."""

        for record in self.records:
            logger.error("Block error: %s", record.message)
