"""Core data structures for the babelbatch translation engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Hashable, List, Optional, Tuple

FragmentHandle = Hashable


class BatchStatus(Enum):
    """Lifecycle of a single backend call."""

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    APPLIED = "applied"
    FAILED = "failed"
    DISCARDED = "discarded"


class DecodePath(Enum):
    """Which decoding path produced a batch's translations."""

    MATCHED = "matched"
    FALLBACK = "fallback"


class GroupState(Enum):
    PENDING = "pending"
    LOADING = "loading"
    SETTLED = "settled"


class JobStatus(Enum):
    """States of a translation job."""

    IDLE = "idle"
    SCANNING = "scanning"
    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class Fragment:
    """One independently translatable unit of text."""

    fragment_id: FragmentHandle
    original_text: str
    group_id: int


@dataclass(frozen=True)
class Group:
    """Fragments that must be settled together."""

    group_id: int
    fragments: Tuple[Fragment, ...]

    @property
    def char_count(self) -> int:
        return sum(len(fragment.original_text) for fragment in self.fragments)

    def __len__(self) -> int:
        return len(self.fragments)


@dataclass
class GroupProgress:
    """Mutable per-job view of a group's resolution."""

    group: Group
    index: int
    state: GroupState = GroupState.PENDING
    resolved: int = 0
    translated: int = 0

    @property
    def complete(self) -> bool:
        return self.resolved >= len(self.group.fragments)


@dataclass
class Batch:
    """An ordered run of whole groups sent in one backend call."""

    batch_id: int
    groups: List[Group]
    status: BatchStatus = BatchStatus.PENDING
    decode_path: Optional[DecodePath] = None

    @property
    def fragments(self) -> List[Fragment]:
        return [fragment for group in self.groups for fragment in group.fragments]

    @property
    def texts(self) -> List[str]:
        return [fragment.original_text for fragment in self.fragments]

    @property
    def char_count(self) -> int:
        return sum(group.char_count for group in self.groups)

    @property
    def group_ids(self) -> List[int]:
        return [group.group_id for group in self.groups]

    def __len__(self) -> int:
        return sum(len(group) for group in self.groups)


@dataclass
class JobProgress:
    """Snapshot pushed to a job's status sink."""

    status: JobStatus
    message: str
    batch_number: int = 0
    total_batches: int = 0
    translated: int = 0
    errors: int = 0


@dataclass
class JobSummary:
    """Report returned after a page job reaches a terminal state."""

    status: JobStatus
    total_groups: int
    total_fragments: int
    total_batches: int
    translated_groups: int
    kept_original: int
    error_count: int
    provider_name: str
    target_language: str
    source_language: str
    elapsed_seconds: float
    error_messages: List[str] = field(default_factory=list)
