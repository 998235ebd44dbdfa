"""Error definitions for the babelbatch translator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import List, Optional


class ErrorCategory(Enum):
    """Categorises runtime errors for reporting."""

    ARGUMENT = auto()
    FILE_IO = auto()
    SCAN = auto()
    TRANSLATION = auto()
    AUTHENTICATION = auto()
    RATE_LIMIT = auto()
    NETWORK = auto()
    CONFIGURATION = auto()
    OTHER = auto()


class BabelBatchError(Exception):
    """Base exception for all custom errors."""


class NothingToTranslateError(BabelBatchError):
    """Raised when a scan yields no translatable fragments."""


class UnsupportedDocumentError(BabelBatchError):
    """Raised when a given file cannot be wrapped by a document adapter."""


class OverwriteRefusedError(BabelBatchError):
    """Raised when attempting to overwrite an output without consent."""


class TranslationInProgressError(BabelBatchError):
    """Raised when a page job is started while another one is active."""


class SelectionInProgressError(BabelBatchError):
    """Raised when a selection translation is already running."""


class TranslationProviderConfigurationError(BabelBatchError):
    """Raised when the translation provider is misconfigured."""


class TranslationProviderError(BabelBatchError):
    """Raised when a backend call fails.

    The job controller treats this as a per-batch failure, never as fatal to
    the job.
    """

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory = ErrorCategory.TRANSLATION,
        provider: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.provider = provider


@dataclass
class ErrorRecord:
    """Stores context for a handled error."""

    category: ErrorCategory
    message: str
    group_indices: List[int] = field(default_factory=list)
    details: Optional[str] = None
