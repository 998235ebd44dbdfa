"""Document adapters: where fragments come from and where translations go."""

from __future__ import annotations

import logging
import pathlib
from abc import ABC, abstractmethod
from typing import Dict, List, Sequence

from .errors import UnsupportedDocumentError
from .structures import Fragment, FragmentHandle, Group

logger = logging.getLogger(__name__)


class DocumentAdapter(ABC):
    """Owns a document and exposes it as fragment groups.

    The engine only ever holds the opaque handles issued by :meth:`scan`;
    ``apply`` and ``revert_all`` are the only ways it changes the document.
    Both are idempotent.
    """

    @abstractmethod
    def scan(self) -> List[Group]:
        """Return the translatable fragment groups in document order."""

    @abstractmethod
    def apply(self, handle: FragmentHandle, text: str) -> None:
        """Replace the text behind ``handle``."""

    @abstractmethod
    def revert_all(self) -> None:
        """Restore every fragment to its original text."""

    def mark_loading(self, group: Group) -> None:
        """Hook called when a group's batch is sent."""

    def mark_settled(self, group: Group) -> None:
        """Hook called once every fragment of a group is resolved."""


class PlainTextDocument(DocumentAdapter):
    """Plain text where paragraphs are groups and non-blank lines fragments.

    Paragraphs are separated by blank lines. Blank lines and the exact line
    layout are preserved when rendering.
    """

    def __init__(self, text: str) -> None:
        self._lines: List[str] = text.split("\n")
        self._originals: Dict[int, str] = {}
        self._current: Dict[int, str] = {}
        self.loading: set[int] = set()

    @classmethod
    def load(cls, path: pathlib.Path) -> "PlainTextDocument":
        return cls(path.read_text(encoding="utf-8"))

    def scan(self) -> List[Group]:
        groups: List[Group] = []
        pending: List[Fragment] = []

        def close_paragraph() -> None:
            if pending:
                groups.append(Group(group_id=len(groups) + 1, fragments=tuple(pending)))
                pending.clear()

        for index, line in enumerate(self._lines):
            if not line.strip():
                close_paragraph()
                continue
            self._originals.setdefault(index, line)
            pending.append(
                Fragment(
                    fragment_id=index,
                    original_text=self._originals[index],
                    group_id=len(groups) + 1,
                )
            )
        close_paragraph()
        logger.debug("Scanned %d paragraph(s).", len(groups))
        return groups

    def apply(self, handle: FragmentHandle, text: str) -> None:
        if handle not in self._originals:
            raise KeyError(f"Unknown fragment handle {handle!r}")
        self._current[handle] = text

    def revert_all(self) -> None:
        self._current.clear()
        self.loading.clear()

    def mark_loading(self, group: Group) -> None:
        self.loading.add(group.group_id)

    def mark_settled(self, group: Group) -> None:
        self.loading.discard(group.group_id)

    def text_of(self, handle: FragmentHandle) -> str:
        return self._current.get(handle, self._lines[handle])

    def render(self) -> str:
        return "\n".join(self.text_of(index) for index in range(len(self._lines)))

    def save(self, path: pathlib.Path) -> None:
        path.write_text(self.render(), encoding="utf-8")


SUPPORTED_SUFFIXES: Sequence[str] = (".txt", ".md", ".text")


def open_document(path: pathlib.Path) -> PlainTextDocument:
    """Pick an adapter for ``path`` by extension."""

    if path.suffix.lower() not in SUPPORTED_SUFFIXES:
        raise UnsupportedDocumentError(
            f"Unsupported file type '{path.suffix}'. "
            f"Supported: {', '.join(SUPPORTED_SUFFIXES)}."
        )
    return PlainTextDocument.load(path)
