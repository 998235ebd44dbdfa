from __future__ import annotations

from typing import Any, Awaitable, Callable, List, Optional, Sequence, Union

import pytest

from babelbatch.codec import decode_request, encode_response
from babelbatch.configuration import clear_settings_cache
from babelbatch.documents import PlainTextDocument
from babelbatch.providers import TranslationProvider
from babelbatch.structures import Group

Reply = Union[str, BaseException, Callable[[str], Union[str, Awaitable[str]]]]


def suffix_reply(suffix: str) -> Callable[[str], str]:
    """Reply that echoes every original with ``suffix`` appended."""

    def _reply(payload: str) -> str:
        texts = decode_request(payload)
        return encode_response([(text, text + suffix) for text in texts])

    return _reply


class ScriptedProvider(TranslationProvider):
    """Provider whose answers are scripted per call.

    Each entry is a reply string, an exception to raise, or a callable that
    receives the request payload. When the script runs out ``default`` is
    used.
    """

    name = "scripted"

    def __init__(self, script: Sequence[Reply] = (), default: Optional[Reply] = None) -> None:
        super().__init__()
        self.script: List[Reply] = list(script)
        self.default = default if default is not None else suffix_reply(" [tr]")
        self.payloads: List[str] = []
        self.languages: List[tuple[str, str]] = []

    def validate_config(self) -> bool:
        return True

    def _build_client(self) -> Any:
        return self

    async def _complete(self, prompt: str) -> str:
        return prompt

    async def _fetch_models(self) -> List[str]:
        return ["scripted-1"]

    async def translate(self, payload: str, target_language: str, source_language: str = "auto") -> str:
        self.payloads.append(payload)
        self.languages.append((target_language, source_language))
        reply = self.script.pop(0) if self.script else self.default
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            result = reply(payload)
            if hasattr(result, "__await__"):
                result = await result
            return result
        return reply


class RecordingDocument(PlainTextDocument):
    """Plain text document that records adapter hook calls."""

    def __init__(self, text: str) -> None:
        super().__init__(text)
        self.events: List[tuple[str, Any]] = []

    def apply(self, handle: Any, text: str) -> None:
        self.events.append(("apply", handle))
        super().apply(handle, text)

    def revert_all(self) -> None:
        self.events.append(("revert_all", None))
        super().revert_all()

    def mark_loading(self, group: Group) -> None:
        self.events.append(("loading", group.group_id))
        super().mark_loading(group)

    def mark_settled(self, group: Group) -> None:
        self.events.append(("settled", group.group_id))
        super().mark_settled(group)


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    yield
    clear_settings_cache()
