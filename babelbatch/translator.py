"""High-level orchestration for page and selection translation."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

from .codec import decode_response, encode_request
from .configuration import BabelBatchConfig
from .documents import DocumentAdapter
from .errors import (
    NothingToTranslateError,
    SelectionInProgressError,
    TranslationInProgressError,
    TranslationProviderError,
)
from .policy import ErrorLog
from .providers import TranslationProvider, build_provider
from .segmenter import (
    DEFAULT_BATCH_MAX_CHARS,
    DEFAULT_BATCH_MAX_ITEMS,
    DEFAULT_CHUNK_MAX_LENGTH,
    BatchBuilder,
    split_into_chunks,
    split_translation,
)
from .structures import (
    Batch,
    BatchStatus,
    DecodePath,
    Fragment,
    Group,
    GroupProgress,
    GroupState,
    JobProgress,
    JobStatus,
    JobSummary,
)

logger = logging.getLogger(__name__)

StatusSink = Callable[[JobProgress], None]

DEFAULT_THROTTLE_SECONDS = 0.1


class CancellationToken:
    """Cooperative cancellation flag shared by a job and whoever started it."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class PageTranslationJob:
    """Translates every fragment an adapter exposes, one batch at a time.

    Batches run sequentially with a throttle delay in between. A failed
    backend call costs only its own batch; its fragments keep their original
    text and the failure is reported once the job ends. Cancellation is
    polled before each batch and again before applying a reply, so a late
    reply is dropped instead of applied.
    """

    def __init__(
        self,
        adapter: DocumentAdapter,
        provider: TranslationProvider,
        *,
        target_language: str,
        source_language: str = "auto",
        max_chars: int = DEFAULT_BATCH_MAX_CHARS,
        max_items: int = DEFAULT_BATCH_MAX_ITEMS,
        throttle_seconds: float = DEFAULT_THROTTLE_SECONDS,
        token: CancellationToken | None = None,
        status_sink: StatusSink | None = None,
    ) -> None:
        self.adapter = adapter
        self.provider = provider
        self.target_language = target_language
        self.source_language = source_language or "auto"
        self.batch_builder = BatchBuilder(max_chars, max_items)
        self.throttle_seconds = max(0.0, throttle_seconds)
        self.token = token or CancellationToken()
        self.status_sink = status_sink

        self.status = JobStatus.IDLE
        self.groups: List[Group] = []
        self.batches: List[Batch] = []
        self.errors = ErrorLog()
        self.translated_groups = 0
        self.kept_original = 0
        self._progress: Dict[int, GroupProgress] = {}
        self._batch_number = 0

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def group_state(self, group_id: int) -> GroupState:
        return self._progress[group_id].state

    async def run(self) -> JobSummary:
        start_time = time.monotonic()

        self._set_status(JobStatus.SCANNING, "Scanning page...")
        self.groups = [group for group in self.adapter.scan() if group.fragments]
        if not self.groups:
            self._set_status(JobStatus.FAILED, "No translatable text found.")
            raise NothingToTranslateError("No translatable text found.")

        self._progress = {
            group.group_id: GroupProgress(group=group, index=index)
            for index, group in enumerate(self.groups, start=1)
        }
        self.batches = self.batch_builder.build(self.groups)
        self._set_status(
            JobStatus.RUNNING,
            f"Found {len(self.groups)} blocks to translate.",
        )
        logger.info(
            "Prepared %d groups, %d fragments, %d batches.",
            len(self.groups),
            sum(len(group) for group in self.groups),
            len(self.batches),
        )

        for position, batch in enumerate(self.batches):
            if self.token.cancelled:
                break
            await self._process_batch(batch)
            if self.token.cancelled:
                break
            if position < len(self.batches) - 1 and self.throttle_seconds:
                await asyncio.sleep(self.throttle_seconds)

        for batch in self.batches:
            if batch.status is BatchStatus.PENDING:
                batch.status = BatchStatus.DISCARDED

        if self.token.cancelled:
            self._set_status(JobStatus.CANCELLED, "Translation cancelled.")
        elif self.errors:
            self._set_status(
                JobStatus.COMPLETED_WITH_ERRORS,
                f"Translated {self._batch_number} batches with "
                f"{self.error_count} error(s).",
            )
            self.errors.report()
        else:
            self._set_status(
                JobStatus.COMPLETED,
                f"Translation completed ({self._batch_number} batches).",
            )

        return JobSummary(
            status=self.status,
            total_groups=len(self.groups),
            total_fragments=sum(len(group) for group in self.groups),
            total_batches=len(self.batches),
            translated_groups=self.translated_groups,
            kept_original=self.kept_original,
            error_count=self.error_count,
            provider_name=self.provider.name,
            target_language=self.target_language,
            source_language=self.source_language,
            elapsed_seconds=time.monotonic() - start_time,
            error_messages=self.errors.messages,
        )

    async def _process_batch(self, batch: Batch) -> None:
        self._batch_number += 1
        batch.status = BatchStatus.IN_FLIGHT
        for group in batch.groups:
            self._progress[group.group_id].state = GroupState.LOADING
            self.adapter.mark_loading(group)
        self._emit(f"Translating batch {self._batch_number} of {len(self.batches)}...")

        texts = batch.texts
        try:
            reply = await self.provider.translate(
                encode_request(texts),
                self.target_language,
                self.source_language,
            )
        except TranslationProviderError as exc:
            if self.token.cancelled:
                self._discard(batch)
                return
            batch.status = BatchStatus.FAILED
            indices = [self._progress[group_id].index for group_id in batch.group_ids]
            self.errors.record_batch_failure(indices, exc)
            logger.info("Batch %d failed: %s", batch.batch_id, exc)
            for fragment in batch.fragments:
                self._resolve(fragment, None, succeeded=False)
            return

        translations = decode_response(reply, texts)
        batch.decode_path = DecodePath.MATCHED
        if not translations:
            logger.warning(
                "Batch %d: failed to parse structured response, using fallback split.",
                batch.batch_id,
            )
            translations = split_translation(reply, len(texts))
            batch.decode_path = DecodePath.FALLBACK

        if self.token.cancelled:
            self._discard(batch)
            return

        empty = 0
        for fragment, translated in zip(batch.fragments, translations):
            if not translated:
                empty += 1
            self._resolve(fragment, translated, succeeded=True)
        batch.status = BatchStatus.APPLIED
        if empty:
            logger.info(
                "%d item(s) returned no translation in batch %d, keeping original text.",
                empty,
                batch.batch_id,
            )

    def _discard(self, batch: Batch) -> None:
        batch.status = BatchStatus.DISCARDED
        for group in batch.groups:
            self._progress[group.group_id].state = GroupState.PENDING
            self.adapter.mark_settled(group)
        logger.info("Batch %d discarded after cancellation.", batch.batch_id)

    def _resolve(
        self,
        fragment: Fragment,
        translated: Optional[str],
        *,
        succeeded: bool,
    ) -> None:
        progress = self._progress[fragment.group_id]
        if translated and translated.strip() and translated != fragment.original_text:
            self.adapter.apply(fragment.fragment_id, translated)
            progress.translated += 1
        else:
            self.kept_original += 1
        progress.resolved += 1

        if progress.complete and progress.state is not GroupState.SETTLED:
            progress.state = GroupState.SETTLED
            self.adapter.mark_settled(progress.group)
            if succeeded:
                self.translated_groups += 1

    def _set_status(self, status: JobStatus, message: str) -> None:
        self.status = status
        self._emit(message)

    def _emit(self, message: str) -> None:
        logger.debug("job.status %s: %s", self.status.value, message)
        if self.status_sink is None:
            return
        self.status_sink(
            JobProgress(
                status=self.status,
                message=message,
                batch_number=self._batch_number,
                total_batches=len(self.batches),
                translated=self.translated_groups,
                errors=self.error_count,
            )
        )


async def translate_selection(
    provider: TranslationProvider,
    text: str,
    *,
    target_language: str,
    source_language: str = "auto",
    max_length: int = DEFAULT_CHUNK_MAX_LENGTH,
) -> str:
    """Translate one piece of text through the same encode/call/decode path.

    Long text is pre-split at soft boundaries and the translated chunks are
    concatenated in order, each wrapped in the whitespace its source chunk
    started and ended with. Provider errors propagate to the caller.
    """

    parts: List[str] = []
    for chunk in split_into_chunks(text, max_length):
        if not chunk.strip():
            parts.append(chunk)
            continue
        reply = await provider.translate(
            encode_request([chunk]), target_language, source_language
        )
        translations = decode_response(reply, [chunk])
        translated = translations[0] if translations else reply
        if not translated or not translated.strip():
            parts.append(chunk)
            continue
        # Replies come back trimmed; restore the chunk's edge whitespace.
        lead = chunk[: len(chunk) - len(chunk.lstrip())]
        trail = chunk[len(chunk.rstrip()):]
        parts.append(lead + translated.strip() + trail)
    return "".join(parts)


class Translator:
    """Entry point owning the single-flight guards for one document.

    At most one page job runs at a time; selection translation has its own
    guard, and the two may run side by side.
    """

    def __init__(
        self,
        adapter: DocumentAdapter,
        settings: BabelBatchConfig | None = None,
        *,
        provider: TranslationProvider | None = None,
        status_sink: StatusSink | None = None,
    ) -> None:
        self.adapter = adapter
        self.settings = settings or BabelBatchConfig()
        self.provider = provider
        self.status_sink = status_sink
        self.is_translating = False
        self.selection_in_progress = False
        self.current_job: PageTranslationJob | None = None
        self._token: CancellationToken | None = None

    def _resolve_provider(self, provider_name: str | None) -> TranslationProvider:
        if self.provider is not None:
            return self.provider
        return build_provider(
            provider_name or self.settings.default_provider,
            self.settings,
            debug=self.settings.provider_debug,
        )

    def _languages(
        self,
        target_language: str | None,
        source_language: str | None,
    ) -> Tuple[str, str]:
        target = target_language or self.settings.default_target_language
        source = source_language or self.settings.default_source_language or "auto"
        return target, source

    async def translate_page(
        self,
        target_language: str | None = None,
        provider_name: str | None = None,
        source_language: str | None = None,
    ) -> JobSummary:
        if self.is_translating:
            raise TranslationInProgressError("Translation already in progress.")

        self.is_translating = True
        self._token = CancellationToken()
        try:
            target, source = self._languages(target_language, source_language)
            provider = self._resolve_provider(provider_name)
            self.current_job = PageTranslationJob(
                self.adapter,
                provider,
                target_language=target,
                source_language=source,
                max_chars=self.settings.batch_max_chars,
                max_items=self.settings.batch_max_items,
                throttle_seconds=self.settings.batch_throttle_seconds,
                token=self._token,
                status_sink=self.status_sink,
            )
            return await self.current_job.run()
        finally:
            self.is_translating = False
            self._token = None

    async def translate_selection(
        self,
        text: str,
        target_language: str | None = None,
        provider_name: str | None = None,
        source_language: str | None = None,
    ) -> str:
        if self.selection_in_progress:
            raise SelectionInProgressError("Selection translation already in progress.")

        self.selection_in_progress = True
        try:
            target, source = self._languages(target_language, source_language)
            provider = self._resolve_provider(provider_name)
            return await translate_selection(
                provider,
                text,
                target_language=target,
                source_language=source,
                max_length=self.settings.selection_chunk_max_length,
            )
        finally:
            self.selection_in_progress = False

    def restore_original(self) -> None:
        """Cancel any running page job and revert the document immediately."""

        if self._token is not None:
            self._token.cancel()
        self.adapter.revert_all()
