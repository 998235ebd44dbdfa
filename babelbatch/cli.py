"""Command line interface for babelbatch."""

from __future__ import annotations

import argparse
import asyncio
import logging
import pathlib
import re
import sys
from typing import Iterable, Optional

from .configuration import BabelBatchConfig, get_settings
from .documents import open_document
from .errors import (
    BabelBatchError,
    NothingToTranslateError,
    OverwriteRefusedError,
    TranslationProviderConfigurationError,
    TranslationProviderError,
)
from .providers import available_providers, build_provider, list_models, probe_provider
from .structures import JobStatus, JobSummary
from .translator import Translator, translate_selection


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="babelbatch",
        description="Translate text in batches through interchangeable AI backends.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show detailed progress information.",
    )
    parser.add_argument(
        "--debug-provider",
        action="store_true",
        help="Log complete provider requests and responses for troubleshooting.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_provider_options(sub: argparse.ArgumentParser) -> None:
        sub.add_argument(
            "-p",
            "--provider",
            help=f"Translation provider ({', '.join(available_providers())}).",
        )

    def add_language_options(sub: argparse.ArgumentParser) -> None:
        sub.add_argument(
            "-t",
            "--target-language",
            help="Destination language (defaults to the configured target).",
        )
        sub.add_argument(
            "-s",
            "--source-language",
            help="Source language hint, or 'auto' to let the backend detect it.",
        )

    translate = subparsers.add_parser("translate", help="Translate a text file.")
    translate.add_argument("input_file", help="Path to the .txt or .md file to translate.")
    translate.add_argument(
        "-o",
        "--output",
        help="Output file path. Defaults to appending the target language code.",
    )
    translate.add_argument(
        "--max-chars",
        type=int,
        help="Maximum characters per translation batch.",
    )
    translate.add_argument(
        "--max-items",
        type=int,
        help="Maximum fragments per translation batch.",
    )
    translate.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Allow overwriting the output file if it already exists.",
    )
    add_language_options(translate)
    add_provider_options(translate)

    selection = subparsers.add_parser("selection", help="Translate a piece of text.")
    selection.add_argument("text", help="Text to translate.")
    add_language_options(selection)
    add_provider_options(selection)

    models = subparsers.add_parser("models", help="List models offered by a provider.")
    add_provider_options(models)

    check = subparsers.add_parser("test-provider", help="Check a provider connection.")
    add_provider_options(check)
    return parser


def configure_logging(settings: BabelBatchConfig, *, verbose: bool, debug: bool) -> None:
    level = logging.getLevelName(settings.log_level)
    if not isinstance(level, int):
        level = logging.WARNING
    if verbose:
        level = min(level, logging.INFO)
    if debug:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def sanitise_language_for_filename(language: str) -> str:
    """Turn a language name such as "Brazilian Portuguese" into a file suffix."""

    collapsed = re.sub(r"\s+", "-", language.strip())
    ascii_only = collapsed.encode("ascii", "ignore").decode("ascii")
    cleaned = re.sub(r"[^A-Za-z0-9\-]+", "", ascii_only)
    return cleaned or "translated"


def derive_output_path(input_path: pathlib.Path, language: str) -> pathlib.Path:
    addition = sanitise_language_for_filename(language)
    return input_path.with_name(f"{input_path.stem}_{addition}{input_path.suffix}")


def validate_paths(
    input_path: pathlib.Path,
    output_path: pathlib.Path,
    force_overwrite: bool,
) -> None:
    """Reject a missing input and outputs that would clobber an existing file."""

    if not input_path.exists():
        raise FileNotFoundError("Input file not found.")
    if not input_path.is_file():
        raise BabelBatchError("Input path must be a file.")
    if input_path.resolve() == output_path.resolve():
        raise OverwriteRefusedError(
            "The output path matches the input document. Refusing to overwrite the source file."
        )
    if output_path.exists() and not force_overwrite:
        raise OverwriteRefusedError(
            "The output file already exists. Rename it or use the overwrite flag."
        )


def execute_translation(
    *,
    settings: BabelBatchConfig,
    input_file: str,
    output_file: str | None,
    target_language: str | None,
    source_language: str | None,
    provider: str | None,
    force_overwrite: bool,
) -> tuple[int, JobSummary | None, str | None]:
    """Execute a page job and return the exit code, summary, and message."""

    target = target_language or settings.default_target_language
    input_path = pathlib.Path(input_file).expanduser().resolve()
    output_path = (
        pathlib.Path(output_file).expanduser().resolve()
        if output_file
        else derive_output_path(input_path, target)
    )

    try:
        validate_paths(input_path, output_path, force_overwrite=force_overwrite)
        document = open_document(input_path)
    except (FileNotFoundError, BabelBatchError) as exc:
        return 1, None, str(exc)

    translator = Translator(document, settings)
    try:
        summary = asyncio.run(
            translator.translate_page(
                target_language=target,
                provider_name=provider,
                source_language=source_language,
            )
        )
    except NothingToTranslateError as exc:
        return 1, None, str(exc)
    except TranslationProviderConfigurationError as exc:
        return 1, None, str(exc)
    except KeyboardInterrupt:
        translator.restore_original()
        return 2, None, "Translation interrupted by user. Nothing was written."

    output_path.parent.mkdir(parents=True, exist_ok=True)
    document.save(output_path)
    code = 0 if summary.status is JobStatus.COMPLETED else 1
    return code, summary, f"Output written to {output_path}"


def print_summary(summary: JobSummary) -> None:
    """Print the job report: counts, languages, timing and block errors."""

    titles = {
        JobStatus.COMPLETED: "Translation complete.",
        JobStatus.COMPLETED_WITH_ERRORS: "Translation completed with errors.",
        JobStatus.CANCELLED: "Translation cancelled.",
    }
    print("\n" + titles.get(summary.status, summary.status.value))
    print(
        "  Blocks:          "
        f"{summary.translated_groups} translated / {summary.total_groups} total"
    )
    print(
        f"  Fragments:       {summary.total_fragments} "
        f"in {summary.total_batches} batches ({summary.kept_original} kept original)"
    )
    print(f"  Provider:        {summary.provider_name}")
    print(f"  Source language: {summary.source_language}")
    print(f"  Target language: {summary.target_language}")
    print(f"  Elapsed time:    {summary.elapsed_seconds:.2f} seconds")
    if summary.error_count:
        print("  Notes:")
        for message in summary.error_messages:
            print(f"    - {message}")


def execute_selection(
    *,
    settings: BabelBatchConfig,
    text: str,
    target_language: str | None,
    source_language: str | None,
    provider: str | None,
) -> tuple[int, str | None]:
    """Translate a piece of text and return the exit code and output."""

    try:
        provider_instance = build_provider(
            provider or settings.default_provider,
            settings,
            debug=settings.provider_debug,
        )
        result = asyncio.run(
            translate_selection(
                provider_instance,
                text,
                target_language=target_language or settings.default_target_language,
                source_language=source_language or settings.default_source_language,
                max_length=settings.selection_chunk_max_length,
            )
        )
    except (TranslationProviderError, TranslationProviderConfigurationError) as exc:
        return 1, str(exc)
    return 0, result


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        settings = get_settings()
    except TranslationProviderConfigurationError as exc:
        print(exc)
        return 1

    overrides = {}
    if args.debug_provider:
        overrides["provider_debug"] = True
    if getattr(args, "max_chars", None):
        overrides["batch_max_chars"] = args.max_chars
    if getattr(args, "max_items", None):
        overrides["batch_max_items"] = args.max_items
    if overrides:
        settings = settings.model_copy(update=overrides)
    configure_logging(settings, verbose=args.verbose, debug=settings.provider_debug)

    if args.command == "translate":
        exit_code, summary, message = execute_translation(
            settings=settings,
            input_file=args.input_file,
            output_file=args.output,
            target_language=args.target_language,
            source_language=args.source_language,
            provider=args.provider,
            force_overwrite=args.force,
        )
        if message:
            print(message)
        if summary:
            print_summary(summary)
        return exit_code

    if args.command == "selection":
        exit_code, output = execute_selection(
            settings=settings,
            text=args.text,
            target_language=args.target_language,
            source_language=args.source_language,
            provider=args.provider,
        )
        if output is not None:
            print(output)
        return exit_code

    provider_name = args.provider or settings.default_provider
    if args.command == "models":
        try:
            models = asyncio.run(list_models(provider_name, settings))
        except TranslationProviderConfigurationError as exc:
            print(exc)
            return 1
        for model in models:
            print(model)
        return 0

    ok, error = asyncio.run(probe_provider(provider_name, settings))
    print("Connection OK." if ok else f"Connection failed: {error}")
    return 0 if ok else 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
