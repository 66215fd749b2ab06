"""Command-line interface for question extraction."""

from __future__ import annotations

import argparse
import logging
import sys

from pydantic import TypeAdapter, ValidationError

from .config import load_settings, log_startup_config
from .pipeline import QuestionPipeline, detect_format, validate
from .schema import DraftQuestion, RawInput, RoutingContext
from .utils import DocumentValidationError, ExtractionError, validate_input_path

_DRAFTS = TypeAdapter(list[DraftQuestion])


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""

    parser = argparse.ArgumentParser(
        description="Extract multiple-choice questions from text, images or PDFs.",
    )
    parser.add_argument("input", help="Path to the input file, or '-' to read text from stdin.")
    parser.add_argument(
        "--kind",
        choices=("text", "image", "document"),
        default=None,
        help="Input kind (default: inferred from the file suffix).",
    )
    parser.add_argument(
        "--preference",
        choices=("speed", "accuracy", "cost", "balanced"),
        default="accuracy",
        help="Routing preference (default: accuracy).",
    )
    parser.add_argument(
        "--quality",
        choices=("low", "medium", "high"),
        default="medium",
        help="Quality requirement; 'high' penalises less accurate strategies.",
    )
    parser.add_argument("--no-ai", action="store_true", help="Never call the AI service.")
    parser.add_argument("--no-cache", action="store_true", help="Bypass the result cache.")
    parser.add_argument("--score", action="store_true", help="Attach a quality score to the result.")
    parser.add_argument(
        "--detect-only",
        action="store_true",
        help="Only classify the text format and print the assessment.",
    )
    parser.add_argument(
        "--validate-only",
        action="store_true",
        help="Treat INPUT as a JSON array of question drafts and validate it.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    return parser


def _read_input(path: str, kind: str | None) -> RawInput:
    if path == "-":
        return RawInput.from_text(sys.stdin.read())
    return RawInput.from_path(path, kind=kind)


def _read_drafts(path: str) -> list[DraftQuestion]:
    raw = sys.stdin.read() if path == "-" else validate_input_path(path).read_text(encoding="utf-8")
    try:
        return _DRAFTS.validate_json(raw)
    except ValidationError as exc:
        raise DocumentValidationError(f"Not a JSON array of questions: {exc}") from exc


def main(argv: list[str] | None = None) -> int:
    """Entry point for the CLI."""

    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    pipeline: QuestionPipeline | None = None
    try:
        if args.validate_only:
            outcome = validate(_read_drafts(args.input))
            print(outcome.model_dump_json(indent=2))
            return 0 if outcome.is_valid else 1

        raw = _read_input(args.input, args.kind)
        if args.detect_only:
            if raw.kind != "text":
                raise DocumentValidationError("--detect-only needs text input.")
            print(detect_format(raw.text).model_dump_json(indent=2))
            return 0

        settings = load_settings(ai_enabled=False) if args.no_ai else load_settings()
        log_startup_config()
        pipeline = QuestionPipeline(settings)
        context = RoutingContext(
            preference=args.preference,
            quality_requirement=args.quality,
            use_cache=not args.no_cache,
            evaluate_quality=args.score,
        )
        result = pipeline.parse(raw, context)
        print(result.model_dump_json(indent=2))
        if not result.success:
            print("Error: " + "; ".join(result.errors), file=sys.stderr)
            return 1
        return 0
    except ExtractionError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except Exception as exc:  # pragma: no cover - safety net
        print(f"Unexpected error: {exc}", file=sys.stderr)
        return 2
    finally:
        if pipeline is not None:
            pipeline.shutdown()


if __name__ == "__main__":
    raise SystemExit(main())
