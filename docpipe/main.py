import argparse
import base64
import sys
from pathlib import Path

from docpipe.config.settings import Settings
from docpipe.logging.logger import Log
from docpipe.output import protobuf
from docpipe.output.html import render_html
from docpipe.output.json_output import to_json
from docpipe.processor.exceptions import UnsupportedFormatError
from docpipe.processor.models import ProcessorResult, Query
from docpipe.processor.processor import build_processor
from docpipe.processor.strategy import SUPPORTED_EXTENSIONS

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_UNSUPPORTED = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docpipe", description="Extract text, OCR and page images from documents."
    )
    commands = parser.add_subparsers(dest="command", required=True)
    run = commands.add_parser(
        "run",
        help="process one document",
        epilog=f"supported file types: {', '.join(sorted(SUPPORTED_EXTENSIONS))}",
    )
    run.add_argument("file", type=Path, help="document to process")
    run.add_argument("--format", choices=["json", "html", "protobuf"], default="json")
    run.add_argument("--config", type=Path, default=None, help="env file with settings")
    run.add_argument("--temp-dir", default=None, help="parent directory for scratch files")
    run.add_argument("--keep-temps", action="store_true", help="keep scratch files")
    run.add_argument("--verbose", "-v", action="store_true", help="debug logging")
    run.add_argument("--max-memory", type=int, default=None, metavar="MB")
    run.add_argument("--timeout", type=float, default=None, metavar="SECONDS")
    run.add_argument("--no-ocr", action="store_true", help="skip text recognition")
    run.add_argument("--no-compression", action="store_true", help="skip PNG size reduction")
    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    settings = Settings(_env_file=args.config) if args.config else Settings()
    overrides: dict[str, object] = {}
    if args.temp_dir is not None:
        overrides["temp_dir"] = args.temp_dir
    if args.keep_temps:
        overrides["keep_temps"] = True
    if args.verbose:
        overrides["log_level"] = "DEBUG"
    if args.max_memory is not None:
        overrides["memory_limit_mb"] = args.max_memory
    if args.timeout is not None:
        overrides["timeout_seconds"] = args.timeout
    if args.no_ocr:
        overrides["ocr_engine"] = "none"
    if args.no_compression:
        overrides["image_compression"] = False
    return settings.model_copy(update=overrides)


def render(query: Query, output_format: str) -> str:
    if output_format == "html":
        return render_html(query)
    if output_format == "protobuf":
        return base64.b64encode(protobuf.encode(query)).decode("ascii")
    return to_json(query)


def exit_code(result: ProcessorResult) -> int:
    if result.error is None:
        return EXIT_OK
    if isinstance(result.error, UnsupportedFormatError):
        return EXIT_UNSUPPORTED
    return EXIT_FAILED


def main(argv: list[str] | None = None) -> int:
    """Entry point: parse args -> build settings -> process one document -> print."""
    args = build_parser().parse_args(argv)
    settings = settings_from_args(args)
    Log.configure(settings.log_level)

    processor = build_processor(settings)
    try:
        result = processor.process_sync(Query(file_path=str(args.file)))
    finally:
        processor.close()

    print(render(result.query, args.format))
    return exit_code(result)


if __name__ == "__main__":
    sys.exit(main())
