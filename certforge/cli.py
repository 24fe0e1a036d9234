"""
certforge CLI - Command-line interface for pension certificate extraction.

This module provides the main entry point for the certforge command-line tool.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .adapters.vision_adapter import OcrDocument, load_vision_file
from .config import PipelineConfig
from .core.classifier import DocumentTypeClassifier
from .core.pipeline import ExtractionPipeline
from .outputs.canonical import CanonicalFormatter


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for CLI operations."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="certforge",
        description="certforge - structured extraction from OCR'd pension certificates",
    )

    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"certforge {__version__}",
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    parser.add_argument(
        "--env-file",
        type=Path,
        help="Load settings from this .env file (default: ./.env if present)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Extract command
    extract_parser = subparsers.add_parser(
        "extract",
        help="Extract certificate records from OCR JSON files",
    )
    extract_parser.add_argument(
        "inputs",
        type=Path,
        nargs="+",
        help="OCR JSON files (Vision-style responses[].fullTextAnnotation)",
    )
    extract_parser.add_argument(
        "-o", "--output",
        type=Path,
        help="Output file path (default: stdout)",
    )
    extract_parser.add_argument(
        "--concurrency",
        type=int,
        help="Maximum number of documents processed concurrently",
    )
    extract_parser.add_argument(
        "--no-llm",
        action="store_true",
        help="Skip the structured extraction call and resolve values from layout only",
    )
    extract_parser.add_argument(
        "--fail-on-client-error",
        action="store_true",
        help="Fail a document when the completion service fails instead of degrading",
    )

    # Classify command
    classify_parser = subparsers.add_parser(
        "classify",
        help="Report whether OCR JSON files look like pension certificates",
    )
    classify_parser.add_argument(
        "inputs",
        type=Path,
        nargs="+",
        help="OCR JSON files",
    )

    # Info command
    subparsers.add_parser(
        "info",
        help="Display package version and effective configuration",
    )

    return parser.parse_args(argv)


def _load_documents(paths: List[Path]) -> Optional[List[OcrDocument]]:
    logger = logging.getLogger(__name__)
    documents = []
    for path in paths:
        if not path.exists():
            logger.error(f"Input file not found: {path}")
            return None
        try:
            documents.append(load_vision_file(path))
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read OCR file {path}: {e}")
            return None
    return documents


async def cmd_extract(args: argparse.Namespace) -> int:
    """Execute the extract command."""
    logger = logging.getLogger(__name__)

    documents = _load_documents(args.inputs)
    if documents is None:
        return 1

    config = args.config
    try:
        if args.concurrency is not None:
            config.max_concurrency = args.concurrency
        if args.no_llm:
            config.use_llm = False
        if args.fail_on_client_error:
            config.on_client_error = "fail"
        config.validate()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    pipeline = ExtractionPipeline(config=config)
    formatter = CanonicalFormatter()
    texts = {d.document_id: d.full_text for d in documents}

    results = await pipeline.process_batch(documents)

    output = []
    for result in results:
        entry = result.to_dict()
        if result.record is not None:
            entry["record"] = formatter.format_record(
                result.record,
                raw_text=texts.get(result.document_id, ""),
                filename=result.filename
            )
        output.append(entry)

    output_str = json.dumps(output, indent=2, ensure_ascii=False, default=str)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(output_str)
        logger.info(f"Output written to: {args.output}")
    else:
        print(output_str)

    return 0


def cmd_classify(args: argparse.Namespace) -> int:
    """Execute the classify command."""
    documents = _load_documents(args.inputs)
    if documents is None:
        return 1

    classifier = DocumentTypeClassifier(args.config.classifier)
    for document in documents:
        result = classifier.explain(
            document.full_text,
            document.filename,
            classifier.later_pages(document.page_texts)
        )
        print(json.dumps({
            "filename": document.filename,
            "is_certificate": result.is_certificate,
            "source": result.source,
            "matched": result.matched,
        }, ensure_ascii=False))
    return 0


def cmd_info(args: argparse.Namespace) -> int:
    """Execute the info command."""
    config = args.config
    info = {
        "package": "certforge",
        "version": __version__,
        "description": "Layout reconstruction and field extraction for pension certificates",
        "api_key_configured": config.client.resolve_api_key() is not None,
        "config": config.to_dict(),
    }
    print(json.dumps(info, indent=2))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for certforge CLI."""
    args = parse_args(argv)

    # Setup logging
    log_level = "DEBUG" if args.verbose else "INFO"
    setup_logging(log_level)

    try:
        args.config = PipelineConfig.from_env(str(args.env_file) if args.env_file else None)
    except ValueError as e:
        logging.getLogger(__name__).error(f"Invalid configuration: {e}")
        return 1

    # Dispatch command
    if args.command == "extract":
        return asyncio.run(cmd_extract(args))
    elif args.command == "classify":
        return cmd_classify(args)
    elif args.command == "info":
        return cmd_info(args)
    else:
        print("certforge - pension certificate extraction")
        print()
        print("Usage: certforge <command> [options]")
        print()
        print("Commands:")
        print("  extract    Extract certificate records from OCR JSON files")
        print("  classify   Report the certificate classification of OCR JSON files")
        print("  info       Display package version and effective configuration")
        print()
        print("Run 'certforge <command> --help' for command-specific help.")
        return 0


if __name__ == "__main__":
    sys.exit(main())
