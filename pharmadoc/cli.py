"""Command-line interface for single-document extraction and batch CSV export.

Provides subcommands for extracting one bill or prescription to JSON and for
processing a folder of documents into a CSV summary.
"""

import argparse
import csv
import json
import mimetypes
import sys
import time
from pathlib import Path

from pharmadoc.documents import DocumentKind, MediaType, SourceDocument
from pharmadoc.extraction.records import BillRecord
from pharmadoc.pipeline.assembler import PipelineResult
from pharmadoc.pipeline.processor import DocumentPipeline, build_pipeline
from pharmadoc.utils.config import load_config
from pharmadoc.utils.errors import PharmaDocError
from pharmadoc.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = ("*.png", "*.jpg", "*.jpeg", "*.pdf")
_MEDIA_TYPES = {
    ".png": MediaType.PNG,
    ".jpg": MediaType.JPEG,
    ".jpeg": MediaType.JPEG,
    ".pdf": MediaType.PDF,
}
_CSV_COLUMNS = [
    "filename",
    "status",
    "kind",
    "provider",
    "confidence",
    "supplier",
    "bill_number",
    "date",
    "item_count",
    "total_amount",
    "warnings",
    "processing_time_s",
    "error",
]


def _find_documents(input_dir: Path) -> list[Path]:
    """Find all supported document files in a directory.

    Args:
        input_dir: Directory to scan for documents.

    Returns:
        Sorted list of document file paths.
    """
    files: list[Path] = []
    for ext in _SUPPORTED_EXTENSIONS:
        files.extend(input_dir.glob(ext))
        files.extend(input_dir.glob(ext.upper()))
    return sorted(set(files))


def load_document(file_path: Path) -> SourceDocument:
    """Read a file and infer its media type from the extension."""
    media_type = _MEDIA_TYPES.get(file_path.suffix.lower())
    if media_type is None:
        media_type = mimetypes.guess_type(file_path.name)[0] or "application/octet-stream"
    return SourceDocument(
        content=file_path.read_bytes(), media_type=str(media_type), filename=file_path.name
    )


def _summary_row(file_path: Path, result: PipelineResult) -> dict[str, object]:
    record = result.record
    row: dict[str, object] = {
        "filename": file_path.name,
        "status": "success",
        "kind": str(result.kind),
        "provider": str(result.recognition.provider),
        "confidence": round(result.recognition.confidence, 1),
        "warnings": "; ".join(record.warnings),
        "error": None,
    }
    if isinstance(record, BillRecord):
        row.update(
            supplier=record.supplier.name,
            bill_number=record.bill_number,
            date=record.bill_date,
            item_count=len(record.line_items),
            total_amount=record.totals.total_amount,
        )
    else:
        row.update(date=record.date, item_count=len(record.medicines))
    return row


def process_folder(
    input_dir: Path,
    output_csv: Path,
    kind: DocumentKind = DocumentKind.BILL,
    store_id: str | None = None,
    verbose: bool = False,
    pipeline: DocumentPipeline | None = None,
) -> dict[str, int]:
    """Process all documents in a folder and export a summary CSV.

    Args:
        input_dir: Directory containing document files.
        output_csv: Path for the output CSV file.
        kind: Extractor applied to every document.
        store_id: Store whose catalog candidates are proposed.
        verbose: Whether to print per-file progress.
        pipeline: Pipeline to use; built from configuration otherwise.

    Returns:
        Summary dict with total, successful, and failed counts.
    """
    files = _find_documents(input_dir)
    if not files:
        logger.warning("No documents found in %s", input_dir)
        return {"total": 0, "successful": 0, "failed": 0}

    pipeline = pipeline or build_pipeline(load_config())
    logger.info("Found %d documents to process", len(files))

    rows: list[dict[str, object]] = []
    successful = 0
    failed = 0

    for i, file_path in enumerate(files, 1):
        if verbose:
            print(f"Processing [{i}/{len(files)}]: {file_path.name}")

        start_time = time.time()
        try:
            result = pipeline.process(load_document(file_path), kind, store_id)
        except PharmaDocError as exc:
            logger.error("Failed to process %s: %s", file_path.name, exc)
            rows.append(
                {"filename": file_path.name, "status": "failed", "error": exc.user_message}
            )
            failed += 1
            continue

        row = _summary_row(file_path, result)
        row["processing_time_s"] = round(time.time() - start_time, 2)
        rows.append(row)
        successful += 1

    _write_csv(rows, output_csv)
    logger.info("Results written to %s", output_csv)

    summary = {"total": len(files), "successful": successful, "failed": failed}
    _print_summary(summary, output_csv)
    return summary


def _write_csv(rows: list[dict[str, object]], output_path: Path) -> None:
    if not rows:
        return

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=_CSV_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(rows)


def _print_summary(summary: dict[str, int], output_csv: Path) -> None:
    print(f"\n{'=' * 50}")
    print("Batch Processing Complete")
    print(f"{'=' * 50}")
    print(f"Total:      {summary['total']}")
    print(f"Successful: {summary['successful']}")
    print(f"Failed:     {summary['failed']}")
    print(f"Output:     {output_csv}")


def extract_single(
    file_path: Path,
    kind: DocumentKind = DocumentKind.BILL,
    store_id: str | None = None,
    pipeline: DocumentPipeline | None = None,
) -> dict[str, object]:
    """Process a single document and return its result as a dictionary.

    Raises:
        PharmaDocError: If the document cannot be processed.
    """
    pipeline = pipeline or build_pipeline(load_config())
    result = pipeline.process(load_document(file_path), kind, store_id)
    return {"filename": file_path.name, **result.to_dict()}


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Pharmacy bill and prescription extractor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    kind_choices = [k.value for k in DocumentKind]

    batch_parser = subparsers.add_parser("batch", help="Process a folder of documents")
    batch_parser.add_argument("input_dir", type=Path, help="Input directory with documents")
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("results.csv"),
        help="Output CSV file (default: results.csv)",
    )
    batch_parser.add_argument(
        "-k",
        "--kind",
        choices=kind_choices,
        default=DocumentKind.BILL.value,
        help="Document kind (default: bill)",
    )
    batch_parser.add_argument("-s", "--store-id", help="Store catalog to reconcile against")
    batch_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    single_parser = subparsers.add_parser("extract", help="Process a single document")
    single_parser.add_argument("file", type=Path, help="Document file to process")
    single_parser.add_argument(
        "-k",
        "--kind",
        choices=kind_choices,
        default=DocumentKind.BILL.value,
        help="Document kind (default: bill)",
    )
    single_parser.add_argument("-s", "--store-id", help="Store catalog to reconcile against")
    single_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    args = parser.parse_args(argv)

    setup_logging()

    if args.command == "batch":
        if not args.input_dir.is_dir():
            print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
            sys.exit(1)
        process_folder(
            args.input_dir,
            args.output,
            DocumentKind(args.kind),
            args.store_id,
            args.verbose,
        )
    elif args.command == "extract":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        try:
            result = extract_single(args.file, DocumentKind(args.kind), args.store_id)
        except PharmaDocError as exc:
            print(f"Error: {exc.user_message}", file=sys.stderr)
            sys.exit(2)
        output_str = json.dumps(result, indent=2, default=str)
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(output_str)
            print(f"Output written to {args.output}")
        else:
            print(output_str)
    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
