"""Command-line interface for reading and reconciling receipt photos.

Provides subcommands for reading a single receipt, reconciling it
against an order, and reconciling a folder of receipts into a CSV.
"""

import argparse
import csv
import json
import sys
import time
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from receipt_recon.ocr.models import BufferSource, ImageSource, OcrResult, UrlSource
from receipt_recon.ocr.orchestrator import ProviderOrchestrator
from receipt_recon.reconciliation.engine import (
    OrderExpectation,
    OrderItem,
    ReconciliationVerdict,
    reconcile,
)
from receipt_recon.reconciliation.menu import Menu, load_menu
from receipt_recon.utils.config import AppConfig, load_config
from receipt_recon.utils.errors import AllProvidersFailedError, ReconError, ValidationError
from receipt_recon.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = ("*.png", "*.jpg", "*.jpeg", "*.webp")
_CSV_COLUMNS = [
    "filename",
    "status",
    "provider",
    "detected_total",
    "confidence",
    "expected_total",
    "outcome",
    "ok",
    "processing_time_s",
    "error",
]

EXIT_NOT_OK = 1
EXIT_ERROR = 2


def _build_orchestrator(config: AppConfig) -> ProviderOrchestrator:
    return ProviderOrchestrator(config.ocr, extraction=config.extraction)


def _find_receipts(input_dir: Path) -> list[Path]:
    """Find all receipt images in a directory.

    Args:
        input_dir: Directory to scan.

    Returns:
        Sorted list of image paths.
    """
    files: list[Path] = []
    for ext in _SUPPORTED_EXTENSIONS:
        files.extend(input_dir.glob(ext))
        files.extend(input_dir.glob(ext.upper()))
    return sorted(set(files))


def _decimal_arg(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"invalid amount: {value!r}") from exc


def _read_receipt(path: Path) -> BufferSource:
    try:
        return BufferSource(path.read_bytes(), path.name)
    except OSError as exc:
        raise ValidationError(f"Cannot read {path}: {exc}") from exc


def _source_from_args(file: Path | None, url: str | None) -> ImageSource:
    if url:
        return UrlSource(url)
    return _read_receipt(file)


def load_order(path: Path) -> OrderExpectation:
    """Read an order expectation from a JSON file.

    The file holds ``expected_total`` and/or a list of ``items`` with
    ``id``, ``unit_price``, ``quantity``, ``extras_price`` and ``variant``.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"), parse_float=Decimal)
        items = tuple(
            OrderItem(
                id=str(item["id"]),
                unit_price=item.get("unit_price"),
                quantity=item.get("quantity", 1),
                extras_price=item.get("extras_price", Decimal("0")),
                variant=item.get("variant"),
            )
            for item in data.get("items", [])
        )
    except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
        raise ValidationError(f"Invalid order file {path}: {exc}") from exc
    return OrderExpectation(expected_total=data.get("expected_total"), items=items)


def load_expected_totals(path: Path) -> dict[str, Decimal]:
    """Read ``filename,expected_total`` rows from a CSV file.

    Rows with an empty or unparseable total are skipped with a warning.

    Raises:
        ValidationError: If the file cannot be read.
    """
    totals: dict[str, Decimal] = {}
    try:
        with open(path, newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        raise ValidationError(f"Cannot read expected totals {path}: {exc}") from exc

    for row in rows:
        name = (row.get("filename") or "").strip()
        raw = (row.get("expected_total") or "").strip()
        if not name or not raw:
            continue
        try:
            totals[name] = Decimal(raw)
        except InvalidOperation:
            logger.warning("Skipping invalid expected total %r for %s", raw, name)
    return totals


def _reconcile_with_config(
    result: OcrResult,
    expectation: OrderExpectation,
    config: AppConfig,
    tolerance: float | None = None,
    require_exact_match: bool = False,
    menu: Menu | None = None,
) -> ReconciliationVerdict:
    defaults = config.reconciliation
    return reconcile(
        result,
        expectation,
        tolerance=defaults.tolerance if tolerance is None else tolerance,
        require_exact_match=require_exact_match or defaults.require_exact_match,
        detected_only_min_confidence=defaults.detected_only_min_confidence,
        menu=menu,
    )


def process_folder(
    input_dir: Path,
    output_csv: Path,
    expected_csv: Path | None = None,
    verbose: bool = False,
    config: AppConfig | None = None,
    orchestrator: ProviderOrchestrator | None = None,
) -> dict[str, int]:
    """Reconcile every receipt in a folder and export results to CSV.

    Args:
        input_dir: Directory containing receipt photos.
        output_csv: Path for the output CSV file.
        expected_csv: Optional ``filename,expected_total`` file.
        verbose: Whether to print per-file progress.
        config: Application configuration. Loaded when omitted.
        orchestrator: OCR orchestrator. Built from ``config`` when omitted.

    Returns:
        Summary dict with total, successful, and failed counts.
    """
    config = config or load_config()
    orchestrator = orchestrator or _build_orchestrator(config)
    expected = load_expected_totals(expected_csv) if expected_csv else {}

    files = _find_receipts(input_dir)
    if not files:
        logger.warning("No receipt images found in %s", input_dir)
        return {"total": 0, "successful": 0, "failed": 0}

    logger.info("Found %d receipts to process", len(files))

    results: list[dict[str, object]] = []
    successful = 0
    failed = 0

    for i, file_path in enumerate(files, 1):
        if verbose:
            print(f"Processing [{i}/{len(files)}]: {file_path.name}")

        start_time = time.time()
        try:
            result = orchestrator.fetch_text(_read_receipt(file_path))
            expectation = OrderExpectation(expected_total=expected.get(file_path.name))
            verdict = _reconcile_with_config(result, expectation, config)
        except ReconError as exc:
            logger.error("Failed to process %s: %s", file_path.name, exc.message)
            results.append(
                {"filename": file_path.name, "status": "failed", "error": exc.message}
            )
            failed += 1
            continue

        selected = result.selected_total
        results.append(
            {
                "filename": file_path.name,
                "status": "success",
                "provider": str(result.provider),
                "detected_total": verdict.detected_total,
                "confidence": selected.confidence if selected else None,
                "expected_total": verdict.expected_total,
                "outcome": str(verdict.outcome),
                "ok": verdict.ok,
                "processing_time_s": round(time.time() - start_time, 2),
                "error": None,
            }
        )
        successful += 1

    _write_csv(results, output_csv)
    logger.info("Results written to %s", output_csv)

    summary = {"total": len(files), "successful": successful, "failed": failed}
    _print_summary(summary, output_csv)
    return summary


def _write_csv(results: list[dict[str, object]], output_path: Path) -> None:
    if not results:
        return

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=_CSV_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(results)


def _print_summary(summary: dict[str, int], output_csv: Path) -> None:
    print(f"\n{'=' * 50}")
    print("Receipt Reconciliation Complete")
    print(f"{'=' * 50}")
    print(f"Total:      {summary['total']}")
    print(f"Successful: {summary['successful']}")
    print(f"Failed:     {summary['failed']}")
    print(f"Output:     {output_csv}")


def _emit(payload: dict[str, Any], output: Path | None) -> None:
    output_str = json.dumps(payload, indent=2, ensure_ascii=False)
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(output_str, encoding="utf-8")
        print(f"Output written to {output}")
    else:
        print(output_str)


def _add_source_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("file", type=Path, nargs="?", help="Receipt image file")
    parser.add_argument("--url", help="Receipt image URL instead of a file")


def _check_source(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    if (args.file is None) == (args.url is None):
        parser.error("provide exactly one of FILE or --url")
    if args.file is not None and not args.file.exists():
        print(f"Error: {args.file} does not exist", file=sys.stderr)
        sys.exit(EXIT_ERROR)


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        prog="receipt-recon",
        description="Receipt OCR and order reconciliation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-c", "--config", type=Path, help="YAML configuration file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    read_parser = subparsers.add_parser("read", help="Read a single receipt")
    _add_source_arguments(read_parser)
    read_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    recon_parser = subparsers.add_parser(
        "reconcile", help="Reconcile a receipt against an order"
    )
    _add_source_arguments(recon_parser)
    expectation_group = recon_parser.add_mutually_exclusive_group(required=True)
    expectation_group.add_argument(
        "--expected-total", type=_decimal_arg, help="Amount the customer should have paid"
    )
    expectation_group.add_argument(
        "--order", type=Path, help="Order JSON with expected_total and/or items"
    )
    recon_parser.add_argument(
        "--menu", type=Path, help="Menu JSON used to price items without a unit price"
    )
    recon_parser.add_argument(
        "--tolerance", type=float, help="Accepted relative difference (0-1)"
    )
    recon_parser.add_argument(
        "--exact", action="store_true", help="Require an exact match"
    )
    recon_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    batch_parser = subparsers.add_parser("batch", help="Reconcile a folder of receipts")
    batch_parser.add_argument("input_dir", type=Path, help="Directory with receipts")
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("results.csv"),
        help="Output CSV file (default: results.csv)",
    )
    batch_parser.add_argument(
        "--expected", type=Path, help="CSV with filename,expected_total columns"
    )
    batch_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose output"
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    config = load_config(args.config)
    # stdout carries the JSON result
    setup_logging(config.log_level, sys.stderr)

    if args.command == "batch":
        if not args.input_dir.is_dir():
            print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
            sys.exit(EXIT_ERROR)
        try:
            process_folder(args.input_dir, args.output, args.expected, args.verbose, config)
        except ReconError as exc:
            print(f"Error: {exc.message}", file=sys.stderr)
            sys.exit(EXIT_ERROR)
        return

    _check_source(read_parser if args.command == "read" else recon_parser, args)
    orchestrator = _build_orchestrator(config)

    try:
        source = _source_from_args(args.file, args.url)
        if args.command == "reconcile":
            if args.order:
                expectation = load_order(args.order)
            else:
                expectation = OrderExpectation(expected_total=args.expected_total)
            menu_path = args.menu or config.reconciliation.menu_path
            menu = load_menu(menu_path) if menu_path else None

        result = orchestrator.fetch_text(source)
        if args.command == "read":
            _emit(result.to_dict(), args.output)
            return

        verdict = _reconcile_with_config(
            result,
            expectation,
            config,
            tolerance=args.tolerance,
            require_exact_match=args.exact,
            menu=menu,
        )
    except AllProvidersFailedError as exc:
        logger.error("%s", exc.message)
        print(config.reconciliation.resend_photo_message, file=sys.stderr)
        sys.exit(EXIT_ERROR)
    except ReconError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        sys.exit(EXIT_ERROR)

    _emit(
        {"ocr": result.to_dict(), "verdict": verdict.to_dict()},
        args.output,
    )
    if not verdict.ok:
        sys.exit(EXIT_NOT_OK)


if __name__ == "__main__":
    main()
