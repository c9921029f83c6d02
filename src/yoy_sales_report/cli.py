from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .exceptions import DataLoadError, DataQualityError, TooManyFilesError
from .pipeline import PipelineConfig, TransactionSource, run_pipeline
from .quality import InvalidRowPolicy
from .yoy import DEFAULT_TOP_N, PriorYearScope


def _positive_int(value: str) -> int:
    """Validate a strictly positive integer for argparse."""
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid integer '{value}'.") from exc
    if number < 1:
        raise argparse.ArgumentTypeError(f"Expected a value >= 1, got {number}.")
    return number


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Rank the top products per department and year from sales transactions "
            "and compare them with the prior year."
        )
    )

    parser.add_argument(
        "--project-id",
        default=os.getenv("GOOGLE_CLOUD_PROJECT"),
        help="GCP project ID (default: $GOOGLE_CLOUD_PROJECT).",
    )

    parser.add_argument(
        "--bq-dataset",
        default="sales",
        help="BigQuery dataset holding the source tables (default: sales).",
    )

    parser.add_argument(
        "--transactions-table",
        default="transactions",
        help="Transactions table name (default: transactions).",
    )

    parser.add_argument(
        "--products-table",
        default="products",
        help="Products table name (default: products).",
    )

    parser.add_argument(
        "--departments-table",
        default="departments",
        help="Departments table name (default: departments).",
    )

    parser.add_argument(
        "--transactions-source",
        choices=[s.value for s in TransactionSource],
        default=TransactionSource.BIGQUERY.value,
        help="Read transactions from BigQuery or from Parquet files in GCS (default: bigquery).",
    )

    parser.add_argument(
        "--gcs-bucket",
        help="GCS bucket holding transaction Parquet files (required with --transactions-source gcs).",
    )

    parser.add_argument(
        "--gcs-prefix",
        default="transactions/",
        help="Prefix of the transaction Parquet files in the bucket (default: transactions/).",
    )

    parser.add_argument(
        "--max-transaction-files",
        type=int,
        default=500,
        help="Maximum number of Parquet files to read from GCS before failing (default: 500).",
    )

    parser.add_argument(
        "--top-n",
        type=_positive_int,
        default=DEFAULT_TOP_N,
        help=f"Number of ranks kept per department and year (default: {DEFAULT_TOP_N}).",
    )

    parser.add_argument(
        "--prior-year-scope",
        choices=[s.value for s in PriorYearScope],
        default=PriorYearScope.ALL.value,
        help=(
            "Rows visible to the prior-year lookup: every yearly aggregate ('all') "
            "or only last year's top-N rows ('top-n') (default: all)."
        ),
    )

    parser.add_argument(
        "--department",
        dest="departments",
        action="append",
        help="Only report this department name. Can be specified multiple times.",
    )

    parser.add_argument(
        "--start-year",
        type=int,
        help="First year to report (inclusive).",
    )

    parser.add_argument(
        "--end-year",
        type=int,
        help="Last year to report (inclusive).",
    )

    parser.add_argument(
        "--invalid-rows",
        choices=[p.value for p in InvalidRowPolicy],
        default=InvalidRowPolicy.KEEP.value,
        help="Handling of negative unit_price or quantity rows: keep, drop or error (default: keep).",
    )

    parser.add_argument(
        "--currency-symbol",
        default="$",
        help="Currency symbol used in the CSV report (default: $).",
    )

    parser.add_argument(
        "--output-dir",
        default="data/export",
        help="Output directory for exports (default: data/export).",
    )

    parser.add_argument(
        "--output-format",
        choices=["csv", "parquet"],
        default="csv",
        help="Export file format (default: csv).",
    )

    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO).",
    )

    args = parser.parse_args(argv)

    if not args.project_id:
        parser.error("--project-id is required when GOOGLE_CLOUD_PROJECT is not set.")
    if args.transactions_source == TransactionSource.GCS.value and not args.gcs_bucket:
        parser.error("--gcs-bucket is required with --transactions-source gcs.")
    if args.start_year is not None and args.end_year is not None and args.start_year > args.end_year:
        parser.error("--start-year must be on or before --end-year.")

    return args


def _check_credentials_env() -> None:
    """
    Ensure GOOGLE_APPLICATION_CREDENTIALS points to a valid service account file.
    """
    creds_path = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
    if not creds_path:
        msg = (
            "Environment variable GOOGLE_APPLICATION_CREDENTIALS is not set. "
            "It must point to your service account JSON file."
        )
        raise SystemExit(msg)

    if not Path(creds_path).is_file():
        msg = "Credentials file specified by GOOGLE_APPLICATION_CREDENTIALS " f"does not exist: {creds_path}"
        raise SystemExit(msg)


def main(argv: Optional[list[str]] = None) -> None:
    # Load .env file if present
    load_dotenv()

    args = parse_args(argv)

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )

    _check_credentials_env()

    config = PipelineConfig(
        project_id=args.project_id,
        bq_dataset=args.bq_dataset,
        transactions_table=args.transactions_table,
        products_table=args.products_table,
        departments_table=args.departments_table,
        transactions_source=TransactionSource(args.transactions_source),
        gcs_bucket=args.gcs_bucket,
        gcs_prefix=args.gcs_prefix,
        max_transaction_files=args.max_transaction_files,
        top_n=args.top_n,
        prior_year_scope=PriorYearScope(args.prior_year_scope),
        invalid_rows=InvalidRowPolicy(args.invalid_rows),
        departments=args.departments,
        start_year=args.start_year,
        end_year=args.end_year,
        output_dir=Path(args.output_dir),
        output_format=args.output_format,
        currency_symbol=args.currency_symbol,
    )

    try:
        output_path = run_pipeline(config)
    except TooManyFilesError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        sys.exit(2)
    except (DataLoadError, DataQualityError) as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        sys.exit(1)
    except Exception:  # pragma: no cover - generic catch-all
        print("[ERROR] Unexpected error while running the report.", file=sys.stderr)
        logging.getLogger(__name__).exception("Unexpected error")
        sys.exit(99)

    print(f"Report written to: {output_path}")


if __name__ == "__main__":
    main()
