from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd

from .bq_client import load_departments, load_products, load_transactions
from .filters import filter_report
from .formatting import PERCENTAGE_COLUMNS, format_report
from .gcs_client import load_transactions_parquet
from .quality import InvalidRowPolicy
from .yoy import DEFAULT_TOP_N, TRANSACTION_COLUMNS, PriorYearScope, run_yoy_top5_report

logger = logging.getLogger(__name__)


class TransactionSource(str, Enum):
    """Where transactions are read from."""

    BIGQUERY = "bigquery"
    GCS = "gcs"


@dataclass
class PipelineConfig:
    """Configuration for the year-over-year report pipeline."""

    project_id: str

    bq_dataset: str = "sales"
    transactions_table: str = "transactions"
    products_table: str = "products"
    departments_table: str = "departments"

    transactions_source: TransactionSource = TransactionSource.BIGQUERY
    gcs_bucket: Optional[str] = None
    gcs_prefix: str = "transactions/"

    # Safety limit for GCS transaction files
    max_transaction_files: int = 500

    # Report
    top_n: int = DEFAULT_TOP_N
    prior_year_scope: PriorYearScope = PriorYearScope.ALL
    invalid_rows: InvalidRowPolicy = InvalidRowPolicy.KEEP

    # Filters
    departments: Optional[Sequence[str]] = None
    start_year: Optional[int] = None
    end_year: Optional[int] = None

    # Output
    output_dir: Path = Path("data/export")
    output_format: str = "csv"  # "csv" or "parquet"
    currency_symbol: str = "$"


def _build_suffix(start_year: Optional[int], end_year: Optional[int]) -> str:
    """Build the file suffix from the requested year window."""
    if start_year is None and end_year is None:
        return "all-years"
    if end_year is None:
        return f"from-{start_year}"
    if start_year is None:
        return f"to-{end_year}"
    return f"{start_year}-{end_year}"


def _build_output_path(config: PipelineConfig) -> Path:
    """Build the full output path."""
    suffix = _build_suffix(config.start_year, config.end_year)
    filename = f"yoy_top{config.top_n}_{suffix}.{config.output_format}"
    return config.output_dir / filename


def _load_transactions(config: PipelineConfig) -> pd.DataFrame:
    if config.transactions_source == TransactionSource.BIGQUERY:
        return load_transactions(
            project_id=config.project_id,
            dataset_id=config.bq_dataset,
            table_id=config.transactions_table,
        )

    if config.transactions_source == TransactionSource.GCS:
        if not config.gcs_bucket:
            raise ValueError("gcs_bucket is required when reading transactions from GCS")
        transactions_df = load_transactions_parquet(
            project_id=config.project_id,
            bucket_name=config.gcs_bucket,
            prefix=config.gcs_prefix,
            max_files=config.max_transaction_files,
        )
        if transactions_df.empty:
            return pd.DataFrame(columns=TRANSACTION_COLUMNS)
        return transactions_df

    raise ValueError(f"Unsupported transactions source: {config.transactions_source}")


def _to_parquet_frame(report_df: pd.DataFrame) -> pd.DataFrame:
    """Raw values for Parquet: money stays Decimal, percentage changes become floats."""
    df = report_df.copy()
    for column in PERCENTAGE_COLUMNS:
        df[column] = df[column].astype("float64")
    return df


def run_pipeline(config: PipelineConfig) -> Path:
    """
    Run the full pipeline:

    1. Load departments and products from BigQuery.
    2. Load transactions from BigQuery or from Parquet files in GCS.
    3. Compute the top-N year-over-year report.
    4. Apply department / year filters (AND combination).
    5. Write the report: formatted strings to CSV, raw values to Parquet.
    """
    logger.info("Starting pipeline with config: %s", config)

    departments_df = load_departments(
        project_id=config.project_id,
        dataset_id=config.bq_dataset,
        table_id=config.departments_table,
    )
    products_df = load_products(
        project_id=config.project_id,
        dataset_id=config.bq_dataset,
        table_id=config.products_table,
    )
    transactions_df = _load_transactions(config)

    if transactions_df.empty:
        logger.warning("No transactions loaded. Exporting an empty report.")

    report_df = run_yoy_top5_report(
        transactions_df,
        products_df,
        departments_df,
        top_n=config.top_n,
        prior_year_scope=config.prior_year_scope,
        invalid_rows=config.invalid_rows,
    )
    report_df = filter_report(
        report_df,
        departments=config.departments,
        start_year=config.start_year,
        end_year=config.end_year,
    )

    output_path = _build_output_path(config)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    logger.info("Writing %d report rows to %s", len(report_df), output_path)
    if config.output_format == "csv":
        format_report(report_df, currency_symbol=config.currency_symbol).to_csv(output_path, index=False)
    elif config.output_format == "parquet":
        _to_parquet_frame(report_df).to_parquet(output_path, index=False)
    else:
        msg = f"Unsupported output format: {config.output_format}"
        logger.error(msg)
        raise ValueError(msg)

    logger.info("Pipeline finished successfully.")
    return output_path
