from __future__ import annotations

import logging
from typing import Final, Sequence

import pandas as pd
from google.api_core.exceptions import GoogleAPIError
from google.cloud import bigquery

from .exceptions import DataLoadError, DataQualityError

logger = logging.getLogger(__name__)

DEFAULT_DATASET: Final[str] = "sales"
DEFAULT_TRANSACTIONS_TABLE: Final[str] = "transactions"
DEFAULT_PRODUCTS_TABLE: Final[str] = "products"
DEFAULT_DEPARTMENTS_TABLE: Final[str] = "departments"

TRANSACTION_FIELDS: Final[tuple[str, ...]] = ("product_id", "transaction_date", "unit_price", "quantity")
PRODUCT_FIELDS: Final[tuple[str, ...]] = ("product_id", "product_name", "department_id")
DEPARTMENT_FIELDS: Final[tuple[str, ...]] = ("department_id", "department_name")


def _load_table(
    project_id: str,
    dataset_id: str,
    table_id: str,
    columns: Sequence[str],
    label: str,
) -> pd.DataFrame:
    """Select `columns` from one BigQuery table and check they all came back."""
    client = bigquery.Client(project=project_id)
    table_full_name = f"{project_id}.{dataset_id}.{table_id}"

    query = f"""
        SELECT
          {", ".join(columns)}
        FROM `{table_full_name}`
    """

    logger.info("Loading %s from BigQuery: %s", label, table_full_name)

    try:
        job = client.query(query)
        df = job.result().to_dataframe()
    except GoogleAPIError as exc:
        msg = f"Failed to load {label} from BigQuery table {table_full_name}"
        logger.error(msg, exc_info=True)
        raise DataLoadError(msg) from exc
    except Exception as exc:  # pragma: no cover - catch-all safety
        msg = f"Unexpected error while loading {label} from {table_full_name}"
        logger.error(msg, exc_info=True)
        raise DataLoadError(msg) from exc

    missing = set(columns) - set(df.columns)
    if missing:
        msg = (
            f"{label.capitalize()} table {table_full_name} is missing required columns: "
            f"{', '.join(sorted(missing))}"
        )
        logger.error(msg)
        raise DataQualityError(msg)

    logger.info("Loaded %d %s rows from BigQuery", len(df), label)
    return df


def load_transactions(
    project_id: str,
    dataset_id: str = DEFAULT_DATASET,
    table_id: str = DEFAULT_TRANSACTIONS_TABLE,
) -> pd.DataFrame:
    """
    Load the transactions table.

    Expected schema:
      - product_id (STRING)
      - transaction_date (DATE or TIMESTAMP)
      - unit_price (NUMERIC)
      - quantity (INTEGER)
    """
    return _load_table(project_id, dataset_id, table_id, TRANSACTION_FIELDS, "transactions")


def load_products(
    project_id: str,
    dataset_id: str = DEFAULT_DATASET,
    table_id: str = DEFAULT_PRODUCTS_TABLE,
) -> pd.DataFrame:
    """
    Load the products table.

    Expected schema:
      - product_id (STRING)
      - product_name (STRING)
      - department_id (STRING)
    """
    return _load_table(project_id, dataset_id, table_id, PRODUCT_FIELDS, "products")


def load_departments(
    project_id: str,
    dataset_id: str = DEFAULT_DATASET,
    table_id: str = DEFAULT_DEPARTMENTS_TABLE,
) -> pd.DataFrame:
    """Load the departments table (department_id, department_name)."""
    return _load_table(project_id, dataset_id, table_id, DEPARTMENT_FIELDS, "departments")
